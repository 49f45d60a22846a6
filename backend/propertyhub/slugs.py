"""
Slug normalization and the static alias tables shared by the read and write paths.

The tables map the many names client pages use ("shop", "co-living", "buy", ...)
onto the canonical values stored on listings:

- property types: commercial, residential, flat, plot, agricultural, pg
- price types: sale, rent
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Any

_WS_RE = re.compile(r"\s+")
_INVALID_RE = re.compile(r"[^a-z0-9-]")
_DASHES_RE = re.compile(r"-+")


def normalize_slug(value: Any) -> str:
    """
    Canonical URL-safe slug: lowercase, trimmed, whitespace -> "-", only [a-z0-9-].

    Never raises; `normalize_slug(normalize_slug(x)) == normalize_slug(x)`.
    """
    if value is None:
        return ""
    s = str(value).strip().lower()
    s = _WS_RE.sub("-", s)
    s = _INVALID_RE.sub("", s)
    s = _DASHES_RE.sub("-", s)
    return s.strip("-")


CANONICAL_PROPERTY_TYPES = frozenset({"commercial", "residential", "flat", "plot", "agricultural", "pg"})

PROPERTY_TYPE_ALIASES: Mapping[str, str] = MappingProxyType(
    {
        # PG / co-living
        "pg": "pg",
        "co-living": "pg",
        "coliving": "pg",
        # Agricultural
        "agricultural": "agricultural",
        "agricultural-land": "agricultural",
        "agri": "agricultural",
        "farm": "agricultural",
        # Commercial family
        "commercial": "commercial",
        "shop": "commercial",
        "showroom": "commercial",
        "office": "commercial",
        "warehouse": "commercial",
        # Residential family
        "residential": "residential",
        "villa": "residential",
        "house": "residential",
        "flat": "flat",
        "apartment": "flat",
        # Plot
        "plot": "plot",
        "land": "plot",
    }
)

PRICE_TYPES = frozenset({"sale", "rent"})

PRICE_TYPE_ALIASES: Mapping[str, str] = MappingProxyType(
    {
        "buy": "sale",
        "sale": "sale",
        "rent": "rent",
        "lease": "rent",
        "pg": "rent",
        "co-living": "rent",
        "coliving": "rent",
    }
)

# Navigation tabs in the UI. They imply a price type but are not taxonomy nodes.
TOP_TABS = frozenset({"buy", "rent", "sale", "lease", "pg"})

# Members of the buy/rent tab when no property type narrows it down.
TAB_GROUPS: Mapping[str, tuple[tuple[str, str], ...]] = MappingProxyType(
    {
        "buy": tuple((t, "sale") for t in ("residential", "plot", "flat", "commercial", "agricultural")),
        "rent": tuple((t, "rent") for t in ("residential", "flat", "commercial", "pg")),
    }
)


def canonical_property_type(value: Any) -> str:
    s = normalize_slug(value)
    return PROPERTY_TYPE_ALIASES.get(s, s)


def canonical_price_type(value: Any) -> str:
    s = normalize_slug(value)
    return PRICE_TYPE_ALIASES.get(s, s)


def property_group_for(value: Any) -> str:
    """Canonical property group named by `value`, or "" if it names none."""
    s = normalize_slug(value)
    if s in PROPERTY_TYPE_ALIASES:
        return PROPERTY_TYPE_ALIASES[s]
    if s in CANONICAL_PROPERTY_TYPES:
        return s
    return ""


def is_top_tab(value: Any) -> bool:
    return normalize_slug(value) in TOP_TABS


def pick_first(source: Mapping[str, Any], keys: Iterable[str]) -> Any:
    """
    First value among `keys` that is present and not blank.

    Clients send the same logical field under different names
    (subCategory, subcategory, sub, ...); the key order is the priority.
    """
    for k in keys:
        v = source.get(k)
        if v is None:
            continue
        if str(v).strip() == "":
            continue
        return v
    return None
