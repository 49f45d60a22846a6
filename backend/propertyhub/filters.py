"""
Listing filter builder.

Turns the alias-heavy query strings sent by the various browse pages into one
canonical `ListingFilter`: the WHERE clauses, the ORDER BY and the page window.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Union

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from propertyhub.config import default_page_limit, location_match_mode, max_page_limit, public_include_pending
from propertyhub.models import Property
from propertyhub.resolver import resolve_mini_by_slug_loose, resolve_mini_subcategory_id
from propertyhub.slugs import (
    CANONICAL_PROPERTY_TYPES,
    PRICE_TYPE_ALIASES,
    PROPERTY_TYPE_ALIASES,
    TAB_GROUPS,
    TOP_TABS,
    canonical_price_type,
    canonical_property_type,
    normalize_slug,
    pick_first,
    property_group_for,
)

logger = logging.getLogger(__name__)

CATEGORY_KEYS = ("category", "categorySlug")
PROPERTY_TYPE_KEYS = ("propertyType", "type")
SUBCATEGORY_KEYS = ("subCategory", "subcategory", "sub", "subCat")
MINI_SLUG_KEYS = ("miniSubcategory", "miniSubCategory", "miniSubcategorySlug", "mini")
MINI_ID_KEYS = ("miniSubcategoryId",)

_AT_LEAST_RE = re.compile(r"^\s*(\d+)\s*\+\s*$")


# -----------------------
# Taxonomy constraint (mutually exclusive by construction)
# -----------------------
@dataclass(frozen=True)
class ByMiniId:
    id: int
    kind: str = field(default="by-mini-id", init=False)


@dataclass(frozen=True)
class BySubcategorySlug:
    slug: str
    kind: str = field(default="by-subcategory-slug", init=False)


@dataclass(frozen=True)
class Unconstrained:
    kind: str = field(default="unconstrained", init=False)


TaxonomyConstraint = Union[ByMiniId, BySubcategorySlug, Unconstrained]


# -----------------------
# Sorting / pagination
# -----------------------
SORT_OPTIONS: Mapping[str, tuple] = MappingProxyType(
    {
        "price_asc": (Property.price.asc(),),
        "price_desc": (Property.price.desc(),),
        "area_desc": (Property.area_sqft.desc(),),
        "date_asc": (Property.created_at.asc(),),
        "date_desc": (Property.created_at.desc(),),
        "views_desc": (Property.views.desc(),),
        "premium_first": (Property.premium.desc(), Property.created_at.desc()),
    }
)
DEFAULT_SORT = "date_desc"


@dataclass(frozen=True)
class Pagination:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def pages_for(self, total: int) -> int:
        if total <= 0:
            return 0
        return math.ceil(total / self.limit)

    def as_dict(self, total: int) -> dict[str, int]:
        pages = self.pages_for(total)
        return {"page": self.page, "limit": self.limit, "total": int(total), "pages": pages, "totalPages": pages}


# Bound values to what a signed 64-bit INTEGER column accepts.
DB_INT_MIN = -(2**63)
DB_INT_MAX = 2**63 - 1
MAX_PAGE = 1_000_000


def _to_int(v: Any) -> int | None:
    if v is None:
        return None
    s = str(v).strip().replace(",", "")
    if not s:
        return None
    try:
        n = int(s) if s.lstrip("+-").isdigit() else int(float(s))
    except (ValueError, OverflowError):
        return None
    return min(max(n, DB_INT_MIN), DB_INT_MAX)


def parse_pagination(page: Any, limit: Any) -> Pagination:
    page_n = _to_int(page) or 1
    limit_n = _to_int(limit) or default_page_limit()
    return Pagination(page=min(max(1, page_n), MAX_PAGE), limit=min(max(1, limit_n), max_page_limit()))


def parse_id(value: Any, *, label: str = "ID") -> int:
    n = _to_int(value)
    if n is None or n <= 0 or str(value).strip() != str(n):
        raise HTTPException(status_code=400, detail=f"Invalid {label}")
    return n


# -----------------------
# The filter itself
# -----------------------
@dataclass(frozen=True)
class ListingFilter:
    category: str = ""
    property_type: str = ""
    price_type: str = ""
    # OR-ed (property_type, price_type) pairs for the buy/rent tabs.
    type_pairs: tuple[tuple[str, str], ...] = ()
    taxonomy: TaxonomyConstraint = Unconstrained()
    min_price: int | None = None
    max_price: int | None = None
    bedrooms: int | None = None
    bedrooms_at_least: bool = False
    bathrooms: int | None = None
    min_area: int | None = None
    max_area: int | None = None
    location: Mapping[str, str] = field(default_factory=dict)
    location_mode: str = "ci"
    premium: bool = False
    featured: bool = False
    include_pending: bool = False
    sort: str = DEFAULT_SORT
    pagination: Pagination = Pagination(page=1, limit=20)

    def visibility_clause(self):
        statuses = ["approved"]
        if self.include_pending:
            statuses.append("pending")
        return (Property.status == "active") & (
            Property.approval_status.in_(statuses) | Property.approval_status.is_(None)
        )

    def where_clauses(self) -> list:
        clauses = [self.visibility_clause()]

        if self.type_pairs:
            pair_clause = None
            for ptype, price in self.type_pairs:
                c = (Property.property_type == ptype) & (Property.price_type == price)
                pair_clause = c if pair_clause is None else (pair_clause | c)
            clauses.append(pair_clause)
        elif self.property_type:
            clauses.append(Property.property_type == self.property_type)
        if self.price_type:
            clauses.append(Property.price_type == self.price_type)

        if isinstance(self.taxonomy, ByMiniId):
            clauses.append(Property.mini_subcategory_id == self.taxonomy.id)
        elif isinstance(self.taxonomy, BySubcategorySlug):
            clauses.append(Property.sub_category == self.taxonomy.slug)

        if self.min_price is not None:
            clauses.append(Property.price >= self.min_price)
        if self.max_price is not None:
            clauses.append(Property.price <= self.max_price)
        if self.bedrooms is not None:
            if self.bedrooms_at_least:
                clauses.append(Property.bedrooms >= self.bedrooms)
            else:
                clauses.append(Property.bedrooms == self.bedrooms)
        if self.bathrooms is not None:
            clauses.append(Property.bathrooms == self.bathrooms)
        if self.min_area is not None:
            clauses.append(Property.area_sqft >= self.min_area)
        if self.max_area is not None:
            clauses.append(Property.area_sqft <= self.max_area)

        for name, value in self.location.items():
            if self.location_mode == "slug":
                clauses.append(getattr(Property, f"{name}_slug") == normalize_slug(value))
            else:
                clauses.append(func.lower(func.trim(getattr(Property, name))) == value.strip().lower())

        if self.premium:
            clauses.append(Property.premium.is_(True))
        if self.featured:
            clauses.append(Property.featured.is_(True))
        return clauses

    def order_by(self) -> tuple:
        return SORT_OPTIONS.get(self.sort, SORT_OPTIONS[DEFAULT_SORT]) + (Property.id.desc(),)

    def describe(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "propertyType": self.property_type,
            "priceType": self.price_type,
            "typePairs": [list(p) for p in self.type_pairs],
            "taxonomy": self.taxonomy,
            "sort": self.sort,
            "page": self.pagination.page,
            "limit": self.pagination.limit,
        }


def _resolve_taxonomy(
    db: Session,
    *,
    sub_slug: str,
    mini_slug: str,
    mini_id_raw: Any,
    category: str,
    property_type: str,
    price_type: str,
) -> TaxonomyConstraint:
    if mini_id_raw is not None:
        return ByMiniId(parse_id(mini_id_raw, label="miniSubcategoryId"))

    if mini_slug:
        if sub_slug:
            resolved = resolve_mini_subcategory_id(
                db,
                mini_slug,
                sub_slug,
                category_slug=category,
                property_type=property_type,
                price_type=price_type,
            )
        else:
            resolved = resolve_mini_by_slug_loose(db, mini_slug, category_slug=category, property_type=property_type)
        if resolved is not None:
            return ByMiniId(resolved)
        logger.warning(
            "miniSubcategory slug provided but not resolved: mini=%s sub=%s category=%s propertyType=%s",
            mini_slug,
            sub_slug,
            category,
            property_type,
        )
        return BySubcategorySlug(sub_slug) if sub_slug else Unconstrained()

    if sub_slug:
        # Pages sometimes send a mini slug in the subCategory field.
        resolved = resolve_mini_by_slug_loose(db, sub_slug, category_slug=category, property_type=property_type)
        if resolved is not None:
            return ByMiniId(resolved)
        return BySubcategorySlug(sub_slug)

    return Unconstrained()


def build_filter(db: Session, query: Mapping[str, Any]) -> ListingFilter:
    category = normalize_slug(pick_first(query, CATEGORY_KEYS))
    property_type = canonical_property_type(pick_first(query, PROPERTY_TYPE_KEYS))
    sub_slug = normalize_slug(pick_first(query, SUBCATEGORY_KEYS))
    mini_slug = normalize_slug(pick_first(query, MINI_SLUG_KEYS))
    mini_id_raw = pick_first(query, MINI_ID_KEYS)

    # Page passed only `category`: derive the property type when the category names one.
    if not property_type and category in PROPERTY_TYPE_ALIASES:
        property_type = PROPERTY_TYPE_ALIASES[category]

    # Tab pages pass the real group through `subCategory` (e.g. category=buy&subCategory=commercial).
    if category in TOP_TABS and sub_slug:
        group = property_group_for(sub_slug)
        if group:
            if not property_type:
                property_type = group
            if sub_slug in CANONICAL_PROPERTY_TYPES and property_type == sub_slug:
                sub_slug = ""

    price_type = ""
    type_pairs: tuple[tuple[str, str], ...] = ()
    if category in TAB_GROUPS:
        if property_type:
            price_type = PRICE_TYPE_ALIASES[category]
        else:
            type_pairs = TAB_GROUPS[category]
    elif category in TOP_TABS:
        price_type = PRICE_TYPE_ALIASES[category]

    explicit_price = canonical_price_type(pick_first(query, ("priceType",)))
    if explicit_price:
        price_type = explicit_price

    taxonomy = _resolve_taxonomy(
        db,
        sub_slug=sub_slug,
        mini_slug=mini_slug,
        mini_id_raw=mini_id_raw,
        category=category,
        property_type=property_type,
        price_type=price_type,
    )

    bedrooms: int | None = None
    bedrooms_at_least = False
    raw_bedrooms = pick_first(query, ("bedrooms",))
    if raw_bedrooms is not None:
        m = _AT_LEAST_RE.match(str(raw_bedrooms))
        if m:
            bedrooms = _to_int(m.group(1))
            bedrooms_at_least = True
        else:
            bedrooms = _to_int(raw_bedrooms)

    location: dict[str, str] = {}
    for name in ("sector", "mohalla", "landmark"):
        v = pick_first(query, (name,))
        if v is not None:
            location[name] = str(v).strip()

    sort = str(pick_first(query, ("sortBy", "sort")) or DEFAULT_SORT).strip().lower()
    if sort not in SORT_OPTIONS:
        sort = DEFAULT_SORT

    f = ListingFilter(
        category=category,
        property_type=property_type,
        price_type=price_type,
        type_pairs=type_pairs,
        taxonomy=taxonomy,
        min_price=_to_int(pick_first(query, ("minPrice",))),
        max_price=_to_int(pick_first(query, ("maxPrice",))),
        bedrooms=bedrooms,
        bedrooms_at_least=bedrooms_at_least,
        bathrooms=_to_int(pick_first(query, ("bathrooms",))),
        min_area=_to_int(pick_first(query, ("minArea",))),
        max_area=_to_int(pick_first(query, ("maxArea",))),
        location=location,
        location_mode=location_match_mode(),
        premium=str(pick_first(query, ("premium",)) or "").strip().lower() == "true",
        featured=str(pick_first(query, ("featured",)) or "").strip().lower() == "true",
        include_pending=public_include_pending(),
        sort=sort,
        pagination=parse_pagination(pick_first(query, ("page",)), pick_first(query, ("limit",))),
    )
    logger.debug("Built listing filter: %s", f.describe())
    return f
