"""
Mini-subcategory resolution.

Client pages often know a mini-subcategory only by its slug, and the slug of its
subcategory is not globally unique ("office" can live under "commercial" and under
a legacy "lease" tab). We therefore try an ordered list of candidate parent
categories and take the first one that yields a row. There is no scoring: the most
specific signal (the property type) is simply tried first.
"""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from propertyhub.slugs import (
    CANONICAL_PROPERTY_TYPES,
    TOP_TABS,
    canonical_price_type,
    canonical_property_type,
    normalize_slug,
)
from propertyhub.taxonomy import (
    find_mini_in_subcategories,
    find_mini_subcategory,
    find_subcategory,
    get_category_by_slug,
    mini_ids_by_slug,
    subcategory_ids_for_category,
)

logger = logging.getLogger(__name__)


def _dedupe(items: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for x in items:
        if x and x not in seen:
            seen.add(x)
            out.append(x)
    return out


def candidate_parent_categories(
    *,
    category_slug: str | None = None,
    property_type: str | None = None,
    price_type: str | None = None,
    include_fallback: bool = True,
) -> list[str]:
    """
    Parent-category slugs to try, highest priority first:

    1. the property type, when it names a canonical group
    2. the category, when it is a real taxonomy category
    3. the category, when it is a top tab (legacy data lives under tab categories)
    4. "rent" or "buy" depending on the price type (only with `include_fallback`)
    """
    category = normalize_slug(category_slug)
    ptype = canonical_property_type(property_type)

    candidates: list[str] = []
    if ptype in CANONICAL_PROPERTY_TYPES:
        candidates.append(ptype)
    if category and category not in TOP_TABS:
        candidates.append(category)
    if include_fallback:
        if category and category in TOP_TABS:
            candidates.append(category)
        candidates.append("rent" if canonical_price_type(price_type) == "rent" else "buy")
    return _dedupe(candidates)


def resolve_mini_subcategory_id(
    db: Session,
    mini_slug: str | None,
    sub_slug: str | None,
    category_slug: str | None = None,
    property_type: str | None = None,
    price_type: str | None = None,
) -> int | None:
    """
    Exact-path resolution: both the subcategory slug and the mini slug are known.

    Returns the id of the first mini-subcategory found along the candidate parent
    categories, or None. Missing slugs short-circuit without touching the database.
    """
    mini = normalize_slug(mini_slug)
    sub = normalize_slug(sub_slug)
    if not mini or not sub:
        return None

    candidates = candidate_parent_categories(
        category_slug=category_slug,
        property_type=property_type,
        price_type=price_type,
    )
    for parent_slug in candidates:
        parent = get_category_by_slug(db, parent_slug)
        subcategory = None
        if parent is not None:
            subcategory = find_subcategory(db, sub, category_id=parent.id)
        if subcategory is None:
            # Tabs are not always backed by rows; fall back to a global slug match.
            subcategory = find_subcategory(db, sub)
        if subcategory is None:
            continue
        row = find_mini_subcategory(db, mini, subcategory_id=subcategory.id)
        if row is not None:
            logger.debug("Resolved mini %r under %s/%s -> %s", mini, parent_slug, sub, row.id)
            return int(row.id)
    return None


def resolve_mini_by_slug_loose(
    db: Session,
    mini_slug: str | None,
    category_slug: str | None = None,
    property_type: str | None = None,
) -> int | None:
    """
    Loose resolution: only a presumed mini slug is known (e.g. a page sent
    `subCategory=shop` where "shop" is really a mini-subcategory).

    Searches every subcategory of each candidate category. Failing that, a global
    lookup is accepted only if the slug is unique across the whole table; an
    ambiguous slug resolves to None rather than guessing a parent.
    """
    mini = normalize_slug(mini_slug)
    if not mini:
        return None

    candidates = candidate_parent_categories(
        category_slug=category_slug,
        property_type=property_type,
        include_fallback=False,
    )
    for parent_slug in candidates:
        parent = get_category_by_slug(db, parent_slug)
        if parent is None:
            continue
        sub_ids = subcategory_ids_for_category(db, parent.id)
        if not sub_ids:
            continue
        row = find_mini_in_subcategories(db, mini, sub_ids)
        if row is not None:
            return int(row.id)

    ids = mini_ids_by_slug(db, mini, limit=2)
    if len(ids) == 1:
        return ids[0]
    if len(ids) > 1:
        logger.info("Mini slug %r is ambiguous without a category hint; not resolving", mini)
    return None
