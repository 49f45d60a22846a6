"""
Taxonomy administration: creating category trees, cascade deletes, the default
seed and `init_db()`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from fastapi import HTTPException
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from propertyhub.db import ENGINE, session_scope
from propertyhub.models import Base, Category, MiniSubcategory, Subcategory
from propertyhub.moderation import log_moderation
from propertyhub.slugs import normalize_slug

logger = logging.getLogger(__name__)

# slug -> (name, sort_order, {sub slug: (sub name, [mini slugs])})
DEFAULT_TAXONOMY: Mapping[str, tuple[str, int, dict[str, tuple[str, list[str]]]]] = {
    "residential": (
        "Residential",
        1,
        {
            "houses": ("Houses", ["independent-house", "villa", "row-house"]),
            "apartments": ("Apartments", ["1bhk", "2bhk", "3bhk", "penthouse"]),
        },
    ),
    "commercial": (
        "Commercial",
        2,
        {
            "shop-spaces": ("Shop Spaces", ["retail-shop", "showroom", "kiosk"]),
            "office-spaces": ("Office Spaces", ["office", "co-working", "it-park"]),
            "industrial": ("Industrial", ["warehouse", "factory"]),
        },
    ),
    "flat": ("Flats", 3, {"builder-floors": ("Builder Floors", ["ground-floor", "upper-floor"])}),
    "plot": (
        "Plots",
        4,
        {
            "residential-plots": ("Residential Plots", ["corner-plot", "gated-plot"]),
            "commercial-plots": ("Commercial Plots", ["highway-plot"]),
        },
    ),
    "agricultural": ("Agricultural", 5, {"farmland": ("Farmland", ["farmhouse", "orchard"])}),
    "pg": ("PG / Co-living", 6, {"pg-rooms": ("PG Rooms", ["single-sharing", "double-sharing"])}),
    "buy": ("Buy", 90, {}),
    "rent": ("Rent", 91, {}),
}


def _name_and_slug(item: Mapping[str, Any], *, what: str) -> tuple[str, str]:
    name = str(item.get("name") or "").strip()
    slug = normalize_slug(item.get("slug") or name)
    if not name or not slug:
        raise HTTPException(status_code=400, detail=f"{what} name is required")
    return name, slug


def _int_or(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def create_category_tree(db: Session, *, actor_id: int, payload: Mapping[str, Any]) -> Category:
    """
    Insert a category together with optional nested `subcategories`, each of which
    may carry `miniSubcategories`. Slugs default to the normalized names.
    """
    name, slug = _name_and_slug(payload, what="Category")
    if db.execute(select(Category.id).where(Category.slug == slug)).first() is not None:
        raise HTTPException(status_code=409, detail=f"Category '{slug}' already exists")

    category = Category(
        slug=slug,
        name=name,
        description=str(payload.get("description") or ""),
        icon_url=str(payload.get("iconUrl") or ""),
        sort_order=_int_or(payload.get("sortOrder"), 999),
        is_active=payload.get("isActive", True) is not False,
    )
    db.add(category)
    try:
        db.flush()
    except IntegrityError:
        raise HTTPException(status_code=409, detail=f"Category '{slug}' already exists")

    for i, sub_item in enumerate(payload.get("subcategories") or []):
        sub_name, sub_slug = _name_and_slug(sub_item, what="Subcategory")
        sub = Subcategory(
            category_id=category.id,
            slug=sub_slug,
            name=sub_name,
            description=str(sub_item.get("description") or ""),
            icon_url=str(sub_item.get("iconUrl") or ""),
            sort_order=_int_or(sub_item.get("sortOrder"), i),
        )
        db.add(sub)
        db.flush()
        for j, mini_item in enumerate(sub_item.get("miniSubcategories") or []):
            mini_name, mini_slug = _name_and_slug(mini_item, what="Mini-subcategory")
            db.add(
                MiniSubcategory(
                    subcategory_id=sub.id,
                    slug=mini_slug,
                    name=mini_name,
                    description=str(mini_item.get("description") or ""),
                    icon_url=str(mini_item.get("iconUrl") or ""),
                    sort_order=_int_or(mini_item.get("sortOrder"), j),
                )
            )
    db.flush()
    log_moderation(db, actor_user_id=actor_id, entity_type="category", entity_id=category.id, action="create")
    logger.info("Category created id=%s slug=%s", category.id, category.slug)
    return category


# -----------------------
# Cascade deletes (children first; deleting something already gone is a no-op)
# -----------------------
def _delete_minis_under(db: Session, subcategory_ids: Iterable[int]) -> int:
    ids = list(subcategory_ids)
    if not ids:
        return 0
    return db.execute(delete(MiniSubcategory).where(MiniSubcategory.subcategory_id.in_(ids))).rowcount or 0


def delete_mini_subcategory(db: Session, *, actor_id: int, mini_id: int) -> bool:
    deleted = db.execute(delete(MiniSubcategory).where(MiniSubcategory.id == int(mini_id))).rowcount or 0
    if deleted:
        log_moderation(db, actor_user_id=actor_id, entity_type="mini_subcategory", entity_id=mini_id, action="delete")
    return bool(deleted)


def delete_subcategory(db: Session, *, actor_id: int, subcategory_id: int) -> bool:
    minis = _delete_minis_under(db, [subcategory_id])
    deleted = db.execute(delete(Subcategory).where(Subcategory.id == int(subcategory_id))).rowcount or 0
    if deleted:
        log_moderation(db, actor_user_id=actor_id, entity_type="subcategory", entity_id=subcategory_id, action="delete")
        logger.info("Subcategory deleted id=%s (mini-subcategories removed: %s)", subcategory_id, minis)
    return bool(deleted)


def delete_category(db: Session, *, actor_id: int, category_id: int) -> bool:
    sub_ids = [int(x) for x in db.execute(select(Subcategory.id).where(Subcategory.category_id == int(category_id))).scalars()]
    minis = _delete_minis_under(db, sub_ids)
    if sub_ids:
        db.execute(delete(Subcategory).where(Subcategory.id.in_(sub_ids)))
    deleted = db.execute(delete(Category).where(Category.id == int(category_id))).rowcount or 0
    if deleted:
        log_moderation(db, actor_user_id=actor_id, entity_type="category", entity_id=category_id, action="delete")
        logger.info(
            "Category deleted id=%s (subcategories removed: %s, mini-subcategories removed: %s)",
            category_id,
            len(sub_ids),
            minis,
        )
    return bool(deleted)


# -----------------------
# Startup
# -----------------------
def seed_default_taxonomy(db: Session) -> bool:
    """Insert the default tree when the categories table is empty. Returns True if seeded."""
    if int(db.execute(select(func.count(Category.id))).scalar() or 0) > 0:
        return False
    for slug, (name, order, subs) in DEFAULT_TAXONOMY.items():
        category = Category(slug=slug, name=name, sort_order=order)
        db.add(category)
        db.flush()
        for i, (sub_slug, (sub_name, minis)) in enumerate(subs.items()):
            sub = Subcategory(category_id=category.id, slug=sub_slug, name=sub_name, sort_order=i)
            db.add(sub)
            db.flush()
            for j, mini_slug in enumerate(minis):
                db.add(
                    MiniSubcategory(
                        subcategory_id=sub.id,
                        slug=mini_slug,
                        name=mini_slug.replace("-", " ").title(),
                        sort_order=j,
                    )
                )
    logger.info("Seeded default taxonomy (%s categories)", len(DEFAULT_TAXONOMY))
    return True


def init_db() -> None:
    """Create missing tables and seed the default taxonomy."""
    Base.metadata.create_all(bind=ENGINE)
    with session_scope() as db:
        seed_default_taxonomy(db)
