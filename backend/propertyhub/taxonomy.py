"""
Read-only lookups over the category / subcategory / mini-subcategory tables.

Always live queries (no caching). Where slugs are not unique, the first row by
(sort_order, id) wins.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from propertyhub.models import Category, MiniSubcategory, Property, Subcategory


def get_category_by_slug(db: Session, slug: str) -> Category | None:
    if not slug:
        return None
    return db.execute(select(Category).where(Category.slug == slug).limit(1)).scalars().first()


def find_subcategory(db: Session, slug: str, *, category_id: int | None = None) -> Subcategory | None:
    if not slug:
        return None
    stmt = select(Subcategory).where(Subcategory.slug == slug)
    if category_id is not None:
        stmt = stmt.where(Subcategory.category_id == int(category_id))
    stmt = stmt.order_by(Subcategory.sort_order.asc(), Subcategory.id.asc()).limit(1)
    return db.execute(stmt).scalars().first()


def find_mini_subcategory(db: Session, slug: str, *, subcategory_id: int) -> MiniSubcategory | None:
    if not slug:
        return None
    stmt = (
        select(MiniSubcategory)
        .where((MiniSubcategory.slug == slug) & (MiniSubcategory.subcategory_id == int(subcategory_id)))
        .order_by(MiniSubcategory.sort_order.asc(), MiniSubcategory.id.asc())
        .limit(1)
    )
    return db.execute(stmt).scalars().first()


def subcategory_ids_for_category(db: Session, category_id: int) -> list[int]:
    stmt = select(Subcategory.id).where(Subcategory.category_id == int(category_id)).order_by(Subcategory.id.asc())
    return [int(x) for x in db.execute(stmt).scalars().all()]


def find_mini_in_subcategories(db: Session, slug: str, subcategory_ids: list[int]) -> MiniSubcategory | None:
    if not slug or not subcategory_ids:
        return None
    stmt = (
        select(MiniSubcategory)
        .where((MiniSubcategory.slug == slug) & (MiniSubcategory.subcategory_id.in_(subcategory_ids)))
        .order_by(MiniSubcategory.sort_order.asc(), MiniSubcategory.id.asc())
        .limit(1)
    )
    return db.execute(stmt).scalars().first()


def mini_ids_by_slug(db: Session, slug: str, *, limit: int = 2) -> list[int]:
    """Ids of mini-subcategories with this slug anywhere in the tree (at most `limit`)."""
    if not slug:
        return []
    stmt = select(MiniSubcategory.id).where(MiniSubcategory.slug == slug).order_by(MiniSubcategory.id.asc()).limit(int(limit))
    return [int(x) for x in db.execute(stmt).scalars().all()]


# -----------------------
# Serialization for the public taxonomy endpoints
# -----------------------
def category_out(c: Category) -> dict[str, Any]:
    return {
        "id": c.id,
        "slug": c.slug,
        "name": c.name,
        "description": c.description,
        "iconUrl": c.icon_url,
        "sortOrder": c.sort_order,
        "isActive": bool(c.is_active),
    }


def subcategory_out(s: Subcategory) -> dict[str, Any]:
    return {
        "id": s.id,
        "categoryId": s.category_id,
        "slug": s.slug,
        "name": s.name,
        "description": s.description,
        "iconUrl": s.icon_url,
        "sortOrder": s.sort_order,
        "isActive": bool(s.is_active),
    }


def mini_subcategory_out(m: MiniSubcategory) -> dict[str, Any]:
    return {
        "id": m.id,
        "subcategoryId": m.subcategory_id,
        "slug": m.slug,
        "name": m.name,
        "description": m.description,
        "iconUrl": m.icon_url,
        "sortOrder": m.sort_order,
        "isActive": bool(m.is_active),
    }


def list_categories(db: Session, *, active_only: bool = True) -> list[Category]:
    stmt = select(Category).order_by(Category.sort_order.asc(), Category.id.asc())
    if active_only:
        stmt = stmt.where(Category.is_active.is_(True))
    return list(db.execute(stmt).scalars().all())


def category_tree(db: Session, category: Category, *, active_only: bool = True) -> dict[str, Any]:
    """Category with its subcategories and their mini-subcategories nested."""
    sub_stmt = select(Subcategory).where(Subcategory.category_id == category.id)
    if active_only:
        sub_stmt = sub_stmt.where(Subcategory.is_active.is_(True))
    subs = db.execute(sub_stmt.order_by(Subcategory.sort_order.asc(), Subcategory.id.asc())).scalars().all()

    minis_by_sub: dict[int, list[dict[str, Any]]] = {}
    sub_ids = [s.id for s in subs]
    if sub_ids:
        mini_stmt = select(MiniSubcategory).where(MiniSubcategory.subcategory_id.in_(sub_ids))
        if active_only:
            mini_stmt = mini_stmt.where(MiniSubcategory.is_active.is_(True))
        mini_stmt = mini_stmt.order_by(MiniSubcategory.sort_order.asc(), MiniSubcategory.id.asc())
        for m in db.execute(mini_stmt).scalars().all():
            minis_by_sub.setdefault(int(m.subcategory_id), []).append(mini_subcategory_out(m))

    out = category_out(category)
    out["subcategories"] = [
        {**subcategory_out(s), "miniSubcategories": minis_by_sub.get(int(s.id), [])} for s in subs
    ]
    return out


def mini_subcategories_with_counts(db: Session, subcategory_id: int) -> list[dict[str, Any]]:
    """
    Active mini-subcategories under a subcategory, each with the number of
    publicly visible listings attached to it.
    """
    minis = db.execute(
        select(MiniSubcategory)
        .where((MiniSubcategory.subcategory_id == int(subcategory_id)) & (MiniSubcategory.is_active.is_(True)))
        .order_by(MiniSubcategory.sort_order.asc(), MiniSubcategory.id.asc())
    ).scalars().all()
    if not minis:
        return []
    ids = [m.id for m in minis]
    counts = dict(
        db.execute(
            select(Property.mini_subcategory_id, func.count(Property.id))
            .where(
                Property.mini_subcategory_id.in_(ids)
                & (Property.status == "active")
                & ((Property.approval_status == "approved") | Property.approval_status.is_(None))
            )
            .group_by(Property.mini_subcategory_id)
        ).all()
    )
    return [{**mini_subcategory_out(m), "count": int(counts.get(m.id, 0))} for m in minis]
