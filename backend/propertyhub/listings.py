from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from propertyhub.filters import ListingFilter
from propertyhub.models import Property
from propertyhub.slugs import PRICE_TYPE_ALIASES, TOP_TABS, normalize_slug, property_group_for

logger = logging.getLogger(__name__)


def _json_or(raw: str | None, fallback: Any) -> Any:
    try:
        return json.loads(raw) if raw else fallback
    except ValueError:
        return fallback


def property_location(p: Property) -> dict[str, str]:
    return {"sector": p.sector, "mohalla": p.mohalla, "landmark": p.landmark, "city": p.city, "area": p.area}


def property_specs(p: Property) -> dict[str, Any]:
    return {
        "bedrooms": p.bedrooms,
        "bathrooms": p.bathrooms,
        "area": p.area_sqft,
        "floor": p.floor,
        "totalFloors": p.total_floors,
        "parking": bool(p.parking),
        "furnishing": p.furnishing,
    }


def property_out(p: Property, *, include_internal: bool = False) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": p.id,
        "title": p.title,
        "description": p.description,
        "price": p.price,
        "priceType": p.price_type,
        "propertyType": p.property_type,
        "subCategory": p.sub_category,
        "miniSubcategoryId": p.mini_subcategory_id,
        "location": property_location(p),
        "specifications": property_specs(p),
        "images": _json_or(p.images_json, []),
        "amenities": _json_or(p.amenities_json, []),
        "ownerId": p.owner_id,
        "status": p.status,
        "approvalStatus": p.approval_status,
        "premium": bool(p.premium),
        "featured": bool(p.featured),
        "views": int(p.views or 0),
        "inquiries": int(p.inquiries or 0),
        "createdAt": p.created_at.isoformat() if p.created_at else "",
        "updatedAt": p.updated_at.isoformat() if p.updated_at else "",
    }
    if p.contact_visible or include_internal:
        out["contactInfo"] = _json_or(p.contact_info_json, {})
    if include_internal:
        out["packageId"] = p.package_id
        out["isPaid"] = bool(p.is_paid)
        out["shareContactInfo"] = bool(p.share_contact_info)
        out["contactVisible"] = bool(p.contact_visible)
        out["rejectionReason"] = p.rejection_reason
        out["adminComments"] = p.admin_comments
    return out


def query_listings(db: Session, f: ListingFilter) -> tuple[list[Property], int]:
    """Run a built filter: one page of rows plus the total match count."""
    clauses = f.where_clauses()
    stmt = select(Property).where(*clauses).order_by(*f.order_by()).offset(f.pagination.offset).limit(f.pagination.limit)
    rows = list(db.execute(stmt).scalars().all())
    total = int(db.execute(select(func.count(Property.id)).where(*clauses)).scalar() or 0)
    logger.debug("Listing query matched %s rows (page=%s limit=%s)", total, f.pagination.page, f.pagination.limit)
    return rows, total


def listing_page(db: Session, f: ListingFilter) -> dict[str, Any]:
    rows, total = query_listings(db, f)
    return {
        "properties": [property_out(p) for p in rows],
        "pagination": f.pagination.as_dict(total),
    }


def category_browse_query(category: str, sub: str | None, query: Mapping[str, Any]) -> dict[str, Any]:
    """
    Translate path-style browsing (/categories/{category}/{sub}) into list query params.

    Under a top tab, `sub` is either a property group (buy/commercial) or a
    subcategory slug; under a real category it is always a subcategory/mini slug.
    """
    q: dict[str, Any] = dict(query)
    cat = normalize_slug(category)
    q["category"] = cat
    q.pop("categorySlug", None)
    sub_slug = normalize_slug(sub)
    if not sub_slug:
        return q
    if cat in TOP_TABS:
        group = property_group_for(sub_slug)
        if group:
            q["propertyType"] = group
        else:
            q["subCategory"] = sub_slug
        q["priceType"] = PRICE_TYPE_ALIASES.get(cat, cat)
    else:
        q["subCategory"] = sub_slug
    return q


def featured_listings(db: Session, *, limit: int = 10) -> list[Property]:
    stmt = (
        select(Property)
        .where((Property.status == "active") & (Property.featured.is_(True)) & (Property.approval_status == "approved"))
        .order_by(Property.created_at.desc(), Property.id.desc())
        .limit(int(limit))
    )
    return list(db.execute(stmt).scalars().all())


def owner_listings(db: Session, owner_id: int) -> list[Property]:
    stmt = select(Property).where(Property.owner_id == int(owner_id)).order_by(Property.created_at.desc(), Property.id.desc())
    return list(db.execute(stmt).scalars().all())


def pending_listings(db: Session) -> list[Property]:
    stmt = (
        select(Property)
        .where(Property.approval_status.in_(["pending", "pending_approval"]))
        .order_by(Property.created_at.desc(), Property.id.desc())
    )
    return list(db.execute(stmt).scalars().all())
