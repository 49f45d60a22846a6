"""
Property write pipeline (create / update / moderation).

Writes run the same slug normalization and mini-subcategory resolver as the read
path, so a listing posted from a tab page (`propertyType=buy&subCategory=commercial`)
is stored as `property_type=commercial, price_type=sale` and later matches filters
built independently by `propertyhub.filters`.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
import os
import secrets
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

from fastapi import HTTPException
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from propertyhub.config import free_post_limit, free_post_period_days, max_upload_image_bytes, uploads_dir
from propertyhub.filters import DB_INT_MAX, DB_INT_MIN, MINI_SLUG_KEYS, parse_id
from propertyhub.listings import property_location, property_specs
from propertyhub.models import AdminSetting, MiniSubcategory, Property, Subcategory, User
from propertyhub.moderation import log_moderation
from propertyhub.notifications import notify_property_decision
from propertyhub.resolver import resolve_mini_by_slug_loose, resolve_mini_subcategory_id
from propertyhub.slugs import (
    CANONICAL_PROPERTY_TYPES,
    PRICE_TYPE_ALIASES,
    PRICE_TYPES,
    PROPERTY_TYPE_ALIASES,
    TOP_TABS,
    canonical_price_type,
    canonical_property_type,
    is_top_tab,
    normalize_slug,
    pick_first,
    property_group_for,
)

logger = logging.getLogger(__name__)

FREE_LISTING_LIMITS_KEY = "free_listing_limits"
APPROVAL_DECISIONS = frozenset({"approved", "rejected"})

_IMAGE_EXTS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
}


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


# -----------------------
# Body field helpers
# -----------------------
def parse_json_field(value: Any, fallback: Any) -> Any:
    """
    Accept a JSON-shaped form field either as a JSON string or an already parsed value.

    Multipart clients sometimes encode twice ('"{\\"sector\\": ...}"'), so a decoded
    string is decoded once more. Anything unparseable yields `fallback`.
    """
    if value is None:
        return fallback
    if isinstance(value, str):
        if not value.strip():
            return fallback
        try:
            decoded = json.loads(value)
        except ValueError:
            return fallback
        if isinstance(decoded, str):
            try:
                decoded = json.loads(decoded)
            except ValueError:
                return fallback
        value = decoded
    if isinstance(fallback, dict) and not isinstance(value, dict):
        return fallback
    if isinstance(fallback, list) and not isinstance(value, list):
        return fallback
    return value


def parse_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    s = str(value).strip().lower()
    if not s:
        return default
    return s in {"1", "true", "yes", "on"}


def _opt_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    s = str(value).strip().replace(",", "")
    if not s:
        return None
    try:
        n = int(s) if s.lstrip("+-").isdigit() else int(float(s))
    except (ValueError, OverflowError):
        return None
    # Out of INTEGER range counts as unparseable.
    if not DB_INT_MIN <= n <= DB_INT_MAX:
        return None
    return n


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ""


# -----------------------
# Taxonomy canonicalization (shared with the read path's rules)
# -----------------------
@dataclass(frozen=True)
class CanonicalTaxonomy:
    property_type: str
    price_type: str
    sub_category: str
    mini_subcategory_id: int | None
    mini_slug: str = ""


def canonicalize_taxonomy(
    db: Session,
    *,
    property_type: Any = None,
    price_type: Any = None,
    sub_category: Any = None,
    mini_slug: Any = None,
    category: Any = None,
) -> CanonicalTaxonomy:
    raw_type = normalize_slug(property_type)
    cat = normalize_slug(category)
    sub = normalize_slug(sub_category)
    mini = normalize_slug(mini_slug)
    price = canonical_price_type(price_type)

    # A tab sent as the property type ("buy") only tells us the price type.
    tab = ""
    ptype = ""
    if raw_type in TOP_TABS and raw_type not in PROPERTY_TYPE_ALIASES:
        tab = raw_type
    else:
        ptype = canonical_property_type(raw_type)
    if not tab and cat in TOP_TABS:
        tab = cat
    if not ptype:
        ptype = property_group_for(cat)

    if tab and sub:
        group = property_group_for(sub)
        if group:
            if not ptype:
                ptype = group
            if sub in CANONICAL_PROPERTY_TYPES and ptype == sub:
                sub = ""

    if not price and tab:
        price = PRICE_TYPE_ALIASES[tab]
    if not price and ptype == "pg":
        price = "rent"

    mini_id: int | None = None
    if mini:
        if sub:
            mini_id = resolve_mini_subcategory_id(
                db,
                mini,
                sub,
                category_slug=cat or tab,
                property_type=ptype,
                price_type=price,
            )
        else:
            mini_id = resolve_mini_by_slug_loose(db, mini, category_slug=cat, property_type=ptype)
        if mini_id is None:
            logger.warning(
                "Listing mini-subcategory not resolved: mini=%s sub=%s category=%s propertyType=%s",
                mini,
                sub,
                cat or tab,
                ptype,
            )
        else:
            row = db.get(MiniSubcategory, mini_id)
            parent = db.get(Subcategory, row.subcategory_id) if row is not None else None
            if parent is not None:
                sub = parent.slug

    return CanonicalTaxonomy(
        property_type=ptype,
        price_type=price,
        sub_category=sub,
        mini_subcategory_id=mini_id,
        mini_slug=mini,
    )


# -----------------------
# Free posting quota
# -----------------------
def default_free_listing_limits(db: Session) -> tuple[int, int]:
    """(limit, period_days) from the admin setting, else the env defaults."""
    limit, days = free_post_limit(), free_post_period_days()
    row = db.get(AdminSetting, FREE_LISTING_LIMITS_KEY)
    if row is not None:
        data = parse_json_field(row.value_json, {})
        stored_limit = _opt_int(data.get("defaultLimit"))
        stored_days = _opt_int(data.get("defaultLimitType"))
        if stored_limit is not None and stored_limit >= 0:
            limit = stored_limit
        if stored_days is not None and stored_days > 0:
            days = stored_days
    return limit, days


def free_listing_limits(db: Session, user: User) -> tuple[int, int]:
    """
    (limit, period_days) for the user's free posts.

    Precedence: per-user override, then the admin setting, then env defaults.
    """
    limit, days = default_free_listing_limits(db)
    if user.free_listing_limit is not None:
        limit = int(user.free_listing_limit)
    if user.free_listing_period_days:
        days = int(user.free_listing_period_days)
    return limit, days


def set_free_listing_limits(db: Session, *, limit: int, period_days: int) -> dict[str, int]:
    value = {"defaultLimit": int(limit), "defaultLimitType": int(period_days)}
    row = db.get(AdminSetting, FREE_LISTING_LIMITS_KEY)
    if row is None:
        row = AdminSetting(key=FREE_LISTING_LIMITS_KEY)
    row.value_json = json.dumps(value)
    row.updated_at = _utcnow()
    db.add(row)
    db.flush()
    return value


def count_free_posts(db: Session, *, owner_id: int, since: dt.datetime) -> int:
    stmt = select(func.count(Property.id)).where(
        (Property.owner_id == int(owner_id))
        & (Property.created_at >= since)
        & (Property.package_id.is_(None) | (Property.package_id == ""))
    )
    return int(db.execute(stmt).scalar() or 0)


def enforce_free_post_limit(db: Session, user: User, *, now: dt.datetime | None = None) -> None:
    limit, days = free_listing_limits(db, user)
    since = (now or _utcnow()) - dt.timedelta(days=days)
    used = count_free_posts(db, owner_id=user.id, since=since)
    if used >= limit:
        raise HTTPException(
            status_code=403,
            detail=f"Free listing limit reached: {limit} free posts allowed per {days} days.",
        )


# -----------------------
# Images (local uploads directory)
# -----------------------
@dataclass(frozen=True)
class ImageUpload:
    filename: str
    content_type: str
    data: bytes


def _image_ext(upload: ImageUpload) -> str:
    ct = (upload.content_type or "").lower().strip()
    if ct in _IMAGE_EXTS:
        return _IMAGE_EXTS[ct]
    ext = os.path.splitext(upload.filename or "")[1].lower()
    return ext if ext in {".jpg", ".jpeg", ".png", ".webp", ".gif"} else ".bin"


def validate_images(uploads: list[ImageUpload]) -> None:
    limit = max_upload_image_bytes()
    for u in uploads:
        if not (u.content_type or "").lower().startswith("image/"):
            raise HTTPException(status_code=400, detail="Only image files are allowed")
        if not u.data:
            raise HTTPException(status_code=400, detail="Empty upload")
        if len(u.data) > limit:
            raise HTTPException(status_code=400, detail=f"Image too large (max {limit} bytes)")


def save_images(uploads: list[ImageUpload], *, property_id: int) -> list[str]:
    """Store uploads under `<uploads>/properties/` and return their public paths."""
    target_dir = os.path.join(uploads_dir(), "properties")
    os.makedirs(target_dir, exist_ok=True)
    paths: list[str] = []
    for u in uploads:
        name = f"images-p{property_id}-{secrets.token_hex(8)}{_image_ext(u)}"
        try:
            with open(os.path.join(target_dir, name), "wb") as out:
                out.write(u.data)
        except OSError:
            logger.exception("Failed to save listing image property_id=%s filename=%r", property_id, u.filename)
            raise HTTPException(status_code=500, detail="Failed to save upload")
        paths.append(f"/uploads/properties/{name}")
    return paths


# -----------------------
# Create / update / approval
# -----------------------
def _apply_details(p: Property, *, location: dict, specs: dict) -> None:
    p.sector = _text(location.get("sector"))
    p.mohalla = _text(location.get("mohalla"))
    p.landmark = _text(location.get("landmark"))
    p.city = _text(location.get("city"))
    p.area = _text(location.get("area"))
    p.sector_slug = normalize_slug(p.sector)
    p.mohalla_slug = normalize_slug(p.mohalla)
    p.landmark_slug = normalize_slug(p.landmark)

    p.bedrooms = _opt_int(specs.get("bedrooms"))
    p.bathrooms = _opt_int(specs.get("bathrooms"))
    p.area_sqft = _opt_int(specs.get("area"))
    p.floor = _opt_int(specs.get("floor"))
    p.total_floors = _opt_int(specs.get("totalFloors"))
    parking = specs.get("parking")
    p.parking = parking.strip().lower() in {"yes", "true", "1"} if isinstance(parking, str) else bool(parking)
    p.furnishing = normalize_slug(specs.get("furnishing"))


def _require_price(raw: Any) -> int:
    if raw is None or str(raw).strip() == "":
        raise HTTPException(status_code=400, detail="Price is required")
    price = _opt_int(raw)
    if price is None or price < 0:
        raise HTTPException(status_code=400, detail="Invalid price")
    return price


def _check_taxonomy(t: CanonicalTaxonomy) -> None:
    if not t.property_type:
        raise HTTPException(status_code=400, detail="propertyType is required")
    if t.price_type not in PRICE_TYPES:
        raise HTTPException(status_code=400, detail="priceType must be sale or rent")


def create_property(db: Session, *, owner: User, body: Mapping[str, Any]) -> Property:
    """
    Validate and insert a new listing. New listings always await moderation:
    free posts as `pending`, packaged posts as `pending_approval`.
    """
    title = _text(body.get("title"))
    if not title:
        raise HTTPException(status_code=400, detail="Title is required")
    price = _require_price(body.get("price"))

    taxonomy = canonicalize_taxonomy(
        db,
        property_type=body.get("propertyType"),
        price_type=body.get("priceType"),
        sub_category=pick_first(body, ("subCategory", "subcategory")),
        mini_slug=pick_first(body, MINI_SLUG_KEYS),
        category=pick_first(body, ("category", "categorySlug")),
    )
    _check_taxonomy(taxonomy)

    package_id = _text(body.get("packageId")) or None
    if package_id is None:
        enforce_free_post_limit(db, owner)

    now = _utcnow()
    p = Property(
        owner_id=owner.id,
        title=title,
        description=_text(body.get("description")),
        price=price,
        price_type=taxonomy.price_type,
        property_type=taxonomy.property_type,
        sub_category=taxonomy.sub_category,
        mini_subcategory_id=taxonomy.mini_subcategory_id,
        images_json="[]",
        amenities_json=json.dumps(parse_json_field(body.get("amenities"), [])),
        contact_info_json=json.dumps(parse_json_field(body.get("contactInfo"), {})),
        share_contact_info=parse_bool(body.get("shareContactInfo")),
        contact_visible=parse_bool(body.get("contactVisible")),
        status="inactive",
        approval_status="pending_approval" if package_id else "pending",
        premium=parse_bool(body.get("premium")) or bool(package_id),
        featured=False,
        package_id=package_id,
        is_paid=False,
        views=0,
        inquiries=0,
        created_at=now,
        updated_at=now,
    )
    _apply_details(
        p,
        location=parse_json_field(body.get("location"), {}),
        specs=parse_json_field(body.get("specifications"), {}),
    )
    db.add(p)
    db.flush()
    log_moderation(db, actor_user_id=owner.id, entity_type="property", entity_id=p.id, action="create")
    logger.info(
        "Property created id=%s type=%s price_type=%s sub=%s mini_id=%s approval=%s package=%s",
        p.id,
        p.property_type,
        p.price_type,
        p.sub_category,
        p.mini_subcategory_id,
        p.approval_status,
        p.package_id,
    )
    return p


def get_property_or_404(db: Session, property_id: Any) -> Property:
    pid = parse_id(property_id, label="property ID")
    p = db.get(Property, pid)
    if p is None:
        raise HTTPException(status_code=404, detail="Property not found")
    return p


def update_property(db: Session, *, actor: User, property_id: Any, body: Mapping[str, Any]) -> Property:
    """
    Owner edit. Unspecified fields keep their stored values; the listing always
    goes back to moderation (`pending` / `inactive`), whatever changed.
    """
    p = get_property_or_404(db, property_id)
    if int(p.owner_id) != int(actor.id):
        raise HTTPException(status_code=403, detail="You can only edit your own properties")

    if body.get("title") is not None:
        title = _text(body.get("title"))
        if not title:
            raise HTTPException(status_code=400, detail="Title is required")
        p.title = title
    if body.get("description") is not None:
        p.description = _text(body.get("description"))
    if body.get("price") is not None and str(body.get("price")).strip() != "":
        p.price = _require_price(body.get("price"))

    body_sub = normalize_slug(pick_first(body, ("subCategory", "subcategory")))
    body_type = pick_first(body, ("propertyType",))
    body_category = pick_first(body, ("category", "categorySlug"))
    # A tab named in the body implies its price type as on create; stored values fill the rest.
    type_slug = normalize_slug(body_type)
    names_tab = (type_slug in TOP_TABS and type_slug not in PROPERTY_TYPE_ALIASES) or is_top_tab(body_category)
    taxonomy = canonicalize_taxonomy(
        db,
        property_type=body_type if (body_type or names_tab) else p.property_type,
        price_type=pick_first(body, ("priceType",)) or (None if names_tab else p.price_type),
        sub_category=body_sub or p.sub_category,
        mini_slug=pick_first(body, MINI_SLUG_KEYS),
        category=body_category,
    )
    taxonomy = replace(
        taxonomy,
        property_type=taxonomy.property_type or p.property_type,
        price_type=taxonomy.price_type or p.price_type,
    )
    _check_taxonomy(taxonomy)
    p.property_type = taxonomy.property_type
    p.price_type = taxonomy.price_type

    if taxonomy.mini_subcategory_id is not None:
        p.mini_subcategory_id = taxonomy.mini_subcategory_id
        p.sub_category = taxonomy.sub_category
    elif taxonomy.mini_slug:
        # Unresolvable mini: keep the stored attachment, take the new subcategory if any.
        p.sub_category = taxonomy.sub_category or p.sub_category
    elif taxonomy.sub_category and taxonomy.sub_category != p.sub_category:
        # Moved to another subcategory without naming a mini: the old mini no longer applies.
        p.sub_category = taxonomy.sub_category
        p.mini_subcategory_id = None

    if body.get("location") is not None or body.get("specifications") is not None:
        location = parse_json_field(body.get("location"), None)
        specs = parse_json_field(body.get("specifications"), None)
        current = property_location(p), property_specs(p)
        _apply_details(
            p,
            location=location if isinstance(location, dict) else current[0],
            specs=specs if isinstance(specs, dict) else current[1],
        )
    if body.get("amenities") is not None:
        p.amenities_json = json.dumps(parse_json_field(body.get("amenities"), []))
    if body.get("contactInfo") is not None:
        p.contact_info_json = json.dumps(parse_json_field(body.get("contactInfo"), {}))
    if body.get("shareContactInfo") is not None:
        p.share_contact_info = parse_bool(body.get("shareContactInfo"))
    if body.get("contactVisible") is not None:
        p.contact_visible = parse_bool(body.get("contactVisible"))

    p.approval_status = "pending"
    p.status = "inactive"
    p.updated_at = _utcnow()
    db.add(p)
    log_moderation(db, actor_user_id=actor.id, entity_type="property", entity_id=p.id, action="update")
    logger.info("Property updated id=%s -> pending review (mini_id=%s)", p.id, p.mini_subcategory_id)
    return p


def set_approval(
    db: Session,
    *,
    admin: User,
    property_id: Any,
    approval_status: str,
    rejection_reason: str = "",
    admin_comments: str = "",
) -> Property:
    p = get_property_or_404(db, property_id)
    decision = (approval_status or "").strip().lower()
    if decision not in APPROVAL_DECISIONS:
        raise HTTPException(status_code=400, detail="Invalid approval status")

    now = _utcnow()
    p.approval_status = decision
    p.updated_at = now
    if decision == "approved":
        p.status = "active"
        p.approved_at = now
        p.approved_by = admin.id
        p.rejection_reason = ""
    else:
        p.status = "inactive"
        if rejection_reason:
            p.rejection_reason = rejection_reason.strip()
    if admin_comments:
        p.admin_comments = admin_comments.strip()
    db.add(p)
    log_moderation(
        db,
        actor_user_id=admin.id,
        entity_type="property",
        entity_id=p.id,
        action="approve" if decision == "approved" else "reject",
        reason=p.rejection_reason if decision == "rejected" else "",
    )
    notify_property_decision(db, p)
    logger.info("Property %s id=%s by admin=%s", decision, p.id, admin.id)
    return p


def record_view(db: Session, p: Property) -> None:
    db.execute(update(Property).where(Property.id == p.id).values(views=func.coalesce(Property.views, 0) + 1))
    db.refresh(p, attribute_names=["views"])
