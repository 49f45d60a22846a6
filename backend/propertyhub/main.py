from __future__ import annotations

import json
import logging
import os
from typing import Annotated, Any

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.trustedhost import TrustedHostMiddleware

from propertyhub.catalog import create_category_tree, delete_category, delete_mini_subcategory, delete_subcategory, init_db
from propertyhub.config import (
    allowed_hosts,
    cors_origins,
    database_url,
    enforce_secure_secrets,
    public_include_pending,
    uploads_dir,
)
from propertyhub.db import get_db
from propertyhub.filters import DB_INT_MAX, build_filter, parse_id
from propertyhub.listings import (
    category_browse_query,
    featured_listings,
    listing_page,
    owner_listings,
    pending_listings,
    property_out,
)
from propertyhub.mailer import notify_safely, send_property_approval_email, send_property_confirmation_email
from propertyhub.models import User
from propertyhub.notifications import delete_notification, mark_notification_read, notification_out, user_notifications
from propertyhub.security import InvalidTokenError, decode_access_token
from propertyhub.slugs import normalize_slug
from propertyhub.taxonomy import category_out, category_tree, get_category_by_slug, list_categories, mini_subcategories_with_counts
from propertyhub.writes import (
    ImageUpload,
    create_property,
    default_free_listing_limits,
    get_property_or_404,
    record_view,
    save_images,
    set_approval,
    set_free_listing_limits,
    update_property,
    validate_images,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="PropertyHub API")

# Production hardening: ensure we don't run with dangerous defaults.
enforce_secure_secrets()

app.add_middleware(TrustedHostMiddleware, allowed_hosts=allowed_hosts())


@app.middleware("http")
async def _security_headers(request, call_next):
    resp = await call_next(request)
    resp.headers.setdefault("X-Content-Type-Options", "nosniff")
    resp.headers.setdefault("X-Frame-Options", "DENY")
    resp.headers.setdefault("Referrer-Policy", "no-referrer")
    return resp


app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

os.makedirs(os.path.join(uploads_dir(), "properties"), exist_ok=True)
app.mount("/uploads", StaticFiles(directory=uploads_dir()), name="uploads")


@app.on_event("startup")
def create_local_schema() -> None:
    """
    Local SQLite runs create tables and the default taxonomy on boot.
    Other databases are managed with Alembic.
    """
    if database_url().startswith("sqlite"):
        init_db()


# -----------------------
# Error responses: always {"success": false, "error": "..."}
# -----------------------
def _error(status_code: int, message: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, exc.detail)


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    first = (exc.errors() or [{}])[0]
    field = ".".join(str(x) for x in first.get("loc", ())[1:])
    msg = first.get("msg") or "Invalid request"
    return _error(400, f"{field}: {msg}" if field else msg)


@app.exception_handler(Exception)
async def unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error(500, "Internal server error")


def _ok(data: Any) -> dict[str, Any]:
    return {"success": True, "data": data}


# -----------------------
# Dependencies
# -----------------------
def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    if not authorization.lower().startswith("bearer "):
        return None
    return authorization.split(" ", 1)[1].strip() or None


def get_current_user(
    db: Annotated[Session, Depends(get_db)],
    authorization: Annotated[str | None, Header()] = None,
) -> User:
    token = _bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        claims = decode_access_token(token)
    except InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")
    user = db.get(User, claims.user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def get_optional_user(
    db: Annotated[Session, Depends(get_db)],
    authorization: Annotated[str | None, Header()] = None,
) -> User | None:
    token = _bearer_token(authorization)
    if not token:
        return None
    try:
        claims = decode_access_token(token)
    except InvalidTokenError:
        return None
    return db.get(User, claims.user_id)


def require_admin(me: Annotated[User, Depends(get_current_user)]) -> User:
    if (me.role or "").lower() != "admin":
        raise HTTPException(status_code=403, detail="Admin only")
    return me


_IMAGE_FIELDS = ("images", "images[]")


async def listing_submission(request: Request) -> tuple[dict[str, Any], list[ImageUpload]]:
    """
    Listing body from either a JSON document or a multipart form.
    Form uploads under `images` / `images[]` are read into memory.
    """
    content_type = (request.headers.get("content-type") or "").lower()
    if content_type.startswith("application/json"):
        try:
            doc = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid JSON body")
        if not isinstance(doc, dict):
            raise HTTPException(status_code=400, detail="Invalid JSON body")
        return doc, []

    form = await request.form()
    body: dict[str, Any] = {}
    uploads: list[ImageUpload] = []
    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            if key in _IMAGE_FIELDS and value.filename:
                uploads.append(
                    ImageUpload(
                        filename=value.filename or "",
                        content_type=(value.content_type or "").lower(),
                        data=await value.read(),
                    )
                )
            continue
        body.setdefault(key, value)
    return body, uploads


# -----------------------
# Schemas
# -----------------------
class ApprovalIn(BaseModel):
    approvalStatus: str
    rejectionReason: str = ""
    adminComments: str = ""


class MiniSubcategoryIn(BaseModel):
    name: str = Field(min_length=1)
    slug: str = ""
    description: str = ""
    iconUrl: str = ""
    sortOrder: int | None = None


class SubcategoryIn(MiniSubcategoryIn):
    miniSubcategories: list[MiniSubcategoryIn] = Field(default_factory=list)


class CategoryIn(BaseModel):
    name: str = Field(min_length=1)
    slug: str = ""
    description: str = ""
    iconUrl: str = ""
    sortOrder: int | None = None
    isActive: bool = True
    subcategories: list[SubcategoryIn] = Field(default_factory=list)


class FreeListingLimitsIn(BaseModel):
    defaultLimit: int = Field(ge=0, le=DB_INT_MAX)
    defaultLimitType: int = Field(ge=1, le=3650, description="Rolling window in days")


# -----------------------
# Health
# -----------------------
@app.get("/health")
def health():
    return {"ok": True}


# -----------------------
# Listings (public)
# -----------------------
@app.get("/properties")
def list_properties(request: Request, db: Annotated[Session, Depends(get_db)]):
    f = build_filter(db, dict(request.query_params))
    return _ok(listing_page(db, f))


@app.get("/categories/{category}/properties")
def browse_category(category: str, request: Request, db: Annotated[Session, Depends(get_db)]):
    f = build_filter(db, category_browse_query(category, None, request.query_params))
    return _ok(listing_page(db, f))


@app.get("/categories/{category}/{sub}/properties")
def browse_subcategory(category: str, sub: str, request: Request, db: Annotated[Session, Depends(get_db)]):
    f = build_filter(db, category_browse_query(category, sub, request.query_params))
    return _ok(listing_page(db, f))


@app.get("/properties/featured")
def featured_properties(
    db: Annotated[Session, Depends(get_db)],
    limit: int = Query(default=10, ge=1, le=10),
):
    return _ok([property_out(p) for p in featured_listings(db, limit=limit)])


@app.get("/properties/{property_id}")
def get_property(
    property_id: str,
    db: Annotated[Session, Depends(get_db)],
    me: Annotated[User | None, Depends(get_optional_user)],
):
    p = get_property_or_404(db, property_id)
    is_owner = me is not None and int(me.id) == int(p.owner_id)
    is_admin = me is not None and (me.role or "").lower() == "admin"
    public_statuses = ("approved", None, "pending") if public_include_pending() else ("approved", None)
    visible = p.status == "active" and p.approval_status in public_statuses
    if not visible and not (is_owner or is_admin):
        raise HTTPException(status_code=404, detail="Property not found")
    record_view(db, p)
    return _ok(property_out(p, include_internal=is_owner or is_admin))


# -----------------------
# Listings (owner)
# -----------------------
@app.post("/properties", status_code=201)
def post_property(
    background_tasks: BackgroundTasks,
    me: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    submission: Annotated[tuple[dict[str, Any], list[ImageUpload]], Depends(listing_submission)],
):
    body, uploads = submission
    validate_images(uploads)
    p = create_property(db, owner=me, body=body)
    if uploads:
        p.images_json = json.dumps(save_images(uploads, property_id=p.id))
        db.add(p)
    background_tasks.add_task(
        notify_safely,
        send_property_confirmation_email,
        to_email=me.email,
        name=me.name,
        title=p.title,
        property_id=p.id,
    )
    return _ok(property_out(p, include_internal=True))


@app.put("/properties/{property_id}")
def put_property(
    property_id: str,
    me: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    submission: Annotated[tuple[dict[str, Any], list[ImageUpload]], Depends(listing_submission)],
):
    body, uploads = submission
    validate_images(uploads)
    p = update_property(db, actor=me, property_id=property_id, body=body)
    if uploads:
        # New uploads replace the gallery.
        p.images_json = json.dumps(save_images(uploads, property_id=p.id))
        db.add(p)
    return _ok(property_out(p, include_internal=True))


@app.get("/user/properties")
def my_properties(
    me: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    return _ok([property_out(p, include_internal=True) for p in owner_listings(db, me.id)])


@app.get("/user/notifications")
def my_notifications(
    me: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    return _ok([notification_out(n) for n in user_notifications(db, me.id)])


@app.put("/user/notifications/{notification_id}/read")
def read_notification(
    notification_id: str,
    me: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    return _ok({"updated": mark_notification_read(db, user_id=me.id, notification_id=notification_id)})


@app.delete("/user/notifications/{notification_id}")
def remove_notification(
    notification_id: str,
    me: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    return _ok({"deleted": delete_notification(db, user_id=me.id, notification_id=notification_id)})


# -----------------------
# Moderation (admin)
# -----------------------
@app.put("/properties/{property_id}/approval")
def approve_property(
    property_id: str,
    payload: ApprovalIn,
    background_tasks: BackgroundTasks,
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    p = set_approval(
        db,
        admin=admin,
        property_id=property_id,
        approval_status=payload.approvalStatus,
        rejection_reason=payload.rejectionReason,
        admin_comments=payload.adminComments,
    )
    if p.approval_status == "approved":
        owner = db.get(User, p.owner_id)
        if owner is not None:
            background_tasks.add_task(
                notify_safely,
                send_property_approval_email,
                to_email=owner.email,
                name=owner.name,
                title=p.title,
                property_id=p.id,
            )
    return _ok(property_out(p, include_internal=True))


@app.get("/admin/properties/pending")
def admin_pending_properties(
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    return _ok([property_out(p, include_internal=True) for p in pending_listings(db)])


# -----------------------
# Taxonomy
# -----------------------
@app.get("/categories")
def get_categories(db: Annotated[Session, Depends(get_db)]):
    return _ok([category_out(c) for c in list_categories(db)])


@app.get("/categories/{slug}")
def get_category(
    slug: str,
    db: Annotated[Session, Depends(get_db)],
    with_sub: bool = Query(default=False, alias="withSub"),
):
    category = get_category_by_slug(db, normalize_slug(slug))
    if category is None:
        raise HTTPException(status_code=404, detail="Category not found")
    return _ok(category_tree(db, category) if with_sub else category_out(category))


@app.get("/mini-subcategories/{subcategory_id}/with-counts")
def get_mini_subcategories_with_counts(subcategory_id: str, db: Annotated[Session, Depends(get_db)]):
    sid = parse_id(subcategory_id, label="subcategory ID")
    return _ok(mini_subcategories_with_counts(db, sid))


@app.post("/admin/categories", status_code=201)
def admin_create_category(
    payload: CategoryIn,
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    category = create_category_tree(db, actor_id=admin.id, payload=payload.model_dump())
    return _ok(category_tree(db, category, active_only=False))


@app.delete("/admin/categories/{category_id}")
def admin_delete_category(
    category_id: str,
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    cid = parse_id(category_id, label="category ID")
    return _ok({"deleted": delete_category(db, actor_id=admin.id, category_id=cid)})


@app.delete("/admin/subcategories/{subcategory_id}")
def admin_delete_subcategory(
    subcategory_id: str,
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    sid = parse_id(subcategory_id, label="subcategory ID")
    return _ok({"deleted": delete_subcategory(db, actor_id=admin.id, subcategory_id=sid)})


@app.delete("/admin/mini-subcategories/{mini_id}")
def admin_delete_mini_subcategory(
    mini_id: str,
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    mid = parse_id(mini_id, label="mini-subcategory ID")
    return _ok({"deleted": delete_mini_subcategory(db, actor_id=admin.id, mini_id=mid)})


# -----------------------
# Settings (admin)
# -----------------------
@app.get("/admin/settings/free-listing-limits")
def admin_get_free_listing_limits(
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    limit, days = default_free_listing_limits(db)
    return _ok({"defaultLimit": limit, "defaultLimitType": days})


@app.put("/admin/settings/free-listing-limits")
def admin_put_free_listing_limits(
    payload: FreeListingLimitsIn,
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    value = set_free_listing_limits(db, limit=payload.defaultLimit, period_days=payload.defaultLimitType)
    logger.info("Free listing limits updated by admin=%s: %s", admin.id, value)
    return _ok(value)
