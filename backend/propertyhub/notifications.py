"""
In-app notification inbox.

Moderation decisions on a listing leave a row in the owner's inbox; owners can
list, mark read and delete their own rows. Rows of other users are invisible,
so reads and deletes of them behave like a miss.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from propertyhub.filters import parse_id
from propertyhub.models import Property, UserNotification

logger = logging.getLogger(__name__)


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def notification_out(n: UserNotification) -> dict[str, Any]:
    return {
        "id": n.id,
        "kind": n.kind,
        "title": n.title,
        "message": n.message,
        "propertyId": n.property_id,
        "isRead": bool(n.is_read),
        "readAt": n.read_at.isoformat() if n.read_at else None,
        "createdAt": n.created_at.isoformat() if n.created_at else "",
    }


def notify_property_decision(db: Session, p: Property) -> UserNotification:
    if p.approval_status == "approved":
        kind = "property_approved"
        title = "Your property has been approved"
        message = f'"{p.title}" is now live.'
    else:
        kind = "property_rejected"
        title = "Your property was not approved"
        message = f'"{p.title}" was rejected.'
        if p.rejection_reason:
            message += f" Reason: {p.rejection_reason}"
    n = UserNotification(
        user_id=int(p.owner_id),
        property_id=p.id,
        kind=kind,
        title=title,
        message=message,
        is_read=False,
        created_at=_utcnow(),
    )
    db.add(n)
    db.flush()
    logger.info("Notification %s queued for user=%s property=%s", kind, p.owner_id, p.id)
    return n


def user_notifications(db: Session, user_id: int) -> list[UserNotification]:
    stmt = (
        select(UserNotification)
        .where(UserNotification.user_id == int(user_id))
        .order_by(UserNotification.created_at.desc(), UserNotification.id.desc())
    )
    return list(db.execute(stmt).scalars().all())


def mark_notification_read(db: Session, *, user_id: int, notification_id: Any) -> bool:
    nid = parse_id(notification_id, label="notification ID")
    result = db.execute(
        update(UserNotification)
        .where((UserNotification.id == nid) & (UserNotification.user_id == int(user_id)))
        .values(is_read=True, read_at=_utcnow())
    )
    return result.rowcount > 0


def delete_notification(db: Session, *, user_id: int, notification_id: Any) -> bool:
    nid = parse_id(notification_id, label="notification ID")
    result = db.execute(
        delete(UserNotification).where((UserNotification.id == nid) & (UserNotification.user_id == int(user_id)))
    )
    return result.rowcount > 0
