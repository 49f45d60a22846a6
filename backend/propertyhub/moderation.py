from __future__ import annotations

from sqlalchemy.orm import Session

from propertyhub.models import ModerationLog


def log_moderation(
    db: Session,
    *,
    actor_user_id: int,
    entity_type: str,
    entity_id: int,
    action: str,
    reason: str = "",
) -> None:
    db.add(
        ModerationLog(
            actor_user_id=int(actor_user_id),
            entity_type=(entity_type or "").strip(),
            entity_id=int(entity_id),
            action=(action or "").strip(),
            reason=(reason or "").strip(),
        )
    )
