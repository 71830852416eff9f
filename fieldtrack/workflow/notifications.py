"""
In-app notifications.

Rows are written by the workflow operation that caused them, inside the same
transaction, so a rolled back transition never leaves a notification behind.
Users only ever read or acknowledge their own notifications.
"""

import logging
from typing import Optional

from fieldtrack.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from fieldtrack.schemas.entities import Notification
from fieldtrack.store.base import NOTIFICATIONS, EntityStore
from fieldtrack.utils.timeutil import utcnow_iso
from fieldtrack.workflow.machine import Actor
from fieldtrack.workflow.states import NotificationPriority, NotificationType

logger = logging.getLogger(__name__)

MAX_PAGE = 200


def notify(
    store: EntityStore,
    user_id: Optional[str],
    type: NotificationType,
    title: str,
    message: str,
    entity_type: str,
    entity_id: str,
    priority: NotificationPriority = NotificationPriority.MEDIUM,
    **metadata,
) -> Optional[dict]:
    if not user_id:
        return None
    logger.debug("Notify %s: %s (%s %s)", user_id, type.value, entity_type, entity_id)
    return store.create(NOTIFICATIONS, {
        "user_id": user_id,
        "type": type,
        "title": title,
        "message": message,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "priority": priority,
        "metadata": {k: None if v is None else str(v) for k, v in metadata.items()},
        "read": False,
        "read_at": None,
        "created_at": utcnow_iso(),
    })


def already_notified(store: EntityStore, user_id: str, type: NotificationType, entity_id: str) -> bool:
    return store.find(NOTIFICATIONS, {"user_id": user_id, "type": type, "entity_id": entity_id}) is not None


def list_notifications(store: EntityStore, actor: Actor, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    if not 1 <= limit <= MAX_PAGE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE}")
    filters = {"user_id": actor.user_id}
    if unread_only:
        filters["read"] = False
    rows = sorted(store.list(NOTIFICATIONS, filters), key=lambda r: r["created_at"], reverse=True)
    return [Notification.model_validate(r) for r in rows[:limit]]


def unread_count(store: EntityStore, actor: Actor) -> int:
    return len(store.list(NOTIFICATIONS, {"user_id": actor.user_id, "read": False}))


def mark_read(store: EntityStore, actor: Actor, notification_id: str) -> Notification:
    with store.transaction():
        try:
            row = store.get(NOTIFICATIONS, notification_id)
        except NotFoundError:
            raise NotFoundError("Notification not found")
        if row["user_id"] != actor.user_id:
            raise PermissionDeniedError("You can only update your own notifications")
        if not row.get("read"):
            row = store.update(NOTIFICATIONS, row["id"], {"read": True, "read_at": utcnow_iso()})
    return Notification.model_validate(row)


def mark_all_read(store: EntityStore, actor: Actor) -> int:
    with store.transaction():
        unread = store.list(NOTIFICATIONS, {"user_id": actor.user_id, "read": False})
        now = utcnow_iso()
        for row in unread:
            store.update(NOTIFICATIONS, row["id"], {"read": True, "read_at": now})
    return len(unread)
