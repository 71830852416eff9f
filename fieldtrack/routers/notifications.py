"""
Notifications router: each user reads and acknowledges their own notifications.
"""

from fastapi import APIRouter, Depends

from fieldtrack.core.database import get_store
from fieldtrack.core.security import actor_of, require_role
from fieldtrack.utils.response import success_response
from fieldtrack.workflow import notifications

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])

EVERYONE = ["student", "supervisor", "faculty", "admin"]


@router.get("")
async def list_notifications(
    unread_only: bool = False,
    limit: int = 50,
    user: dict = Depends(require_role(EVERYONE)),
):
    store = get_store()
    actor = actor_of(user)
    return success_response(data={
        "notifications": notifications.list_notifications(store, actor, unread_only, limit),
        "unread": notifications.unread_count(store, actor),
    })


@router.post("/mark-all-read")
async def mark_all_read(
    user: dict = Depends(require_role(EVERYONE)),
):
    count = notifications.mark_all_read(get_store(), actor_of(user))
    return success_response(data={"count": count}, message=f"{count} notifications marked read")


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    user: dict = Depends(require_role(EVERYONE)),
):
    return success_response(data=notifications.mark_read(get_store(), actor_of(user), notification_id))
