"""
Timesheets router: students log and submit hours, supervisors then faculty review.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends

from fieldtrack.core.database import get_store
from fieldtrack.core.errors import ValidationError
from fieldtrack.core.security import actor_of, require_role
from fieldtrack.schemas.timesheet import BulkAction, EntryCreate, EntryReject, EntryUpdate, WeekSubmit
from fieldtrack.utils.response import success_response
from fieldtrack.workflow import hours, timesheets

router = APIRouter(prefix="/api/timesheets", tags=["Timesheets"])

REVIEWERS = ["supervisor", "faculty", "admin"]


@router.post("/entries")
async def log_hours(
    body: EntryCreate,
    user: dict = Depends(require_role(["student"])),
):
    entry = timesheets.log_hours(
        get_store(), actor_of(user), body.placement_id, body.date, body.hours, body.category, body.notes,
    )
    return success_response(data=entry, message="Hours logged")


@router.get("/entries")
async def list_entries(
    placement_id: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
    user: dict = Depends(require_role(["student"] + REVIEWERS)),
):
    entries = timesheets.list_entries(get_store(), actor_of(user), placement_id, start, end)
    return success_response(data=entries)


@router.patch("/entries/{entry_id}")
async def edit_entry(
    entry_id: str,
    body: EntryUpdate,
    user: dict = Depends(require_role(["student"])),
):
    entry = timesheets.edit_entry(
        get_store(), actor_of(user), entry_id,
        entry_date=body.date, hours=body.hours, category=body.category, notes=body.notes,
    )
    return success_response(data=entry, message="Entry updated")


@router.delete("/entries/{entry_id}")
async def delete_entry(
    entry_id: str,
    user: dict = Depends(require_role(["student"])),
):
    timesheets.delete_entry(get_store(), actor_of(user), entry_id)
    return success_response(message="Entry deleted")


@router.post("/submit-week")
async def submit_week(
    body: WeekSubmit,
    user: dict = Depends(require_role(["student"])),
):
    entries = timesheets.submit_week(get_store(), actor_of(user), body.placement_id, body.week_start, body.week_end)
    return success_response(
        data=entries,
        message=f"{len(entries)} entries submitted" if entries else "Nothing to submit",
    )


@router.get("/pending")
async def pending_queue(
    user: dict = Depends(require_role(REVIEWERS)),
):
    return success_response(data=timesheets.pending_queue(get_store(), actor_of(user)))


@router.patch("/entries/{entry_id}/approve")
async def approve_entry(
    entry_id: str,
    user: dict = Depends(require_role(REVIEWERS)),
):
    entry = timesheets.approve_entry(get_store(), actor_of(user), entry_id)
    return success_response(data=entry, message=f"Entry moved to {entry.status.value}")


@router.patch("/entries/{entry_id}/reject")
async def reject_entry(
    entry_id: str,
    body: EntryReject,
    user: dict = Depends(require_role(REVIEWERS)),
):
    entry = timesheets.reject_entry(get_store(), actor_of(user), entry_id, body.reason)
    return success_response(data=entry, message="Entry rejected")


@router.post("/entries/bulk-action")
async def bulk_action(
    body: BulkAction,
    user: dict = Depends(require_role(REVIEWERS)),
):
    """Approve or reject a set of entries in one transaction."""
    store = get_store()
    actor = actor_of(user)
    if body.action == "approve":
        entries = timesheets.approve_entries(store, actor, body.entry_ids)
    elif body.action == "reject":
        entries = timesheets.reject_entries(store, actor, body.entry_ids, body.reason or "")
    else:
        raise ValidationError("Action must be 'approve' or 'reject'")
    return success_response(data=entries, message=f"{len(entries)} entries {body.action}d")


@router.get("/daily-totals")
async def daily_totals(
    placement_id: str,
    start: date,
    end: date,
    user: dict = Depends(require_role(["student"] + REVIEWERS)),
):
    store = get_store()
    timesheets.list_entries(store, actor_of(user), placement_id)  # access check
    totals = hours.daily_totals(store, placement_id, start, end)
    return success_response(data=[{"date": str(k), "hours": str(v)} for k, v in sorted(totals.items())])
