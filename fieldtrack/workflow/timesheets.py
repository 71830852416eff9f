"""
Timesheet entry lifecycle.

    DRAFT ─submit─▶ SUBMITTED ─route─▶ PENDING_SUPERVISOR ─approve─▶ PENDING_FACULTY ─approve─▶ APPROVED
                                             │                             │
                                             └──────reject──▶ REJECTED ◀───┘

Entries are submitted a week at a time; submit and route happen inside one
transaction so callers only ever observe PENDING_SUPERVISOR. REJECTED entries
are unlocked and go back through the same weekly submission. ``locked`` is
true exactly when the status is APPROVED.
"""

import logging
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Optional

from fieldtrack.core.errors import (
    InvalidStateError,
    PermissionDeniedError,
    PreconditionFailedError,
    SupervisorNotAssignedError,
    ValidationError,
)
from fieldtrack.schemas.entities import Placement, TimesheetEntry
from fieldtrack.store.base import PLACEMENTS, TIMESHEET_ENTRIES, USERS, EntityStore
from fieldtrack.utils import timeutil
from fieldtrack.workflow import audit, notifications
from fieldtrack.workflow.lookups import (
    ensure_owner,
    ensure_participant,
    ensure_placement_faculty,
    is_approved_supervisor,
    load_entry,
    load_placement,
    load_site,
    transition_row,
)
from fieldtrack.workflow.machine import Actor, StateMachine, Transition
from fieldtrack.workflow.states import (
    EDITABLE_ENTRY_STATUSES,
    EntryAction,
    EntryCategory,
    EntryStatus,
    NotificationType,
    Role,
    WORKING_PLACEMENT_STATUSES,
)

logger = logging.getLogger(__name__)

MAX_DAILY_HOURS = Decimal("24")
HOURS_STEP = Decimal("0.1")
MAX_WEEK_SPAN_DAYS = 6

STUDENT = frozenset({Role.STUDENT})
FACULTY_ROLES = frozenset({Role.FACULTY, Role.ADMIN})


def _reason_given(ctx: dict):
    if not (ctx.get("reason") or "").strip():
        raise ValidationError("A rejection reason is required")


ENTRY_MACHINE = StateMachine("timesheet entry", EntryStatus, {
    (EntryStatus.DRAFT, EntryAction.SUBMIT): Transition(EntryStatus.SUBMITTED, STUDENT),
    (EntryStatus.REJECTED, EntryAction.SUBMIT): Transition(EntryStatus.SUBMITTED, STUDENT),
    (EntryStatus.SUBMITTED, EntryAction.ROUTE): Transition(
        EntryStatus.PENDING_SUPERVISOR, STUDENT | {Role.SYSTEM},
    ),
    (EntryStatus.PENDING_SUPERVISOR, EntryAction.APPROVE): Transition(
        EntryStatus.PENDING_FACULTY, frozenset({Role.SUPERVISOR}),
    ),
    (EntryStatus.PENDING_SUPERVISOR, EntryAction.REJECT): Transition(
        EntryStatus.REJECTED, frozenset({Role.SUPERVISOR}), guard=_reason_given,
    ),
    (EntryStatus.PENDING_FACULTY, EntryAction.APPROVE): Transition(EntryStatus.APPROVED, FACULTY_ROLES),
    (EntryStatus.PENDING_FACULTY, EntryAction.REJECT): Transition(
        EntryStatus.REJECTED, FACULTY_ROLES, guard=_reason_given,
    ),
})

# The review stage each approving role acts on.
REVIEW_STAGE = {
    Role.SUPERVISOR: EntryStatus.PENDING_SUPERVISOR,
    Role.FACULTY: EntryStatus.PENDING_FACULTY,
    Role.ADMIN: EntryStatus.PENDING_FACULTY,
}

_CLEARED_REVIEW = {
    "supervisor_approved_at": None,
    "supervisor_approved_by": None,
    "faculty_approved_at": None,
    "faculty_approved_by": None,
    "rejected_at": None,
    "rejected_by": None,
    "rejection_reason": None,
}


def normalize_hours(hours) -> Decimal:
    """One fractional digit, 0 < hours <= 24."""
    try:
        value = Decimal(str(hours)).quantize(HOURS_STEP, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid hours value '{hours}'")
    if value <= 0 or value > MAX_DAILY_HOURS:
        raise ValidationError("Hours must be greater than 0 and at most 24")
    return value


def require_approved_supervisor(store: EntityStore, placement: Placement):
    if not is_approved_supervisor(store, placement.supervisor_id):
        raise SupervisorNotAssignedError(
            "This placement has no approved supervisor yet; hours cannot be logged or submitted"
        )


def _require_working(placement: Placement):
    if placement.status not in WORKING_PLACEMENT_STATUSES:
        raise PreconditionFailedError(
            f"Cannot log or submit hours for a placement in status {placement.status.value}"
        )


# ---- student operations ----

def log_hours(
    store: EntityStore,
    actor: Actor,
    placement_id: str,
    entry_date: date,
    hours,
    category: EntryCategory,
    notes: Optional[str] = None,
) -> TimesheetEntry:
    category = EntryCategory(category)
    value = normalize_hours(hours)
    with store.transaction():
        placement = load_placement(store, placement_id)
        ensure_owner(actor, placement)
        require_approved_supervisor(store, placement)
        _require_working(placement)
        row = store.create(TIMESHEET_ENTRIES, {
            "placement_id": placement.id,
            "date": entry_date.isoformat(),
            "hours": str(value),
            "category": category,
            "notes": notes,
            "status": EntryStatus.DRAFT,
            "locked": False,
            "created_at": timeutil.utcnow_iso(),
        })
    logger.info("Logged %s %s hours on %s for placement %s", value, category.value, entry_date, placement_id)
    return TimesheetEntry.model_validate(row)


def _editable(store: EntityStore, actor: Actor, entry_id: str) -> TimesheetEntry:
    entry = load_entry(store, entry_id)
    ensure_owner(actor, load_placement(store, entry.placement_id))
    if entry.locked:
        raise InvalidStateError("Approved entries are locked")
    if entry.status not in EDITABLE_ENTRY_STATUSES:
        raise InvalidStateError(f"Entry is {entry.status.value} and cannot be changed")
    return entry


def edit_entry(
    store: EntityStore,
    actor: Actor,
    entry_id: str,
    entry_date: Optional[date] = None,
    hours=None,
    category: Optional[EntryCategory] = None,
    notes: Optional[str] = None,
) -> TimesheetEntry:
    fields = {}
    if entry_date is not None:
        fields["date"] = entry_date.isoformat()
    if hours is not None:
        fields["hours"] = str(normalize_hours(hours))
    if category is not None:
        fields["category"] = EntryCategory(category)
    if notes is not None:
        fields["notes"] = notes
    with store.transaction():
        entry = _editable(store, actor, entry_id)
        if not fields:
            return entry
        row = transition_row(store, TIMESHEET_ENTRIES, entry.id, entry.status, fields)
    return TimesheetEntry.model_validate(row)


def delete_entry(store: EntityStore, actor: Actor, entry_id: str) -> None:
    with store.transaction():
        entry = _editable(store, actor, entry_id)
        store.delete(TIMESHEET_ENTRIES, entry.id)


def submit_week(store: EntityStore, actor: Actor, placement_id: str, week_start: date, week_end: date) -> list[TimesheetEntry]:
    """
    Move every DRAFT or REJECTED entry dated within ``[week_start, week_end]``
    to PENDING_SUPERVISOR. A week with nothing left to submit returns ``[]``.
    """
    if week_end < week_start:
        raise ValidationError("Week end must not be before week start")
    if (week_end - week_start).days > MAX_WEEK_SPAN_DAYS:
        raise ValidationError("A submission covers at most 7 days")

    submitted = []
    with store.transaction():
        placement = load_placement(store, placement_id)
        ensure_owner(actor, placement)
        require_approved_supervisor(store, placement)
        _require_working(placement)

        rows = store.list(
            TIMESHEET_ENTRIES,
            {"placement_id": placement.id, "status": list(EDITABLE_ENTRY_STATUSES)},
            predicate=lambda r: week_start <= date.fromisoformat(r["date"]) <= week_end,
        )
        now = timeutil.utcnow_iso()
        for entry in (TimesheetEntry.model_validate(r) for r in rows):
            submit = ENTRY_MACHINE.resolve(entry.status, EntryAction.SUBMIT, actor.role)
            route = ENTRY_MACHINE.resolve(submit.target, EntryAction.ROUTE, actor.role)
            row = transition_row(store, TIMESHEET_ENTRIES, entry.id, entry.status, {
                **_CLEARED_REVIEW,
                "status": route.target,
                "locked": False,
                "submitted_at": now,
            })
            submitted.append(TimesheetEntry.model_validate(row))

        if submitted:
            total = sum((e.hours for e in submitted), Decimal("0"))
            audit.record(store, actor, "TIMESHEET_WEEK_SUBMITTED", "placement", placement.id,
                         week_start=week_start.isoformat(), week_end=week_end.isoformat(),
                         entries=len(submitted), hours=str(total))
            student = _display_name(store, placement.student_id)
            site = load_site(store, placement.site_id)
            notifications.notify(
                store, placement.supervisor_id, NotificationType.TIMESHEET_SUBMITTED, "Timesheet Submitted for Review",
                f"{student} submitted {total} hours across {len(submitted)} entries at {site.name} "
                f"({week_start.isoformat()} to {week_end.isoformat()}).",
                "placement", placement.id, hours=total, entries=len(submitted),
            )
        else:
            logger.info("Nothing to submit for placement %s week %s", placement.id, week_start)

    return sorted(submitted, key=lambda e: e.date)


# ---- review ----

def _authorize_reviewer(store: EntityStore, actor: Actor, placement: Placement):
    if actor.role == Role.SUPERVISOR:
        if actor.user_id != placement.supervisor_id or not is_approved_supervisor(store, actor.user_id):
            raise PermissionDeniedError("Only the placement's approved supervisor may review these hours")
    elif actor.role in FACULTY_ROLES:
        ensure_placement_faculty(actor, placement)
    else:
        raise PermissionDeniedError(f"Role '{actor.role.value}' cannot review timesheets")


def _review(store: EntityStore, actor: Actor, entry: TimesheetEntry, action: EntryAction, reason: Optional[str]) -> TimesheetEntry:
    placement = load_placement(store, entry.placement_id)
    _authorize_reviewer(store, actor, placement)

    stage = REVIEW_STAGE[actor.role]
    if entry.status != stage:
        raise InvalidStateError(
            f"Entry is {entry.status.value}, not {stage.value}; it may have already been processed"
        )
    transition = ENTRY_MACHINE.resolve(entry.status, action, actor.role, {"reason": reason})

    now = timeutil.utcnow_iso()
    if action == EntryAction.REJECT:
        fields = {
            "rejected_at": now,
            "rejected_by": actor.user_id,
            "rejection_reason": reason.strip(),
            "locked": False,
        }
    elif stage == EntryStatus.PENDING_SUPERVISOR:
        fields = {"supervisor_approved_at": now, "supervisor_approved_by": actor.user_id, "locked": False}
    else:
        fields = {"faculty_approved_at": now, "faculty_approved_by": actor.user_id, "locked": True}

    row = transition_row(store, TIMESHEET_ENTRIES, entry.id, entry.status, {"status": transition.target, **fields})
    return TimesheetEntry.model_validate(row)


def _review_many(store: EntityStore, actor: Actor, entry_ids: Iterable[str], action: EntryAction, reason: Optional[str]) -> list[TimesheetEntry]:
    entry_ids = list(dict.fromkeys(entry_ids))
    if not entry_ids:
        raise ValidationError("At least one entry must be selected")
    with store.transaction():
        reviewed = [_review(store, actor, load_entry(store, eid), action, reason) for eid in entry_ids]
        placements = sorted({e.placement_id for e in reviewed})
        for placement_id in placements:
            batch = [e for e in reviewed if e.placement_id == placement_id]
            audit.record(store, actor, f"TIMESHEET_{action.value.upper()}", "placement", placement_id,
                         entries=[e.id for e in batch], status=reviewed[0].status.value, reason=reason)
            _notify_reviewed(store, actor, load_placement(store, placement_id), batch, reason)
    return reviewed


def _display_name(store: EntityStore, user_id: Optional[str]) -> str:
    row = store.find(USERS, {"id": user_id}) if user_id else None
    return (row or {}).get("name") or "A user"


def _notify_reviewed(store: EntityStore, actor: Actor, placement: Placement, batch: list[TimesheetEntry], reason: Optional[str]):
    total = sum((e.hours for e in batch), Decimal("0"))
    reviewer = _display_name(store, actor.user_id)
    status = batch[0].status
    if status == EntryStatus.REJECTED:
        notifications.notify(
            store, placement.student_id, NotificationType.TIMESHEET_REJECTED, "Timesheet Rejected",
            f"{reviewer} rejected {len(batch)} entries ({total} hours). Reason: {reason.strip()}",
            "placement", placement.id, hours=total, reason=reason,
        )
    elif status == EntryStatus.PENDING_FACULTY:
        notifications.notify(
            store, placement.faculty_id, NotificationType.TIMESHEET_SUPERVISOR_APPROVED,
            "Timesheet Approved by Supervisor",
            f"{reviewer} approved {total} hours for {_display_name(store, placement.student_id)}. "
            "Final approval is waiting on you.",
            "placement", placement.id, hours=total,
        )
    else:
        notifications.notify(
            store, placement.student_id, NotificationType.TIMESHEET_APPROVED, "Timesheet Final Approval",
            f"{total} hours were approved by {reviewer}. Your total hours have been updated.",
            "placement", placement.id, hours=total,
        )


def approve_entry(store: EntityStore, actor: Actor, entry_id: str) -> TimesheetEntry:
    return _review_many(store, actor, [entry_id], EntryAction.APPROVE, None)[0]


def reject_entry(store: EntityStore, actor: Actor, entry_id: str, reason: str) -> TimesheetEntry:
    return _review_many(store, actor, [entry_id], EntryAction.REJECT, reason)[0]


def approve_entries(store: EntityStore, actor: Actor, entry_ids: Iterable[str]) -> list[TimesheetEntry]:
    return _review_many(store, actor, entry_ids, EntryAction.APPROVE, None)


def reject_entries(store: EntityStore, actor: Actor, entry_ids: Iterable[str], reason: str) -> list[TimesheetEntry]:
    return _review_many(store, actor, entry_ids, EntryAction.REJECT, reason)


# ---- queries ----

def list_entries(
    store: EntityStore,
    actor: Actor,
    placement_id: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> list[TimesheetEntry]:
    ensure_participant(actor, load_placement(store, placement_id))
    entries = [TimesheetEntry.model_validate(r) for r in store.list(TIMESHEET_ENTRIES, {"placement_id": placement_id})]
    if start is not None:
        entries = [e for e in entries if e.date >= start]
    if end is not None:
        entries = [e for e in entries if e.date <= end]
    return sorted(entries, key=lambda e: e.date, reverse=True)


def pending_queue(store: EntityStore, actor: Actor) -> list[TimesheetEntry]:
    """Entries waiting on ``actor``'s review stage."""
    stage = REVIEW_STAGE.get(actor.role)
    if stage is None:
        raise PermissionDeniedError(f"Role '{actor.role.value}' has no review queue")
    if actor.role == Role.SUPERVISOR:
        placements = store.list(PLACEMENTS, {"supervisor_id": actor.user_id})
    elif actor.role == Role.FACULTY:
        placements = store.list(PLACEMENTS, {"faculty_id": actor.user_id})
    else:
        placements = store.list(PLACEMENTS)
    ids = [p["id"] for p in placements]
    if not ids:
        return []
    rows = store.list(TIMESHEET_ENTRIES, {"placement_id": ids, "status": stage})
    return sorted((TimesheetEntry.model_validate(r) for r in rows), key=lambda e: (e.placement_id, e.date))
