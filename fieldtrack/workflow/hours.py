"""
Hours aggregation.

Every figure is summed from the current timesheet rows on each call. Nothing
is cached or denormalised: the archive guard reads ``approved_hours`` at
decision time and must see exactly what is committed.
"""

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from fieldtrack.core.config import settings
from fieldtrack.core.errors import ValidationError
from fieldtrack.schemas.entities import HoursSummary, TimesheetEntry
from fieldtrack.store.base import TIMESHEET_ENTRIES, EntityStore
from fieldtrack.workflow.lookups import load_placement
from fieldtrack.workflow.states import EntryStatus, IN_REVIEW_ENTRY_STATUSES

ZERO = Decimal("0")


def _entries(store: EntityStore, placement_id: str, statuses: Optional[Iterable] = None) -> list[TimesheetEntry]:
    filters = {"placement_id": placement_id}
    if statuses is not None:
        filters["status"] = list(statuses)
    return [TimesheetEntry.model_validate(r) for r in store.list(TIMESHEET_ENTRIES, filters)]


def _sum(entries: Iterable[TimesheetEntry]) -> Decimal:
    return sum((e.hours for e in entries), ZERO)


def approved_hours(store: EntityStore, placement_id: str) -> Decimal:
    return _sum(_entries(store, placement_id, [EntryStatus.APPROVED]))


def compute_hours_summary(store: EntityStore, placement_id: str) -> HoursSummary:
    placement = load_placement(store, placement_id)
    by_status = defaultdict(lambda: ZERO)
    for entry in _entries(store, placement_id):
        by_status[entry.status] += entry.hours

    approved = by_status[EntryStatus.APPROVED]
    pending = sum((by_status[s] for s in IN_REVIEW_ENTRY_STATUSES), ZERO)
    return HoursSummary(
        placement_id=placement_id,
        required=placement.required_hours,
        approved=approved,
        pending=pending,
        draft=by_status[EntryStatus.DRAFT] + by_status[EntryStatus.REJECTED],
        remaining=max(ZERO, placement.required_hours - approved),
    )


def daily_totals(store: EntityStore, placement_id: str, start: date, end: date) -> dict[date, Decimal]:
    """Hours per day in ``[start, end]``, every status except REJECTED."""
    if end < start:
        raise ValidationError("end must not be before start")
    if (end - start).days >= settings.DAILY_TOTALS_MAX_DAYS:
        raise ValidationError(f"A daily totals range covers at most {settings.DAILY_TOTALS_MAX_DAYS} days")
    totals = {start + timedelta(days=i): ZERO for i in range((end - start).days + 1)}
    for entry in _entries(store, placement_id):
        if entry.status != EntryStatus.REJECTED and start <= entry.date <= end:
            totals[entry.date] += entry.hours
    return totals


def weekly_totals(store: EntityStore, placement_id: str, status: Optional[EntryStatus] = None) -> dict[date, Decimal]:
    """Hours grouped by the Monday of each ISO week, optionally for one status."""
    totals = defaultdict(lambda: ZERO)
    for entry in _entries(store, placement_id, [status] if status else None):
        if status is None and entry.status == EntryStatus.REJECTED:
            continue
        monday = entry.date - timedelta(days=entry.date.weekday())
        totals[monday] += entry.hours
    return dict(sorted(totals.items()))
