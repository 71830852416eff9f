from datetime import timedelta

import pytest

from conftest import FACULTY_ID, STUDENT_ID, SUPERVISOR_ID, TERM_START, request
from fieldtrack.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from fieldtrack.store.base import NOTIFICATIONS
from fieldtrack.utils import timeutil
from fieldtrack.workflow import notifications, placements, timesheets
from fieldtrack.workflow.states import EntryCategory, NotificationType

MONDAY = TERM_START
SUNDAY = TERM_START + timedelta(days=6)


def inbox(store, user_id, type=None):
    filters = {"user_id": user_id}
    if type:
        filters["type"] = type
    return store.list(NOTIFICATIONS, filters)


def submit(store, student, placement, hours=("8", "4")):
    entries = [
        timesheets.log_hours(store, student, placement.id, MONDAY + timedelta(days=i), h, EntryCategory.DIRECT)
        for i, h in enumerate(hours)
    ]
    timesheets.submit_week(store, student, placement.id, MONDAY, SUNDAY)
    return [e.id for e in entries]


def test_placement_lifecycle_notifies_the_right_people(store, student, faculty, active_placement):
    [approved] = inbox(store, STUDENT_ID, NotificationType.PLACEMENT_APPROVED)
    assert approved["entity_id"] == active_placement.id
    assert approved["priority"] == "HIGH"
    assert approved["metadata"] == {"site_name": "Riverside Family Services"}
    assert len(inbox(store, FACULTY_ID, NotificationType.DOCUMENT_UPLOADED)) == 3


def test_submission_goes_to_the_supervisor(store, student, active_placement):
    submit(store, student, active_placement)

    [notice] = inbox(store, SUPERVISOR_ID, NotificationType.TIMESHEET_SUBMITTED)
    assert notice["entity_id"] == active_placement.id
    assert "12" in notice["message"]
    assert notice["read"] is False


def test_each_review_stage_notifies_the_next_party(store, student, supervisor, faculty, active_placement):
    ids = submit(store, student, active_placement)

    timesheets.approve_entries(store, supervisor, ids)
    [handoff] = inbox(store, FACULTY_ID, NotificationType.TIMESHEET_SUPERVISOR_APPROVED)
    assert "Sam Super" in handoff["message"]
    assert handoff["metadata"]["hours"] == "12.0"

    timesheets.approve_entries(store, faculty, ids)
    [final] = inbox(store, STUDENT_ID, NotificationType.TIMESHEET_APPROVED)
    assert final["metadata"]["hours"] == "12.0"


def test_rejection_reaches_the_student(store, student, supervisor, active_placement):
    ids = submit(store, student, active_placement)
    timesheets.reject_entries(store, supervisor, ids, "Dates overlap a holiday")

    [notice] = inbox(store, STUDENT_ID, NotificationType.TIMESHEET_REJECTED)
    assert notice["metadata"]["reason"] == "Dates overlap a holiday"
    assert inbox(store, FACULTY_ID, NotificationType.TIMESHEET_SUPERVISOR_APPROVED) == []


def test_failed_transition_leaves_no_notification(store, student, faculty):
    placement = request(store, student)
    with pytest.raises(ValidationError):
        placements.reject_placement(store, faculty, placement.id, " ")
    assert inbox(store, STUDENT_ID) == []


def test_notify_without_recipient_is_a_no_op(store):
    assert notifications.notify(store, None, NotificationType.TIMESHEET_SUBMITTED, "t", "m", "placement", "x") is None
    assert store.list(NOTIFICATIONS) == []


def test_listing_is_newest_first_and_own_only(store, student, supervisor, faculty, active_placement, monkeypatch):
    ids = submit(store, student, active_placement)
    later = timeutil.utcnow() + timedelta(hours=1)
    monkeypatch.setattr(timeutil, "utcnow", lambda: later)
    timesheets.approve_entries(store, supervisor, ids)

    mine = notifications.list_notifications(store, faculty)
    assert {n.user_id for n in mine} == {FACULTY_ID}
    assert len(mine) == 4
    assert mine[0].type == NotificationType.TIMESHEET_SUPERVISOR_APPROVED
    [newest] = notifications.list_notifications(store, faculty, limit=1)
    assert newest.id == mine[0].id
    with pytest.raises(ValidationError):
        notifications.list_notifications(store, faculty, limit=0)
    with pytest.raises(ValidationError):
        notifications.list_notifications(store, faculty, limit=notifications.MAX_PAGE + 1)


def test_mark_read(store, student, faculty, active_placement):
    [first, *_] = notifications.list_notifications(store, student)
    before = notifications.unread_count(store, student)

    read = notifications.mark_read(store, student, first.id)
    assert read.read is True and read.read_at is not None
    assert notifications.unread_count(store, student) == before - 1
    assert notifications.mark_read(store, student, first.id).read_at == read.read_at

    with pytest.raises(PermissionDeniedError):
        notifications.mark_read(store, faculty, first.id)
    with pytest.raises(NotFoundError):
        notifications.mark_read(store, student, "missing")


def test_mark_all_read(store, student, faculty, active_placement):
    assert notifications.mark_all_read(store, faculty) == 3
    assert notifications.unread_count(store, faculty) == 0
    assert notifications.list_notifications(store, faculty, unread_only=True) == []
    assert notifications.unread_count(store, student) == 1
    assert notifications.mark_all_read(store, faculty) == 0
