from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from fieldtrack.core import database
from fieldtrack.schemas.placement import SupervisorSpec
from fieldtrack.store.base import (
    CLASSES,
    FACULTY_ASSIGNMENTS,
    LEARNING_CONTRACTS,
    SITES,
    SUPERVISOR_PROFILES,
    USERS,
)
from fieldtrack.store.memory import MemoryEntityStore
from fieldtrack.utils import timeutil
from fieldtrack.workflow import placements, timesheets
from fieldtrack.workflow.machine import Actor
from fieldtrack.workflow.states import ArtifactKind, EntryCategory, Role

STUDENT_ID = "11111111-0000-0000-0000-000000000001"
OTHER_STUDENT_ID = "11111111-0000-0000-0000-000000000002"
UNASSIGNED_STUDENT_ID = "11111111-0000-0000-0000-000000000003"
FACULTY_ID = "22222222-0000-0000-0000-000000000001"
OTHER_FACULTY_ID = "22222222-0000-0000-0000-000000000002"
ADMIN_ID = "33333333-0000-0000-0000-000000000001"
SUPERVISOR_ID = "44444444-0000-0000-0000-000000000001"
OTHER_SUPERVISOR_ID = "44444444-0000-0000-0000-000000000002"
SITE_ID = "55555555-0000-0000-0000-000000000001"
PENDING_SITE_ID = "55555555-0000-0000-0000-000000000002"
CLASS_ID = "66666666-0000-0000-0000-000000000001"

TERM_START = date(2026, 1, 5)   # a Monday
TERM_END = date(2026, 5, 1)


def _user(user_id, email, name, role):
    return {"id": user_id, "email": email, "name": name, "role": role, "is_active": True}


@pytest.fixture
def store():
    s = MemoryEntityStore()
    for row in (
        _user(STUDENT_ID, "ana.student@example.edu", "Ana Student", "student"),
        _user(OTHER_STUDENT_ID, "ben.student@example.edu", "Ben Student", "student"),
        _user(UNASSIGNED_STUDENT_ID, "cy.student@example.edu", "Cy Student", "student"),
        _user(FACULTY_ID, "dr.faculty@example.edu", "Dr Faculty", "faculty"),
        _user(OTHER_FACULTY_ID, "dr.other@example.edu", "Dr Other", "faculty"),
        _user(ADMIN_ID, "admin@example.edu", "Program Admin", "admin"),
        _user(SUPERVISOR_ID, "sam.super@agency.org", "Sam Super", "supervisor"),
        _user(OTHER_SUPERVISOR_ID, "olga.super@agency.org", "Olga Super", "supervisor"),
    ):
        s.create(USERS, row)

    s.create(SITES, {
        "id": SITE_ID,
        "name": "Riverside Family Services",
        "contact_email": "director@riverside.org",
        "status": "ACTIVE",
        "active": True,
        "requires_learning_contract": True,
    })
    s.create(SITES, {
        "id": PENDING_SITE_ID,
        "name": "Hillcrest Clinic",
        "status": "PENDING_APPROVAL",
        "active": False,
        "requires_learning_contract": True,
    })
    s.create(LEARNING_CONTRACTS, {
        "site_id": SITE_ID,
        "token": "f" * 64,
        "token_expiry": (datetime.now(timezone.utc) + timedelta(days=30)).isoformat(),
        "is_current": True,
        "status": "APPROVED",
        "sent_to_email": "director@riverside.org",
    })
    s.create(SUPERVISOR_PROFILES, {"user_id": SUPERVISOR_ID, "site_id": SITE_ID, "title": "LCSW"})
    s.create(SUPERVISOR_PROFILES, {"user_id": OTHER_SUPERVISOR_ID, "site_id": SITE_ID, "title": "LMFT"})
    s.create(CLASSES, {"id": CLASS_ID, "name": "SW 690 Field Practicum", "required_hours": "400"})
    s.create(FACULTY_ASSIGNMENTS, {"student_id": STUDENT_ID, "faculty_id": FACULTY_ID})
    s.create(FACULTY_ASSIGNMENTS, {"student_id": OTHER_STUDENT_ID, "faculty_id": FACULTY_ID})
    return s


@pytest.fixture
def student():
    return Actor(STUDENT_ID, Role.STUDENT)


@pytest.fixture
def other_student():
    return Actor(OTHER_STUDENT_ID, Role.STUDENT)


@pytest.fixture
def faculty():
    return Actor(FACULTY_ID, Role.FACULTY)


@pytest.fixture
def other_faculty():
    return Actor(OTHER_FACULTY_ID, Role.FACULTY)


@pytest.fixture
def admin():
    return Actor(ADMIN_ID, Role.ADMIN)


@pytest.fixture
def supervisor():
    return Actor(SUPERVISOR_ID, Role.SUPERVISOR)


@pytest.fixture
def other_supervisor():
    return Actor(OTHER_SUPERVISOR_ID, Role.SUPERVISOR)


@pytest.fixture
def fixed_today(monkeypatch):
    """Pin ``timeutil.today``; returns a setter for moving the clock."""
    current = {"today": TERM_START}
    monkeypatch.setattr(timeutil, "today", lambda: current["today"])

    def set_today(value: date):
        current["today"] = value

    return set_today


def existing_supervisor(supervisor_id=SUPERVISOR_ID):
    return SupervisorSpec(option="existing", supervisor_id=supervisor_id)


def new_supervisor(email="nina.new@riverside.org"):
    return SupervisorSpec(
        option="new", first_name="Nina", last_name="New", email=email,
        title="LCSW", license_number="CA-12345", highest_degree="MSW",
    )


def request(store, actor, supervisor=None, **kwargs):
    kwargs.setdefault("site_id", SITE_ID)
    kwargs.setdefault("class_id", CLASS_ID)
    kwargs.setdefault("start_date", TERM_START)
    kwargs.setdefault("end_date", TERM_END)
    return placements.request_placement(store, actor, supervisor=supervisor or existing_supervisor(), **kwargs)


def upload_all_artifacts(store, actor, placement_id):
    for kind in ArtifactKind:
        placements.record_artifact(store, actor, placement_id, kind, f"docs/{placement_id}/{kind.value}.pdf")


@pytest.fixture
def active_placement(store, student, faculty):
    placement = request(store, student)
    placements.approve_placement(store, faculty, placement.id)
    upload_all_artifacts(store, student, placement.id)
    return placements.activate_placement(store, faculty, placement.id)


def approve_hours(store, student, supervisor, faculty, placement_id, days):
    """Log ``days`` ([(date, hours)]), submit them week by week and run both approvals."""
    for day, hours in days:
        timesheets.log_hours(store, student, placement_id, day, hours, EntryCategory.DIRECT)
    for monday in sorted({d - timedelta(days=d.weekday()) for d, _ in days}):
        timesheets.submit_week(store, student, placement_id, monday, monday + timedelta(days=6))
    timesheets.approve_entries(store, supervisor, [e.id for e in timesheets.pending_queue(store, supervisor)])
    return timesheets.approve_entries(store, faculty, [e.id for e in timesheets.pending_queue(store, faculty)])


def consecutive_days(start, count, hours):
    return [(start + timedelta(days=i), Decimal(str(hours))) for i in range(count)]


@pytest.fixture
def client(store, monkeypatch):
    from fieldtrack.core.config import settings
    from fieldtrack.main import app

    monkeypatch.setattr(database, "_store", store)
    monkeypatch.setattr(settings, "AUTH_MODE", "mock")
    with TestClient(app) as c:
        yield c


def auth(email):
    return {"Authorization": f"Bearer mock-{email}"}
