import threading
from datetime import date, timedelta
from decimal import Decimal

import pytest

from conftest import (
    ADMIN_ID,
    OTHER_STUDENT_ID,
    PENDING_SITE_ID,
    STUDENT_ID,
    TERM_END,
    TERM_START,
    UNASSIGNED_STUDENT_ID,
    approve_hours,
    consecutive_days,
    new_supervisor,
    request,
    upload_all_artifacts,
)
from fieldtrack.core.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionFailedError,
    ValidationError,
)
from fieldtrack.store.base import AUDIT_LOGS, NOTIFICATIONS, PENDING_SUPERVISORS, PLACEMENTS
from fieldtrack.workflow import placements, supervisors
from fieldtrack.workflow.machine import Actor
from fieldtrack.workflow.states import ArtifactKind, Decision, PlacementStatus, Role


def test_request_creates_pending_placement(store, student):
    placement = request(store, student)

    assert placement.status == PlacementStatus.PENDING
    assert placement.student_id == STUDENT_ID
    assert placement.faculty_id is not None
    assert placement.required_hours == Decimal("400")
    assert not placement.archived
    assert store.find(AUDIT_LOGS, {"action": "PLACEMENT_REQUESTED", "entity_id": placement.id})


def test_required_hours_can_be_overridden(store, student):
    placement = request(store, student, required_hours=Decimal("250"))
    assert placement.required_hours == Decimal("250")


def test_one_open_placement_per_student(store, student, faculty):
    first = request(store, student)
    with pytest.raises(ConflictError):
        request(store, student)

    placements.approve_placement(store, faculty, first.id)
    with pytest.raises(ConflictError):
        request(store, student)


def test_rejected_placement_frees_the_student(store, student, faculty):
    first = request(store, student)
    rejected = placements.reject_placement(store, faculty, first.id, "Site is too far from campus")
    assert rejected.status == PlacementStatus.REJECTED
    assert rejected.rejection_reason == "Site is too far from campus"

    second = request(store, student)
    assert second.status == PlacementStatus.PENDING
    assert second.id != first.id


def test_rejection_closes_the_supervisor_request(store, student, faculty):
    first = request(store, student, supervisor=new_supervisor())
    placements.reject_placement(store, faculty, first.id, "Site capacity full this term")

    closed = store.find(PENDING_SUPERVISORS, {"placement_id": first.id})
    assert closed["status"] == "REJECTED"
    assert closed["rejection_reason"] == "Site capacity full this term"
    assert supervisors.list_pending(store, faculty) == []

    second = request(store, student, supervisor=new_supervisor())
    assert second.status == PlacementStatus.PENDING
    assert supervisors.pending_for_placement(store, second.id).email == "nina.new@riverside.org"
    with pytest.raises(InvalidStateError):
        supervisors.resolve_pending_supervisor(store, faculty, closed["id"], Decision.APPROVE)


def test_stale_supervisor_request_does_not_hold_the_email(store, student, other_student, faculty):
    # a PENDING row left behind on a placement that is already closed
    first = request(store, student, supervisor=new_supervisor())
    store.update(PLACEMENTS, first.id, {"status": "REJECTED"})
    stale = supervisors.pending_for_placement(store, first.id)

    assert not supervisors.email_in_use(store, "nina.new@riverside.org")
    assert supervisors.list_pending(store, faculty) == []
    with pytest.raises(PreconditionFailedError):
        supervisors.resolve_pending_supervisor(store, faculty, stale.id, Decision.APPROVE)

    fresh = request(store, other_student, supervisor=new_supervisor())
    assert store.get(PENDING_SUPERVISORS, stale.id)["status"] == "REJECTED"
    assert [p.placement_id for p in supervisors.list_pending(store, faculty)] == [fresh.id]


def test_rejection_notifies_the_student(store, student, faculty):
    placement = request(store, student)
    placements.reject_placement(store, faculty, placement.id, "Site capacity full this term")

    [note] = store.list(NOTIFICATIONS, {"user_id": STUDENT_ID})
    assert note["type"] == "PLACEMENT_REJECTED"
    assert "Site capacity full this term" in note["message"]


def test_concurrent_requests_for_one_student(store, student):
    barrier = threading.Barrier(2)
    results = []

    def attempt():
        barrier.wait()
        try:
            results.append(request(store, student))
        except ConflictError as e:
            results.append(e)

    threads = [threading.Thread(target=attempt) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(isinstance(r, ConflictError) for r in results) == 1
    assert len(store.list(PLACEMENTS, {"student_id": STUDENT_ID})) == 1


def test_request_validation(store, student, faculty):
    with pytest.raises(ValidationError):
        request(store, student, start_date=TERM_END, end_date=TERM_START)
    with pytest.raises(ValidationError):
        request(store, student, start_date=TERM_START, end_date=TERM_START)
    with pytest.raises(PermissionDeniedError):
        request(store, student, student_id=OTHER_STUDENT_ID)
    with pytest.raises(ValidationError):
        request(store, faculty)
    with pytest.raises(NotFoundError):
        request(store, student, class_id="no-such-class")


def test_faculty_can_request_on_behalf_of_student(store, faculty):
    placement = request(store, faculty, student_id=OTHER_STUDENT_ID)
    assert placement.student_id == OTHER_STUDENT_ID


def test_request_needs_faculty_assignment(store):
    with pytest.raises(PreconditionFailedError):
        request(store, Actor(UNASSIGNED_STUDENT_ID, Role.STUDENT))


def test_request_needs_approved_site(store, student):
    with pytest.raises(PreconditionFailedError):
        request(store, student, site_id=PENDING_SITE_ID)


def test_failed_request_leaves_nothing_behind(store, student, other_student):
    held = request(store, other_student, supervisor=new_supervisor("taken@riverside.org"))
    with pytest.raises(ConflictError):
        request(store, student, supervisor=new_supervisor("taken@riverside.org"))
    assert [p["id"] for p in store.list(PLACEMENTS)] == [held.id]
    assert len(store.list(PENDING_SUPERVISORS)) == 1


def test_only_linked_faculty_review(store, student, other_faculty, supervisor, admin):
    placement = request(store, student)
    with pytest.raises(PermissionDeniedError):
        placements.approve_placement(store, other_faculty, placement.id)
    with pytest.raises(PermissionDeniedError):
        placements.approve_placement(store, supervisor, placement.id)
    with pytest.raises(PermissionDeniedError):
        placements.approve_placement(store, student, placement.id)

    approved = placements.approve_placement(store, admin, placement.id, notes="Approved by program office")
    assert approved.status == PlacementStatus.APPROVED_PENDING_CHECKLIST
    assert approved.approved_by == ADMIN_ID
    assert approved.faculty_notes == "Approved by program office"


def test_second_decision_is_rejected(store, student, faculty):
    placement = request(store, student)
    placements.approve_placement(store, faculty, placement.id)
    with pytest.raises(InvalidStateError):
        placements.approve_placement(store, faculty, placement.id)
    with pytest.raises(InvalidStateError):
        placements.reject_placement(store, faculty, placement.id, "too late")


def test_reject_needs_reason(store, student, faculty):
    placement = request(store, student)
    with pytest.raises(ValidationError):
        placements.reject_placement(store, faculty, placement.id, "   ")
    assert placements.final_approval_readiness(store, placement.id).ready is False
    assert store.get(PLACEMENTS, placement.id)["status"] == "PENDING"


def test_activation_waits_for_all_artifacts(store, student, faculty):
    placement = request(store, student)
    placements.approve_placement(store, faculty, placement.id)
    placements.record_artifact(store, student, placement.id, ArtifactKind.CELL_POLICY, "docs/cell.pdf")
    placements.record_artifact(store, student, placement.id, ArtifactKind.LEARNING_CONTRACT, "docs/lc.pdf")

    readiness = placements.final_approval_readiness(store, placement.id)
    assert readiness.cell_policy and readiness.learning_contract
    assert not readiness.checklist and not readiness.ready
    with pytest.raises(PreconditionFailedError):
        placements.activate_placement(store, faculty, placement.id)

    placements.record_artifact(store, student, placement.id, ArtifactKind.CHECKLIST, "docs/checklist.pdf")
    assert placements.final_approval_readiness(store, placement.id).ready
    # readiness never moves the placement on its own
    assert store.get(PLACEMENTS, placement.id)["status"] == "APPROVED_PENDING_CHECKLIST"

    active = placements.activate_placement(store, faculty, placement.id)
    assert active.status == PlacementStatus.ACTIVE
    assert active.activated_at is not None


def test_system_can_activate(store, student, faculty):
    placement = request(store, student)
    placements.approve_placement(store, faculty, placement.id)
    upload_all_artifacts(store, student, placement.id)
    assert placements.activate_placement(store, Actor.system(), placement.id).status == PlacementStatus.ACTIVE


def test_artifacts_closed_after_activation(store, student, active_placement):
    with pytest.raises(PreconditionFailedError):
        placements.record_artifact(store, student, active_placement.id, ArtifactKind.CHECKLIST, "docs/new.pdf")
    with pytest.raises(ValidationError):
        placements.record_artifact(store, student, active_placement.id, ArtifactKind.CHECKLIST, "")


def test_archive_requires_hours_and_end_date(store, student, supervisor, faculty, active_placement, fixed_today):
    fixed_today(TERM_END + timedelta(days=1))
    # 16 x 24h + 15.9h = 399.9h
    days = consecutive_days(TERM_START, 16, "24") + [(TERM_START + timedelta(days=16), Decimal("15.9"))]
    approve_hours(store, student, supervisor, faculty, active_placement.id, days)

    with pytest.raises(PreconditionFailedError):
        placements.archive_placement(store, student, active_placement.id)
    assert store.get(PLACEMENTS, active_placement.id)["status"] == "ACTIVE"

    approve_hours(store, student, supervisor, faculty, active_placement.id,
                  [(TERM_START + timedelta(days=17), Decimal("0.1"))])
    result = placements.archive_placement(store, student, active_placement.id)

    assert result.placement.status == PlacementStatus.ARCHIVED
    assert result.placement.archived is True
    assert result.student_has_other_active is False


def test_archive_before_end_date(store, student, supervisor, faculty, active_placement, fixed_today):
    approve_hours(store, student, supervisor, faculty, active_placement.id,
                  consecutive_days(TERM_START, 17, "24"))
    fixed_today(TERM_END - timedelta(days=1))
    with pytest.raises(PreconditionFailedError):
        placements.archive_placement(store, faculty, active_placement.id)

    fixed_today(TERM_END)
    assert placements.archive_placement(store, faculty, active_placement.id).placement.status \
        == PlacementStatus.ARCHIVED


def test_supervisor_cannot_archive(store, supervisor, active_placement, fixed_today):
    fixed_today(TERM_END + timedelta(days=1))
    with pytest.raises(PermissionDeniedError):
        placements.archive_placement(store, supervisor, active_placement.id)


def test_archived_placement_allows_a_new_request(store, student, supervisor, faculty, active_placement, fixed_today):
    approve_hours(store, student, supervisor, faculty, active_placement.id,
                  consecutive_days(TERM_START, 17, "24"))
    fixed_today(TERM_END)
    placements.archive_placement(store, student, active_placement.id)
    with pytest.raises(InvalidStateError):
        placements.archive_placement(store, student, active_placement.id)

    follow_up = request(store, student, start_date=date(2026, 8, 24), end_date=date(2026, 12, 11))
    assert follow_up.status == PlacementStatus.PENDING


def test_reporting_status(store, active_placement):
    assert placements.reporting_status(active_placement, today=TERM_END) == PlacementStatus.ACTIVE
    assert placements.reporting_status(active_placement, today=TERM_END + timedelta(days=1)) \
        == PlacementStatus.COMPLETE
    assert store.get(PLACEMENTS, active_placement.id)["status"] == "ACTIVE"


def test_list_placements_is_scoped_by_role(store, student, other_student, faculty, other_faculty, supervisor, admin):
    mine = request(store, student)
    theirs = request(store, other_student)

    assert [p.id for p in placements.list_placements(store, student)] == [mine.id]
    assert {p.id for p in placements.list_placements(store, faculty)} == {mine.id, theirs.id}
    assert placements.list_placements(store, other_faculty) == []
    assert {p.id for p in placements.list_placements(store, supervisor)} == {mine.id, theirs.id}
    assert len(placements.list_placements(store, admin, PlacementStatus.PENDING)) == 2

    with pytest.raises(PermissionDeniedError):
        placements.get_placement(store, other_student, mine.id)


def test_assign_supervisor(store, student, faculty, other_supervisor):
    placement = request(store, student)
    updated = placements.assign_supervisor(store, faculty, placement.id, other_supervisor.user_id)
    assert updated.supervisor_id == other_supervisor.user_id
    with pytest.raises(ValidationError):
        placements.assign_supervisor(store, faculty, placement.id, STUDENT_ID)
