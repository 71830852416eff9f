"""
Placement lifecycle.

    PENDING ──approve──▶ APPROVED_PENDING_CHECKLIST ──activate──▶ ACTIVE ──archive──▶ ARCHIVED
       └────reject────▶ REJECTED

Every status write is a compare-and-swap on the status read at the start of
the transaction. Reaching "all onboarding artifacts present" never moves a
placement by itself; ``final_approval_readiness`` only reports it and
activation stays an explicit faculty action.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from fieldtrack.core.errors import (
    ConflictError,
    PermissionDeniedError,
    PreconditionFailedError,
    ValidationError,
)
from fieldtrack.schemas.entities import ArchiveResult, Placement, Readiness
from fieldtrack.schemas.placement import SupervisorSpec
from fieldtrack.store.base import FACULTY_ASSIGNMENTS, PLACEMENTS, EntityStore
from fieldtrack.utils import timeutil
from fieldtrack.workflow import audit, notifications
from fieldtrack.workflow.hours import approved_hours
from fieldtrack.workflow.lookups import (
    ensure_owner,
    ensure_participant,
    ensure_placement_faculty,
    ensure_site_can_host,
    is_approved_supervisor,
    load_class,
    load_placement,
    load_site,
    load_user,
    transition_row,
)
from fieldtrack.workflow.machine import Actor, StateMachine, Transition
from fieldtrack.workflow.states import (
    ArtifactKind,
    NotificationPriority,
    NotificationType,
    OPEN_PLACEMENT_STATUSES,
    PlacementAction,
    PlacementStatus,
    Role,
)
from fieldtrack.workflow.supervisors import create_pending_supervisor, retire_for_placement

logger = logging.getLogger(__name__)

FACULTY_ROLES = frozenset({Role.FACULTY, Role.ADMIN})


# ---- guards ----

def _reason_given(ctx: dict):
    if not (ctx.get("reason") or "").strip():
        raise ValidationError("A rejection reason is required")


def _artifacts_present(ctx: dict):
    readiness = readiness_of(ctx["placement"])
    if not readiness.ready:
        missing = [k.value for k in ArtifactKind if not getattr(readiness, k.value)]
        raise PreconditionFailedError(f"Missing onboarding documents: {', '.join(missing)}")


def _hours_and_term_complete(ctx: dict):
    placement: Placement = ctx["placement"]
    approved = approved_hours(ctx["store"], placement.id)
    if approved < placement.required_hours:
        raise PreconditionFailedError(
            f"Only {approved} of {placement.required_hours} required hours are approved"
        )
    if ctx["today"] < placement.end_date:
        raise PreconditionFailedError(
            f"Placement cannot be archived before its end date {placement.end_date.isoformat()}"
        )


PLACEMENT_MACHINE = StateMachine("placement", PlacementStatus, {
    (PlacementStatus.PENDING, PlacementAction.APPROVE): Transition(
        PlacementStatus.APPROVED_PENDING_CHECKLIST, FACULTY_ROLES,
    ),
    (PlacementStatus.PENDING, PlacementAction.REJECT): Transition(
        PlacementStatus.REJECTED, FACULTY_ROLES, guard=_reason_given,
    ),
    (PlacementStatus.APPROVED_PENDING_CHECKLIST, PlacementAction.ACTIVATE): Transition(
        PlacementStatus.ACTIVE, FACULTY_ROLES | {Role.SYSTEM}, guard=_artifacts_present,
    ),
    (PlacementStatus.ACTIVE, PlacementAction.ARCHIVE): Transition(
        PlacementStatus.ARCHIVED, frozenset({Role.STUDENT, Role.FACULTY, Role.ADMIN}),
        guard=_hours_and_term_complete,
    ),
})


# ---- queries ----

def get_placement(store: EntityStore, actor: Actor, placement_id: str) -> Placement:
    placement = load_placement(store, placement_id)
    ensure_participant(actor, placement)
    return placement


def list_placements(store: EntityStore, actor: Actor, status: Optional[PlacementStatus] = None) -> list[Placement]:
    filters = {}
    if actor.role == Role.STUDENT:
        filters["student_id"] = actor.user_id
    elif actor.role == Role.SUPERVISOR:
        filters["supervisor_id"] = actor.user_id
    elif actor.role == Role.FACULTY:
        filters["faculty_id"] = actor.user_id
    if status is not None:
        filters["status"] = status
    rows = store.list(PLACEMENTS, filters)
    placements = [Placement.model_validate(r) for r in rows]
    return sorted(placements, key=lambda p: p.start_date, reverse=True)


def open_placements(store: EntityStore, student_id: str) -> list[Placement]:
    rows = store.list(PLACEMENTS, {"student_id": student_id, "status": list(OPEN_PLACEMENT_STATUSES)})
    return [Placement.model_validate(r) for r in rows]


def readiness_of(placement: Placement) -> Readiness:
    flags = {kind.value: bool(getattr(placement, kind.value)) for kind in ArtifactKind}
    return Readiness(placement_id=placement.id, ready=all(flags.values()), **flags)


def final_approval_readiness(store: EntityStore, placement_id: str) -> Readiness:
    return readiness_of(load_placement(store, placement_id))


def available_actions(placement: Placement, actor: Actor) -> list[PlacementAction]:
    """Transitions the actor's role may attempt next; guards are not evaluated."""
    return PLACEMENT_MACHINE.actions_from(placement.status, actor.role)


def reporting_status(placement: Placement, today: Optional[date] = None) -> PlacementStatus:
    """COMPLETE is a label for an ACTIVE placement whose term has elapsed."""
    today = today or timeutil.today()
    if placement.status == PlacementStatus.ACTIVE and placement.end_date < today:
        return PlacementStatus.COMPLETE
    return placement.status


# ---- request ----

def request_placement(
    store: EntityStore,
    actor: Actor,
    site_id: str,
    class_id: str,
    supervisor: SupervisorSpec,
    start_date: date,
    end_date: date,
    required_hours: Optional[Decimal] = None,
    student_id: Optional[str] = None,
) -> Placement:
    if actor.role == Role.STUDENT:
        if student_id and student_id != actor.user_id:
            raise PermissionDeniedError("Students may only apply for themselves")
        student_id = actor.user_id
    elif actor.role not in FACULTY_ROLES:
        raise PermissionDeniedError("Only students, faculty or admins can request placements")
    elif not student_id:
        raise ValidationError("student_id is required when applying on a student's behalf")

    if end_date <= start_date:
        raise ValidationError("End date must be after start date")

    with store.transaction():
        student = load_user(store, student_id, Role.STUDENT, "Student")
        if not student.get("is_active", True):
            raise PreconditionFailedError("Student account is inactive")

        if open_placements(store, student_id):
            raise ConflictError("Student already has a pending, approved or active placement")

        site = load_site(store, site_id)
        ensure_site_can_host(store, site)

        klass = load_class(store, class_id)
        hours = Decimal(str(required_hours)) if required_hours is not None else Decimal(str(klass["required_hours"]))
        if hours <= 0:
            raise ValidationError("Required hours must be greater than zero")

        assignment = store.find(FACULTY_ASSIGNMENTS, {"student_id": student_id})
        if not assignment:
            raise PreconditionFailedError("No faculty member assigned to this student")

        supervisor_id = None
        if supervisor.option == "existing":
            if not supervisor.supervisor_id:
                raise ValidationError("Supervisor selection is required")
            if not is_approved_supervisor(store, supervisor.supervisor_id, site_id=site.id):
                raise ValidationError("Selected supervisor is not available for this site")
            supervisor_id = supervisor.supervisor_id

        row = store.create(PLACEMENTS, {
            "student_id": student_id,
            "site_id": site.id,
            "supervisor_id": supervisor_id,
            "faculty_id": assignment["faculty_id"],
            "class_id": class_id,
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "required_hours": str(hours),
            "status": PlacementStatus.PENDING,
            "archived": False,
            "created_at": timeutil.utcnow_iso(),
        })
        if supervisor.option == "new":
            create_pending_supervisor(store, supervisor, site.id, row["id"])

        audit.record(store, actor, "PLACEMENT_REQUESTED", "placement", row["id"],
                     student_id=student_id, site_id=site.id, new_supervisor=supervisor.option == "new")

    return Placement.model_validate(row)


# ---- faculty transitions ----

def _apply(store: EntityStore, actor: Actor, placement: Placement, action: PlacementAction, fields: dict, **ctx) -> Placement:
    transition = PLACEMENT_MACHINE.resolve(
        placement.status, action, actor.role,
        {"store": store, "placement": placement, **ctx},
    )
    row = transition_row(store, PLACEMENTS, placement.id, placement.status, {
        "status": transition.target,
        **fields,
    })
    audit.record(store, actor, f"PLACEMENT_{action.value.upper()}", "placement", placement.id,
                 prior_status=placement.status.value, status=transition.target.value)
    return Placement.model_validate(row)


def approve_placement(store: EntityStore, actor: Actor, placement_id: str, notes: Optional[str] = None) -> Placement:
    with store.transaction():
        placement = load_placement(store, placement_id)
        ensure_placement_faculty(actor, placement)
        approved = _apply(store, actor, placement, PlacementAction.APPROVE, {
            "approved_at": timeutil.utcnow_iso(),
            "approved_by": actor.user_id,
            "faculty_notes": notes,
        })
        site = load_site(store, placement.site_id)
        notifications.notify(
            store, placement.student_id, NotificationType.PLACEMENT_APPROVED, "Placement Approved",
            f"Your placement at {site.name} has been approved. Upload your onboarding documents to activate it.",
            "placement", placement.id, NotificationPriority.HIGH, site_name=site.name,
        )
    return approved


def reject_placement(store: EntityStore, actor: Actor, placement_id: str, reason: str) -> Placement:
    """
    Reject a PENDING placement. A supervisor request made with it is rejected
    in the same transaction, which releases that supervisor's email for the
    student's next request.
    """
    with store.transaction():
        placement = load_placement(store, placement_id)
        ensure_placement_faculty(actor, placement)
        rejected = _apply(store, actor, placement, PlacementAction.REJECT, {
            "rejected_at": timeutil.utcnow_iso(),
            "rejected_by": actor.user_id,
            "rejection_reason": (reason or "").strip(),
        }, reason=reason)
        retire_for_placement(store, actor, rejected, rejected.rejection_reason)
        site = load_site(store, placement.site_id)
        notifications.notify(
            store, placement.student_id, NotificationType.PLACEMENT_REJECTED, "Placement Rejected",
            f"Your placement at {site.name} was not approved. Reason: {rejected.rejection_reason}",
            "placement", placement.id, NotificationPriority.HIGH, site_name=site.name, reason=rejected.rejection_reason,
        )
    return rejected


def activate_placement(store: EntityStore, actor: Actor, placement_id: str) -> Placement:
    with store.transaction():
        placement = load_placement(store, placement_id)
        if actor.role != Role.SYSTEM:
            ensure_placement_faculty(actor, placement)
        return _apply(store, actor, placement, PlacementAction.ACTIVATE, {
            "activated_at": timeutil.utcnow_iso(),
        })


def archive_placement(store: EntityStore, actor: Actor, placement_id: str) -> ArchiveResult:
    """
    Close an ACTIVE placement once its approved hours cover the requirement
    and its end date has been reached. The guard is evaluated afresh on every
    call. Timesheet rows are left untouched as the historical record.
    """
    with store.transaction():
        placement = load_placement(store, placement_id)
        if actor.role == Role.STUDENT:
            ensure_owner(actor, placement)
        else:
            ensure_placement_faculty(actor, placement)
        archived = _apply(store, actor, placement, PlacementAction.ARCHIVE, {
            "archived": True,
            "archived_at": timeutil.utcnow_iso(),
            "archived_by": actor.user_id,
        }, today=timeutil.today())
        others = store.list(PLACEMENTS, {"student_id": placement.student_id, "status": PlacementStatus.ACTIVE})
        has_other = any(r["id"] != placement.id for r in others)

    return ArchiveResult(placement=archived, student_has_other_active=has_other)


# ---- onboarding artifacts & supervisor ----

def record_artifact(store: EntityStore, actor: Actor, placement_id: str, kind: ArtifactKind, document_ref: str) -> Placement:
    kind = ArtifactKind(kind)
    if not (document_ref or "").strip():
        raise ValidationError("A document reference is required")
    with store.transaction():
        placement = load_placement(store, placement_id)
        if actor.role == Role.STUDENT:
            ensure_owner(actor, placement)
        else:
            ensure_placement_faculty(actor, placement)
        if placement.status not in (PlacementStatus.PENDING, PlacementStatus.APPROVED_PENDING_CHECKLIST):
            raise PreconditionFailedError("Onboarding documents can only be added before activation")
        row = transition_row(store, PLACEMENTS, placement.id, placement.status, {kind.value: document_ref})
        audit.record(store, actor, "PLACEMENT_ARTIFACT_RECORDED", "placement", placement.id, kind=kind.value)
        if actor.role == Role.STUDENT:
            notifications.notify(
                store, placement.faculty_id, NotificationType.DOCUMENT_UPLOADED, "New Document Uploaded",
                f"A student uploaded their {kind.value.replace('_', ' ')} for review.",
                "placement", placement.id, kind=kind.value,
            )
    return Placement.model_validate(row)


def assign_supervisor(store: EntityStore, actor: Actor, placement_id: str, supervisor_id: str) -> Placement:
    with store.transaction():
        placement = load_placement(store, placement_id)
        ensure_placement_faculty(actor, placement)
        if placement.status not in OPEN_PLACEMENT_STATUSES:
            raise PreconditionFailedError("Supervisor can only be assigned to an open placement")
        if not is_approved_supervisor(store, supervisor_id, site_id=placement.site_id):
            raise ValidationError("Selected supervisor is not available for this site")
        row = transition_row(store, PLACEMENTS, placement.id, placement.status, {"supervisor_id": supervisor_id})
        audit.record(store, actor, "PLACEMENT_SUPERVISOR_ASSIGNED", "placement", placement.id,
                     supervisor_id=supervisor_id)
    return Placement.model_validate(row)
