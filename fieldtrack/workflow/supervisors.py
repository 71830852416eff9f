"""
Supervisor provisioning.

A student naming a supervisor who has no account yet produces a
PendingSupervisor row next to the placement. The supervisor account only
exists once faculty approve it; until then the placement has no supervisor
and no timesheet can be routed or approved. A pending supervisor whose
placement has closed no longer holds its email address.
"""

import logging
import secrets
import string
from typing import Optional

from fieldtrack.core.errors import (
    ConflictError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from fieldtrack.core.security import get_password_hash, login_provisioner
from fieldtrack.schemas.entities import PendingSupervisor, Placement, Supervisor, SupervisorResolution
from fieldtrack.schemas.placement import SupervisorSpec
from fieldtrack.store.base import (
    PENDING_SUPERVISORS,
    PLACEMENTS,
    SUPERVISOR_PROFILES,
    USERS,
    EntityStore,
    Row,
)
from fieldtrack.utils.timeutil import utcnow_iso
from fieldtrack.workflow import audit, notifications
from fieldtrack.workflow.lookups import (
    ensure_placement_faculty,
    load_placement,
    transition_row,
)
from fieldtrack.workflow.machine import Actor, StateMachine, Transition
from fieldtrack.workflow.states import (
    Decision,
    NotificationPriority,
    NotificationType,
    OPEN_PLACEMENT_STATUSES,
    PendingSupervisorStatus,
    Role,
)

logger = logging.getLogger(__name__)

RESOLVERS = frozenset({Role.FACULTY, Role.ADMIN})
CLOSED_PLACEMENT_REASON = "Placement is no longer open"


def _reason_given(ctx: dict):
    if not (ctx.get("reason") or "").strip():
        raise ValidationError("A rejection reason is required")


PENDING_SUPERVISOR_MACHINE = StateMachine("pending supervisor", PendingSupervisorStatus, {
    (PendingSupervisorStatus.PENDING, Decision.APPROVE): Transition(
        PendingSupervisorStatus.APPROVED, RESOLVERS,
        description="promote to a supervisor account and link the placement",
    ),
    (PendingSupervisorStatus.PENDING, Decision.REJECT): Transition(
        PendingSupervisorStatus.REJECTED, RESOLVERS | {Role.SYSTEM}, guard=_reason_given,
        description="clear the placement's supervisor",
    ),
})


def _temporary_password(length: int = 10) -> str:
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def _placement_open(store: EntityStore, row: Row) -> bool:
    placement = store.find(PLACEMENTS, {"id": row["placement_id"]})
    return placement is not None and placement["status"] in {s.value for s in OPEN_PLACEMENT_STATUSES}


def _pending_rows(store: EntityStore, filters: dict) -> list[Row]:
    return store.list(PENDING_SUPERVISORS, {**filters, "status": PendingSupervisorStatus.PENDING})


def email_in_use(store: EntityStore, email: str) -> bool:
    email = email.lower()
    if store.find(USERS, {"email": email}):
        return True
    return any(_placement_open(store, r) for r in _pending_rows(store, {"email": email}))


def _reject_row(store: EntityStore, actor: Actor, row: Row, reason: str) -> Row:
    transition = PENDING_SUPERVISOR_MACHINE.resolve(row["status"], Decision.REJECT, actor.role, {"reason": reason})
    return transition_row(store, PENDING_SUPERVISORS, row["id"], row["status"], {
        "status": transition.target,
        "rejection_reason": reason.strip(),
        "resolved_at": utcnow_iso(),
        "resolved_by": None if actor.role == Role.SYSTEM else actor.user_id,
    })


def create_pending_supervisor(store: EntityStore, spec: SupervisorSpec, site_id: str, placement_id: str) -> PendingSupervisor:
    """Called inside the placement request transaction."""
    if not (spec.first_name and spec.last_name and spec.email):
        raise ValidationError("First name, last name and email are required for a new supervisor")
    if email_in_use(store, spec.email):
        raise ConflictError(f"A user or pending supervisor with email '{spec.email}' already exists")

    # one PENDING row per email
    for stale in _pending_rows(store, {"email": spec.email.lower()}):
        _reject_row(store, Actor.system(), stale, CLOSED_PLACEMENT_REASON)

    row = store.create(PENDING_SUPERVISORS, {
        "site_id": site_id,
        "placement_id": placement_id,
        "first_name": spec.first_name.strip(),
        "last_name": spec.last_name.strip(),
        "email": spec.email.lower(),
        "phone": spec.phone,
        "title": spec.title,
        "license_number": spec.license_number,
        "highest_degree": spec.highest_degree,
        "status": PendingSupervisorStatus.PENDING,
    })
    return PendingSupervisor.model_validate(row)


def load_pending(store: EntityStore, pending_id: str) -> PendingSupervisor:
    try:
        return PendingSupervisor.model_validate(store.get(PENDING_SUPERVISORS, pending_id))
    except NotFoundError:
        raise NotFoundError("Pending supervisor not found")


def pending_for_placement(store: EntityStore, placement_id: str) -> Optional[PendingSupervisor]:
    row = store.find(PENDING_SUPERVISORS, {"placement_id": placement_id, "status": PendingSupervisorStatus.PENDING})
    return PendingSupervisor.model_validate(row) if row else None


def retire_for_placement(store: EntityStore, actor: Actor, placement: Placement, reason: str) -> Optional[PendingSupervisor]:
    """Reject the placement's open supervisor request. Call inside the closing transaction."""
    pending = pending_for_placement(store, placement.id)
    if pending is None:
        return None
    row = _reject_row(store, actor, pending.model_dump(mode="json"), reason)
    audit.record(store, actor, "PENDING_SUPERVISOR_REJECTED", "pending_supervisor", pending.id,
                 placement_id=placement.id, reason=reason)
    return PendingSupervisor.model_validate(row)


def list_pending(store: EntityStore, actor: Actor) -> list[PendingSupervisor]:
    rows = [r for r in _pending_rows(store, {}) if _placement_open(store, r)]
    if not actor.is_admin:
        mine = {p["id"] for p in store.list(PLACEMENTS, {"faculty_id": actor.user_id})}
        rows = [r for r in rows if r["placement_id"] in mine]
    return [PendingSupervisor.model_validate(r) for r in rows]


def resolve_pending_supervisor(
    store: EntityStore,
    actor: Actor,
    pending_id: str,
    decision: Decision,
    reason: Optional[str] = None,
    provision_login=None,
) -> SupervisorResolution:
    """
    Approve or reject a pending supervisor.

    On approval ``provision_login(email, password, name)`` is entered inside
    the transaction and yields the login uid stored on the user row; it must
    undo the login if the block raises. Defaults to the configured auth mode.
    """
    decision = Decision(decision)
    provision_login = provision_login or login_provisioner()
    with store.transaction():
        pending = load_pending(store, pending_id)
        placement = load_placement(store, pending.placement_id)
        ensure_placement_faculty(actor, placement)
        transition = PENDING_SUPERVISOR_MACHINE.resolve(
            pending.status, decision, actor.role, {"reason": reason},
        )
        student_id = placement.student_id
        name = f"{pending.first_name} {pending.last_name}"

        if decision == Decision.REJECT:
            row = _reject_row(store, actor, pending.model_dump(mode="json"), reason)
            if placement.status in OPEN_PLACEMENT_STATUSES:
                store.update(PLACEMENTS, placement.id, {"supervisor_id": None})
            audit.record(store, actor, "PENDING_SUPERVISOR_REJECTED", "pending_supervisor", pending.id,
                         placement_id=placement.id, reason=reason)
            notifications.notify(
                store, student_id, NotificationType.SUPERVISOR_REJECTED, "Supervisor Rejected",
                f"Your requested supervisor {name} was not approved. Reason: {reason.strip()}",
                "placement", placement.id, NotificationPriority.HIGH, supervisor_name=name, reason=reason,
            )
            return SupervisorResolution(pending_supervisor=PendingSupervisor.model_validate(row))

        if placement.status not in OPEN_PLACEMENT_STATUSES:
            raise PreconditionFailedError(CLOSED_PLACEMENT_REASON)
        if store.find(USERS, {"email": pending.email}):
            raise ConflictError(f"A user with email '{pending.email}' already exists")

        password = _temporary_password()
        with provision_login(pending.email, password, name) as uid:
            user = store.create(USERS, {
                "email": pending.email,
                "name": name,
                "role": Role.SUPERVISOR,
                "is_active": True,
                "password_hash": get_password_hash(password),
                "requires_password_reset": True,
                "firebase_uid": uid,
            })
            profile = store.create(SUPERVISOR_PROFILES, {
                "user_id": user["id"],
                "site_id": pending.site_id,
                "title": pending.title,
                "license_number": pending.license_number,
                "highest_degree": pending.highest_degree,
            })
            row = transition_row(store, PENDING_SUPERVISORS, pending.id, pending.status, {
                "status": transition.target,
                "resolved_at": utcnow_iso(),
                "resolved_by": actor.user_id,
                "supervisor_id": user["id"],
            })
            store.update(PLACEMENTS, placement.id, {"supervisor_id": user["id"]})
            audit.record(store, actor, "PENDING_SUPERVISOR_APPROVED", "pending_supervisor", pending.id,
                         placement_id=placement.id, supervisor_id=user["id"])
            notifications.notify(
                store, student_id, NotificationType.SUPERVISOR_APPROVED, "Supervisor Approved",
                f"Your requested supervisor {name} has been approved and can now sign in.",
                "placement", placement.id, supervisor_name=name,
            )

    logger.info("Supervisor account created for %s (site %s)", pending.email, pending.site_id)
    supervisor = Supervisor(
        id=user["id"],
        email=user["email"],
        name=name,
        site_id=profile["site_id"],
        title=profile.get("title"),
        license_number=profile.get("license_number"),
        highest_degree=profile.get("highest_degree"),
    )
    return SupervisorResolution(
        pending_supervisor=PendingSupervisor.model_validate(row),
        supervisor=supervisor,
        temporary_password=password,
    )
