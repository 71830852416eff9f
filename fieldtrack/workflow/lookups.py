"""
Shared loaders, identity checks and the compare-and-swap status write used by
every workflow module.
"""

from typing import Optional

from fieldtrack.core.errors import (
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionFailedError,
    StaleStatusError,
)
from fieldtrack.schemas.entities import LearningContract, Placement, Site, TimesheetEntry
from fieldtrack.store.base import (
    CLASSES,
    LEARNING_CONTRACTS,
    PLACEMENTS,
    SITES,
    SUPERVISOR_PROFILES,
    TIMESHEET_ENTRIES,
    USERS,
    EntityStore,
    Row,
)
from fieldtrack.workflow.machine import Actor
from fieldtrack.workflow.states import ContractStatus, Role, SiteStatus


def _get(store: EntityStore, table: str, row_id: str, label: str) -> Row:
    try:
        return store.get(table, row_id)
    except NotFoundError:
        raise NotFoundError(f"{label} not found")


def load_placement(store: EntityStore, placement_id: str) -> Placement:
    return Placement.model_validate(_get(store, PLACEMENTS, placement_id, "Placement"))


def load_entry(store: EntityStore, entry_id: str) -> TimesheetEntry:
    return TimesheetEntry.model_validate(_get(store, TIMESHEET_ENTRIES, entry_id, "Timesheet entry"))


def load_site(store: EntityStore, site_id: str) -> Site:
    return Site.model_validate(_get(store, SITES, site_id, "Site"))


def load_class(store: EntityStore, class_id: str) -> Row:
    return _get(store, CLASSES, class_id, "Class")


def load_user(store: EntityStore, user_id: str, role: Role, label: str) -> Row:
    user = _get(store, USERS, user_id, label)
    if user.get("role") != role.value:
        raise NotFoundError(f"{label} not found")
    return user


def transition_row(store: EntityStore, table: str, row_id: str, expected_status, fields: Row) -> Row:
    """Write a new status only if the row is still in ``expected_status``."""
    try:
        return store.update_where(table, row_id, expected_status, fields)
    except StaleStatusError:
        raise InvalidStateError("This item has already been processed")


# ---- identity checks ----

def ensure_owner(actor: Actor, placement: Placement):
    if actor.role != Role.STUDENT or actor.user_id != placement.student_id:
        raise PermissionDeniedError("Only the placement's student may do this")


def ensure_placement_faculty(actor: Actor, placement: Placement):
    if actor.is_admin:
        return
    if actor.role != Role.FACULTY or actor.user_id != placement.faculty_id:
        raise PermissionDeniedError("Only the placement's faculty may do this")


def ensure_participant(actor: Actor, placement: Placement):
    """Student owner, linked faculty, linked supervisor, admin or system."""
    if actor.role in (Role.ADMIN, Role.SYSTEM):
        return
    linked = {
        Role.STUDENT: placement.student_id,
        Role.FACULTY: placement.faculty_id,
        Role.SUPERVISOR: placement.supervisor_id,
    }.get(actor.role)
    if linked is None or linked != actor.user_id:
        raise PermissionDeniedError("You do not have access to this placement")


# ---- supervisors ----

def supervisor_profile(store: EntityStore, user_id: str) -> Optional[Row]:
    return store.find(SUPERVISOR_PROFILES, {"user_id": user_id})


def is_approved_supervisor(store: EntityStore, user_id: Optional[str], site_id: Optional[str] = None) -> bool:
    """True when ``user_id`` is an active supervisor user (optionally of ``site_id``)."""
    if not user_id:
        return False
    try:
        user = store.get(USERS, user_id)
    except NotFoundError:
        return False
    if user.get("role") != Role.SUPERVISOR.value or not user.get("is_active", True):
        return False
    if site_id is not None:
        profile = supervisor_profile(store, user_id)
        return profile is not None and profile.get("site_id") == site_id
    return True


# ---- sites ----

def current_contract(store: EntityStore, site_id: str) -> Optional[LearningContract]:
    row = store.find(LEARNING_CONTRACTS, {"site_id": site_id, "is_current": True})
    return LearningContract.model_validate(row) if row else None


def ensure_site_can_host(store: EntityStore, site: Site):
    if site.status != SiteStatus.ACTIVE or not site.active:
        raise PreconditionFailedError(f"Site '{site.name}' is not approved for placements")
    if site.requires_learning_contract:
        contract = current_contract(store, site.id)
        if contract is None or contract.status != ContractStatus.APPROVED:
            raise PreconditionFailedError(
                f"Site '{site.name}' has no approved learning contract"
            )
