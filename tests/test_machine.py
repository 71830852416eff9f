import pytest

from fieldtrack.core.errors import InvalidStateError, PermissionDeniedError, ValidationError
from fieldtrack.workflow.placements import PLACEMENT_MACHINE
from fieldtrack.workflow.sites import CONTRACT_MACHINE, SITE_MACHINE
from fieldtrack.workflow.states import (
    ContractAction,
    ContractStatus,
    Decision,
    EntryAction,
    EntryStatus,
    PendingSupervisorStatus,
    PlacementAction,
    PlacementStatus,
    Role,
    SiteAction,
    SiteStatus,
)
from fieldtrack.workflow.supervisors import PENDING_SUPERVISOR_MACHINE
from fieldtrack.workflow.timesheets import ENTRY_MACHINE

MACHINES = [
    (PLACEMENT_MACHINE, PlacementStatus, PlacementAction),
    (ENTRY_MACHINE, EntryStatus, EntryAction),
    (SITE_MACHINE, SiteStatus, SiteAction),
    (CONTRACT_MACHINE, ContractStatus, ContractAction),
]
MACHINE_IDS = ["placement", "entry", "site", "contract"]


@pytest.mark.parametrize("machine,states,actions", MACHINES, ids=MACHINE_IDS)
def test_pairs_outside_the_table_are_invalid(machine, states, actions):
    for state in states:
        for action in actions:
            if (state, action) in machine.table:
                continue
            for role in Role:
                with pytest.raises(InvalidStateError):
                    machine.resolve(state, action, role, {"reason": "x"})


@pytest.mark.parametrize("machine,states,actions", MACHINES, ids=MACHINE_IDS)
def test_roles_outside_a_transition_are_denied(machine, states, actions):
    for (state, action), transition in machine.table.items():
        for role in set(Role) - set(transition.roles):
            with pytest.raises(PermissionDeniedError):
                machine.resolve(state, action, role, {"reason": "x"})


@pytest.mark.parametrize("status", [PlacementStatus.ARCHIVED, PlacementStatus.REJECTED, PlacementStatus.COMPLETE])
def test_closed_placements_have_no_actions(status):
    assert PLACEMENT_MACHINE.actions_from(status) == []


def test_no_path_into_pending_or_out_of_archived():
    targets = {t.target for t in PLACEMENT_MACHINE.table.values()}
    assert PlacementStatus.PENDING not in targets
    assert PlacementStatus.COMPLETE not in targets
    assert PLACEMENT_MACHINE.actions_from(PlacementStatus.ARCHIVED) == []


def test_entry_only_approved_is_terminal():
    closed = [s for s in EntryStatus if not ENTRY_MACHINE.actions_from(s)]
    assert closed == [EntryStatus.APPROVED]


def test_supervisor_stage_precedes_faculty_stage():
    assert ENTRY_MACHINE.resolve(EntryStatus.PENDING_SUPERVISOR, EntryAction.APPROVE, Role.SUPERVISOR).target \
        == EntryStatus.PENDING_FACULTY
    assert ENTRY_MACHINE.resolve(EntryStatus.PENDING_FACULTY, EntryAction.APPROVE, Role.FACULTY).target \
        == EntryStatus.APPROVED
    with pytest.raises(PermissionDeniedError):
        ENTRY_MACHINE.resolve(EntryStatus.PENDING_SUPERVISOR, EntryAction.APPROVE, Role.FACULTY)


def test_reject_guard_requires_reason():
    with pytest.raises(ValidationError):
        PLACEMENT_MACHINE.resolve(PlacementStatus.PENDING, PlacementAction.REJECT, Role.FACULTY, {"reason": "  "})
    with pytest.raises(ValidationError):
        PENDING_SUPERVISOR_MACHINE.resolve(PendingSupervisorStatus.PENDING, Decision.REJECT, Role.FACULTY, {})


def test_unknown_stored_status_is_invalid():
    with pytest.raises(InvalidStateError):
        PLACEMENT_MACHINE.resolve("ON_HOLD", PlacementAction.APPROVE, Role.FACULTY)


def test_actions_from_filters_by_role():
    assert ENTRY_MACHINE.actions_from(EntryStatus.DRAFT, Role.STUDENT) == [EntryAction.SUBMIT]
    assert ENTRY_MACHINE.actions_from(EntryStatus.DRAFT, Role.SUPERVISOR) == []


def test_lapsed_agreement_deactivates_site():
    assert SITE_MACHINE.actions_from(SiteStatus.ACTIVE, Role.SYSTEM) == [SiteAction.EXPIRE]
    assert SITE_MACHINE.actions_from(SiteStatus.INACTIVE) == []
