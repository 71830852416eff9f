"""
Placements router: request, review, onboarding artifacts, activation, archival.
"""

from typing import Optional

from fastapi import APIRouter, Depends

from fieldtrack.core.database import get_store
from fieldtrack.core.security import actor_of, require_role
from fieldtrack.schemas.placement import (
    ArtifactUpload,
    PlacementApprove,
    PlacementReject,
    PlacementRequest,
    SupervisorAssign,
)
from fieldtrack.utils.response import success_response
from fieldtrack.workflow import hours, placements
from fieldtrack.workflow.states import PlacementStatus

router = APIRouter(prefix="/api/placements", tags=["Placements"])

EVERYONE = ["student", "supervisor", "faculty", "admin"]
REVIEWERS = ["faculty", "admin"]


@router.post("")
async def request_placement(
    body: PlacementRequest,
    user: dict = Depends(require_role(["student", "faculty", "admin"])),
):
    placement = placements.request_placement(
        get_store(),
        actor_of(user),
        site_id=body.site_id,
        class_id=body.class_id,
        supervisor=body.supervisor,
        start_date=body.start_date,
        end_date=body.end_date,
        required_hours=body.required_hours,
        student_id=body.student_id,
    )
    return success_response(data=placement, message="Placement request submitted")


@router.get("")
async def list_placements(
    status: Optional[PlacementStatus] = None,
    user: dict = Depends(require_role(EVERYONE)),
):
    result = placements.list_placements(get_store(), actor_of(user), status)
    data = [
        {**p.model_dump(mode="json"), "reporting_status": placements.reporting_status(p).value}
        for p in result
    ]
    return success_response(data=data)


@router.get("/{placement_id}")
async def get_placement(
    placement_id: str,
    user: dict = Depends(require_role(EVERYONE)),
):
    store = get_store()
    actor = actor_of(user)
    placement = placements.get_placement(store, actor, placement_id)
    return success_response(data={
        "placement": placement.model_dump(mode="json"),
        "reporting_status": placements.reporting_status(placement).value,
        "actions": [a.value for a in placements.available_actions(placement, actor)],
        "readiness": placements.readiness_of(placement).model_dump(),
        "hours": hours.compute_hours_summary(store, placement.id).model_dump(mode="json"),
    })


@router.get("/{placement_id}/readiness")
async def get_readiness(
    placement_id: str,
    user: dict = Depends(require_role(EVERYONE)),
):
    store = get_store()
    placements.get_placement(store, actor_of(user), placement_id)
    return success_response(data=placements.final_approval_readiness(store, placement_id))


@router.get("/{placement_id}/hours")
async def get_hours(
    placement_id: str,
    user: dict = Depends(require_role(EVERYONE)),
):
    store = get_store()
    placements.get_placement(store, actor_of(user), placement_id)
    weekly = hours.weekly_totals(store, placement_id)
    return success_response(data={
        "summary": hours.compute_hours_summary(store, placement_id).model_dump(mode="json"),
        "weekly": [{"week_start": str(k), "hours": str(v)} for k, v in sorted(weekly.items())],
    })


@router.patch("/{placement_id}/approve")
async def approve_placement(
    placement_id: str,
    body: PlacementApprove,
    user: dict = Depends(require_role(REVIEWERS)),
):
    placement = placements.approve_placement(get_store(), actor_of(user), placement_id, body.notes)
    return success_response(data=placement, message="Placement approved")


@router.patch("/{placement_id}/reject")
async def reject_placement(
    placement_id: str,
    body: PlacementReject,
    user: dict = Depends(require_role(REVIEWERS)),
):
    placement = placements.reject_placement(get_store(), actor_of(user), placement_id, body.reason)
    return success_response(data=placement, message="Placement rejected")


@router.post("/{placement_id}/artifacts")
async def upload_artifact(
    placement_id: str,
    body: ArtifactUpload,
    user: dict = Depends(require_role(["student", "faculty", "admin"])),
):
    placement = placements.record_artifact(
        get_store(), actor_of(user), placement_id, body.kind, body.document_ref,
    )
    return success_response(data=placement, message=f"{body.kind.value} recorded")


@router.patch("/{placement_id}/activate")
async def activate_placement(
    placement_id: str,
    user: dict = Depends(require_role(REVIEWERS + ["system"])),
):
    placement = placements.activate_placement(get_store(), actor_of(user), placement_id)
    return success_response(data=placement, message="Placement activated")


@router.patch("/{placement_id}/archive")
async def archive_placement(
    placement_id: str,
    user: dict = Depends(require_role(["student", "faculty", "admin"])),
):
    result = placements.archive_placement(get_store(), actor_of(user), placement_id)
    return success_response(data=result, message="Placement archived")


@router.patch("/{placement_id}/supervisor")
async def assign_supervisor(
    placement_id: str,
    body: SupervisorAssign,
    user: dict = Depends(require_role(REVIEWERS)),
):
    placement = placements.assign_supervisor(get_store(), actor_of(user), placement_id, body.supervisor_id)
    return success_response(data=placement, message="Supervisor assigned")
