"""
Pending supervisors router: faculty promote or reject supervisors named by students.
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends

from fieldtrack.core.database import get_store
from fieldtrack.core.email import send_supervisor_credentials
from fieldtrack.core.errors import ValidationError
from fieldtrack.core.security import actor_of, login_provisioner, require_role
from fieldtrack.schemas.supervisor import PendingSupervisorAction
from fieldtrack.utils.response import success_response
from fieldtrack.workflow import supervisors
from fieldtrack.workflow.states import Decision

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/pending-supervisors", tags=["Supervisors"])


@router.get("")
async def list_pending(
    user: dict = Depends(require_role(["faculty", "admin"])),
):
    return success_response(data=supervisors.list_pending(get_store(), actor_of(user)))


@router.patch("/{pending_id}/action")
async def resolve_pending(
    pending_id: str,
    body: PendingSupervisorAction,
    background_tasks: BackgroundTasks,
    user: dict = Depends(require_role(["faculty", "admin"])),
):
    try:
        decision = Decision(body.action)
    except ValueError:
        raise ValidationError("Action must be 'approve' or 'reject'")

    # Login creation is part of the approval transaction; on failure the request stays PENDING.
    result = supervisors.resolve_pending_supervisor(
        get_store(), actor_of(user), pending_id, decision, body.rejection_reason,
        provision_login=login_provisioner(),
    )

    if decision == Decision.REJECT:
        return success_response(data=result, message="Pending supervisor rejected")

    supervisor = result.supervisor
    background_tasks.add_task(
        send_supervisor_credentials, supervisor.email, supervisor.name, result.temporary_password,
    )
    logger.info("Queued credentials email for supervisor %s", supervisor.id)

    # The temporary password only travels by email.
    data = result.model_dump(mode="json", exclude={"temporary_password"})
    return success_response(data=data, message="Supervisor approved")
