"""
Sites router: site proposals, learning contracts and final approval.

The agency endpoints take no bearer token; the contract token in the URL is
the only credential.
"""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends

from fieldtrack.core.database import get_store
from fieldtrack.core.email import send_learning_contract_link
from fieldtrack.core.security import actor_of, require_role
from fieldtrack.schemas.entities import Site
from fieldtrack.schemas.site import ContractSend, ContractSubmit, SiteCreate, SiteReject
from fieldtrack.store.base import SITES
from fieldtrack.utils.response import success_response
from fieldtrack.workflow import sites
from fieldtrack.workflow.lookups import current_contract, load_site
from fieldtrack.workflow.states import SiteStatus

router = APIRouter(prefix="/api/sites", tags=["Sites"])
agency_router = APIRouter(prefix="/api/agency-learning-contract", tags=["Agency"])

REVIEWERS = ["faculty", "admin"]


@router.get("")
async def list_sites(
    status: Optional[SiteStatus] = None,
    user: dict = Depends(require_role(["student", "supervisor", "faculty", "admin"])),
):
    filters = {"status": status} if status else {"status": SiteStatus.ACTIVE, "active": True}
    if user["role"] in REVIEWERS and status is None:
        filters = {}
    rows = sorted(get_store().list(SITES, filters), key=lambda r: r["name"])
    return success_response(data=[Site.model_validate(r) for r in rows])


@router.post("")
async def submit_site(
    body: SiteCreate,
    user: dict = Depends(require_role(["student", "faculty", "admin"])),
):
    site = sites.submit_site(get_store(), actor_of(user), body.model_dump())
    return success_response(data=site, message="Site submitted for approval")


@router.get("/{site_id}")
async def get_site(
    site_id: str,
    user: dict = Depends(require_role(["student", "supervisor", "faculty", "admin"])),
):
    store = get_store()
    site = load_site(store, site_id)
    data = {"site": site.model_dump(mode="json")}
    if user["role"] in REVIEWERS:
        contract = current_contract(store, site_id)
        data["learning_contract"] = contract.model_dump(mode="json", exclude={"token"}) if contract else None
    return success_response(data=data)


@router.post("/{site_id}/learning-contract")
async def send_learning_contract(
    site_id: str,
    body: ContractSend,
    background_tasks: BackgroundTasks,
    user: dict = Depends(require_role(REVIEWERS)),
):
    store = get_store()
    contract = sites.send_learning_contract(
        store, actor_of(user), site_id, body.recipient_email, body.recipient_name,
    )
    background_tasks.add_task(
        send_learning_contract_link,
        contract.sent_to_email, contract.sent_to_name, contract.agency_name, contract.token,
    )
    return success_response(
        data=contract.model_dump(mode="json", exclude={"token"}),
        message="Learning contract sent",
    )


@router.patch("/{site_id}/final-approve")
async def final_approve_site(
    site_id: str,
    user: dict = Depends(require_role(REVIEWERS)),
):
    site = sites.final_approve_site(get_store(), actor_of(user), site_id)
    return success_response(data=site, message="Site approved")


@router.patch("/{site_id}/reject")
async def reject_site(
    site_id: str,
    body: SiteReject,
    user: dict = Depends(require_role(REVIEWERS)),
):
    site = sites.reject_site(get_store(), actor_of(user), site_id, body.reason)
    return success_response(data=site, message="Site rejected")


@router.post("/agreement-check")
async def check_agreements(
    user: dict = Depends(require_role(["admin", "system"])),
):
    """Run by the scheduler once a day."""
    result = sites.check_agreements(get_store(), actor_of(user))
    return success_response(
        data=result,
        message=f"{len(result.expiring)} expiring, {len(result.expired)} expired",
    )


# ---- agency side ----

@agency_router.get("/{token}")
async def get_learning_contract(token: str):
    contract = sites.contract_by_token(get_store(), token)
    return success_response(data={
        **contract.model_dump(mode="json", exclude={"token"}),
        "expired": sites.contract_is_expired(contract),
    })


@agency_router.post("/{token}/submit")
async def submit_learning_contract(token: str, body: ContractSubmit):
    contract = sites.submit_learning_contract(get_store(), token, body.model_dump(exclude_none=True))
    return success_response(
        data=contract.model_dump(mode="json", exclude={"token"}),
        message="Learning contract submitted. Thank you.",
    )
