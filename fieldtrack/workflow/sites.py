"""
Site approval through agency learning contracts.

A proposed site starts PENDING_APPROVAL. Faculty send the agency a learning
contract: a new contract row with an opaque token that is the agency's only
credential. The agency submits the contract through that token, the site
returns to PENDING_APPROVAL, and final approval activates it for placements.
An ACTIVE site whose agreement has lapsed becomes INACTIVE.
"""

import logging
import secrets
from datetime import date, datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

from fieldtrack.core.config import settings
from fieldtrack.core.errors import (
    NotFoundError,
    PermissionDeniedError,
    PreconditionFailedError,
    ValidationError,
)
from fieldtrack.schemas.entities import AgreementCheck, LearningContract, Site
from fieldtrack.store.base import LEARNING_CONTRACTS, SITES, USERS, EntityStore
from fieldtrack.utils import timeutil
from fieldtrack.workflow import audit, notifications
from fieldtrack.workflow.lookups import current_contract, load_site, transition_row
from fieldtrack.workflow.machine import Actor, StateMachine, Transition
from fieldtrack.workflow.states import (
    ContractAction,
    ContractStatus,
    NotificationPriority,
    NotificationType,
    Role,
    SiteAction,
    SiteStatus,
)

logger = logging.getLogger(__name__)

FACULTY_ROLES = frozenset({Role.FACULTY, Role.ADMIN})
AGENCY = frozenset({Role.SYSTEM})  # token-authenticated submissions run as system

# Fields the agency may fill in on submission.
AGENCY_FIELDS = (
    "agency_name",
    "agency_email",
    "agency_address",
    "agency_telephone",
    "agency_director",
    "field_instructor_name",
    "field_instructor_degree",
    "field_instructor_license",
    "resources_available",
    "services_provided",
    "learning_plan",
    "supervision_arrangement",
    "completed_by_name",
    "completed_by_title",
)


def _reason_given(ctx: dict):
    if not (ctx.get("reason") or "").strip():
        raise ValidationError("A rejection reason is required")


def _contract_ready(ctx: dict):
    site: Site = ctx["site"]
    if not site.requires_learning_contract:
        return
    contract: Optional[LearningContract] = ctx.get("contract")
    if contract is None:
        raise PreconditionFailedError("Learning contract not found")
    if contract.status not in (ContractStatus.SUBMITTED, ContractStatus.APPROVED):
        raise PreconditionFailedError("Learning contract must be submitted before final approval")


def _agreement_lapsed(ctx: dict):
    site: Site = ctx["site"]
    if site.agreement_expiration_date is None or site.agreement_expiration_date > ctx["today"]:
        raise PreconditionFailedError(f"Agreement for site '{site.name}' has not expired")


SITE_MACHINE = StateMachine("site", SiteStatus, {
    (SiteStatus.PENDING_APPROVAL, SiteAction.SEND_CONTRACT): Transition(
        SiteStatus.PENDING_LEARNING_CONTRACT, FACULTY_ROLES,
    ),
    (SiteStatus.PENDING_LEARNING_CONTRACT, SiteAction.SEND_CONTRACT): Transition(
        SiteStatus.PENDING_LEARNING_CONTRACT, FACULTY_ROLES,
    ),
    (SiteStatus.PENDING_LEARNING_CONTRACT, SiteAction.CONTRACT_SUBMITTED): Transition(
        SiteStatus.PENDING_APPROVAL, AGENCY,
    ),
    (SiteStatus.PENDING_APPROVAL, SiteAction.FINAL_APPROVE): Transition(
        SiteStatus.ACTIVE, FACULTY_ROLES, guard=_contract_ready,
    ),
    (SiteStatus.PENDING_APPROVAL, SiteAction.REJECT): Transition(
        SiteStatus.REJECTED, FACULTY_ROLES, guard=_reason_given,
    ),
    (SiteStatus.PENDING_LEARNING_CONTRACT, SiteAction.REJECT): Transition(
        SiteStatus.REJECTED, FACULTY_ROLES, guard=_reason_given,
    ),
    (SiteStatus.ACTIVE, SiteAction.EXPIRE): Transition(
        SiteStatus.INACTIVE, FACULTY_ROLES | {Role.SYSTEM}, guard=_agreement_lapsed,
    ),
})

CONTRACT_MACHINE = StateMachine("learning contract", ContractStatus, {
    (ContractStatus.PENDING, ContractAction.SEND): Transition(ContractStatus.SENT, FACULTY_ROLES),
    (ContractStatus.SENT, ContractAction.SUBMIT): Transition(ContractStatus.SUBMITTED, AGENCY),
    (ContractStatus.SUBMITTED, ContractAction.APPROVE): Transition(ContractStatus.APPROVED, FACULTY_ROLES),
    (ContractStatus.SUBMITTED, ContractAction.REJECT): Transition(ContractStatus.REJECTED, FACULTY_ROLES),
    (ContractStatus.SENT, ContractAction.REJECT): Transition(ContractStatus.REJECTED, FACULTY_ROLES),
})


def _ensure_reviewer(actor: Actor):
    if actor.role not in FACULTY_ROLES:
        raise PermissionDeniedError("Only faculty or admins can review sites")


def submit_site(store: EntityStore, actor: Actor, fields: dict) -> Site:
    """Propose an unlisted agency. It cannot host placements until approved."""
    if actor.role not in (Role.STUDENT, Role.FACULTY, Role.ADMIN):
        raise PermissionDeniedError("Only students, faculty or admins can propose sites")
    if not (fields.get("name") or "").strip():
        raise ValidationError("Site name is required")
    with store.transaction():
        row = store.create(SITES, {
            **fields,
            "status": SiteStatus.PENDING_APPROVAL,
            "active": False,
            "requires_learning_contract": fields.get("requires_learning_contract", True),
            "proposed_by": actor.user_id,
        })
        audit.record(store, actor, "SITE_SUBMITTED", "site", row["id"], name=row["name"])
    return Site.model_validate(row)


def send_learning_contract(
    store: EntityStore,
    actor: Actor,
    site_id: str,
    recipient_email: str,
    recipient_name: Optional[str] = None,
) -> LearningContract:
    """
    Issue a fresh contract and token. A previous unapproved contract is
    retired rather than re-tokened, so an issued token never changes.
    """
    _ensure_reviewer(actor)
    with store.transaction():
        site = load_site(store, site_id)
        site_transition = SITE_MACHINE.resolve(site.status, SiteAction.SEND_CONTRACT, actor.role)

        previous = current_contract(store, site.id)
        if previous is not None:
            if previous.status == ContractStatus.APPROVED:
                raise PreconditionFailedError("Site already has an approved learning contract")
            store.update(LEARNING_CONTRACTS, previous.id, {"is_current": False})

        contract = store.create(LEARNING_CONTRACTS, {
            "site_id": site.id,
            "token": secrets.token_hex(32),
            "token_expiry": (timeutil.utcnow() + timedelta(days=settings.LEARNING_CONTRACT_TTL_DAYS)).isoformat(),
            "is_current": True,
            "status": ContractStatus.PENDING,
            "sent_to_email": recipient_email,
            "sent_to_name": recipient_name,
            # pre-filled from the site record
            "agency_name": site.name,
            "agency_email": site.contact_email,
            "agency_address": site.address,
            "agency_telephone": site.contact_phone,
            "agency_director": site.contact_name,
        })
        send = CONTRACT_MACHINE.resolve(contract["status"], ContractAction.SEND, actor.role)
        contract = transition_row(store, LEARNING_CONTRACTS, contract["id"], contract["status"], {
            "status": send.target,
        })
        transition_row(store, SITES, site.id, site.status, {"status": site_transition.target})
        audit.record(store, actor, "LEARNING_CONTRACT_SENT", "site", site.id,
                     contract_id=contract["id"], recipient=recipient_email)

    return LearningContract.model_validate(contract)


def contract_by_token(store: EntityStore, token: str) -> LearningContract:
    row = store.find(LEARNING_CONTRACTS, {"token": token})
    if row is None:
        raise NotFoundError("Learning contract not found")
    return LearningContract.model_validate(row)


def submit_learning_contract(store: EntityStore, token: str, fields: dict) -> LearningContract:
    """Agency-side submission. The token is the only authentication."""
    agency = Actor(user_id=f"agency:{token[:8]}", role=Role.SYSTEM)
    with store.transaction():
        contract = contract_by_token(store, token)
        if not contract.is_current:
            raise PreconditionFailedError("This learning contract link has been replaced")
        transition = CONTRACT_MACHINE.resolve(contract.status, ContractAction.SUBMIT, agency.role)
        if contract_is_expired(contract):
            raise PreconditionFailedError("Learning contract link has expired")

        values = {k: v for k, v in fields.items() if k in AGENCY_FIELDS and v is not None}
        row = transition_row(store, LEARNING_CONTRACTS, contract.id, contract.status, {
            **values,
            "status": transition.target,
            "submitted_at": timeutil.utcnow_iso(),
        })
        site = load_site(store, contract.site_id)
        site_transition = SITE_MACHINE.resolve(site.status, SiteAction.CONTRACT_SUBMITTED, agency.role)
        transition_row(store, SITES, site.id, site.status, {"status": site_transition.target})
        audit.record(store, agency, "LEARNING_CONTRACT_SUBMITTED", "site", site.id, contract_id=contract.id)

    return LearningContract.model_validate(row)


def final_approve_site(store: EntityStore, actor: Actor, site_id: str) -> Site:
    """
    Activate a site. Its current learning contract must be SUBMITTED (it is
    approved here) or already APPROVED, unless the site needs no contract.
    """
    _ensure_reviewer(actor)
    with store.transaction():
        site = load_site(store, site_id)
        contract = current_contract(store, site.id)
        transition = SITE_MACHINE.resolve(
            site.status, SiteAction.FINAL_APPROVE, actor.role, {"site": site, "contract": contract},
        )
        now = timeutil.utcnow()
        if contract is not None and contract.status == ContractStatus.SUBMITTED:
            approve = CONTRACT_MACHINE.resolve(contract.status, ContractAction.APPROVE, actor.role)
            transition_row(store, LEARNING_CONTRACTS, contract.id, contract.status, {
                "status": approve.target,
                "approved_at": now.isoformat(),
                "approved_by": actor.user_id,
            })

        start = now.date().replace(day=1)
        row = transition_row(store, SITES, site.id, site.status, {
            "status": transition.target,
            "active": True,
            "agreement_start_date": start.isoformat(),
            "agreement_expiration_date": (start + relativedelta(years=settings.SITE_AGREEMENT_YEARS)).isoformat(),
        })
        audit.record(store, actor, "SITE_APPROVED", "site", site.id,
                     contract_id=contract.id if contract else None)
        if site.proposed_by != actor.user_id:
            notifications.notify(
                store, site.proposed_by, NotificationType.SITE_APPROVED, "Site Approved",
                f"Your submitted site \"{site.name}\" is approved and open for placement requests.",
                "site", site.id, site_name=site.name,
            )

    return Site.model_validate(row)


def reject_site(store: EntityStore, actor: Actor, site_id: str, reason: str) -> Site:
    _ensure_reviewer(actor)
    with store.transaction():
        site = load_site(store, site_id)
        transition = SITE_MACHINE.resolve(site.status, SiteAction.REJECT, actor.role, {"reason": reason})
        contract = current_contract(store, site.id)
        if contract is not None and contract.status in (ContractStatus.SENT, ContractStatus.SUBMITTED):
            reject = CONTRACT_MACHINE.resolve(contract.status, ContractAction.REJECT, actor.role)
            transition_row(store, LEARNING_CONTRACTS, contract.id, contract.status, {"status": reject.target})
        row = transition_row(store, SITES, site.id, site.status, {
            "status": transition.target,
            "active": False,
            "rejection_reason": reason.strip(),
        })
        audit.record(store, actor, "SITE_REJECTED", "site", site.id, reason=reason)
        if site.proposed_by != actor.user_id:
            notifications.notify(
                store, site.proposed_by, NotificationType.SITE_REJECTED, "Site Rejected",
                f"Your submitted site \"{site.name}\" was not approved. Reason: {reason.strip()}",
                "site", site.id, site_name=site.name, reason=reason,
            )
    return Site.model_validate(row)


def check_agreements(store: EntityStore, actor: Actor, today: Optional[date] = None) -> AgreementCheck:
    """
    Warn admins about ACTIVE sites whose agreement ends within
    ``AGREEMENT_WARNING_DAYS`` and move sites whose agreement has lapsed to
    INACTIVE. Each admin is warned once per site and kind.
    """
    if actor.role not in (Role.ADMIN, Role.SYSTEM):
        raise PermissionDeniedError("Only admins or the scheduler can run the agreement check")
    today = today or timeutil.today()
    horizon = today + timedelta(days=settings.AGREEMENT_WARNING_DAYS)
    result = AgreementCheck()
    with store.transaction():
        for row in store.list(SITES, {"status": SiteStatus.ACTIVE}):
            site = Site.model_validate(row)
            expires = site.agreement_expiration_date
            if expires is None or expires > horizon:
                continue
            if expires <= today:
                transition = SITE_MACHINE.resolve(
                    site.status, SiteAction.EXPIRE, actor.role, {"site": site, "today": today},
                )
                transition_row(store, SITES, site.id, site.status, {"status": transition.target, "active": False})
                audit.record(store, actor, "SITE_AGREEMENT_EXPIRED", "site", site.id, expired_on=expires)
                _warn_admins(store, site, NotificationType.AGREEMENT_EXPIRED, "Agreement Expired",
                             f"The agreement for {site.name} expired on {expires.isoformat()}. "
                             "The site no longer accepts placements until it is renewed.",
                             NotificationPriority.URGENT)
                result.expired.append(site.id)
            else:
                days = (expires - today).days
                _warn_admins(store, site, NotificationType.AGREEMENT_EXPIRING, "Agreement Expiring Soon",
                             f"The agreement for {site.name} expires in {days} days.",
                             NotificationPriority.URGENT if days <= 7 else NotificationPriority.HIGH)
                result.expiring.append(site.id)
    if result.expired:
        logger.info("Deactivated %d sites with lapsed agreements", len(result.expired))
    return result


def _warn_admins(store: EntityStore, site: Site, type: NotificationType, title: str, message: str, priority):
    for admin in store.list(USERS, {"role": Role.ADMIN, "is_active": True}):
        if not notifications.already_notified(store, admin["id"], type, site.id):
            notifications.notify(store, admin["id"], type, title, message, "site", site.id, priority,
                                 site_name=site.name)


def contract_is_expired(contract: LearningContract, now: Optional[datetime] = None) -> bool:
    return contract.token_expiry < (now or timeutil.utcnow())
