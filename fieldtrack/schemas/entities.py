"""
Typed views over store rows, returned by every workflow operation.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict

from fieldtrack.workflow.states import (
    ContractStatus,
    EntryCategory,
    EntryStatus,
    NotificationPriority,
    NotificationType,
    PendingSupervisorStatus,
    PlacementStatus,
    SiteStatus,
)


class Entity(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    created_at: Optional[datetime] = None


class Placement(Entity):
    student_id: str
    site_id: str
    supervisor_id: Optional[str] = None
    faculty_id: Optional[str] = None
    class_id: str
    start_date: date
    end_date: date
    required_hours: Decimal
    status: PlacementStatus
    rejection_reason: Optional[str] = None
    faculty_notes: Optional[str] = None
    archived: bool = False
    cell_policy: Optional[str] = None
    learning_contract: Optional[str] = None
    checklist: Optional[str] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    activated_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    archived_at: Optional[datetime] = None
    archived_by: Optional[str] = None


class TimesheetEntry(Entity):
    placement_id: str
    date: date
    hours: Decimal
    category: EntryCategory
    notes: Optional[str] = None
    status: EntryStatus
    locked: bool = False
    submitted_at: Optional[datetime] = None
    supervisor_approved_at: Optional[datetime] = None
    supervisor_approved_by: Optional[str] = None
    faculty_approved_at: Optional[datetime] = None
    faculty_approved_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None


class PendingSupervisor(Entity):
    site_id: str
    placement_id: str
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    title: Optional[str] = None
    license_number: Optional[str] = None
    highest_degree: Optional[str] = None
    status: PendingSupervisorStatus
    rejection_reason: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    supervisor_id: Optional[str] = None


class Supervisor(BaseModel):
    """A promoted supervisor: the user row joined with its profile."""

    id: str
    email: str
    name: str
    site_id: str
    title: Optional[str] = None
    license_number: Optional[str] = None
    highest_degree: Optional[str] = None
    is_active: bool = True


class Site(Entity):
    name: str
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    status: SiteStatus
    active: bool = False
    requires_learning_contract: bool = True
    agreement_start_date: Optional[date] = None
    agreement_expiration_date: Optional[date] = None
    rejection_reason: Optional[str] = None
    proposed_by: Optional[str] = None


class LearningContract(Entity):
    site_id: str
    token: str
    token_expiry: datetime
    is_current: bool = True
    status: ContractStatus
    sent_to_email: str
    sent_to_name: Optional[str] = None
    agency_name: Optional[str] = None
    agency_email: Optional[str] = None
    agency_address: Optional[str] = None
    agency_telephone: Optional[str] = None
    agency_director: Optional[str] = None
    field_instructor_name: Optional[str] = None
    field_instructor_degree: Optional[str] = None
    field_instructor_license: Optional[str] = None
    resources_available: Optional[str] = None
    services_provided: Optional[str] = None
    learning_plan: Optional[str] = None
    supervision_arrangement: Optional[str] = None
    completed_by_name: Optional[str] = None
    completed_by_title: Optional[str] = None
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None


class HoursSummary(BaseModel):
    placement_id: str
    required: Decimal
    approved: Decimal
    pending: Decimal
    draft: Decimal
    remaining: Decimal


class ArchiveResult(BaseModel):
    placement: Placement
    student_has_other_active: bool


class Readiness(BaseModel):
    placement_id: str
    cell_policy: bool
    learning_contract: bool
    checklist: bool
    ready: bool


class SupervisorResolution(BaseModel):
    pending_supervisor: PendingSupervisor
    supervisor: Optional[Supervisor] = None
    temporary_password: Optional[str] = None


class Notification(Entity):
    user_id: str
    type: NotificationType
    title: str
    message: str
    entity_type: str
    entity_id: str
    priority: NotificationPriority = NotificationPriority.MEDIUM
    metadata: Optional[dict] = None
    read: bool = False
    read_at: Optional[datetime] = None


class AgreementCheck(BaseModel):
    expiring: list[str] = []
    expired: list[str] = []
