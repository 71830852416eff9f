"""
Pydantic schemas for placement requests and placement actions.
"""

from pydantic import BaseModel, EmailStr
from typing import Literal, Optional
from datetime import date
from decimal import Decimal

from fieldtrack.workflow.states import ArtifactKind


class SupervisorSpec(BaseModel):
    option: Literal["existing", "new"]
    supervisor_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    title: Optional[str] = None
    license_number: Optional[str] = None
    highest_degree: Optional[str] = None


class PlacementRequest(BaseModel):
    site_id: str
    class_id: str
    start_date: date
    end_date: date
    supervisor: SupervisorSpec
    required_hours: Optional[Decimal] = None
    student_id: Optional[str] = None  # faculty/admin applying on a student's behalf


class PlacementApprove(BaseModel):
    notes: Optional[str] = None


class PlacementReject(BaseModel):
    reason: str


class ArtifactUpload(BaseModel):
    kind: ArtifactKind
    document_ref: str


class SupervisorAssign(BaseModel):
    supervisor_id: str
