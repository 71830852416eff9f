"""
Pydantic schemas for site proposals and agency learning contracts.
"""

from pydantic import BaseModel, EmailStr
from typing import Optional


class SiteCreate(BaseModel):
    name: str
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = None
    requires_learning_contract: bool = True


class ContractSend(BaseModel):
    recipient_email: EmailStr
    recipient_name: Optional[str] = None


class ContractSubmit(BaseModel):
    agency_name: Optional[str] = None
    agency_email: Optional[EmailStr] = None
    agency_address: Optional[str] = None
    agency_telephone: Optional[str] = None
    agency_director: Optional[str] = None
    field_instructor_name: str
    field_instructor_degree: Optional[str] = None
    field_instructor_license: Optional[str] = None
    resources_available: Optional[str] = None
    services_provided: Optional[str] = None
    learning_plan: Optional[str] = None
    supervision_arrangement: Optional[str] = None
    completed_by_name: str
    completed_by_title: Optional[str] = None


class SiteReject(BaseModel):
    reason: str
