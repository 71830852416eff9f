"""
Pydantic schemas for timesheet entries and reviews.
"""

from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date
from decimal import Decimal

from fieldtrack.workflow.states import EntryCategory


class EntryCreate(BaseModel):
    placement_id: str
    date: date
    hours: Decimal
    category: EntryCategory
    notes: Optional[str] = None


class EntryUpdate(BaseModel):
    date: Optional[date] = None
    hours: Optional[Decimal] = None
    category: Optional[EntryCategory] = None
    notes: Optional[str] = None


class WeekSubmit(BaseModel):
    placement_id: str
    week_start: date
    week_end: date


class EntryReject(BaseModel):
    reason: str


class BulkAction(BaseModel):
    entry_ids: List[str] = Field(min_length=1)
    action: str  # approve, reject
    reason: Optional[str] = None
