from pydantic import BaseModel
from typing import Optional


class PendingSupervisorAction(BaseModel):
    action: str  # approve, reject
    rejection_reason: Optional[str] = None
