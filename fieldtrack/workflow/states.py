"""
Closed status enums and the actions that drive them.
"""

from enum import Enum


class Role(str, Enum):
    STUDENT = "student"
    SUPERVISOR = "supervisor"
    FACULTY = "faculty"
    ADMIN = "admin"
    SYSTEM = "system"


class PlacementStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED_PENDING_CHECKLIST = "APPROVED_PENDING_CHECKLIST"
    ACTIVE = "ACTIVE"
    COMPLETE = "COMPLETE"  # reporting label only, never stored
    ARCHIVED = "ARCHIVED"
    REJECTED = "REJECTED"


# A student holds at most one placement in these states.
OPEN_PLACEMENT_STATUSES = frozenset({
    PlacementStatus.PENDING,
    PlacementStatus.APPROVED_PENDING_CHECKLIST,
    PlacementStatus.ACTIVE,
})

# Hours may only be logged and submitted against these.
WORKING_PLACEMENT_STATUSES = frozenset({
    PlacementStatus.APPROVED_PENDING_CHECKLIST,
    PlacementStatus.ACTIVE,
})


class PlacementAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    ACTIVATE = "activate"
    ARCHIVE = "archive"


class ArtifactKind(str, Enum):
    CELL_POLICY = "cell_policy"
    LEARNING_CONTRACT = "learning_contract"
    CHECKLIST = "checklist"


class EntryStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    PENDING_SUPERVISOR = "PENDING_SUPERVISOR"
    PENDING_FACULTY = "PENDING_FACULTY"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


EDITABLE_ENTRY_STATUSES = frozenset({EntryStatus.DRAFT, EntryStatus.REJECTED})

IN_REVIEW_ENTRY_STATUSES = frozenset({
    EntryStatus.SUBMITTED,
    EntryStatus.PENDING_SUPERVISOR,
    EntryStatus.PENDING_FACULTY,
})


class EntryAction(str, Enum):
    SUBMIT = "submit"
    ROUTE = "route"
    APPROVE = "approve"
    REJECT = "reject"


class EntryCategory(str, Enum):
    DIRECT = "DIRECT"
    INDIRECT = "INDIRECT"
    TRAINING = "TRAINING"
    ADMIN = "ADMIN"


class PendingSupervisorStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Decision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class SiteStatus(str, Enum):
    PENDING_APPROVAL = "PENDING_APPROVAL"
    PENDING_LEARNING_CONTRACT = "PENDING_LEARNING_CONTRACT"
    ACTIVE = "ACTIVE"
    REJECTED = "REJECTED"
    INACTIVE = "INACTIVE"


class SiteAction(str, Enum):
    SEND_CONTRACT = "send_contract"
    CONTRACT_SUBMITTED = "contract_submitted"
    FINAL_APPROVE = "final_approve"
    EXPIRE = "expire"
    REJECT = "reject"


class ContractStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ContractAction(str, Enum):
    SEND = "send"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"


class NotificationType(str, Enum):
    PLACEMENT_APPROVED = "PLACEMENT_APPROVED"
    PLACEMENT_REJECTED = "PLACEMENT_REJECTED"
    SUPERVISOR_APPROVED = "SUPERVISOR_APPROVED"
    SUPERVISOR_REJECTED = "SUPERVISOR_REJECTED"
    SITE_APPROVED = "SITE_APPROVED"
    SITE_REJECTED = "SITE_REJECTED"
    DOCUMENT_UPLOADED = "DOCUMENT_UPLOADED"
    TIMESHEET_SUBMITTED = "TIMESHEET_SUBMITTED"
    TIMESHEET_SUPERVISOR_APPROVED = "TIMESHEET_SUPERVISOR_APPROVED"
    TIMESHEET_APPROVED = "TIMESHEET_APPROVED"
    TIMESHEET_REJECTED = "TIMESHEET_REJECTED"
    AGREEMENT_EXPIRING = "AGREEMENT_EXPIRING"
    AGREEMENT_EXPIRED = "AGREEMENT_EXPIRED"


class NotificationPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"
