from enum import Enum


class TaskStatus(str, Enum):
    PLANNED = "PLANNED"
    IN_PROGRESS = "IN_PROGRESS"
    ON_HOLD = "ON_HOLD"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class TaskPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class TaskCategory(str, Enum):
    GYPSUM = "GYPSUM"
    MEP = "MEP"
    CIVIL = "CIVIL"
    PLUMBING = "PLUMBING"
    ELECTRICAL = "ELECTRICAL"
    FINISHING = "FINISHING"
    LANDSCAPING = "LANDSCAPING"
    OTHER = "OTHER"


class ApprovalLevel(str, Enum):
    ENGINEER = "ENGINEER"
    SITE_MANAGER = "SITE_MANAGER"
    PROJECT_MANAGER = "PROJECT_MANAGER"


class ApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


class AuditEntityType(str, Enum):
    TASK = "TASK"
    TASK_UPDATE = "TASK_UPDATE"
    APPROVAL = "APPROVAL"
    INVOICE_LINK = "INVOICE_LINK"


class AuditEventType(str, Enum):
    TASK_CREATED = "TASK_CREATED"
    TASK_UPDATED = "TASK_UPDATED"
    TASK_ARCHIVED = "TASK_ARCHIVED"
    TASK_RESTORED = "TASK_RESTORED"
    TASK_UPDATE_CREATED = "TASK_UPDATE_CREATED"
    APPROVAL_REQUESTED = "APPROVAL_REQUESTED"
    APPROVAL_APPROVED = "APPROVAL_APPROVED"
    APPROVAL_REJECTED = "APPROVAL_REJECTED"
    INVOICE_LINKED = "INVOICE_LINKED"


# Batch order used when a task enters the approval workflow
APPROVAL_LEVEL_ORDER = [ApprovalLevel.ENGINEER, ApprovalLevel.SITE_MANAGER, ApprovalLevel.PROJECT_MANAGER]
