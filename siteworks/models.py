# models.py
import uuid
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, Field

from siteworks.db_models.enums import (
    ApprovalLevel,
    ApprovalStatus,
    AuditEntityType,
    AuditEventType,
    InvoiceStatus,
    TaskCategory,
    TaskPriority,
    TaskStatus,
)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the DateTime columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Site(BaseModel):
    id: str = Field(default_factory=lambda: "site_" + str(uuid.uuid4())[:8])
    name: str
    active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Config:
        from_attributes = True


class Employee(BaseModel):
    id: str = Field(default_factory=lambda: "emp_" + str(uuid.uuid4())[:8])
    first_name: str
    last_name: str
    position: str = ""
    email: Optional[str] = None

    class Config:
        from_attributes = True


class Invoice(BaseModel):
    id: str = Field(default_factory=lambda: "inv_" + str(uuid.uuid4())[:8])
    client_id: str
    site_id: str
    title: str
    total: float = 0.0
    paid: float = 0.0
    balance: float = 0.0
    currency: str = "LYD"
    due_date: Optional[datetime] = None
    status: InvoiceStatus = InvoiceStatus.DRAFT
    created_by: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Config:
        from_attributes = True


class Task(BaseModel):
    id: str = Field(default_factory=lambda: "task_" + str(uuid.uuid4())[:8])
    site_id: str
    code: str
    name: str
    description: str = ""
    category: TaskCategory = TaskCategory.OTHER
    status: TaskStatus = TaskStatus.PLANNED
    progress: int = 0
    start_date: Optional[datetime] = None
    expected_completion_date: Optional[datetime] = None
    actual_completion_date: Optional[datetime] = None
    location: Optional[str] = None
    manpower: int = 0
    executor_id: Optional[str] = None
    supervisor_id: Optional[str] = None
    approver_id: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    billable: bool = False
    budget_amount: Optional[float] = None
    cost_to_date: float = 0.0
    attachments: List[str] = Field(default_factory=list)  # File URLs from the upload service
    archived: bool = False
    created_by: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Config:
        from_attributes = True

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return (
            self.expected_completion_date is not None
            and self.expected_completion_date < now
            and self.status not in (TaskStatus.COMPLETED, TaskStatus.CANCELLED)
        )


class TaskCreateRequest(BaseModel):
    name: str
    description: str = ""
    category: TaskCategory = TaskCategory.OTHER
    status: TaskStatus = TaskStatus.PLANNED
    progress: int = 0
    start_date: Optional[datetime] = None
    expected_completion_date: Optional[datetime] = None
    actual_completion_date: Optional[datetime] = None
    location: Optional[str] = None
    manpower: int = 0
    executor_id: Optional[str] = None
    supervisor_id: Optional[str] = None
    approver_id: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    billable: bool = False
    budget_amount: Optional[float] = None
    attachments: List[str] = Field(default_factory=list)


class TaskCreate(TaskCreateRequest):
    site_id: str
    created_by: str


class TaskPatch(BaseModel):
    """Partial task update. Only fields the caller sets are applied."""
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[TaskCategory] = None
    status: Optional[TaskStatus] = None
    progress: Optional[int] = None
    start_date: Optional[datetime] = None
    expected_completion_date: Optional[datetime] = None
    actual_completion_date: Optional[datetime] = None
    location: Optional[str] = None
    manpower: Optional[int] = None
    executor_id: Optional[str] = None
    supervisor_id: Optional[str] = None
    approver_id: Optional[str] = None
    priority: Optional[TaskPriority] = None
    billable: Optional[bool] = None
    budget_amount: Optional[float] = None
    attachments: Optional[List[str]] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class TaskUpdate(BaseModel):
    id: str = Field(default_factory=lambda: "upd_" + str(uuid.uuid4())[:8])
    task_id: str
    timestamp: datetime = Field(default_factory=utcnow)
    progress_delta: int
    progress_after: int
    note: str
    manpower: Optional[int] = None
    location: Optional[str] = None
    executed_by_id: Optional[str] = None
    entered_by_id: str
    status_change: Optional[TaskStatus] = None
    attachments: List[str] = Field(default_factory=list)
    issues: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    class Config:
        from_attributes = True


class TaskUpdateRequest(BaseModel):
    progress_delta: int
    note: str
    timestamp: Optional[datetime] = None
    manpower: Optional[int] = None
    location: Optional[str] = None
    executed_by_id: Optional[str] = None
    status_change: Optional[TaskStatus] = None
    attachments: List[str] = Field(default_factory=list)
    issues: List[str] = Field(default_factory=list)


class TaskUpdateCreate(TaskUpdateRequest):
    task_id: str
    entered_by_id: str


class QuickUpdateRequest(BaseModel):
    time: str = Field(..., description="UTC time of the work entry, applied to the current UTC date",
                      examples=["08:30"])
    progress_delta: int
    work_description: str
    manpower: int = 0
    executed_by: str
    location: Optional[str] = None
    attachments: List[str] = Field(default_factory=list)
    issues: List[str] = Field(default_factory=list)


class TaskApproval(BaseModel):
    id: str = Field(default_factory=lambda: "apr_" + str(uuid.uuid4())[:8])
    task_id: str
    level: ApprovalLevel
    status: ApprovalStatus = ApprovalStatus.PENDING
    approved_by_id: Optional[str] = None
    approved_at: Optional[datetime] = None
    remark: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    class Config:
        from_attributes = True


class ApprovalDecisionRequest(BaseModel):
    decision: ApprovalStatus
    remark: Optional[str] = None


class TaskInvoiceLink(BaseModel):
    id: str = Field(default_factory=lambda: "til_" + str(uuid.uuid4())[:8])
    task_id: str
    invoice_id: str
    amount_billed: float
    amount_paid: float
    balance: float
    created_at: datetime = Field(default_factory=utcnow)

    class Config:
        from_attributes = True


class InvoiceLinkRequest(BaseModel):
    invoice_id: str
    amount_billed: float


class BulkStatusRequest(BaseModel):
    task_ids: List[str]
    status: TaskStatus


class BulkArchiveRequest(BaseModel):
    task_ids: List[str]


class TaskFilter(BaseModel):
    status: Optional[List[TaskStatus]] = None
    category: Optional[List[TaskCategory]] = None
    priority: Optional[List[TaskPriority]] = None
    assignee: Optional[List[str]] = None
    billable: Optional[bool] = None
    overdue: Optional[bool] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None


class TaskStatistics(BaseModel):
    total: int = 0
    completed: int = 0
    in_progress: int = 0
    overdue: int = 0
    average_progress: int = 0
    total_budget: float = 0.0
    total_cost: float = 0.0


class TimelineEntry(BaseModel):
    task: Task
    start_date: datetime
    end_date: datetime
    progress: int


class TaskDetails(BaseModel):
    task: Task
    updates: List[TaskUpdate] = Field(default_factory=list)
    approvals: List[TaskApproval] = Field(default_factory=list)
    invoice_links: List[TaskInvoiceLink] = Field(default_factory=list)
    executor: Optional[Employee] = None
    supervisor: Optional[Employee] = None
    approver: Optional[Employee] = None


class AuditEvent(BaseModel):
    id: str = Field(default_factory=lambda: "audit_" + uuid.uuid4().hex[:12])
    event_type: AuditEventType
    entity_type: AuditEntityType
    entity_id: str
    user_id: str
    user_name: Optional[str] = None
    site_id: Optional[str] = None
    action: str
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=utcnow)

    class Config:
        from_attributes = True


class AuditEventFilter(BaseModel):
    entity_type: Optional[AuditEntityType] = None
    entity_id: Optional[str] = None
    user_id: Optional[str] = None
    site_id: Optional[str] = None
    event_type: Optional[AuditEventType] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: Optional[int] = None


class AuditSummary(BaseModel):
    total_events: int
    date_range_start: Optional[datetime] = None
    date_range_end: Optional[datetime] = None
    unique_users: int
    unique_sites: int
    event_types: Dict[str, int]


class AuditExport(BaseModel):
    events: List[AuditEvent]
    summary: AuditSummary
