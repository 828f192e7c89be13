from siteworks.db_models.base import Base
from siteworks.db_models.audit import AuditEvent
from siteworks.db_models.reference import Employee, Invoice, Site
from siteworks.db_models.task import SiteTaskCounter, Task, TaskApproval, TaskInvoiceLink, TaskUpdate

__all__ = [
    "Base",
    "AuditEvent",
    "Employee",
    "Invoice",
    "Site",
    "SiteTaskCounter",
    "Task",
    "TaskApproval",
    "TaskInvoiceLink",
    "TaskUpdate",
]
