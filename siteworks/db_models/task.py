import uuid

from sqlalchemy import (Boolean, Column, DateTime, Enum as SQLAlchemyEnum, Float, ForeignKey, Integer, JSON,
                        String, Text, UniqueConstraint)
from sqlalchemy.orm import relationship

from siteworks.db_models.base import Base
from siteworks.db_models.enums import ApprovalLevel, ApprovalStatus, TaskCategory, TaskPriority, TaskStatus


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (UniqueConstraint("site_id", "code", name="uq_tasks_site_code"),)

    id = Column(String, primary_key=True, index=True, default=lambda: "task_" + str(uuid.uuid4())[:8])
    site_id = Column(String, ForeignKey("sites.id"), nullable=False, index=True)
    code = Column(String(20), nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=False, default="")
    category = Column(SQLAlchemyEnum(TaskCategory), nullable=False, default=TaskCategory.OTHER)
    status = Column(SQLAlchemyEnum(TaskStatus), nullable=False, default=TaskStatus.PLANNED, index=True)
    progress = Column(Integer, nullable=False, default=0)
    start_date = Column(DateTime, nullable=True)
    expected_completion_date = Column(DateTime, nullable=True)
    actual_completion_date = Column(DateTime, nullable=True)
    location = Column(String(200), nullable=True)
    manpower = Column(Integer, nullable=False, default=0)
    executor_id = Column(String, nullable=True, index=True)
    supervisor_id = Column(String, nullable=True, index=True)
    approver_id = Column(String, nullable=True)
    priority = Column(SQLAlchemyEnum(TaskPriority), nullable=False, default=TaskPriority.MEDIUM)
    billable = Column(Boolean, nullable=False, default=False)
    budget_amount = Column(Float, nullable=True)
    cost_to_date = Column(Float, nullable=False, default=0.0)
    attachments = Column(JSON, nullable=False, default=list)
    archived = Column(Boolean, nullable=False, default=False, index=True)
    created_by = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    site = relationship("Site", back_populates="tasks")
    updates = relationship("TaskUpdate", back_populates="task", order_by="TaskUpdate.timestamp")
    approvals = relationship("TaskApproval", back_populates="task")
    invoice_links = relationship("TaskInvoiceLink", back_populates="task")


class TaskUpdate(Base):
    __tablename__ = "task_updates"

    id = Column(String, primary_key=True, index=True, default=lambda: "upd_" + str(uuid.uuid4())[:8])
    task_id = Column(String, ForeignKey("tasks.id"), nullable=False, index=True)
    timestamp = Column(DateTime, nullable=False)
    progress_delta = Column(Integer, nullable=False)
    progress_after = Column(Integer, nullable=False)
    note = Column(Text, nullable=False)
    manpower = Column(Integer, nullable=True)
    location = Column(String(200), nullable=True)
    executed_by_id = Column(String, nullable=True)
    entered_by_id = Column(String, nullable=False)
    status_change = Column(SQLAlchemyEnum(TaskStatus), nullable=True)
    attachments = Column(JSON, nullable=False, default=list)
    issues = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False)

    task = relationship("Task", back_populates="updates")


class TaskApproval(Base):
    __tablename__ = "task_approvals"
    __table_args__ = (UniqueConstraint("task_id", "level", name="uq_task_approvals_task_level"),)

    id = Column(String, primary_key=True, index=True, default=lambda: "apr_" + str(uuid.uuid4())[:8])
    task_id = Column(String, ForeignKey("tasks.id"), nullable=False, index=True)
    level = Column(SQLAlchemyEnum(ApprovalLevel), nullable=False)
    status = Column(SQLAlchemyEnum(ApprovalStatus), nullable=False, default=ApprovalStatus.PENDING, index=True)
    approved_by_id = Column(String, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    remark = Column(String(500), nullable=True)
    created_at = Column(DateTime, nullable=False)

    task = relationship("Task", back_populates="approvals")


class TaskInvoiceLink(Base):
    __tablename__ = "task_invoice_links"

    id = Column(String, primary_key=True, index=True, default=lambda: "til_" + str(uuid.uuid4())[:8])
    task_id = Column(String, ForeignKey("tasks.id"), nullable=False, index=True)
    invoice_id = Column(String, ForeignKey("invoices.id"), nullable=False, index=True)
    amount_billed = Column(Float, nullable=False)
    amount_paid = Column(Float, nullable=False)
    balance = Column(Float, nullable=False)
    created_at = Column(DateTime, nullable=False)

    task = relationship("Task", back_populates="invoice_links")
    invoice = relationship("Invoice")


class SiteTaskCounter(Base):
    __tablename__ = "site_task_counters"

    site_id = Column(String, ForeignKey("sites.id"), primary_key=True)
    last_sequence = Column(Integer, nullable=False, default=0)
