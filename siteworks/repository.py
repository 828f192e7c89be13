# repository.py
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from siteworks.db_models import AuditEvent as AuditEventORM
from siteworks.db_models import Employee as EmployeeORM
from siteworks.db_models import Invoice as InvoiceORM
from siteworks.db_models import Site as SiteORM
from siteworks.db_models import SiteTaskCounter as SiteTaskCounterORM
from siteworks.db_models import Task as TaskORM
from siteworks.db_models import TaskApproval as TaskApprovalORM
from siteworks.db_models import TaskInvoiceLink as TaskInvoiceLinkORM
from siteworks.db_models import TaskUpdate as TaskUpdateORM
from siteworks.db_models.enums import (APPROVAL_LEVEL_ORDER, ApprovalLevel, ApprovalStatus, TaskCategory,
                                       TaskPriority, TaskStatus)
from siteworks.models import (AuditEvent, AuditEventFilter, Employee, Invoice, Site, Task, TaskApproval,
                              TaskInvoiceLink, TaskUpdate)


class TaskRepository(ABC):
    @abstractmethod
    async def create_task(self, task: Task) -> Task:
        pass

    @abstractmethod
    async def get_task_by_id(self, task_id: str) -> Optional[Task]:
        pass

    @abstractmethod
    async def update_task(self, task_id: str, task: Task) -> Optional[Task]:
        pass

    @abstractmethod
    async def list_tasks(self, site_ids: Optional[Sequence[str]] = None, include_archived: bool = False,
                         statuses: Optional[Sequence[TaskStatus]] = None,
                         categories: Optional[Sequence[TaskCategory]] = None,
                         priorities: Optional[Sequence[TaskPriority]] = None,
                         billable: Optional[bool] = None,
                         exclude_statuses: Optional[Sequence[TaskStatus]] = None) -> List[Task]:
        """Tasks matching every given constraint, newest first."""
        pass

    @abstractmethod
    async def count_tasks_for_site(self, site_id: str) -> int:
        pass


class TaskUpdateRepository(ABC):
    @abstractmethod
    async def create_task_update(self, update: TaskUpdate) -> TaskUpdate:
        pass

    @abstractmethod
    async def list_task_updates(self, task_id: str) -> List[TaskUpdate]:
        """Updates for a task, newest timestamp first."""
        pass


class TaskApprovalRepository(ABC):
    @abstractmethod
    async def create_task_approval(self, approval: TaskApproval) -> TaskApproval:
        pass

    @abstractmethod
    async def get_task_approval(self, task_id: str, level: ApprovalLevel) -> Optional[TaskApproval]:
        pass

    @abstractmethod
    async def update_task_approval(self, approval_id: str, approval: TaskApproval) -> Optional[TaskApproval]:
        pass

    @abstractmethod
    async def list_task_approvals(self, task_id: str) -> List[TaskApproval]:
        """Approvals for a task in level order."""
        pass

    @abstractmethod
    async def list_approvals(self, level: Optional[ApprovalLevel] = None,
                             status: Optional[ApprovalStatus] = None) -> List[TaskApproval]:
        pass


class TaskInvoiceLinkRepository(ABC):
    @abstractmethod
    async def create_task_invoice_link(self, link: TaskInvoiceLink) -> TaskInvoiceLink:
        pass

    @abstractmethod
    async def list_task_invoice_links(self, task_id: str) -> List[TaskInvoiceLink]:
        pass


class InvoiceRepository(ABC):
    @abstractmethod
    async def get_invoice_by_id(self, invoice_id: str) -> Optional[Invoice]:
        pass

    @abstractmethod
    async def create_invoice(self, invoice: Invoice) -> Invoice:
        pass


class EmployeeRepository(ABC):
    @abstractmethod
    async def get_employee_by_id(self, employee_id: str) -> Optional[Employee]:
        pass

    @abstractmethod
    async def create_employee(self, employee: Employee) -> Employee:
        pass


class SiteRepository(ABC):
    @abstractmethod
    async def get_site_by_id(self, site_id: str) -> Optional[Site]:
        pass

    @abstractmethod
    async def create_site(self, site: Site) -> Site:
        pass

    @abstractmethod
    async def next_task_sequence(self, site_id: str) -> int:
        """Atomically reserve the next task sequence number for a site.

        The first call for a site seeds the counter from the tasks already
        stored for it, so sequential creation yields count + 1.
        """
        pass


class AuditEventRepository(ABC):
    @abstractmethod
    async def append_event(self, event: AuditEvent) -> AuditEvent:
        pass

    @abstractmethod
    async def list_events(self, event_filter: Optional[AuditEventFilter] = None) -> List[AuditEvent]:
        """Events matching the filter, newest first."""
        pass

    @abstractmethod
    async def count_events(self) -> int:
        pass

    @abstractmethod
    async def delete_oldest_events(self, count: int) -> int:
        pass

    @abstractmethod
    async def delete_events_before(self, cutoff: datetime) -> int:
        pass


def _approval_sort_key(approval: TaskApproval):
    return approval.created_at, APPROVAL_LEVEL_ORDER.index(approval.level)


class PostgreSQLTaskRepository(TaskRepository, TaskUpdateRepository, TaskApprovalRepository,
                               TaskInvoiceLinkRepository, InvoiceRepository, EmployeeRepository, SiteRepository):
    def __init__(self, db_session):
        self.db_session = db_session

    # --- Tasks ---
    async def create_task(self, task: Task) -> Task:
        db_task = TaskORM(**task.model_dump())
        self.db_session.add(db_task)
        self.db_session.commit()
        self.db_session.refresh(db_task)
        return Task.model_validate(db_task)

    async def get_task_by_id(self, task_id: str) -> Optional[Task]:
        db_task = self.db_session.query(TaskORM).filter(TaskORM.id == task_id).first()
        return Task.model_validate(db_task) if db_task else None

    async def update_task(self, task_id: str, task: Task) -> Optional[Task]:
        db_task = self.db_session.query(TaskORM).filter(TaskORM.id == task_id).first()
        if not db_task:
            return None
        for key, value in task.model_dump(exclude={"id"}).items():
            setattr(db_task, key, value)
        self.db_session.commit()
        self.db_session.refresh(db_task)
        return Task.model_validate(db_task)

    async def list_tasks(self, site_ids: Optional[Sequence[str]] = None, include_archived: bool = False,
                         statuses: Optional[Sequence[TaskStatus]] = None,
                         categories: Optional[Sequence[TaskCategory]] = None,
                         priorities: Optional[Sequence[TaskPriority]] = None,
                         billable: Optional[bool] = None,
                         exclude_statuses: Optional[Sequence[TaskStatus]] = None) -> List[Task]:
        query = self.db_session.query(TaskORM)
        if site_ids:
            query = query.filter(TaskORM.site_id.in_(list(site_ids)))
        if not include_archived:
            query = query.filter(TaskORM.archived.is_(False))
        if statuses:
            query = query.filter(TaskORM.status.in_(list(statuses)))
        if exclude_statuses:
            query = query.filter(TaskORM.status.notin_(list(exclude_statuses)))
        if categories:
            query = query.filter(TaskORM.category.in_(list(categories)))
        if priorities:
            query = query.filter(TaskORM.priority.in_(list(priorities)))
        if billable is not None:
            query = query.filter(TaskORM.billable.is_(billable))
        tasks = query.order_by(TaskORM.created_at.desc()).all()
        return [Task.model_validate(task) for task in tasks]

    async def count_tasks_for_site(self, site_id: str) -> int:
        return self.db_session.query(TaskORM).filter(TaskORM.site_id == site_id).count()

    # --- Task updates ---
    async def create_task_update(self, update: TaskUpdate) -> TaskUpdate:
        db_update = TaskUpdateORM(**update.model_dump())
        self.db_session.add(db_update)
        self.db_session.commit()
        self.db_session.refresh(db_update)
        return TaskUpdate.model_validate(db_update)

    async def list_task_updates(self, task_id: str) -> List[TaskUpdate]:
        updates = self.db_session.query(TaskUpdateORM).filter(TaskUpdateORM.task_id == task_id) \
            .order_by(TaskUpdateORM.timestamp.desc()).all()
        return [TaskUpdate.model_validate(update) for update in updates]

    # --- Approvals ---
    async def create_task_approval(self, approval: TaskApproval) -> TaskApproval:
        db_approval = TaskApprovalORM(**approval.model_dump())
        self.db_session.add(db_approval)
        self.db_session.commit()
        self.db_session.refresh(db_approval)
        return TaskApproval.model_validate(db_approval)

    async def get_task_approval(self, task_id: str, level: ApprovalLevel) -> Optional[TaskApproval]:
        db_approval = self.db_session.query(TaskApprovalORM).filter(
            TaskApprovalORM.task_id == task_id, TaskApprovalORM.level == level
        ).first()
        return TaskApproval.model_validate(db_approval) if db_approval else None

    async def update_task_approval(self, approval_id: str, approval: TaskApproval) -> Optional[TaskApproval]:
        db_approval = self.db_session.query(TaskApprovalORM).filter(TaskApprovalORM.id == approval_id).first()
        if not db_approval:
            return None
        db_approval.status = approval.status
        db_approval.approved_by_id = approval.approved_by_id
        db_approval.approved_at = approval.approved_at
        db_approval.remark = approval.remark
        self.db_session.commit()
        self.db_session.refresh(db_approval)
        return TaskApproval.model_validate(db_approval)

    async def list_task_approvals(self, task_id: str) -> List[TaskApproval]:
        approvals = self.db_session.query(TaskApprovalORM).filter(TaskApprovalORM.task_id == task_id).all()
        return sorted((TaskApproval.model_validate(a) for a in approvals), key=_approval_sort_key)

    async def list_approvals(self, level: Optional[ApprovalLevel] = None,
                             status: Optional[ApprovalStatus] = None) -> List[TaskApproval]:
        query = self.db_session.query(TaskApprovalORM)
        if level is not None:
            query = query.filter(TaskApprovalORM.level == level)
        if status is not None:
            query = query.filter(TaskApprovalORM.status == status)
        return sorted((TaskApproval.model_validate(a) for a in query.all()), key=_approval_sort_key)

    # --- Invoice links ---
    async def create_task_invoice_link(self, link: TaskInvoiceLink) -> TaskInvoiceLink:
        db_link = TaskInvoiceLinkORM(**link.model_dump())
        self.db_session.add(db_link)
        self.db_session.commit()
        self.db_session.refresh(db_link)
        return TaskInvoiceLink.model_validate(db_link)

    async def list_task_invoice_links(self, task_id: str) -> List[TaskInvoiceLink]:
        links = self.db_session.query(TaskInvoiceLinkORM).filter(TaskInvoiceLinkORM.task_id == task_id) \
            .order_by(TaskInvoiceLinkORM.created_at.desc()).all()
        return [TaskInvoiceLink.model_validate(link) for link in links]

    # --- Reference data ---
    async def get_invoice_by_id(self, invoice_id: str) -> Optional[Invoice]:
        db_invoice = self.db_session.query(InvoiceORM).filter(InvoiceORM.id == invoice_id).first()
        return Invoice.model_validate(db_invoice) if db_invoice else None

    async def create_invoice(self, invoice: Invoice) -> Invoice:
        db_invoice = InvoiceORM(**invoice.model_dump())
        self.db_session.add(db_invoice)
        self.db_session.commit()
        self.db_session.refresh(db_invoice)
        return Invoice.model_validate(db_invoice)

    async def get_employee_by_id(self, employee_id: str) -> Optional[Employee]:
        db_employee = self.db_session.query(EmployeeORM).filter(EmployeeORM.id == employee_id).first()
        return Employee.model_validate(db_employee) if db_employee else None

    async def create_employee(self, employee: Employee) -> Employee:
        db_employee = EmployeeORM(**employee.model_dump())
        self.db_session.add(db_employee)
        self.db_session.commit()
        self.db_session.refresh(db_employee)
        return Employee.model_validate(db_employee)

    async def get_site_by_id(self, site_id: str) -> Optional[Site]:
        db_site = self.db_session.query(SiteORM).filter(SiteORM.id == site_id).first()
        return Site.model_validate(db_site) if db_site else None

    async def create_site(self, site: Site) -> Site:
        db_site = SiteORM(**site.model_dump())
        self.db_session.add(db_site)
        self.db_session.commit()
        self.db_session.refresh(db_site)
        return Site.model_validate(db_site)

    async def next_task_sequence(self, site_id: str) -> int:
        counter = self._lock_counter(site_id)
        if counter is None:
            seed = self.db_session.query(TaskORM).filter(TaskORM.site_id == site_id).count()
            self.db_session.add(SiteTaskCounterORM(site_id=site_id, last_sequence=seed))
            try:
                self.db_session.flush()
            except IntegrityError:
                # Another request seeded the counter first
                self.db_session.rollback()
            counter = self._lock_counter(site_id)
        counter.last_sequence += 1
        sequence = counter.last_sequence
        self.db_session.commit()
        return sequence

    def _lock_counter(self, site_id: str) -> Optional[SiteTaskCounterORM]:
        return self.db_session.query(SiteTaskCounterORM) \
            .filter(SiteTaskCounterORM.site_id == site_id).with_for_update().first()


def _audit_from_orm(db_event: AuditEventORM) -> AuditEvent:
    return AuditEvent(
        id=db_event.id,
        event_type=db_event.event_type,
        entity_type=db_event.entity_type,
        entity_id=db_event.entity_id,
        user_id=db_event.user_id,
        user_name=db_event.user_name,
        site_id=db_event.site_id,
        action=db_event.action,
        old_values=db_event.old_values,
        new_values=db_event.new_values,
        metadata=db_event.event_metadata,
        timestamp=db_event.timestamp,
    )


class PostgreSQLAuditEventRepository(AuditEventRepository):
    def __init__(self, db_session):
        self.db_session = db_session

    async def append_event(self, event: AuditEvent) -> AuditEvent:
        data = event.model_dump(mode="json", exclude={"metadata", "timestamp", "event_type", "entity_type"})
        db_event = AuditEventORM(
            **data,
            event_type=event.event_type,
            entity_type=event.entity_type,
            event_metadata=event.model_dump(mode="json")["metadata"],
            timestamp=event.timestamp,
        )
        try:
            self.db_session.add(db_event)
            self.db_session.commit()
            self.db_session.refresh(db_event)
        except SQLAlchemyError:
            # Shared session: a failed audit write must not poison the task writes that follow
            self.db_session.rollback()
            raise
        return _audit_from_orm(db_event)

    async def list_events(self, event_filter: Optional[AuditEventFilter] = None) -> List[AuditEvent]:
        event_filter = event_filter or AuditEventFilter()
        query = self.db_session.query(AuditEventORM)
        if event_filter.entity_type is not None:
            query = query.filter(AuditEventORM.entity_type == event_filter.entity_type)
        if event_filter.entity_id:
            query = query.filter(AuditEventORM.entity_id == event_filter.entity_id)
        if event_filter.user_id:
            query = query.filter(AuditEventORM.user_id == event_filter.user_id)
        if event_filter.site_id:
            query = query.filter(AuditEventORM.site_id == event_filter.site_id)
        if event_filter.event_type is not None:
            query = query.filter(AuditEventORM.event_type == event_filter.event_type)
        if event_filter.start_date:
            query = query.filter(AuditEventORM.timestamp >= event_filter.start_date)
        if event_filter.end_date:
            query = query.filter(AuditEventORM.timestamp <= event_filter.end_date)
        query = query.order_by(AuditEventORM.timestamp.desc(), AuditEventORM.seq.desc())
        if event_filter.limit:
            query = query.limit(event_filter.limit)
        return [_audit_from_orm(db_event) for db_event in query.all()]

    async def count_events(self) -> int:
        try:
            return self.db_session.query(AuditEventORM).count()
        except SQLAlchemyError:
            self.db_session.rollback()
            raise

    async def delete_oldest_events(self, count: int) -> int:
        if count <= 0:
            return 0
        try:
            oldest = self.db_session.query(AuditEventORM.seq) \
                .order_by(AuditEventORM.timestamp.asc(), AuditEventORM.seq.asc()).limit(count).all()
            seqs = [row.seq for row in oldest]
            if not seqs:
                return 0
            deleted = self.db_session.query(AuditEventORM).filter(AuditEventORM.seq.in_(seqs)) \
                .delete(synchronize_session=False)
            self.db_session.commit()
        except SQLAlchemyError:
            self.db_session.rollback()
            raise
        return deleted

    async def delete_events_before(self, cutoff: datetime) -> int:
        try:
            deleted = self.db_session.query(AuditEventORM).filter(AuditEventORM.timestamp < cutoff) \
                .delete(synchronize_session=False)
            self.db_session.commit()
        except SQLAlchemyError:
            self.db_session.rollback()
            raise
        return deleted


class InMemoryTaskRepository(TaskRepository, TaskUpdateRepository, TaskApprovalRepository,
                             TaskInvoiceLinkRepository, InvoiceRepository, EmployeeRepository, SiteRepository):
    """Process-local store. Each instance owns its own collections."""

    def __init__(self):
        self._tasks: Dict[str, Task] = {}
        self._updates: Dict[str, TaskUpdate] = {}
        self._approvals: Dict[str, TaskApproval] = {}
        self._invoice_links: Dict[str, TaskInvoiceLink] = {}
        self._invoices: Dict[str, Invoice] = {}
        self._employees: Dict[str, Employee] = {}
        self._sites: Dict[str, Site] = {}
        self._task_counters: Dict[str, int] = {}
        self._counter_lock = threading.Lock()

    async def create_task(self, task: Task) -> Task:
        self._tasks[task.id] = task.model_copy(deep=True)
        return task.model_copy(deep=True)

    async def get_task_by_id(self, task_id: str) -> Optional[Task]:
        task = self._tasks.get(task_id)
        return task.model_copy(deep=True) if task else None

    async def update_task(self, task_id: str, task: Task) -> Optional[Task]:
        if task_id not in self._tasks:
            return None
        self._tasks[task_id] = task.model_copy(deep=True)
        return self._tasks[task_id].model_copy(deep=True)

    async def list_tasks(self, site_ids: Optional[Sequence[str]] = None, include_archived: bool = False,
                         statuses: Optional[Sequence[TaskStatus]] = None,
                         categories: Optional[Sequence[TaskCategory]] = None,
                         priorities: Optional[Sequence[TaskPriority]] = None,
                         billable: Optional[bool] = None,
                         exclude_statuses: Optional[Sequence[TaskStatus]] = None) -> List[Task]:
        tasks = []
        for task in self._tasks.values():
            if site_ids and task.site_id not in site_ids:
                continue
            if not include_archived and task.archived:
                continue
            if statuses and task.status not in statuses:
                continue
            if exclude_statuses and task.status in exclude_statuses:
                continue
            if categories and task.category not in categories:
                continue
            if priorities and task.priority not in priorities:
                continue
            if billable is not None and task.billable != billable:
                continue
            tasks.append(task.model_copy(deep=True))
        return sorted(tasks, key=lambda t: t.created_at, reverse=True)

    async def count_tasks_for_site(self, site_id: str) -> int:
        return sum(1 for task in self._tasks.values() if task.site_id == site_id)

    async def create_task_update(self, update: TaskUpdate) -> TaskUpdate:
        self._updates[update.id] = update.model_copy(deep=True)
        return update.model_copy(deep=True)

    async def list_task_updates(self, task_id: str) -> List[TaskUpdate]:
        updates = [u.model_copy(deep=True) for u in self._updates.values() if u.task_id == task_id]
        return sorted(updates, key=lambda u: u.timestamp, reverse=True)

    async def create_task_approval(self, approval: TaskApproval) -> TaskApproval:
        self._approvals[approval.id] = approval.model_copy(deep=True)
        return approval.model_copy(deep=True)

    async def get_task_approval(self, task_id: str, level: ApprovalLevel) -> Optional[TaskApproval]:
        for approval in self._approvals.values():
            if approval.task_id == task_id and approval.level == level:
                return approval.model_copy(deep=True)
        return None

    async def update_task_approval(self, approval_id: str, approval: TaskApproval) -> Optional[TaskApproval]:
        if approval_id not in self._approvals:
            return None
        self._approvals[approval_id] = approval.model_copy(deep=True)
        return self._approvals[approval_id].model_copy(deep=True)

    async def list_task_approvals(self, task_id: str) -> List[TaskApproval]:
        approvals = [a.model_copy(deep=True) for a in self._approvals.values() if a.task_id == task_id]
        return sorted(approvals, key=_approval_sort_key)

    async def list_approvals(self, level: Optional[ApprovalLevel] = None,
                             status: Optional[ApprovalStatus] = None) -> List[TaskApproval]:
        approvals = [
            a.model_copy(deep=True) for a in self._approvals.values()
            if (level is None or a.level == level) and (status is None or a.status == status)
        ]
        return sorted(approvals, key=_approval_sort_key)

    async def create_task_invoice_link(self, link: TaskInvoiceLink) -> TaskInvoiceLink:
        self._invoice_links[link.id] = link.model_copy(deep=True)
        return link.model_copy(deep=True)

    async def list_task_invoice_links(self, task_id: str) -> List[TaskInvoiceLink]:
        links = [l.model_copy(deep=True) for l in self._invoice_links.values() if l.task_id == task_id]
        return sorted(links, key=lambda l: l.created_at, reverse=True)

    async def get_invoice_by_id(self, invoice_id: str) -> Optional[Invoice]:
        invoice = self._invoices.get(invoice_id)
        return invoice.model_copy(deep=True) if invoice else None

    async def create_invoice(self, invoice: Invoice) -> Invoice:
        self._invoices[invoice.id] = invoice.model_copy(deep=True)
        return invoice.model_copy(deep=True)

    async def get_employee_by_id(self, employee_id: str) -> Optional[Employee]:
        employee = self._employees.get(employee_id)
        return employee.model_copy(deep=True) if employee else None

    async def create_employee(self, employee: Employee) -> Employee:
        self._employees[employee.id] = employee.model_copy(deep=True)
        return employee.model_copy(deep=True)

    async def get_site_by_id(self, site_id: str) -> Optional[Site]:
        site = self._sites.get(site_id)
        return site.model_copy(deep=True) if site else None

    async def create_site(self, site: Site) -> Site:
        self._sites[site.id] = site.model_copy(deep=True)
        return site.model_copy(deep=True)

    async def next_task_sequence(self, site_id: str) -> int:
        with self._counter_lock:
            if site_id not in self._task_counters:
                self._task_counters[site_id] = sum(1 for t in self._tasks.values() if t.site_id == site_id)
            self._task_counters[site_id] += 1
            return self._task_counters[site_id]


class InMemoryAuditEventRepository(AuditEventRepository):
    def __init__(self):
        self._events: List[AuditEvent] = []

    def _newest_first(self) -> List[AuditEvent]:
        order = sorted(range(len(self._events)), key=lambda i: (self._events[i].timestamp, i), reverse=True)
        return [self._events[i] for i in order]

    async def append_event(self, event: AuditEvent) -> AuditEvent:
        self._events.append(event.model_copy(deep=True))
        return event.model_copy(deep=True)

    async def list_events(self, event_filter: Optional[AuditEventFilter] = None) -> List[AuditEvent]:
        event_filter = event_filter or AuditEventFilter()
        events = []
        for event in self._newest_first():
            if event_filter.entity_type is not None and event.entity_type != event_filter.entity_type:
                continue
            if event_filter.entity_id and event.entity_id != event_filter.entity_id:
                continue
            if event_filter.user_id and event.user_id != event_filter.user_id:
                continue
            if event_filter.site_id and event.site_id != event_filter.site_id:
                continue
            if event_filter.event_type is not None and event.event_type != event_filter.event_type:
                continue
            if event_filter.start_date and event.timestamp < event_filter.start_date:
                continue
            if event_filter.end_date and event.timestamp > event_filter.end_date:
                continue
            events.append(event.model_copy(deep=True))
        if event_filter.limit:
            events = events[:event_filter.limit]
        return events

    async def count_events(self) -> int:
        return len(self._events)

    async def delete_oldest_events(self, count: int) -> int:
        if count <= 0:
            return 0
        doomed = {id(event) for event in self._newest_first()[-count:]}
        before = len(self._events)
        self._events = [event for event in self._events if id(event) not in doomed]
        return before - len(self._events)

    async def delete_events_before(self, cutoff: datetime) -> int:
        before = len(self._events)
        self._events = [event for event in self._events if event.timestamp >= cutoff]
        return before - len(self._events)
