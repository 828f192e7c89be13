# services.py
import logging
from typing import Any, Dict, List, Optional, Sequence

from siteworks.audit import AuditTrailLogger
from siteworks.db_models.enums import (APPROVAL_LEVEL_ORDER, ApprovalLevel, ApprovalStatus, AuditEntityType,
                                       AuditEventType, TaskPriority, TaskStatus)
from siteworks.exceptions import NotFoundError, StateConflictError, ValidationError
from siteworks.models import (QuickUpdateRequest, Task, TaskApproval, TaskCreate, TaskDetails, TaskFilter,
                              TaskInvoiceLink, TaskPatch, TaskStatistics, TaskUpdate, TaskUpdateCreate,
                              TimelineEntry, utcnow)
from siteworks.repository import (EmployeeRepository, InvoiceRepository, SiteRepository, TaskApprovalRepository,
                                  TaskInvoiceLinkRepository, TaskRepository, TaskUpdateRepository)
from siteworks.validation import (clamp_progress, generate_task_code, site_initials, validate_invoice_link,
                                  validate_progress_update, validate_quick_update, validate_remark,
                                  validate_task, validate_task_filter, validate_task_update)

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 50
APPROVAL_PRIORITIES = (TaskPriority.HIGH, TaskPriority.CRITICAL)
CLOSED_STATUSES = (TaskStatus.COMPLETED, TaskStatus.CANCELLED)
# Task fields a patch may not null out
NON_NULLABLE_FIELDS = {"name", "description", "category", "status", "progress", "manpower", "priority",
                       "billable", "attachments"}


class TaskWorkflowService:
    def __init__(self, task_repo: TaskRepository, update_repo: TaskUpdateRepository,
                 approval_repo: TaskApprovalRepository, invoice_link_repo: TaskInvoiceLinkRepository,
                 invoice_repo: InvoiceRepository, employee_repo: EmployeeRepository, site_repo: SiteRepository,
                 audit_logger: AuditTrailLogger):
        self.task_repo = task_repo
        self.update_repo = update_repo
        self.approval_repo = approval_repo
        self.invoice_link_repo = invoice_link_repo
        self.invoice_repo = invoice_repo
        self.employee_repo = employee_repo
        self.site_repo = site_repo
        self.audit_logger = audit_logger

    async def _audit(self, event_type: AuditEventType, entity_type: AuditEntityType, entity_id: str,
                     actor_id: str, action: str, **kwargs) -> None:
        # The domain write has already happened; an audit failure must not undo it.
        try:
            await self.audit_logger.log_event(event_type, entity_type, entity_id, actor_id, action, **kwargs)
        except Exception:
            logger.exception("audit_log_failed event=%s entity_id=%s", event_type.value, entity_id)

    async def _require_task(self, task_id: str) -> Task:
        task = await self.task_repo.get_task_by_id(task_id)
        if not task:
            raise NotFoundError("Task", task_id)
        return task

    # --- Mutations ---

    async def create_task(self, data: TaskCreate, actor_name: Optional[str] = None) -> Task:
        site = await self.site_repo.get_site_by_id(data.site_id)
        if not site:
            raise NotFoundError("Site", data.site_id)

        initials = site_initials(site.name)
        provisional_sequence = await self.task_repo.count_tasks_for_site(site.id) + 1
        task = Task(**data.model_dump(), code=generate_task_code(initials, provisional_sequence))
        if task.progress == 100:
            task.status = TaskStatus.COMPLETED
            task.actual_completion_date = task.actual_completion_date or utcnow()
        validate_task(task).raise_if_invalid()

        # Only a valid task consumes a sequence number
        task.code = generate_task_code(initials, await self.site_repo.next_task_sequence(site.id))
        created = await self.task_repo.create_task(task)
        logger.info("task_created task_id=%s code=%s site_id=%s", created.id, created.code, site.id)
        await self._audit(
            AuditEventType.TASK_CREATED, AuditEntityType.TASK, created.id, data.created_by, "CREATE",
            user_name=actor_name, site_id=created.site_id,
            new_values=created.model_dump(mode="json", include={"code", "name", "status", "priority", "billable",
                                                                "budget_amount"}),
        )

        if created.billable or created.priority in APPROVAL_PRIORITIES:
            await self._create_approval_workflow(created, data.created_by, actor_name)
        return created

    async def _create_approval_workflow(self, task: Task, actor_id: str,
                                        actor_name: Optional[str] = None) -> List[TaskApproval]:
        approvals = []
        for level in APPROVAL_LEVEL_ORDER:
            approvals.append(await self.approval_repo.create_task_approval(TaskApproval(task_id=task.id, level=level)))
        logger.info("approval_workflow_created task_id=%s levels=%s", task.id, len(approvals))
        await self._audit(
            AuditEventType.APPROVAL_REQUESTED, AuditEntityType.TASK, task.id, actor_id, "WORKFLOW_CREATED",
            user_name=actor_name, site_id=task.site_id,
            new_values={"levels": [level.value for level in APPROVAL_LEVEL_ORDER]},
        )
        return approvals

    async def update_task(self, task_id: str, patch: TaskPatch, actor_id: str,
                          actor_name: Optional[str] = None) -> Task:
        task = await self._require_task(task_id)
        changes = patch.changes()
        nulled = sorted(key for key, value in changes.items() if value is None and key in NON_NULLABLE_FIELDS)
        if nulled:
            raise ValidationError({key: [f"{key} cannot be null"] for key in nulled})

        candidate = task.model_copy(update=changes)
        if candidate.progress == 100:
            candidate.status = TaskStatus.COMPLETED
            if candidate.actual_completion_date is None:
                candidate.actual_completion_date = utcnow()
        candidate.updated_at = utcnow()
        validate_task(candidate).raise_if_invalid()

        old_dump = task.model_dump(mode="json")
        new_dump = candidate.model_dump(mode="json")
        changed_keys = [key for key in new_dump if key != "updated_at" and new_dump[key] != old_dump[key]]

        updated = await self.task_repo.update_task(task_id, candidate)
        logger.info("task_updated task_id=%s fields=%s", task_id, ",".join(changed_keys))
        await self._audit(
            AuditEventType.TASK_UPDATED, AuditEntityType.TASK, task_id, actor_id, "UPDATE",
            user_name=actor_name, site_id=task.site_id,
            old_values={key: old_dump[key] for key in changed_keys},
            new_values={key: new_dump[key] for key in changed_keys},
        )
        return updated

    async def add_task_update(self, data: TaskUpdateCreate, actor_name: Optional[str] = None) -> TaskUpdate:
        task = await self._require_task(data.task_id)
        progress_check = validate_progress_update(task.progress, data.progress_delta)
        if not progress_check.is_valid:
            raise StateConflictError(progress_check.errors)

        now = utcnow()
        progress_after = clamp_progress(task.progress + data.progress_delta)
        update = TaskUpdate(
            **data.model_dump(exclude={"timestamp"}),
            timestamp=data.timestamp or now,
            progress_after=progress_after,
        )
        validate_task_update(update).raise_if_invalid()
        created = await self.update_repo.create_task_update(update)

        progress_before = task.progress
        task.progress = progress_after
        if data.status_change is not None:
            task.status = data.status_change
        if progress_after == 100:
            task.status = TaskStatus.COMPLETED
            task.actual_completion_date = now
        task.updated_at = now
        await self.task_repo.update_task(task.id, task)

        logger.info("task_progress_recorded task_id=%s progress=%s->%s", task.id, progress_before, progress_after)
        await self._audit(
            AuditEventType.TASK_UPDATE_CREATED, AuditEntityType.TASK_UPDATE, created.id, data.entered_by_id,
            "CREATE", user_name=actor_name, site_id=task.site_id,
            old_values={"progress": progress_before},
            new_values={"progress": progress_after, "status": task.status.value},
            metadata={"task_id": task.id, "progress_delta": data.progress_delta},
        )
        return created

    async def add_quick_update(self, task_id: str, data: QuickUpdateRequest, actor_id: str,
                               actor_name: Optional[str] = None) -> TaskUpdate:
        """Record a site-log style entry: today at HH:MM, free-text description."""
        validate_quick_update(data).raise_if_invalid()
        hour, minute = (int(part) for part in data.time.split(":"))
        timestamp = utcnow().replace(hour=hour, minute=minute, second=0, microsecond=0)
        update = TaskUpdateCreate(
            task_id=task_id,
            entered_by_id=actor_id,
            progress_delta=data.progress_delta,
            note=data.work_description,
            timestamp=timestamp,
            manpower=data.manpower,
            location=data.location,
            executed_by_id=data.executed_by,
            attachments=data.attachments,
            issues=data.issues,
        )
        return await self.add_task_update(update, actor_name=actor_name)

    async def request_approval(self, task_id: str, actor_id: str,
                               actor_name: Optional[str] = None) -> List[TaskApproval]:
        task = await self._require_task(task_id)
        if await self.approval_repo.list_task_approvals(task_id):
            raise StateConflictError({"approvals": ["Approval workflow already exists for this task"]})
        return await self._create_approval_workflow(task, actor_id, actor_name)

    async def approve_task(self, task_id: str, level: ApprovalLevel, decision: ApprovalStatus, actor_id: str,
                           remark: Optional[str] = None, actor_name: Optional[str] = None) -> TaskApproval:
        if decision not in (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED):
            raise ValidationError({"decision": ["Decision must be APPROVED or REJECTED"]})
        validate_remark(remark).raise_if_invalid()

        approval = await self.approval_repo.get_task_approval(task_id, level)
        if not approval:
            raise NotFoundError("Approval record", f"{task_id}/{level.value}")

        previous_status = approval.status
        approval.status = decision
        approval.approved_by_id = actor_id
        approval.approved_at = utcnow()
        approval.remark = remark
        updated = await self.approval_repo.update_task_approval(approval.id, approval)

        task = await self.task_repo.get_task_by_id(task_id)
        logger.info("approval_decided task_id=%s level=%s decision=%s", task_id, level.value, decision.value)
        approved = decision == ApprovalStatus.APPROVED
        await self._audit(
            AuditEventType.APPROVAL_APPROVED if approved else AuditEventType.APPROVAL_REJECTED,
            AuditEntityType.APPROVAL, approval.id, actor_id, "APPROVE" if approved else "REJECT",
            user_name=actor_name, site_id=task.site_id if task else None,
            old_values={"status": previous_status.value},
            new_values={"status": decision.value, "remark": remark},
            metadata={"task_id": task_id, "level": level.value},
        )
        return updated

    async def link_task_to_invoice(self, task_id: str, invoice_id: str, amount_billed: float, actor_id: str,
                                   actor_name: Optional[str] = None) -> TaskInvoiceLink:
        task = await self._require_task(task_id)
        invoice = await self.invoice_repo.get_invoice_by_id(invoice_id)
        if not invoice:
            raise NotFoundError("Invoice", invoice_id)

        link = TaskInvoiceLink(
            task_id=task_id,
            invoice_id=invoice_id,
            amount_billed=amount_billed,
            amount_paid=invoice.paid,
            balance=amount_billed - invoice.paid,
        )
        validate_invoice_link(link).raise_if_invalid()
        created = await self.invoice_link_repo.create_task_invoice_link(link)

        previous_cost = task.cost_to_date
        task.cost_to_date = previous_cost + amount_billed
        task.updated_at = utcnow()
        await self.task_repo.update_task(task_id, task)

        logger.info("task_linked_to_invoice task_id=%s invoice_id=%s amount=%s", task_id, invoice_id, amount_billed)
        await self._audit(
            AuditEventType.INVOICE_LINKED, AuditEntityType.INVOICE_LINK, created.id, actor_id, "CREATE",
            user_name=actor_name, site_id=task.site_id,
            old_values={"cost_to_date": previous_cost},
            new_values={"cost_to_date": task.cost_to_date, "amount_billed": created.amount_billed,
                        "amount_paid": created.amount_paid, "balance": created.balance},
            metadata={"task_id": task_id, "invoice_id": invoice_id},
        )
        return created

    async def _set_archived(self, task_id: str, archived: bool, actor_id: str,
                            actor_name: Optional[str] = None) -> Task:
        task = await self._require_task(task_id)
        task.archived = archived
        task.updated_at = utcnow()
        updated = await self.task_repo.update_task(task_id, task)
        logger.info("task_archive_toggled task_id=%s archived=%s", task_id, archived)
        await self._audit(
            AuditEventType.TASK_ARCHIVED if archived else AuditEventType.TASK_RESTORED,
            AuditEntityType.TASK, task_id, actor_id, "ARCHIVE" if archived else "RESTORE",
            user_name=actor_name, site_id=task.site_id,
            old_values={"archived": not archived}, new_values={"archived": archived},
        )
        return updated

    async def archive_task(self, task_id: str, actor_id: str, actor_name: Optional[str] = None) -> Task:
        return await self._set_archived(task_id, True, actor_id, actor_name)

    async def restore_task(self, task_id: str, actor_id: str, actor_name: Optional[str] = None) -> Task:
        return await self._set_archived(task_id, False, actor_id, actor_name)

    async def bulk_update_task_status(self, task_ids: Sequence[str], status: TaskStatus, actor_id: str,
                                      actor_name: Optional[str] = None) -> List[Task]:
        """Applied one task at a time; stops at the first failure without undoing earlier tasks."""
        return [await self.update_task(task_id, TaskPatch(status=status), actor_id, actor_name)
                for task_id in task_ids]

    async def bulk_archive_tasks(self, task_ids: Sequence[str], actor_id: str,
                                 actor_name: Optional[str] = None) -> List[Task]:
        return [await self.archive_task(task_id, actor_id, actor_name) for task_id in task_ids]

    # --- Queries ---

    async def get_task(self, task_id: str) -> Task:
        return await self._require_task(task_id)

    async def get_tasks_by_site(self, site_id: str, task_filter: Optional[TaskFilter] = None,
                                include_archived: bool = False) -> List[Task]:
        task_filter = task_filter or TaskFilter()
        validate_task_filter(task_filter).raise_if_invalid()
        tasks = await self.task_repo.list_tasks(
            site_ids=[site_id],
            include_archived=include_archived,
            statuses=task_filter.status,
            categories=task_filter.category,
            priorities=task_filter.priority,
            billable=task_filter.billable,
        )
        now = utcnow()
        if task_filter.assignee:
            tasks = [t for t in tasks if t.executor_id in task_filter.assignee or t.supervisor_id in task_filter.assignee]
        if task_filter.overdue is not None:
            tasks = [t for t in tasks if t.is_overdue(now) == task_filter.overdue]
        if task_filter.date_from:
            tasks = [t for t in tasks if t.created_at >= task_filter.date_from]
        if task_filter.date_to:
            tasks = [t for t in tasks if t.created_at <= task_filter.date_to]
        return tasks

    async def search_tasks(self, term: str, site_ids: Optional[Sequence[str]] = None,
                           limit: int = SEARCH_LIMIT) -> List[Task]:
        needle = (term or "").strip().lower()
        if not needle:
            return []
        matches = []
        for task in await self.task_repo.list_tasks(site_ids=site_ids):
            haystack = (task.name, task.description, task.code, task.location or "")
            if any(needle in value.lower() for value in haystack):
                matches.append(task)
                if len(matches) >= limit:
                    break
        return matches

    async def get_overdue_tasks(self, site_ids: Optional[Sequence[str]] = None) -> List[Task]:
        now = utcnow()
        tasks = await self.task_repo.list_tasks(site_ids=site_ids, exclude_statuses=CLOSED_STATUSES)
        overdue = [task for task in tasks if task.is_overdue(now)]
        return sorted(overdue, key=lambda t: t.expected_completion_date)

    async def get_task_statistics(self, site_id: str) -> TaskStatistics:
        tasks = await self.task_repo.list_tasks(site_ids=[site_id])
        if not tasks:
            return TaskStatistics()
        now = utcnow()
        return TaskStatistics(
            total=len(tasks),
            completed=sum(1 for t in tasks if t.status == TaskStatus.COMPLETED),
            in_progress=sum(1 for t in tasks if t.status == TaskStatus.IN_PROGRESS),
            overdue=sum(1 for t in tasks if t.is_overdue(now)),
            average_progress=round(sum(t.progress for t in tasks) / len(tasks)),
            total_budget=sum(t.budget_amount or 0.0 for t in tasks),
            total_cost=sum(t.cost_to_date for t in tasks),
        )

    async def get_task_timeline(self, site_id: str) -> List[TimelineEntry]:
        tasks = await self.task_repo.list_tasks(site_ids=[site_id])
        scheduled = [t for t in tasks if t.start_date and t.expected_completion_date]
        return [
            TimelineEntry(task=t, start_date=t.start_date, end_date=t.expected_completion_date, progress=t.progress)
            for t in sorted(scheduled, key=lambda t: t.start_date)
        ]

    async def get_task_with_details(self, task_id: str) -> TaskDetails:
        task = await self._require_task(task_id)
        employees: Dict[str, Any] = {}
        for employee_id in {task.executor_id, task.supervisor_id, task.approver_id} - {None}:
            employees[employee_id] = await self.employee_repo.get_employee_by_id(employee_id)
        return TaskDetails(
            task=task,
            updates=await self.update_repo.list_task_updates(task_id),
            approvals=await self.approval_repo.list_task_approvals(task_id),
            invoice_links=await self.invoice_link_repo.list_task_invoice_links(task_id),
            executor=employees.get(task.executor_id),
            supervisor=employees.get(task.supervisor_id),
            approver=employees.get(task.approver_id),
        )

    async def get_task_updates(self, task_id: str) -> List[TaskUpdate]:
        await self._require_task(task_id)
        return await self.update_repo.list_task_updates(task_id)

    async def get_task_approvals(self, task_id: str) -> List[TaskApproval]:
        await self._require_task(task_id)
        return await self.approval_repo.list_task_approvals(task_id)

    async def get_task_invoice_links(self, task_id: str) -> List[TaskInvoiceLink]:
        await self._require_task(task_id)
        return await self.invoice_link_repo.list_task_invoice_links(task_id)

    async def get_tasks_pending_approval(self, level: ApprovalLevel,
                                         site_ids: Optional[Sequence[str]] = None) -> List[Task]:
        tasks = []
        for approval in await self.approval_repo.list_approvals(level=level, status=ApprovalStatus.PENDING):
            task = await self.task_repo.get_task_by_id(approval.task_id)
            if task is None or task.archived:
                continue
            if site_ids and task.site_id not in site_ids:
                continue
            tasks.append(task)
        return sorted(tasks, key=lambda t: t.created_at, reverse=True)
