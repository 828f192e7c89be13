from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from siteworks.core.security import AuthenticatedUser, get_current_active_user
from siteworks.db_models.enums import TaskCategory, TaskPriority, TaskStatus
from siteworks.dependencies import get_task_service
from siteworks.models import (BulkArchiveRequest, BulkStatusRequest, InvoiceLinkRequest, QuickUpdateRequest, Task,
                              TaskCreate, TaskCreateRequest, TaskDetails, TaskFilter, TaskInvoiceLink, TaskPatch,
                              TaskStatistics, TaskUpdate, TaskUpdateCreate, TaskUpdateRequest, TimelineEntry)
from siteworks.services import TaskWorkflowService

router = APIRouter(prefix="/api", tags=["api"])


@router.get("/healthz", status_code=status.HTTP_200_OK)
async def healthcheck():
    """API endpoint for health check."""
    return {"status": "ok"}


# --- Site-scoped task collections ---

@router.post("/sites/{site_id}/tasks", response_model=Task, status_code=status.HTTP_201_CREATED)
async def create_task(
        site_id: str,
        task: TaskCreateRequest,
        service: TaskWorkflowService = Depends(get_task_service),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    """Create a task on a site. The task code is generated from the site name."""
    data = TaskCreate(**task.model_dump(), site_id=site_id, created_by=current_user.user_id)
    return await service.create_task(data, actor_name=current_user.username)


@router.get("/sites/{site_id}/tasks", response_model=List[Task])
async def list_site_tasks(
        site_id: str,
        status_filter: Optional[List[TaskStatus]] = Query(None, alias="status"),
        category: Optional[List[TaskCategory]] = Query(None),
        priority: Optional[List[TaskPriority]] = Query(None),
        assignee: Optional[List[str]] = Query(None),
        billable: Optional[bool] = None,
        overdue: Optional[bool] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        include_archived: bool = False,
        service: TaskWorkflowService = Depends(get_task_service),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    task_filter = TaskFilter(status=status_filter, category=category, priority=priority, assignee=assignee,
                             billable=billable, overdue=overdue, date_from=date_from, date_to=date_to)
    return await service.get_tasks_by_site(site_id, task_filter, include_archived=include_archived)


@router.get("/sites/{site_id}/tasks/statistics", response_model=TaskStatistics)
async def site_task_statistics(
        site_id: str,
        service: TaskWorkflowService = Depends(get_task_service),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    return await service.get_task_statistics(site_id)


@router.get("/sites/{site_id}/tasks/timeline", response_model=List[TimelineEntry])
async def site_task_timeline(
        site_id: str,
        service: TaskWorkflowService = Depends(get_task_service),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    return await service.get_task_timeline(site_id)


# --- Cross-site task queries and bulk operations ---

@router.get("/tasks/search", response_model=List[Task])
async def search_tasks(
        q: str,
        site_id: Optional[List[str]] = Query(None),
        limit: int = Query(50, ge=1, le=200),
        service: TaskWorkflowService = Depends(get_task_service),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    return await service.search_tasks(q, site_ids=site_id, limit=limit)


@router.get("/tasks/overdue", response_model=List[Task])
async def overdue_tasks(
        site_id: Optional[List[str]] = Query(None),
        service: TaskWorkflowService = Depends(get_task_service),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    return await service.get_overdue_tasks(site_ids=site_id)


@router.patch("/tasks/bulk/status", response_model=List[Task])
async def bulk_update_status(
        request: BulkStatusRequest,
        service: TaskWorkflowService = Depends(get_task_service),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    return await service.bulk_update_task_status(request.task_ids, request.status, current_user.user_id,
                                                 actor_name=current_user.username)


@router.post("/tasks/bulk/archive", response_model=List[Task])
async def bulk_archive(
        request: BulkArchiveRequest,
        service: TaskWorkflowService = Depends(get_task_service),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    return await service.bulk_archive_tasks(request.task_ids, current_user.user_id, actor_name=current_user.username)


# --- Single task ---

@router.get("/tasks/{task_id}", response_model=Task)
async def get_task(
        task_id: str,
        service: TaskWorkflowService = Depends(get_task_service),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    return await service.get_task(task_id)


@router.get("/tasks/{task_id}/details", response_model=TaskDetails)
async def get_task_details(
        task_id: str,
        service: TaskWorkflowService = Depends(get_task_service),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    return await service.get_task_with_details(task_id)


@router.patch("/tasks/{task_id}", response_model=Task)
async def update_task(
        task_id: str,
        patch: TaskPatch,
        service: TaskWorkflowService = Depends(get_task_service),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    return await service.update_task(task_id, patch, current_user.user_id, actor_name=current_user.username)


@router.post("/tasks/{task_id}/archive", response_model=Task)
async def archive_task(
        task_id: str,
        service: TaskWorkflowService = Depends(get_task_service),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    return await service.archive_task(task_id, current_user.user_id, actor_name=current_user.username)


@router.post("/tasks/{task_id}/restore", response_model=Task)
async def restore_task(
        task_id: str,
        service: TaskWorkflowService = Depends(get_task_service),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    return await service.restore_task(task_id, current_user.user_id, actor_name=current_user.username)


# --- Progress updates ---

@router.get("/tasks/{task_id}/updates", response_model=List[TaskUpdate])
async def list_task_updates(
        task_id: str,
        service: TaskWorkflowService = Depends(get_task_service),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    return await service.get_task_updates(task_id)


@router.post("/tasks/{task_id}/updates", response_model=TaskUpdate, status_code=status.HTTP_201_CREATED)
async def add_task_update(
        task_id: str,
        update: TaskUpdateRequest,
        service: TaskWorkflowService = Depends(get_task_service),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    data = TaskUpdateCreate(**update.model_dump(), task_id=task_id, entered_by_id=current_user.user_id)
    return await service.add_task_update(data, actor_name=current_user.username)


@router.post("/tasks/{task_id}/quick-updates", response_model=TaskUpdate, status_code=status.HTTP_201_CREATED)
async def add_quick_update(
        task_id: str,
        update: QuickUpdateRequest,
        service: TaskWorkflowService = Depends(get_task_service),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    return await service.add_quick_update(task_id, update, current_user.user_id, actor_name=current_user.username)


# --- Invoice links ---

@router.get("/tasks/{task_id}/invoice-links", response_model=List[TaskInvoiceLink])
async def list_invoice_links(
        task_id: str,
        service: TaskWorkflowService = Depends(get_task_service),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    return await service.get_task_invoice_links(task_id)


@router.post("/tasks/{task_id}/invoice-links", response_model=TaskInvoiceLink, status_code=status.HTTP_201_CREATED)
async def link_invoice(
        task_id: str,
        link: InvoiceLinkRequest,
        service: TaskWorkflowService = Depends(get_task_service),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    return await service.link_task_to_invoice(task_id, link.invoice_id, link.amount_billed, current_user.user_id,
                                              actor_name=current_user.username)
