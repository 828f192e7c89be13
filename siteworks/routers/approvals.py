from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from siteworks.core.security import AuthenticatedUser, get_current_active_user
from siteworks.db_models.enums import ApprovalLevel
from siteworks.dependencies import get_task_service
from siteworks.models import ApprovalDecisionRequest, Task, TaskApproval
from siteworks.services import TaskWorkflowService

router = APIRouter(prefix="/api", tags=["approvals"])


@router.get("/tasks/{task_id}/approvals", response_model=List[TaskApproval])
async def list_task_approvals(
        task_id: str,
        service: TaskWorkflowService = Depends(get_task_service),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    return await service.get_task_approvals(task_id)


@router.post("/tasks/{task_id}/request-approval", response_model=List[TaskApproval],
             status_code=status.HTTP_201_CREATED)
async def request_approval(
        task_id: str,
        service: TaskWorkflowService = Depends(get_task_service),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    """Start the three-level approval workflow for a task that did not get one at creation."""
    return await service.request_approval(task_id, current_user.user_id, actor_name=current_user.username)


@router.post("/tasks/{task_id}/approvals/{level}", response_model=TaskApproval)
async def decide_approval(
        task_id: str,
        level: ApprovalLevel,
        decision: ApprovalDecisionRequest,
        service: TaskWorkflowService = Depends(get_task_service),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    return await service.approve_task(task_id, level, decision.decision, current_user.user_id,
                                      remark=decision.remark, actor_name=current_user.username)


@router.get("/approvals/pending", response_model=List[Task])
async def tasks_pending_approval(
        level: ApprovalLevel,
        site_id: Optional[List[str]] = Query(None),
        service: TaskWorkflowService = Depends(get_task_service),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    return await service.get_tasks_pending_approval(level, site_ids=site_id)
