from typing import Union

from fastapi import Depends

from siteworks.audit import AuditTrailLogger
from siteworks.config import REPOSITORY_BACKEND
from siteworks.database import get_db
from siteworks.repository import (AuditEventRepository, InMemoryAuditEventRepository, InMemoryTaskRepository,
                                  PostgreSQLAuditEventRepository, PostgreSQLTaskRepository)
from siteworks.services import TaskWorkflowService

# Process-wide stores for REPOSITORY_BACKEND=memory
memory_task_repository = InMemoryTaskRepository()
memory_audit_repository = InMemoryAuditEventRepository()

TaskRepositories = Union[PostgreSQLTaskRepository, InMemoryTaskRepository]


# --- Dependencies ---
def get_task_repository(db=Depends(get_db)) -> TaskRepositories:
    """Provides the object implementing every task-side repository interface."""
    if REPOSITORY_BACKEND == "memory":
        return memory_task_repository
    return PostgreSQLTaskRepository(db)


def get_audit_repository(db=Depends(get_db)) -> AuditEventRepository:
    if REPOSITORY_BACKEND == "memory":
        return memory_audit_repository
    return PostgreSQLAuditEventRepository(db)


def get_audit_logger(repository: AuditEventRepository = Depends(get_audit_repository)) -> AuditTrailLogger:
    return AuditTrailLogger(repository)


def get_task_service(
        repo: TaskRepositories = Depends(get_task_repository),
        audit_logger: AuditTrailLogger = Depends(get_audit_logger),
) -> TaskWorkflowService:
    """Provides an instance of the TaskWorkflowService, injecting the repositories."""
    return TaskWorkflowService(
        task_repo=repo,
        update_repo=repo,
        approval_repo=repo,
        invoice_link_repo=repo,
        invoice_repo=repo,
        employee_repo=repo,
        site_repo=repo,
        audit_logger=audit_logger,
    )
