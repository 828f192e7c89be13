from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from siteworks.audit import RECENT_ACTIVITY_LIMIT, AuditTrailLogger
from siteworks.core.security import AuthenticatedUser, get_current_active_user
from siteworks.db_models.enums import AuditEntityType, AuditEventType
from siteworks.dependencies import get_audit_logger
from siteworks.models import AuditEvent, AuditEventFilter, AuditExport

router = APIRouter(prefix="/api/audit", tags=["audit"])


def audit_event_filter(
        entity_type: Optional[AuditEntityType] = None,
        entity_id: Optional[str] = None,
        user_id: Optional[str] = None,
        site_id: Optional[str] = None,
        event_type: Optional[AuditEventType] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: Optional[int] = Query(None, ge=1),
) -> AuditEventFilter:
    return AuditEventFilter(entity_type=entity_type, entity_id=entity_id, user_id=user_id, site_id=site_id,
                            event_type=event_type, start_date=start_date, end_date=end_date, limit=limit)


@router.get("/events", response_model=List[AuditEvent])
async def list_audit_events(
        event_filter: AuditEventFilter = Depends(audit_event_filter),
        audit_logger: AuditTrailLogger = Depends(get_audit_logger),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    return await audit_logger.get_events(event_filter)


@router.get("/export", response_model=AuditExport)
async def export_audit_trail(
        event_filter: AuditEventFilter = Depends(audit_event_filter),
        audit_logger: AuditTrailLogger = Depends(get_audit_logger),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    return await audit_logger.export_audit_trail(event_filter)


@router.get("/recent", response_model=List[AuditEvent])
async def recent_activity(
        limit: int = Query(RECENT_ACTIVITY_LIMIT, ge=1),
        audit_logger: AuditTrailLogger = Depends(get_audit_logger),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    return await audit_logger.get_recent_activity(limit)


@router.get("/users/{user_id}", response_model=List[AuditEvent])
async def user_activity(
        user_id: str,
        limit: Optional[int] = Query(None, ge=1),
        audit_logger: AuditTrailLogger = Depends(get_audit_logger),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    return await audit_logger.get_user_activity(user_id, limit)


@router.get("/sites/{site_id}", response_model=List[AuditEvent])
async def site_activity(
        site_id: str,
        limit: Optional[int] = Query(None, ge=1),
        audit_logger: AuditTrailLogger = Depends(get_audit_logger),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    return await audit_logger.get_site_activity(site_id, limit)


@router.get("/{entity_type}/{entity_id}", response_model=List[AuditEvent])
async def entity_audit_trail(
        entity_type: AuditEntityType,
        entity_id: str,
        audit_logger: AuditTrailLogger = Depends(get_audit_logger),
        current_user: AuthenticatedUser = Depends(get_current_active_user)
):
    return await audit_logger.get_entity_audit_trail(entity_type, entity_id)
