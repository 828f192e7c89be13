# audit.py
import logging
from collections import Counter
from datetime import timedelta
from typing import Any, Dict, List, Optional

from siteworks.config import AUDIT_MAX_EVENTS, AUDIT_RETENTION_DAYS
from siteworks.db_models.enums import AuditEntityType, AuditEventType
from siteworks.exceptions import ValidationError
from siteworks.models import AuditEvent, AuditEventFilter, AuditExport, AuditSummary, utcnow
from siteworks.repository import AuditEventRepository

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_LIMIT = 20


class AuditTrailLogger:
    """Append-only record of state-changing actions.

    Writes go through `log_event`, which appends and then compacts the log down
    to the newest `max_events` entries. Reads are always newest-first.
    """

    def __init__(self, repository: AuditEventRepository, max_events: int = AUDIT_MAX_EVENTS,
                 retention_days: int = AUDIT_RETENTION_DAYS):
        self.repository = repository
        self.max_events = max_events
        self.retention_days = retention_days

    async def log_event(self, event_type: AuditEventType, entity_type: AuditEntityType, entity_id: str,
                        user_id: str, action: str, user_name: Optional[str] = None,
                        site_id: Optional[str] = None, old_values: Optional[Dict[str, Any]] = None,
                        new_values: Optional[Dict[str, Any]] = None,
                        metadata: Optional[Dict[str, Any]] = None) -> AuditEvent:
        errors: Dict[str, List[str]] = {}
        try:
            event_type = AuditEventType(event_type)
        except ValueError:
            errors["event_type"] = [f"Unknown audit event type: {event_type}"]
        try:
            entity_type = AuditEntityType(entity_type)
        except ValueError:
            errors["entity_type"] = [f"Unknown audit entity type: {entity_type}"]
        for field_name, value in (("entity_id", entity_id), ("user_id", user_id), ("action", action)):
            if not value or not str(value).strip():
                errors[field_name] = [f"{field_name} is required"]
        if errors:
            raise ValidationError(errors)

        event = AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            user_name=user_name,
            site_id=site_id,
            action=action,
            old_values=old_values,
            new_values=new_values,
            metadata=metadata,
        )
        stored = await self.repository.append_event(event)
        await self._compact()
        logger.debug("audit_event_logged type=%s entity=%s:%s", event_type.value, entity_type.value, entity_id)
        return stored

    async def _compact(self) -> None:
        total = await self.repository.count_events()
        if total > self.max_events:
            removed = await self.repository.delete_oldest_events(total - self.max_events)
            logger.info("audit_log_compacted removed=%s max_events=%s", removed, self.max_events)

    async def get_events(self, event_filter: Optional[AuditEventFilter] = None) -> List[AuditEvent]:
        return await self.repository.list_events(event_filter)

    async def get_entity_audit_trail(self, entity_type: AuditEntityType, entity_id: str) -> List[AuditEvent]:
        return await self.repository.list_events(AuditEventFilter(entity_type=entity_type, entity_id=entity_id))

    async def get_recent_activity(self, limit: int = RECENT_ACTIVITY_LIMIT) -> List[AuditEvent]:
        return await self.repository.list_events(AuditEventFilter(limit=limit))

    async def get_user_activity(self, user_id: str, limit: Optional[int] = None) -> List[AuditEvent]:
        return await self.repository.list_events(AuditEventFilter(user_id=user_id, limit=limit))

    async def get_site_activity(self, site_id: str, limit: Optional[int] = None) -> List[AuditEvent]:
        return await self.repository.list_events(AuditEventFilter(site_id=site_id, limit=limit))

    async def export_audit_trail(self, event_filter: Optional[AuditEventFilter] = None) -> AuditExport:
        events = await self.repository.list_events(event_filter)
        timestamps = [event.timestamp for event in events]
        summary = AuditSummary(
            total_events=len(events),
            date_range_start=min(timestamps) if timestamps else None,
            date_range_end=max(timestamps) if timestamps else None,
            unique_users=len({event.user_id for event in events}),
            unique_sites=len({event.site_id for event in events if event.site_id}),
            event_types=dict(Counter(event.event_type.value for event in events)),
        )
        return AuditExport(events=events, summary=summary)

    async def clear_old_events(self, days_to_keep: Optional[int] = None) -> int:
        """Purge events older than the retention window. Returns how many were removed."""
        days = self.retention_days if days_to_keep is None else days_to_keep
        cutoff = utcnow() - timedelta(days=days)
        removed = await self.repository.delete_events_before(cutoff)
        logger.info("audit_events_purged removed=%s days_to_keep=%s", removed, days)
        return removed
