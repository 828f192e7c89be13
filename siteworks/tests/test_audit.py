import os
import sys
from datetime import timedelta

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '../..')))
from siteworks.audit import AuditTrailLogger
from siteworks.db_models.enums import AuditEntityType, AuditEventType
from siteworks.exceptions import ValidationError
from siteworks.models import AuditEvent, AuditEventFilter, utcnow
from siteworks.repository import InMemoryAuditEventRepository


@pytest.fixture
def audit_repository():
    return InMemoryAuditEventRepository()


@pytest.fixture
def audit_logger(audit_repository):
    return AuditTrailLogger(audit_repository, max_events=3, retention_days=90)


@pytest.mark.asyncio
async def test_log_event_stores_event(audit_logger):
    # Act
    event = await audit_logger.log_event(AuditEventType.TASK_CREATED, AuditEntityType.TASK, "task_1", "user_1",
                                         "CREATE", user_name="Salem", site_id="site_1",
                                         new_values={"code": "TT-TASK-0001"})

    # Assert
    assert event.id.startswith("audit_")
    trail = await audit_logger.get_entity_audit_trail(AuditEntityType.TASK, "task_1")
    assert [e.id for e in trail] == [event.id]
    assert trail[0].new_values == {"code": "TT-TASK-0001"}


@pytest.mark.asyncio
async def test_log_event_validates_shape(audit_logger, audit_repository):
    with pytest.raises(ValidationError) as exc_info:
        await audit_logger.log_event(AuditEventType.TASK_CREATED, AuditEntityType.TASK, "task_1", "", "")

    assert set(exc_info.value.errors) == {"user_id", "action"}
    assert await audit_repository.count_events() == 0


@pytest.mark.asyncio
async def test_log_event_rejects_unknown_event_type(audit_logger):
    with pytest.raises(ValidationError) as exc_info:
        await audit_logger.log_event("TASK_EXPLODED", AuditEntityType.TASK, "task_1", "user_1", "CREATE")

    assert "event_type" in exc_info.value.errors


@pytest.mark.asyncio
async def test_log_is_capped_to_newest_events(audit_logger, audit_repository):
    for i in range(5):
        await audit_logger.log_event(AuditEventType.TASK_UPDATED, AuditEntityType.TASK, f"task_{i}", "user_1",
                                     "UPDATE")

    events = await audit_logger.get_events()

    assert await audit_repository.count_events() == 3
    assert [e.entity_id for e in events] == ["task_4", "task_3", "task_2"]


@pytest.mark.asyncio
async def test_clear_old_events_purges_outside_retention(audit_logger, audit_repository):
    now = utcnow()
    await audit_repository.append_event(AuditEvent(event_type=AuditEventType.TASK_CREATED,
                                                   entity_type=AuditEntityType.TASK, entity_id="old", user_id="u1",
                                                   action="CREATE", timestamp=now - timedelta(days=120)))
    await audit_repository.append_event(AuditEvent(event_type=AuditEventType.TASK_CREATED,
                                                   entity_type=AuditEntityType.TASK, entity_id="recent",
                                                   user_id="u1", action="CREATE", timestamp=now - timedelta(days=5)))

    removed = await audit_logger.clear_old_events()

    assert removed == 1
    assert [e.entity_id for e in await audit_logger.get_events()] == ["recent"]
    assert await audit_logger.clear_old_events(days_to_keep=1) == 1


@pytest.mark.asyncio
async def test_activity_views(audit_repository):
    audit_logger = AuditTrailLogger(audit_repository)
    await audit_logger.log_event(AuditEventType.TASK_CREATED, AuditEntityType.TASK, "t1", "user_1", "CREATE",
                                 site_id="site_1")
    await audit_logger.log_event(AuditEventType.TASK_ARCHIVED, AuditEntityType.TASK, "t1", "user_2", "ARCHIVE",
                                 site_id="site_1")
    await audit_logger.log_event(AuditEventType.TASK_CREATED, AuditEntityType.TASK, "t2", "user_1", "CREATE",
                                 site_id="site_2")

    assert len(await audit_logger.get_recent_activity(limit=2)) == 2
    assert [e.entity_id for e in await audit_logger.get_user_activity("user_1")] == ["t2", "t1"]
    assert [e.action for e in await audit_logger.get_site_activity("site_1")] == ["ARCHIVE", "CREATE"]


@pytest.mark.asyncio
async def test_export_summary(audit_repository):
    audit_logger = AuditTrailLogger(audit_repository)
    await audit_logger.log_event(AuditEventType.TASK_CREATED, AuditEntityType.TASK, "t1", "user_1", "CREATE",
                                 site_id="site_1")
    await audit_logger.log_event(AuditEventType.TASK_CREATED, AuditEntityType.TASK, "t2", "user_2", "CREATE",
                                 site_id="site_2")
    await audit_logger.log_event(AuditEventType.INVOICE_LINKED, AuditEntityType.INVOICE_LINK, "til_1", "user_1",
                                 "CREATE")

    export = await audit_logger.export_audit_trail()
    filtered = await audit_logger.export_audit_trail(AuditEventFilter(user_id="user_2"))

    assert export.summary.total_events == 3
    assert export.summary.unique_users == 2
    assert export.summary.unique_sites == 2
    assert export.summary.event_types == {"TASK_CREATED": 2, "INVOICE_LINKED": 1}
    assert export.summary.date_range_start <= export.summary.date_range_end
    assert filtered.summary.total_events == 1
