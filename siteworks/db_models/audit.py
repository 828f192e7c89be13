from sqlalchemy import Column, DateTime, Enum as SQLAlchemyEnum, Integer, JSON, String

from siteworks.db_models.base import Base
from siteworks.db_models.enums import AuditEntityType, AuditEventType


class AuditEvent(Base):
    __tablename__ = "audit_events"

    # Insertion order breaks ties between events sharing a timestamp
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, unique=True, index=True, nullable=False)
    event_type = Column(SQLAlchemyEnum(AuditEventType), nullable=False, index=True)
    entity_type = Column(SQLAlchemyEnum(AuditEntityType), nullable=False)
    entity_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    user_name = Column(String, nullable=True)
    site_id = Column(String, nullable=True, index=True)
    action = Column(String, nullable=False)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSON, nullable=True)
    timestamp = Column(DateTime, nullable=False, index=True)
