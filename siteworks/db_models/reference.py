import uuid

from sqlalchemy import Boolean, Column, DateTime, Enum as SQLAlchemyEnum, Float, String
from sqlalchemy.orm import relationship

from siteworks.db_models.base import Base
from siteworks.db_models.enums import InvoiceStatus


# Records owned by other modules of the site-management system. The workflow
# engine only reads them.

class Site(Base):
    __tablename__ = "sites"

    id = Column(String, primary_key=True, index=True, default=lambda: "site_" + str(uuid.uuid4())[:8])
    name = Column(String, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    tasks = relationship("Task", back_populates="site")


class Employee(Base):
    __tablename__ = "employees"

    id = Column(String, primary_key=True, index=True, default=lambda: "emp_" + str(uuid.uuid4())[:8])
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    position = Column(String, nullable=False, default="")
    email = Column(String, nullable=True)


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(String, primary_key=True, index=True, default=lambda: "inv_" + str(uuid.uuid4())[:8])
    client_id = Column(String, nullable=False)
    site_id = Column(String, nullable=False, index=True)
    title = Column(String(200), nullable=False)
    total = Column(Float, nullable=False, default=0.0)
    paid = Column(Float, nullable=False, default=0.0)
    balance = Column(Float, nullable=False, default=0.0)
    currency = Column(String, nullable=False, default="LYD")
    due_date = Column(DateTime, nullable=True)
    status = Column(SQLAlchemyEnum(InvoiceStatus), nullable=False, default=InvoiceStatus.DRAFT)
    created_by = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)
