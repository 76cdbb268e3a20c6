"""
SQLAlchemy ORM tables for the local fallback store.

Tables mirror the remote store:
    orders: one row per order, details and tasks as JSON documents
    departments: keyed by name
    agents: keyed by name, belongs to exactly one department
    pending_writes: local-only writes waiting to be replayed to the remote store
"""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class OrderRow(Base):
    __tablename__ = "orders"

    id = Column(String(64), primary_key=True)
    title = Column(Text, nullable=False)
    type = Column(String(64), nullable=False)
    status = Column(String(16), nullable=False, default="unassigned", index=True)
    priority = Column(String(16), nullable=False, default="medium", index=True)
    details = Column(JSON, nullable=False, default=dict)
    tasks = Column(JSON, nullable=False, default=list)
    assigned_to = Column(String(100), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<OrderRow id={self.id!r} status={self.status!r}>"


class DepartmentRow(Base):
    __tablename__ = "departments"

    name = Column(String(100), primary_key=True)

    def __repr__(self) -> str:
        return f"<DepartmentRow name={self.name!r}>"


class AgentRow(Base):
    __tablename__ = "agents"

    name = Column(String(100), primary_key=True)
    # No ON DELETE cascade: agent removal on department delete is explicit.
    department_name = Column(String(100), ForeignKey("departments.name"), nullable=False, index=True)
    email = Column(String(200), nullable=False, default="")
    extension = Column(String(20), nullable=False, default="")
    completed_orders = Column(Integer, nullable=False, default=0)
    total_orders = Column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<AgentRow name={self.name!r} department={self.department_name!r}>"


class PendingWriteRow(Base):
    __tablename__ = "pending_writes"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    operation = Column(String(32), nullable=False)
    order_id = Column(String(64), nullable=True, index=True)
    args = Column(JSON, nullable=False, default=list)
    queued_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<PendingWriteRow seq={self.seq!r} operation={self.operation!r}>"
