"""Order and Task Models.

Orders (tickets) move through unassigned -> in-progress -> completed and carry
an ordered checklist of tasks. Order rows are stored snake_case; the ``details``
and ``tasks`` JSON documents keep the camelCase keys the dashboard has always
written (``customerName``, ``ticketNumber``, ``completedAt``).
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    """Timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def new_order_id() -> str:
    return f"order-{uuid.uuid4().hex[:12]}"


def new_task_id() -> str:
    return f"task-{uuid.uuid4().hex[:8]}"


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything we write is UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class OrderStatus(str, Enum):
    """Order status lifecycle."""

    UNASSIGNED = "unassigned"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class Priority(str, Enum):
    """Order priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Task(BaseModel):
    """Single checklist item of an order."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=new_task_id)
    label: str
    completed: bool = False
    completed_at: Optional[datetime] = None

    @field_validator("completed_at")
    @classmethod
    def _completed_at_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    @model_validator(mode="after")
    def _clear_stale_timestamp(self) -> "Task":
        if not self.completed:
            self.completed_at = None
        return self

    def toggled(self, now: datetime) -> "Task":
        """Return a copy with the completed flag flipped."""
        if self.completed:
            return self.model_copy(update={"completed": False, "completed_at": None})
        return self.model_copy(update={"completed": True, "completed_at": now})


class OrderDetails(BaseModel):
    """
    Customer-facing order details.

    Unknown keys are kept so a partial update never drops fields that another
    client wrote into the JSON document.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    customer_name: str = ""
    ticket_number: str = ""
    invoice_number: Optional[str] = None
    note: Optional[str] = None

    @field_validator("customer_name", "ticket_number", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    def merged(self, partial: dict[str, Any]) -> "OrderDetails":
        """
        Merge a partial update into a new details object.

        Args:
            partial: Keys in either snake_case or camelCase

        Returns:
            New OrderDetails
        """
        aliases = {
            name: field.alias or name for name, field in type(self).model_fields.items()
        }
        data = self.model_dump(by_alias=True)
        for key, value in partial.items():
            data[aliases.get(key, key)] = value
        return type(self).model_validate(data)


class Order(BaseModel):
    """
    Support order (ticket).

    Lifecycle invariants (checklist orders):
        status == completed  <=>  every task completed  <=>  completed_at set
        status == in-progress =>  assigned_to set
        status == unassigned  =>  assigned_to absent
    """

    model_config = ConfigDict(use_enum_values=True)

    id: str = Field(default_factory=new_order_id)
    title: str
    type: str = Field(..., description="Order category name, e.g. 'Repair'")
    status: OrderStatus = Field(default=OrderStatus.UNASSIGNED)
    priority: Priority = Field(default=Priority.MEDIUM)
    assigned_to: Optional[str] = Field(None, description="Agent name")
    details: OrderDetails = Field(default_factory=OrderDetails)
    tasks: list[Task] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @field_validator("assigned_to", mode="before")
    @classmethod
    def _blank_assignee_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("details", mode="before")
    @classmethod
    def _details_default(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("tasks", mode="before")
    @classmethod
    def _tasks_default(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("created_at", "completed_at")
    @classmethod
    def _timestamps_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    @property
    def customer_name(self) -> str:
        return self.details.customer_name

    @property
    def ticket_number(self) -> str:
        return self.details.ticket_number

    def task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def all_tasks_completed(self) -> bool:
        """True when the checklist is non-empty and every task is done."""
        return bool(self.tasks) and all(task.completed for task in self.tasks)

    def lifecycle_violations(self) -> list[str]:
        """List broken lifecycle invariants (empty list means consistent)."""
        problems = []
        completed = self.status == OrderStatus.COMPLETED

        if self.tasks and completed != self.all_tasks_completed():
            problems.append("status/tasks mismatch")
        if completed != (self.completed_at is not None):
            problems.append("status/completed_at mismatch")
        if self.status == OrderStatus.IN_PROGRESS and not self.assigned_to:
            problems.append("in-progress without assignee")
        if self.status == OrderStatus.UNASSIGNED and self.assigned_to:
            problems.append("unassigned with assignee")
        for task in self.tasks:
            if task.completed != (task.completed_at is not None):
                problems.append(f"task {task.id} completed_at mismatch")
        return problems

    def to_row(self) -> dict[str, Any]:
        """Serialize to the ``orders`` table row shape."""
        return self.model_dump(mode="json", by_alias=True)
