from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from models.orders import Order, OrderDetails, OrderStatus, Task
from models.results import WriteResult
from models.staff import Agent


ROW = {
    "id": "order-1",
    "title": "No dial tone",
    "type": "Repair",
    "status": "in-progress",
    "priority": "high",
    "assigned_to": "Alice",
    "details": {"customerName": "Acme", "ticketNumber": "T-1", "source": "phone"},
    "tasks": [
        {"id": "t1", "label": "Call", "completed": True, "completedAt": "2024-05-01T10:00:00+00:00"},
        {"id": "t2", "label": "Fix", "completed": False, "completedAt": None},
    ],
    "created_at": "2024-05-01T09:00:00+00:00",
    "completed_at": None,
}


def test_order_from_remote_row():
    order = Order.model_validate(ROW)

    assert order.customer_name == "Acme"
    assert order.ticket_number == "T-1"
    assert order.status == OrderStatus.IN_PROGRESS
    assert order.task("t1").completed_at == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)
    assert order.task("missing") is None
    assert order.lifecycle_violations() == []


def test_to_row_keeps_wire_format():
    row = Order.model_validate(ROW).to_row()

    assert row["assigned_to"] == "Alice"
    assert row["details"]["customerName"] == "Acme"
    assert row["details"]["source"] == "phone"
    assert row["tasks"][0]["completedAt"].startswith("2024-05-01T10:00:00")
    assert row["status"] == "in-progress"


def test_null_documents_and_blank_assignee():
    order = Order.model_validate({**ROW, "details": None, "tasks": None, "assigned_to": " ", "status": "unassigned"})

    assert order.tasks == []
    assert order.customer_name == ""
    assert order.assigned_to is None


def test_naive_timestamps_are_utc():
    order = Order.model_validate({**ROW, "created_at": datetime(2024, 5, 1, 9, 0)})
    assert order.created_at.tzinfo == timezone.utc


def test_unknown_status_is_rejected():
    with pytest.raises(ValidationError):
        Order.model_validate({**ROW, "status": "archived"})


def test_uncompleted_task_drops_timestamp():
    task = Task(label="Call", completed=False, completed_at=datetime.now(timezone.utc))
    assert task.completed_at is None


def test_task_toggled():
    now = datetime(2024, 5, 1, tzinfo=timezone.utc)
    task = Task(label="Call")
    done = task.toggled(now)

    assert done.completed and done.completed_at == now
    assert done.toggled(now) == task


def test_details_merge_accepts_both_key_styles():
    details = OrderDetails.model_validate({"customerName": "Acme", "ticketNumber": "T-1", "source": "web"})

    merged = details.merged({"customer_name": "Acme Ltd", "invoiceNumber": "INV-1"})

    assert merged.customer_name == "Acme Ltd"
    assert merged.invoice_number == "INV-1"
    assert merged.model_dump(by_alias=True)["source"] == "web"
    assert details.customer_name == "Acme"


def test_all_tasks_completed_needs_tasks():
    order = Order(title="x", type="Repair")
    assert order.all_tasks_completed() is False


def test_lifecycle_violations_report_mismatches():
    order = Order(title="x", type="Repair", status="unassigned", assigned_to="Alice",
                  tasks=[Task(label="a", completed=True, completed_at=datetime.now(timezone.utc))])
    problems = order.lifecycle_violations()
    assert "status/tasks mismatch" in problems
    assert "unassigned with assignee" in problems


def test_agent_row_defaults():
    agent = Agent.model_validate({"name": "Bob", "email": None, "extension": None, "total_orders": None})
    assert agent.to_row("Support") == {
        "name": "Bob",
        "department_name": "Support",
        "email": "",
        "extension": "",
        "completed_orders": 0,
        "total_orders": 0,
    }


def test_write_result_constructors():
    assert WriteResult.ok().success is True
    fallback = WriteResult.fallback("remote down")
    assert (fallback.success, fallback.persisted, fallback.degraded) == (False, True, True)
    assert WriteResult.failed("down").persisted is False
    assert WriteResult.noop().success is True
    assert WriteResult.noop(error="missing").success is False
