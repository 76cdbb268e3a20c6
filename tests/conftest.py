import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import pytest

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(Path(__file__).parent))

from models.orders import Order, OrderDetails, Task  # noqa: E402
from models.results import PendingWrite  # noqa: E402
from models.staff import DEFAULT_AGENT, DEFAULT_DEPARTMENT, Department  # noqa: E402
from services.errors import NotFoundError, StoreConnectionError  # noqa: E402
from services.gateway import PersistenceGateway  # noqa: E402

START = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class MemoryStore:
    """In-memory store honouring the store contract (failures, NotFound)."""

    def __init__(self, name: str = "memory", *, seed: bool = True):
        self.name = name
        self.seed = seed
        self.orders: dict[str, Order] = {}
        self.departments: dict[str, Department] = {}
        self.pending: list[PendingWrite] = []
        self._seq = 0
        self.fail = False
        self.delay = 0.0
        self.gate: Optional[asyncio.Event] = None
        self.calls: list[str] = []
        self.initialized = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def _enter(self, op: str) -> None:
        self.calls.append(op)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise StoreConnectionError(f"{self.name} unavailable")

    async def _gated(self) -> None:
        if self.gate is not None:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            try:
                await self.gate.wait()
            finally:
                self.in_flight -= 1

    def pending_ids(self) -> list[Optional[str]]:
        return [entry.order_id for entry in self.pending]

    def count(self, op: str) -> int:
        return self.calls.count(op)

    async def initialize(self) -> None:
        await self._enter("initialize")
        self.initialized += 1
        if self.seed and not self.departments:
            self.departments[DEFAULT_DEPARTMENT] = Department(
                name=DEFAULT_DEPARTMENT, agents=[DEFAULT_AGENT]
            )

    async def close(self) -> None:
        self.closed = True

    async def list_orders(self) -> list[Order]:
        await self._enter("list_orders")
        orders = sorted(self.orders.values(), key=lambda order: order.created_at)
        return [order.model_copy(deep=True) for order in orders]

    async def create_order(self, order: Order) -> Order:
        await self._enter("create_order")
        self.orders[order.id] = order.model_copy(deep=True)
        return order.model_copy(deep=True)

    async def update_order(self, order: Order) -> Order:
        await self._enter("update_order")
        await self._gated()
        if order.id not in self.orders:
            raise NotFoundError("Order", order.id)
        self.orders[order.id] = order.model_copy(deep=True)
        return order.model_copy(deep=True)

    async def delete_order(self, order_id: str) -> None:
        await self._enter("delete_order")
        await self._gated()
        if order_id not in self.orders:
            raise NotFoundError("Order", order_id)
        del self.orders[order_id]

    async def upsert_order(self, order: Order) -> Order:
        await self._enter("upsert_order")
        self.orders[order.id] = order.model_copy(deep=True)
        return order.model_copy(deep=True)

    async def replace_orders(self, orders: list[Order]) -> None:
        await self._enter("replace_orders")
        self.orders = {order.id: order.model_copy(deep=True) for order in orders}

    async def list_departments(self) -> list[Department]:
        await self._enter("list_departments")
        return [self.departments[name].model_copy(deep=True) for name in sorted(self.departments)]

    async def save_department(self, department: Department) -> Department:
        await self._enter("save_department")
        names = set(department.agent_names())
        # Agent names are global keys: saving re-parents them
        for other in self.departments.values():
            if other.name != department.name:
                other.agents = [agent for agent in other.agents if agent.name not in names]
        self.departments[department.name] = department.model_copy(deep=True)
        return department

    async def delete_department(self, name: str) -> None:
        await self._enter("delete_department")
        if name not in self.departments:
            raise NotFoundError("Department", name)
        del self.departments[name]

    async def rename_department(self, old_name: str, new_name: str) -> Department:
        await self._enter("rename_department")
        if old_name not in self.departments:
            raise NotFoundError("Department", old_name)
        department = self.departments.pop(old_name).model_copy(update={"name": new_name})
        self.departments[new_name] = department
        return department

    async def replace_departments(self, departments: list[Department]) -> None:
        await self._enter("replace_departments")
        self.departments = {d.name: d.model_copy(deep=True) for d in departments}

    async def record_pending(self, entry: PendingWrite) -> PendingWrite:
        await self._enter("record_pending")
        self._seq += 1
        entry = entry.model_copy(update={"seq": self._seq})
        if entry.order_id is not None:
            self.pending = [p for p in self.pending if p.order_id != entry.order_id]
        self.pending.append(entry)
        return entry

    async def list_pending(self) -> list[PendingWrite]:
        await self._enter("list_pending")
        return list(self.pending)

    async def clear_pending(self, seq: int) -> None:
        await self._enter("clear_pending")
        self.pending = [entry for entry in self.pending if entry.seq != seq]


def make_order(
    ticket: str = "T1",
    customer: str = "Acme",
    *,
    order_id: Optional[str] = None,
    status: str = "unassigned",
    assigned_to: Optional[str] = None,
    priority: str = "medium",
    created_at: datetime = START,
    completed_at: Optional[datetime] = None,
    tasks: Optional[list[Task]] = None,
    order_type: str = "Repair",
) -> Order:
    data = dict(
        title=f"Order {ticket}",
        type=order_type,
        status=status,
        priority=priority,
        assigned_to=assigned_to,
        details=OrderDetails(customer_name=customer, ticket_number=ticket),
        tasks=tasks or [],
        created_at=created_at,
        completed_at=completed_at,
    )
    if order_id:
        data["id"] = order_id
    return Order(**data)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def remote():
    return MemoryStore("remote")


@pytest.fixture
def local():
    return MemoryStore("local")


@pytest.fixture
def gateway(local, remote):
    return PersistenceGateway(local, remote, timeout=1.0, poll_interval=0)
