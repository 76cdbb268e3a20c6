import asyncio

import pytest

from conftest import MemoryStore, make_order
from models.staff import Agent, Department
from services.errors import StoreConnectionError, ValidationError
from services.gateway import PersistenceGateway
from services.subscriptions import DEPARTMENTS, ORDERS


# ============================================================================
# Initialization
# ============================================================================


@pytest.mark.asyncio
async def test_initialize_is_coalesced(gateway, local, remote):
    local.delay = 0.01

    await asyncio.gather(gateway.initialize(), gateway.initialize(), gateway.initialize())
    await gateway.initialize()

    assert local.initialized == 1
    assert remote.initialized == 1
    assert gateway.initialized is True
    assert gateway.degraded is False


@pytest.mark.asyncio
async def test_initialize_failure_is_shared_and_retried(gateway, local):
    local.fail = True
    local.delay = 0.01

    results = await asyncio.gather(
        gateway.initialize(), gateway.initialize(), return_exceptions=True
    )
    assert all(isinstance(result, StoreConnectionError) for result in results)
    assert local.count("initialize") == 1

    local.fail = False
    await gateway.initialize()
    assert local.initialized == 1
    assert gateway.initialized is True


@pytest.mark.asyncio
async def test_remote_init_failure_degrades(gateway, remote):
    remote.fail = True

    await gateway.initialize()

    assert gateway.initialized is True
    assert gateway.degraded is True
    assert "remote unavailable" in gateway.last_error


# ============================================================================
# Reads
# ============================================================================


@pytest.mark.asyncio
async def test_read_falls_back_to_local(gateway, local, remote):
    order = make_order("T1")
    local.orders[order.id] = order
    remote.fail = True

    orders = await gateway.list_orders()

    assert [o.id for o in orders] == [order.id]
    assert gateway.degraded is True
    assert gateway.last_error


@pytest.mark.asyncio
async def test_remote_read_is_mirrored_locally(gateway, local, remote):
    order = make_order("T1")
    remote.orders[order.id] = order
    local.orders["stale"] = make_order("T0", order_id="stale")

    orders = await gateway.list_orders()

    assert [o.id for o in orders] == [order.id]
    assert set(local.orders) == {order.id}
    assert gateway.degraded is False


@pytest.mark.asyncio
async def test_read_recovers_after_outage(gateway, remote):
    remote.fail = True
    await gateway.list_departments()
    assert gateway.degraded is True

    remote.fail = False
    await gateway.list_departments()
    assert gateway.degraded is False
    assert gateway.last_error is None


@pytest.mark.asyncio
async def test_slow_remote_times_out_to_local(local, remote):
    gateway = PersistenceGateway(local, remote, timeout=0.05)
    remote.delay = 0.5
    order = make_order("T1")
    local.orders[order.id] = order

    orders = await gateway.list_orders()

    assert [o.id for o in orders] == [order.id]
    assert "timed out" in gateway.last_error


@pytest.mark.asyncio
async def test_both_stores_down_returns_empty(gateway, local, remote):
    remote.fail = True
    local.fail = True

    assert await gateway.list_orders() == []
    assert "local" in gateway.last_error


@pytest.mark.asyncio
async def test_get_stats_is_derived(gateway, remote, clock):
    remote.orders = {
        order.id: order
        for order in [
            make_order("T1"),
            make_order("T2", status="in-progress", assigned_to="Alice"),
            make_order("T3", status="completed", assigned_to="Alice", completed_at=clock()),
        ]
    }

    stats = await gateway.get_stats()

    assert stats.total_orders == 3
    assert stats.completed_orders == 1
    assert stats.pending_orders == 2
    assert stats.total_orders == stats.completed_orders + stats.pending_orders


# ============================================================================
# Writes
# ============================================================================


@pytest.mark.asyncio
async def test_write_goes_remote_and_mirrors_local(gateway, local, remote):
    order = make_order("T1")

    result = await gateway.create(order)

    assert result.success is True
    assert result.persisted is True
    assert result.order.id == order.id
    assert order.id in remote.orders
    assert order.id in local.orders


@pytest.mark.asyncio
async def test_write_falls_back_to_local(gateway, local, remote):
    remote.fail = True
    order = make_order("T1")

    result = await gateway.create(order)

    assert result.success is False
    assert result.persisted is True
    assert result.degraded is True
    assert "remote unavailable" in result.error
    assert order.id in local.orders
    assert [o.id for o in await gateway.list_orders()] == [order.id]


@pytest.mark.asyncio
async def test_update_fallback_upserts_unknown_local_row(gateway, local, remote):
    order = make_order("T1")
    remote.orders[order.id] = order
    remote.fail = True

    result = await gateway.update(order.model_copy(update={"assigned_to": "Alice", "status": "in-progress"}))

    assert result.persisted is True
    assert local.orders[order.id].assigned_to == "Alice"


@pytest.mark.asyncio
async def test_write_fails_when_both_stores_fail(gateway, local, remote):
    remote.fail = True
    local.fail = True

    result = await gateway.create(make_order("T1"))

    assert result.success is False
    assert result.persisted is False
    assert "local" in result.error


@pytest.mark.asyncio
async def test_not_found_is_a_noop(gateway, local):
    result = await gateway.remove("order-missing")

    assert result.success is False
    assert result.skipped is True
    assert "order-missing" in result.error
    assert local.count("delete_order") == 0


@pytest.mark.asyncio
async def test_unconfigured_remote_uses_local_only(local):
    gateway = PersistenceGateway(local)
    await gateway.initialize()
    assert gateway.degraded is True

    result = await gateway.create(make_order("T1"))

    assert result.persisted is True
    assert result.degraded is True
    assert result.success is False
    assert len(local.orders) == 1


@pytest.mark.asyncio
async def test_local_only_create_survives_remote_recovery(gateway, local, remote):
    remote.fail = True
    order = make_order("T1")
    assert (await gateway.create(order)).persisted is True
    assert local.pending_ids() == [order.id]

    remote.fail = False
    orders = await gateway.list_orders()

    assert [o.id for o in orders] == [order.id]
    assert order.id in remote.orders
    assert order.id in local.orders
    assert local.pending == []
    assert gateway.degraded is False


@pytest.mark.asyncio
async def test_local_only_update_is_replayed_before_next_write(gateway, local, remote):
    order = make_order("T1")
    await gateway.create(order)
    remote.fail = True
    await gateway.update(order.model_copy(update={"assigned_to": "Alice", "status": "in-progress"}))
    await gateway.update(order.model_copy(update={"assigned_to": "Bob", "status": "in-progress"}))
    assert local.pending_ids() == [order.id]
    upserts = remote.count("upsert_order")

    remote.fail = False
    other = make_order("T2")
    result = await gateway.create(other)

    assert result.success is True
    assert remote.orders[order.id].assigned_to == "Bob"
    assert remote.count("upsert_order") == upserts + 1
    assert local.pending == []


@pytest.mark.asyncio
async def test_replay_stops_at_remote_failure(gateway, local, remote):
    remote.fail = True
    first, second = make_order("T1"), make_order("T2")
    await gateway.create(first)
    await gateway.create(second)

    orders = await gateway.list_orders()

    assert {o.id for o in orders} == {first.id, second.id}
    assert local.pending_ids() == [first.id, second.id]
    assert remote.orders == {}


@pytest.mark.asyncio
async def test_delete_unknown_locally_during_outage_is_queued(gateway, local, remote):
    order = make_order("T1")
    remote.orders[order.id] = order
    remote.fail = True

    result = await gateway.remove(order.id)

    assert result.skipped is False
    assert result.persisted is True
    assert result.degraded is True
    assert result.success is False
    assert local.pending_ids() == [order.id]

    remote.fail = False
    assert await gateway.list_orders() == []
    assert remote.orders == {}


@pytest.mark.asyncio
async def test_replayed_delete_of_missing_order_is_dropped(gateway, local, remote):
    remote.fail = True
    await gateway.remove("order-gone")

    remote.fail = False
    await gateway.list_orders()

    assert local.pending == []
    assert gateway.degraded is False


@pytest.mark.asyncio
async def test_local_only_department_writes_are_replayed(gateway, local, remote):
    await gateway.initialize()
    remote.fail = True
    await gateway.save_department(Department(name="Support", agents=[Agent(name="Alice")]))
    await gateway.rename_department("Support", "Field")

    remote.fail = False
    departments = await gateway.list_departments()

    assert [d.name for d in departments] == ["Field", "Management"]
    assert remote.departments["Field"].agent_names() == ["Alice"]
    assert local.pending == []


# ============================================================================
# Subscriptions
# ============================================================================


@pytest.mark.asyncio
async def test_subscribers_receive_refetch_after_write(gateway):
    deliveries = []
    gateway.subscribe(ORDERS, deliveries.append)

    await gateway.create(make_order("T1"))
    await gateway.drain()

    assert len(deliveries) == 1
    assert [order.ticket_number for order in deliveries[0]] == ["T1"]


@pytest.mark.asyncio
async def test_async_subscriber_for_departments(gateway):
    deliveries = []

    async def on_change(departments):
        deliveries.append([department.name for department in departments])

    gateway.subscribe(DEPARTMENTS, on_change)
    await gateway.initialize()
    gateway.notify(DEPARTMENTS)
    await gateway.drain()

    assert deliveries == [["Management"]]


@pytest.mark.asyncio
async def test_cancelled_subscription_is_not_invoked(gateway):
    deliveries = []
    subscription = gateway.subscribe(ORDERS, deliveries.append)

    gateway.notify(ORDERS)
    subscription.cancel()
    await gateway.drain()
    await gateway.create(make_order("T1"))
    await gateway.drain()

    assert deliveries == []
    assert subscription.active is False


def test_subscribe_unknown_table(gateway):
    with pytest.raises(ValidationError):
        gateway.subscribe("invoices", print)


@pytest.mark.asyncio
async def test_dispose_closes_stores(gateway, local, remote):
    deliveries = []
    subscription = gateway.subscribe(ORDERS, deliveries.append)
    await gateway.initialize()

    await gateway.dispose()

    assert local.closed and remote.closed
    assert subscription.active is False
    assert gateway.notify(ORDERS) is None


class WatchedStore(MemoryStore):
    def __init__(self):
        super().__init__("remote")
        self.version = 0

    async def fingerprint(self, table: str) -> str:
        return f"{table}-{self.version}"


@pytest.mark.asyncio
async def test_remote_changes_are_polled(local):
    remote = WatchedStore()
    gateway = PersistenceGateway(local, remote, timeout=1.0, poll_interval=0.01)
    deliveries = []
    gateway.subscribe(ORDERS, deliveries.append)

    await gateway.initialize()
    await asyncio.sleep(0.03)
    assert deliveries == []

    order = make_order("T9")
    remote.orders[order.id] = order
    remote.version += 1
    for _ in range(50):
        await asyncio.sleep(0.01)
        if deliveries:
            break
    await gateway.drain()

    assert deliveries and deliveries[-1][0].id == order.id
    await gateway.dispose()
