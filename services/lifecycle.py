"""
Order Lifecycle Engine.

Owns the in-memory order set and every status transition:

    unassigned --assign--> in-progress --last task done--> completed
    completed --task un-checked--> in-progress (assigned) | unassigned

Writes are optimistic: the change is applied in memory first, then committed
through the gateway. Writes for one order run one at a time in FIFO order; a
queued write is skipped when a newer local edit of the same order exists,
since that newer write carries the change.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, Optional

from pydantic import ValidationError as SchemaError

from models.orders import Order, OrderDetails, OrderStatus, Priority, utcnow
from models.results import WriteResult
from services.directory import CategoryCatalog, build_checklist
from services.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

Listener = Callable[[list[Order]], Any]


# ============================================================================
# Transitions (pure)
# ============================================================================


def settle_status(order: Order, now) -> Order:
    """
    Align status with the checklist.

    All tasks done -> completed (stamped ``now``). A completed order with an
    open task goes back to in-progress, or unassigned without an assignee.
    Orders without tasks are left alone.
    """
    if not order.tasks:
        return order

    done = order.all_tasks_completed()
    if done and order.status != OrderStatus.COMPLETED:
        return order.model_copy(
            update={"status": OrderStatus.COMPLETED.value, "completed_at": now}
        )
    if not done and order.status == OrderStatus.COMPLETED:
        status = OrderStatus.IN_PROGRESS if order.assigned_to else OrderStatus.UNASSIGNED
        return order.model_copy(update={"status": status.value, "completed_at": None})
    return order


def assign_order(order: Order, agent_name: str) -> Optional[Order]:
    """Assigned copy of ``order``; None for completed orders (no transition)."""
    if order.status == OrderStatus.COMPLETED:
        return None
    return order.model_copy(
        update={"assigned_to": agent_name, "status": OrderStatus.IN_PROGRESS.value}
    )


def toggle_order_task(order: Order, task_id: str, now) -> Optional[Order]:
    """Flip one task and settle the status; None when the task is unknown."""
    if order.task(task_id) is None:
        return None
    tasks = [task.toggled(now) if task.id == task_id else task for task in order.tasks]
    return settle_status(order.model_copy(update={"tasks": tasks}), now)


# ============================================================================
# Engine
# ============================================================================


class OrderLifecycleEngine:
    """Order set with optimistic, serialized writes through the gateway."""

    def __init__(
        self,
        gateway,
        *,
        categories: Optional[CategoryCatalog] = None,
        clock: Callable[[], Any] = utcnow,
    ):
        """
        Initialize the engine.

        Args:
            gateway: PersistenceGateway (or anything with create/update/remove/list_orders)
            categories: Checklist templates for new orders
            clock: Returns the current aware datetime
        """
        self.gateway = gateway
        self.categories = categories or CategoryCatalog()
        self.clock = clock
        self.last_error: Optional[str] = None

        self._orders: dict[str, Order] = {}
        self._confirmed: dict[str, Order] = {}
        self._versions: dict[str, int] = {}
        self._pending: dict[str, int] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._listeners: list[Listener] = []

    # --------------------------- state ---------------------------
    @property
    def orders(self) -> list[Order]:
        return list(self._orders.values())

    def get(self, order_id: str) -> Optional[Order]:
        return self._orders.get(order_id)

    def has_pending_write(self, order_id: str) -> bool:
        return order_id in self._pending

    def add_listener(self, listener: Listener) -> None:
        """Call ``listener(orders)`` whenever the in-memory order set changes."""
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def load(self) -> list[Order]:
        self.reconcile(await self.gateway.list_orders())
        return self.orders

    def reconcile(self, orders: Iterable[Order]) -> None:
        """
        Take a full refetch.

        The refetch wins for every id without a pending write. Pending ids keep
        their optimistic copy until the write resolves, including pending
        deletes, which stay deleted.
        """
        fresh = {order.id: order for order in orders}
        merged: dict[str, Order] = {}
        for order_id, order in fresh.items():
            if order_id in self._pending:
                if order_id in self._orders:
                    merged[order_id] = self._orders[order_id]
            else:
                merged[order_id] = order
        for order_id in self._pending:
            if order_id in self._orders and order_id not in merged:
                merged[order_id] = self._orders[order_id]

        self._confirmed = {
            order_id: order
            for order_id, order in {**self._confirmed, **fresh}.items()
            if order_id in fresh or order_id in self._pending
        }
        self._orders = merged
        self._emit()

    # --------------------------- operations ---------------------------
    async def create_order(
        self,
        title: str,
        order_type: str,
        customer_name: str,
        ticket_number: str,
        *,
        priority: str = Priority.MEDIUM.value,
        tasks: Optional[Iterable[str]] = None,
        assigned_to: Optional[str] = None,
        invoice_number: Optional[str] = None,
        note: Optional[str] = None,
    ) -> WriteResult:
        """
        Create an order.

        The checklist comes from the category template unless ``tasks`` is
        given. Orders created with an assignee start in progress.

        Raises:
            ValidationError: Missing title, type, customer name or ticket number,
                or an unknown priority
        """
        fields = {
            "title": title,
            "type": order_type,
            "customer_name": customer_name,
            "ticket_number": ticket_number,
        }
        for field, value in fields.items():
            if not (value or "").strip():
                raise ValidationError(f"{field} is required", field=field)
        try:
            priority = Priority(priority).value
        except ValueError as exc:
            raise ValidationError(f"Unknown priority {priority!r}", field="priority") from exc

        labels = self.categories.tasks_for(order_type.strip()) if tasks is None else tasks
        assignee = (assigned_to or "").strip() or None
        order = Order(
            title=title.strip(),
            type=order_type.strip(),
            status=OrderStatus.IN_PROGRESS if assignee else OrderStatus.UNASSIGNED,
            priority=priority,
            assigned_to=assignee,
            details=OrderDetails(
                customer_name=customer_name.strip(),
                ticket_number=ticket_number.strip(),
                invoice_number=invoice_number,
                note=note,
            ),
            tasks=build_checklist(labels),
            created_at=self.clock(),
        )

        version = self._stage(order.id, order)
        logger.info("[Lifecycle] Creating order %s (%s)", order.id, order.ticket_number)
        return await self._commit(order.id, version, lambda: self.gateway.create(order))

    async def assign(self, order_id: str, agent_name: str) -> WriteResult:
        """Assign an order. Completed orders are left untouched."""
        agent_name = (agent_name or "").strip()
        if not agent_name:
            raise ValidationError("agent name is required", field="agent_name")
        return await self._apply(order_id, lambda order: assign_order(order, agent_name))

    async def toggle_task(self, order_id: str, task_id: str) -> WriteResult:
        current = self._orders.get(order_id)
        if current is not None and current.task(task_id) is None:
            return WriteResult.noop(error=str(NotFoundError("Task", task_id)))
        now = self.clock()
        return await self._apply(order_id, lambda order: toggle_order_task(order, task_id, now))

    async def update_details(self, order_id: str, partial: dict[str, Any]) -> WriteResult:
        """Merge ``partial`` into the order details. Status is unaffected."""
        if not isinstance(partial, dict):
            raise ValidationError("details must be an object", field="details")

        def change(order: Order) -> Order:
            try:
                details = order.details.merged(partial)
            except SchemaError as exc:
                raise ValidationError(f"Invalid details: {exc}", field="details") from exc
            for field in ("customer_name", "ticket_number"):
                touched = field in partial or OrderDetails.model_fields[field].alias in partial
                if touched and not getattr(details, field).strip():
                    raise ValidationError(f"{field} is required", field=field)
            return order.model_copy(update={"details": details})

        return await self._apply(order_id, change)

    async def delete_order(self, order_id: str) -> WriteResult:
        if order_id not in self._orders:
            return WriteResult.noop(error=str(NotFoundError("Order", order_id)))
        version = self._stage(order_id, None)
        logger.info("[Lifecycle] Deleting order %s", order_id)
        return await self._commit(
            order_id, version, lambda: self.gateway.remove(order_id), removing=True
        )

    # --------------------------- write pipeline ---------------------------
    async def _apply(self, order_id: str, change: Callable[[Order], Optional[Order]]) -> WriteResult:
        current = self._orders.get(order_id)
        if current is None:
            return WriteResult.noop(error=str(NotFoundError("Order", order_id)))
        updated = change(current)
        if updated is None:
            return WriteResult.noop(order=current)

        version = self._stage(order_id, updated)
        return await self._commit(order_id, version, lambda: self.gateway.update(updated))

    def _stage(self, order_id: str, order: Optional[Order]) -> int:
        """Apply an optimistic change in memory and mark the write pending."""
        if order is None:
            self._orders.pop(order_id, None)
        else:
            self._orders[order_id] = order
        version = self._versions.get(order_id, 0) + 1
        self._versions[order_id] = version
        self._pending[order_id] = self._pending.get(order_id, 0) + 1
        self._emit()
        return version

    async def _commit(
        self,
        order_id: str,
        version: int,
        write: Callable[[], Awaitable[WriteResult]],
        *,
        removing: bool = False,
    ) -> WriteResult:
        lock = self._locks.setdefault(order_id, asyncio.Lock())
        try:
            async with lock:
                if self._versions.get(order_id) != version:
                    logger.debug("[Lifecycle] Write v%s of %s superseded", version, order_id)
                    return WriteResult.noop(order=self._orders.get(order_id))
                result = await write()
                self._settle(order_id, version, result, removing=removing)
                return result
        finally:
            remaining = self._pending.get(order_id, 1) - 1
            if remaining > 0:
                self._pending[order_id] = remaining
            else:
                self._pending.pop(order_id, None)
                self._locks.pop(order_id, None)

    def _settle(self, order_id: str, version: int, result: WriteResult, *, removing: bool) -> None:
        latest = self._versions.get(order_id) == version

        if result.persisted:
            if removing:
                self._confirmed.pop(order_id, None)
            else:
                confirmed = result.order or self._orders.get(order_id)
                if confirmed is not None:
                    self._confirmed[order_id] = confirmed
                    if latest:
                        self._orders[order_id] = confirmed
            if result.degraded:
                self.last_error = result.error
        elif result.skipped:
            # Gone from the store; drop it here too
            logger.info("[Lifecycle] Order %s no longer exists: %s", order_id, result.error)
            self._orders.pop(order_id, None)
            self._confirmed.pop(order_id, None)
        else:
            self.last_error = result.error
            logger.error("[Lifecycle] Write for %s failed, rolling back: %s", order_id, result.error)
            if latest:
                confirmed = self._confirmed.get(order_id)
                if confirmed is None:
                    self._orders.pop(order_id, None)
                else:
                    self._orders[order_id] = confirmed
        self._emit()

    def _emit(self) -> None:
        orders = self.orders
        for listener in list(self._listeners):
            try:
                listener(orders)
            except Exception:
                logger.exception("[Lifecycle] Listener failed")
