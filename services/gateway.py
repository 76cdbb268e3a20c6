"""
Persistence Gateway - remote store first, local store as fallback.

Reads never fail: a remote failure falls back to the local store and sets the
``degraded`` flag. Writes that miss the remote store still land in the local
store so later reads agree with them, but they are reported as unsuccessful
so the caller can offer a retry.

Writes that reach only the local store are also recorded in its pending-write
journal. Before the next remote call they are replayed to the remote store,
and a remote snapshot never overwrites an order that still has one queued.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from config.settings import Settings
from models.dashboard import DashboardStats
from models.orders import Order
from models.results import PendingWrite, WriteResult
from models.staff import Department
from services.errors import NotFoundError, StoreConnectionError
from services.stats import compute_stats
from services.stores.base import ChangeProbe, OrderStore, SnapshotMirror, WriteJournal
from services.stores.local import LocalStore
from services.stores.remote import RemoteStore
from services.subscriptions import (
    DEPARTMENTS,
    ORDERS,
    Callback,
    ChangeNotifier,
    ChangeWatcher,
    Subscription,
)

logger = logging.getLogger(__name__)

_WRITE_TABLES = {
    "create_order": ORDERS,
    "update_order": ORDERS,
    "delete_order": ORDERS,
    "save_department": DEPARTMENTS,
    "delete_department": DEPARTMENTS,
    "rename_department": DEPARTMENTS,
}

# Local writes when the remote store is down. The local copy may be stale,
# so an update there is an upsert.
_FALLBACK_METHODS = {"update_order": "upsert_order"}

# Order writes are replayed to the remote store as upserts.
_ORDER_WRITES = ("create_order", "update_order")


class PersistenceGateway:
    """
    Gateway between the dashboard and its stores.

    Lifecycle: construct -> ``initialize()`` -> use -> ``dispose()``.
    """

    def __init__(
        self,
        local: OrderStore,
        remote: Optional[OrderStore] = None,
        *,
        timeout: float = 10.0,
        poll_interval: float = 0.0,
    ):
        """
        Initialize the gateway.

        Args:
            local: Local fallback store
            remote: Remote store, None when not configured
            timeout: Seconds before a remote call counts as failed
            poll_interval: Seconds between remote change probes (0 disables)
        """
        self.local = local
        self.remote = remote
        self.timeout = timeout
        self.poll_interval = poll_interval

        self.degraded = remote is None
        self.last_error: Optional[str] = None if remote is not None else "Remote store not configured"

        self._initialized = False
        self._init_task: Optional[asyncio.Future] = None
        self._notifier = ChangeNotifier({ORDERS: self.list_orders, DEPARTMENTS: self.list_departments})
        self._watcher: Optional[ChangeWatcher] = None
        # Checked on first remote contact: the journal may hold writes from an earlier run
        self._journal_dirty = True
        self._replay_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "PersistenceGateway":
        remote = None
        if settings.remote_configured():
            remote = RemoteStore(
                settings.remote_store_url,
                settings.remote_store_key,
                timeout=settings.remote_timeout_seconds,
            )
        return cls(
            LocalStore(settings.local_database_url),
            remote,
            timeout=settings.remote_timeout_seconds,
            poll_interval=settings.remote_poll_interval_seconds,
        )

    @property
    def initialized(self) -> bool:
        return self._initialized

    # --------------------------- lifecycle ---------------------------
    async def initialize(self) -> None:
        """
        Initialize both stores.

        Concurrent callers share one in-flight attempt and its outcome. A
        failed attempt is forgotten so the next call retries.
        """
        if self._initialized:
            return
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._initialize())
        task = self._init_task
        try:
            await asyncio.shield(task)
        except BaseException:
            if self._init_task is task and task.done():
                self._init_task = None
            raise

    async def _initialize(self) -> None:
        logger.info("[Gateway] Initializing stores")
        try:
            await self.local.initialize()
        except StoreConnectionError as exc:
            logger.error("[Gateway] Local store initialization failed: %s", exc)
            raise

        if self.remote is not None:
            try:
                await self._on_remote("initialize")
                self._mark_healthy()
            except StoreConnectionError as exc:
                self._mark_degraded(exc)

            if self.poll_interval > 0 and isinstance(self.remote, ChangeProbe):
                self._watcher = ChangeWatcher(
                    self._probe_remote, self.notify, interval=self.poll_interval
                )
                self._watcher.start()

        self._initialized = True
        logger.info("[Gateway] Ready (degraded=%s)", self.degraded)

    async def dispose(self) -> None:
        """Stop watching, drop subscriptions and close the stores."""
        if self._watcher is not None:
            await self._watcher.stop()
            self._watcher = None
        await self._notifier.close()
        if self.remote is not None:
            await self.remote.close()
        await self.local.close()
        self._initialized = False
        self._init_task = None
        logger.info("[Gateway] Disposed")

    # --------------------------- reads ---------------------------
    async def list_orders(self) -> list[Order]:
        return await self._read("list_orders", "replace_orders")

    async def list_departments(self) -> list[Department]:
        return await self._read("list_departments", "replace_departments")

    async def get_stats(self) -> DashboardStats:
        """Stats are always computed from the current order set."""
        return compute_stats(await self.list_orders())

    # --------------------------- writes ---------------------------
    async def create(self, order: Order) -> WriteResult:
        return await self._write("create_order", order)

    async def update(self, order: Order) -> WriteResult:
        return await self._write("update_order", order)

    async def remove(self, order_id: str) -> WriteResult:
        return await self._write("delete_order", order_id)

    async def save_department(self, department: Department) -> WriteResult:
        return await self._write("save_department", department)

    async def delete_department(self, name: str) -> WriteResult:
        return await self._write("delete_department", name)

    async def rename_department(self, old_name: str, new_name: str) -> WriteResult:
        return await self._write("rename_department", old_name, new_name)

    # --------------------------- subscriptions ---------------------------
    def subscribe(self, table: str, callback: Callback) -> Subscription:
        """
        Register ``callback`` for change notifications on ``table``.

        The callback receives the freshly refetched collection. Cancel the
        returned handle on teardown.
        """
        return self._notifier.subscribe(table, callback)

    def notify(self, table: str) -> Optional[asyncio.Task]:
        return self._notifier.notify(table)

    async def drain(self) -> None:
        """Wait for in-flight notification deliveries."""
        await self._notifier.drain()

    # --------------------------- internals ---------------------------
    async def _on_remote(self, method: str, *args: Any) -> Any:
        if self.remote is None:
            raise StoreConnectionError("Remote store not configured")
        try:
            return await asyncio.wait_for(getattr(self.remote, method)(*args), self.timeout)
        except asyncio.TimeoutError as exc:
            raise StoreConnectionError(f"Remote {method} timed out after {self.timeout}s") from exc
        except SchemaError as exc:
            raise StoreConnectionError(f"Remote {method} returned invalid data: {exc}") from exc

    async def _probe_remote(self, table: str) -> str:
        return await self._on_remote("fingerprint", table)

    async def _read(self, method: str, mirror: str) -> list:
        if self.remote is not None:
            try:
                synced = await self._replay_pending()
                result = await self._on_remote(method)
            except StoreConnectionError as exc:
                self._mark_degraded(exc)
            else:
                self._mark_healthy()
                if synced:
                    await self._mirror_snapshot(mirror, result)
                return result

        try:
            return await getattr(self.local, method)()
        except StoreConnectionError as exc:
            logger.error("[Gateway] Local %s failed: %s", method, exc)
            self.last_error = f"{self.last_error}; local: {exc}" if self.last_error else str(exc)
            return []

    async def _write(self, method: str, *args: Any) -> WriteResult:
        table = _WRITE_TABLES[method]
        remote_error = self.last_error or "Remote store not configured"

        if self.remote is not None:
            try:
                await self._replay_pending()
                value = await self._on_remote(method, *args)
            except NotFoundError as exc:
                logger.info("[Gateway] %s skipped: %s", method, exc)
                return WriteResult.noop(error=str(exc))
            except StoreConnectionError as exc:
                self._mark_degraded(exc)
                remote_error = str(exc)
            else:
                self._mark_healthy()
                await self._mirror_write(method, args, value)
                self.notify(table)
                return WriteResult.ok(order=value if isinstance(value, Order) else None)

        local_method = method
        if isinstance(self.local, SnapshotMirror):
            local_method = _FALLBACK_METHODS.get(method, method)
        try:
            value = await getattr(self.local, local_method)(*args)
        except NotFoundError as exc:
            if self.remote is None:
                logger.info("[Gateway] %s skipped on local store: %s", method, exc)
                return WriteResult.noop(error=str(exc))
            # Only the remote store may know the target
            logger.warning("[Gateway] %s target unknown locally: %s", method, exc)
            value = None
        except StoreConnectionError as exc:
            logger.error("[Gateway] %s failed on both stores: %s", method, exc)
            return WriteResult.failed(f"{remote_error}; local: {exc}")

        if self.remote is not None:
            try:
                await self._record_pending(method, args)
            except StoreConnectionError as exc:
                logger.error("[Gateway] Could not queue %s for replay: %s", method, exc)
                return WriteResult.failed(f"{remote_error}; local: {exc}")

        logger.warning("[Gateway] %s committed to local fallback only", method)
        self.notify(table)
        return WriteResult.fallback(
            error=remote_error, order=value if isinstance(value, Order) else None
        )

    # --------------------------- pending writes ---------------------------
    async def _record_pending(self, method: str, args: tuple) -> None:
        if not isinstance(self.local, WriteJournal):
            return
        target = args[0]
        order_id = None
        if _WRITE_TABLES[method] == ORDERS:
            order_id = target.id if isinstance(target, Order) else target
        entry = PendingWrite(
            operation=method,
            order_id=order_id,
            args=[
                arg.model_dump(mode="json", by_alias=True) if isinstance(arg, BaseModel) else arg
                for arg in args
            ],
        )
        await self.local.record_pending(entry)
        self._journal_dirty = True

    async def _replay_pending(self) -> bool:
        """
        Push journaled local-only writes to the remote store, oldest first.

        Returns:
            True when nothing is left to replay

        Raises:
            StoreConnectionError: The remote store failed; the remaining
                entries stay queued
        """
        if not self._journal_dirty or not isinstance(self.local, WriteJournal):
            return True

        async with self._replay_lock:
            if not self._journal_dirty:
                return True
            self._journal_dirty = False
            try:
                pending = await self.local.list_pending()
            except StoreConnectionError as exc:
                self._journal_dirty = True
                logger.warning("[Gateway] Could not read pending writes: %s", exc)
                return False

            for entry in pending:
                try:
                    await self._replay(entry)
                except StoreConnectionError:
                    self._journal_dirty = True
                    raise
                try:
                    await self.local.clear_pending(entry.seq)
                except StoreConnectionError as exc:
                    self._journal_dirty = True
                    logger.warning("[Gateway] Could not clear pending write %s: %s", entry.seq, exc)
                    return False

            if pending:
                logger.info("[Gateway] Replayed %d pending write(s) to the remote store", len(pending))
                for table in {_WRITE_TABLES[entry.operation] for entry in pending}:
                    self.notify(table)
            return True

    async def _replay(self, entry: PendingWrite) -> None:
        method, args = entry.operation, list(entry.args)
        if method in _ORDER_WRITES:
            method, args = "upsert_order", [Order.model_validate(args[0])]
        elif method == "save_department":
            args = [Department.model_validate(args[0])]
        try:
            await self._on_remote(method, *args)
        except NotFoundError as exc:
            logger.info("[Gateway] Pending %s already applied remotely: %s", entry.operation, exc)

    async def _mirror_write(self, method: str, args: tuple, value: Any) -> None:
        """Copy a successful remote write into the local store (best effort)."""
        try:
            if isinstance(value, Order) and isinstance(self.local, SnapshotMirror):
                await self.local.upsert_order(value)
            else:
                await getattr(self.local, method)(*args)
        except NotFoundError:
            pass
        except StoreConnectionError as exc:
            logger.warning("[Gateway] Local mirror of %s failed: %s", method, exc)

    async def _mirror_snapshot(self, method: str, collection: list) -> None:
        if not isinstance(self.local, SnapshotMirror):
            return
        try:
            await getattr(self.local, method)(collection)
        except StoreConnectionError as exc:
            logger.warning("[Gateway] Local snapshot %s failed: %s", method, exc)

    def _mark_degraded(self, exc: Exception) -> None:
        if not self.degraded:
            logger.warning("[Gateway] Remote store unavailable, using local fallback: %s", exc)
        self.degraded = True
        self.last_error = str(exc)

    def _mark_healthy(self) -> None:
        if self.degraded:
            logger.info("[Gateway] Remote store reachable again")
        self.degraded = False
        self.last_error = None
