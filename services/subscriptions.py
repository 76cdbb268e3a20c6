"""Change subscriptions: push-invalidate notifications with full refetch.

A subscriber never sees a diff. Every signalled change refetches the whole
collection and hands it to each active callback (at-least-once delivery).
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from contextlib import suppress
from typing import Any, Awaitable, Callable, Optional

from services.errors import StoreConnectionError, ValidationError

logger = logging.getLogger(__name__)

ORDERS = "orders"
DEPARTMENTS = "departments"
TABLES = (ORDERS, DEPARTMENTS)

Callback = Callable[[list], Any]
Fetcher = Callable[[], Awaitable[list]]


class Subscription:
    """Registration handle. ``cancel()`` stops all further deliveries."""

    def __init__(self, table: str, callback: Callback, notifier: "ChangeNotifier"):
        self.table = table
        self.callback = callback
        self._notifier = notifier
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self.active = False
            self._notifier._remove(self)

    unsubscribe = cancel

    def __repr__(self) -> str:
        return f"<Subscription table={self.table!r} active={self.active}>"


class ChangeNotifier:
    """Subscriber registry delivering refetched collections per table."""

    def __init__(self, fetchers: dict[str, Fetcher]):
        self._fetchers = fetchers
        self._subscribers: dict[str, list[Subscription]] = {table: [] for table in fetchers}
        self._deliveries: set[asyncio.Task] = set()
        self._closed = False

    def subscribe(self, table: str, callback: Callback) -> Subscription:
        if table not in self._fetchers:
            raise ValidationError(f"Unknown table {table!r}", field="table")
        subscription = Subscription(table, callback, self)
        self._subscribers[table].append(subscription)
        return subscription

    def subscriber_count(self, table: str) -> int:
        return len(self._subscribers.get(table, []))

    def notify(self, table: str) -> Optional[asyncio.Task]:
        """Schedule a refetch + delivery for ``table``; None when nobody listens."""
        if self._closed or not self._subscribers.get(table):
            return None
        task = asyncio.ensure_future(self._deliver(table))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)
        return task

    async def drain(self) -> None:
        """Wait for scheduled deliveries to finish."""
        while self._deliveries:
            await asyncio.gather(*list(self._deliveries), return_exceptions=True)

    async def close(self) -> None:
        self._closed = True
        for subscriptions in self._subscribers.values():
            for subscription in list(subscriptions):
                subscription.cancel()
        for task in list(self._deliveries):
            task.cancel()
        await asyncio.gather(*list(self._deliveries), return_exceptions=True)

    async def _deliver(self, table: str) -> None:
        collection = await self._fetchers[table]()
        for subscription in list(self._subscribers.get(table, [])):
            # Cancelled while the refetch was in flight
            if not subscription.active:
                continue
            try:
                result = subscription.callback(collection)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("[ChangeNotifier] Subscriber for %s failed", table)

    def _remove(self, subscription: Subscription) -> None:
        subscriptions = self._subscribers.get(subscription.table, [])
        if subscription in subscriptions:
            subscriptions.remove(subscription)


class ChangeWatcher:
    """
    Polls remote table fingerprints and signals changes.

    The first fingerprint of a table is only a baseline. Probe failures are
    skipped; the next successful probe compares against the last known value.
    """

    def __init__(
        self,
        probe: Callable[[str], Awaitable[str]],
        notify: Callable[[str], Any],
        *,
        tables: tuple[str, ...] = TABLES,
        interval: float = 15.0,
    ):
        self._probe = probe
        self._notify = notify
        self._tables = tables
        self.interval = interval
        self._fingerprints: dict[str, str] = {}
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.ensure_future(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def poll_once(self) -> list[str]:
        """Probe every table once. Returns the tables that changed."""
        changed = []
        for table in self._tables:
            try:
                fingerprint = await self._probe(table)
            except StoreConnectionError as exc:
                logger.debug("[ChangeWatcher] Probe for %s failed: %s", table, exc)
                continue
            previous = self._fingerprints.get(table)
            self._fingerprints[table] = fingerprint
            if previous is not None and previous != fingerprint:
                changed.append(table)
                self._notify(table)
        return changed

    async def _run(self) -> None:
        while True:
            await self.poll_once()
            await asyncio.sleep(self.interval)
