from __future__ import annotations

from typing import Protocol, runtime_checkable

from models.orders import Order
from models.results import PendingWrite
from models.staff import Department


@runtime_checkable
class OrderStore(Protocol):
    """
    Contract shared by the remote store and the local fallback store.

    Implementations raise ``StoreConnectionError`` when the store cannot be
    used and ``NotFoundError`` when an update/delete targets an unknown key.
    """

    name: str

    async def initialize(self) -> None:
        """Create/probe tables and seed the default department when empty."""
        ...

    async def list_orders(self) -> list[Order]:
        ...

    async def create_order(self, order: Order) -> Order:
        ...

    async def update_order(self, order: Order) -> Order:
        ...

    async def delete_order(self, order_id: str) -> None:
        ...

    async def list_departments(self) -> list[Department]:
        ...

    async def save_department(self, department: Department) -> Department:
        """Upsert the department and its agents; agents no longer listed are removed."""
        ...

    async def delete_department(self, name: str) -> None:
        """Delete the department and, explicitly, its agents."""
        ...

    async def rename_department(self, old_name: str, new_name: str) -> Department:
        """Rename the department and migrate its agents."""
        ...

    async def close(self) -> None:
        ...


@runtime_checkable
class SnapshotMirror(Protocol):
    """Store that can take a full snapshot from the remote store."""

    async def upsert_order(self, order: Order) -> Order:
        ...

    async def replace_orders(self, orders: list[Order]) -> None:
        ...

    async def replace_departments(self, departments: list[Department]) -> None:
        ...


@runtime_checkable
class ChangeProbe(Protocol):
    """Store that can cheaply tell whether a table changed."""

    async def fingerprint(self, table: str) -> str:
        ...


@runtime_checkable
class WriteJournal(Protocol):
    """Store that remembers writes the remote store has not seen yet."""

    async def record_pending(self, entry: PendingWrite) -> PendingWrite:
        """Append ``entry``; an older entry for the same order is replaced."""
        ...

    async def list_pending(self) -> list[PendingWrite]:
        """Entries in the order they were recorded."""
        ...

    async def clear_pending(self, seq: int) -> None:
        ...
