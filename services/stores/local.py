from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from pydantic import ValidationError as SchemaError
from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import Database
from database.tables import AgentRow, DepartmentRow, OrderRow, PendingWriteRow
from models.orders import Order
from models.results import PendingWrite
from models.staff import DEFAULT_AGENT, DEFAULT_DEPARTMENT, Agent, Department
from services.errors import NotFoundError, StoreConnectionError

from .base import OrderStore

logger = logging.getLogger(__name__)

_ORDER_COLUMNS = (
    "id",
    "title",
    "type",
    "status",
    "priority",
    "details",
    "tasks",
    "assigned_to",
    "created_at",
    "completed_at",
)


class LocalStore(OrderStore):
    """SQLite-backed fallback store with the same contract as the remote store."""

    name = "local"

    def __init__(self, database: Database | str):
        self.db = Database(database) if isinstance(database, str) else database

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self.db.session() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as exc:
            raise StoreConnectionError(f"Local store error: {exc}") from exc

    # --------------------------- lifecycle ---------------------------
    async def initialize(self) -> None:
        try:
            await self.db.create_tables()
        except SQLAlchemyError as exc:
            raise StoreConnectionError(f"Local store initialization failed: {exc}") from exc

        async with self._transaction() as session:
            existing = (await session.execute(select(DepartmentRow.name).limit(1))).first()
            if existing is None:
                logger.info("[LocalStore] Seeding default department %s", DEFAULT_DEPARTMENT)
                session.add(DepartmentRow(name=DEFAULT_DEPARTMENT))
                session.add(AgentRow(**DEFAULT_AGENT.to_row(DEFAULT_DEPARTMENT)))

    async def close(self) -> None:
        await self.db.close()

    # --------------------------- orders ---------------------------
    async def list_orders(self) -> list[Order]:
        async with self._transaction() as session:
            rows = (
                await session.execute(select(OrderRow).order_by(OrderRow.created_at))
            ).scalars().all()
            return [self._order_from_row(row) for row in rows]

    async def create_order(self, order: Order) -> Order:
        return await self.upsert_order(order)

    async def upsert_order(self, order: Order) -> Order:
        async with self._transaction() as session:
            await session.merge(OrderRow(**self._row_values(order)))
        return order

    async def update_order(self, order: Order) -> Order:
        async with self._transaction() as session:
            row = await session.get(OrderRow, order.id)
            if row is None:
                raise NotFoundError("Order", order.id)
            for column, value in self._row_values(order).items():
                setattr(row, column, value)
        return order

    async def delete_order(self, order_id: str) -> None:
        async with self._transaction() as session:
            row = await session.get(OrderRow, order_id)
            if row is None:
                raise NotFoundError("Order", order_id)
            await session.delete(row)

    async def replace_orders(self, orders: list[Order]) -> None:
        """Take a remote snapshot. Orders with a pending write keep their local row."""
        async with self._transaction() as session:
            pending = set(
                (
                    await session.execute(
                        select(PendingWriteRow.order_id).where(PendingWriteRow.order_id.is_not(None))
                    )
                ).scalars()
            )
            stale = delete(OrderRow)
            if pending:
                stale = stale.where(OrderRow.id.not_in(pending))
            await session.execute(stale)
            session.add_all(
                OrderRow(**self._row_values(order)) for order in orders if order.id not in pending
            )

    # --------------------------- pending writes ---------------------------
    async def record_pending(self, entry: PendingWrite) -> PendingWrite:
        async with self._transaction() as session:
            if entry.order_id is not None:
                await session.execute(
                    delete(PendingWriteRow).where(PendingWriteRow.order_id == entry.order_id)
                )
            row = PendingWriteRow(
                operation=entry.operation,
                order_id=entry.order_id,
                args=entry.args,
                queued_at=entry.queued_at,
            )
            session.add(row)
            await session.flush()
            return entry.model_copy(update={"seq": row.seq})

    async def list_pending(self) -> list[PendingWrite]:
        async with self._transaction() as session:
            rows = (
                await session.execute(select(PendingWriteRow).order_by(PendingWriteRow.seq))
            ).scalars().all()
            return [
                PendingWrite(
                    seq=row.seq,
                    operation=row.operation,
                    order_id=row.order_id,
                    args=row.args,
                    queued_at=row.queued_at,
                )
                for row in rows
            ]

    async def clear_pending(self, seq: int) -> None:
        async with self._transaction() as session:
            await session.execute(delete(PendingWriteRow).where(PendingWriteRow.seq == seq))

    # --------------------------- departments ---------------------------
    async def list_departments(self) -> list[Department]:
        async with self._transaction() as session:
            names = (
                await session.execute(select(DepartmentRow.name).order_by(DepartmentRow.name))
            ).scalars().all()
            agents = (await session.execute(select(AgentRow).order_by(AgentRow.name))).scalars().all()

        by_department: dict[str, list[Agent]] = {name: [] for name in names}
        for row in agents:
            if row.department_name in by_department:
                by_department[row.department_name].append(self._agent_from_row(row))
        return [Department(name=name, agents=by_department[name]) for name in names]

    async def save_department(self, department: Department) -> Department:
        async with self._transaction() as session:
            await self._write_department(session, department)
        return department

    async def delete_department(self, name: str) -> None:
        async with self._transaction() as session:
            row = await session.get(DepartmentRow, name)
            if row is None:
                raise NotFoundError("Department", name)
            await session.execute(delete(AgentRow).where(AgentRow.department_name == name))
            await session.delete(row)

    async def rename_department(self, old_name: str, new_name: str) -> Department:
        async with self._transaction() as session:
            row = await session.get(DepartmentRow, old_name)
            if row is None:
                raise NotFoundError("Department", old_name)
            if await session.get(DepartmentRow, new_name) is None:
                session.add(DepartmentRow(name=new_name))
                await session.flush()
            await session.execute(
                update(AgentRow)
                .where(AgentRow.department_name == old_name)
                .values(department_name=new_name)
            )
            await session.delete(row)
            agents = (
                await session.execute(select(AgentRow).where(AgentRow.department_name == new_name))
            ).scalars().all()
            return Department(name=new_name, agents=[self._agent_from_row(a) for a in agents])

    async def replace_departments(self, departments: list[Department]) -> None:
        async with self._transaction() as session:
            await session.execute(delete(AgentRow))
            await session.execute(delete(DepartmentRow))
            await session.flush()
            for department in departments:
                await self._write_department(session, department)

    # --------------------------- helpers ---------------------------
    async def _write_department(self, session: AsyncSession, department: Department) -> None:
        await session.merge(DepartmentRow(name=department.name))
        await session.flush()
        for agent in department.agents:
            await session.merge(AgentRow(**agent.to_row(department.name)))
        stale = delete(AgentRow).where(AgentRow.department_name == department.name)
        if department.agents:
            stale = stale.where(AgentRow.name.not_in(department.agent_names()))
        await session.execute(stale)

    @staticmethod
    def _row_values(order: Order) -> dict:
        values = order.to_row()
        # DateTime columns want datetime objects, the JSON columns want plain JSON
        values["created_at"] = order.created_at
        values["completed_at"] = order.completed_at
        return values

    @staticmethod
    def _order_from_row(row: OrderRow) -> Order:
        try:
            return Order.model_validate({column: getattr(row, column) for column in _ORDER_COLUMNS})
        except SchemaError as exc:
            raise StoreConnectionError(f"Local order row {row.id!r} is invalid: {exc}") from exc

    @staticmethod
    def _agent_from_row(row: AgentRow) -> Agent:
        return Agent(
            name=row.name,
            email=row.email,
            extension=row.extension,
            completed_orders=row.completed_orders,
            total_orders=row.total_orders,
        )
