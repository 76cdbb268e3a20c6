"""
Dashboard Session - wires gateway, lifecycle engine, directory and stats.

    session = DashboardSession(settings=get_settings())
    await session.initialize()
    board = session.board(ViewState())
    ...
    await session.dispose()
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from config.settings import Settings, get_settings
from models.dashboard import DashboardStats
from models.orders import Order, utcnow
from models.results import WriteResult
from models.staff import Department
from models.view import Board, ViewState
from services.directory import CategoryCatalog, DepartmentDirectory
from services.gateway import PersistenceGateway
from services.lifecycle import OrderLifecycleEngine
from services.projection import project_view, scope_orders
from services.stats import compute_agent_stats, compute_stats
from services.subscriptions import DEPARTMENTS, ORDERS, Subscription

logger = logging.getLogger(__name__)


class DashboardSession:
    """One dashboard: order board, stats and settings directory."""

    def __init__(
        self,
        gateway: Optional[PersistenceGateway] = None,
        *,
        settings: Optional[Settings] = None,
        categories: Optional[CategoryCatalog] = None,
        clock: Callable[[], Any] = utcnow,
    ):
        self.settings = settings or get_settings()
        self.gateway = gateway or PersistenceGateway.from_settings(self.settings)
        self.categories = categories or CategoryCatalog()
        self.engine = OrderLifecycleEngine(self.gateway, categories=self.categories, clock=clock)
        self.directory = DepartmentDirectory(self.gateway)
        self.clock = clock
        self.stats = DashboardStats()

        self._subscriptions: list[Subscription] = []
        self._tz = self._resolve_timezone(self.settings.display_timezone)
        self.engine.add_listener(self._recompute_stats)

    @staticmethod
    def _resolve_timezone(name: str):
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("[Dashboard] Unknown display timezone %r, using UTC", name)
            return ZoneInfo("UTC")

    # --------------------------- lifecycle ---------------------------
    async def initialize(self) -> "DashboardSession":
        await self.gateway.initialize()
        await self.refresh()
        if not self._subscriptions:
            self._subscriptions = [
                self.gateway.subscribe(ORDERS, self.engine.reconcile),
                self.gateway.subscribe(DEPARTMENTS, self.directory.replace),
            ]
        logger.info(
            "[Dashboard] Loaded %d orders, %d departments (degraded=%s)",
            len(self.engine.orders),
            len(self.directory.departments),
            self.degraded,
        )
        return self

    async def refresh(self) -> None:
        await self.engine.load()
        await self.directory.refresh()

    async def dispose(self) -> None:
        """Unsubscribe first, then release the gateway."""
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions = []
        self.engine.remove_listener(self._recompute_stats)
        await self.gateway.dispose()

    async def __aenter__(self) -> "DashboardSession":
        return await self.initialize()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.dispose()

    # --------------------------- state ---------------------------
    @property
    def degraded(self) -> bool:
        return self.gateway.degraded

    @property
    def last_error(self) -> Optional[str]:
        return self.engine.last_error or self.gateway.last_error

    @property
    def orders(self) -> list[Order]:
        return self.engine.orders

    @property
    def departments(self) -> list[Department]:
        departments = self.directory.departments
        if self.settings.agent_stats_enabled:
            return compute_agent_stats(departments, self.engine.orders)
        return departments

    def board(self, view: Optional[ViewState] = None) -> Board:
        return project_view(self.engine.orders, view or ViewState(), now=self.clock(), tz=self._tz)

    def scoped_board(
        self,
        view: Optional[ViewState] = None,
        *,
        agent: Optional[str] = None,
        department: Optional[str] = None,
    ) -> Board:
        """Board limited to one agent or to the agents of one department."""
        orders = scope_orders(
            self.engine.orders, self.directory.departments, agent=agent, department=department
        )
        return project_view(orders, view or ViewState(), now=self.clock(), tz=self._tz)

    def _recompute_stats(self, orders: list[Order]) -> None:
        self.stats = compute_stats(orders)

    # --------------------------- order operations ---------------------------
    async def create_order(self, title: str, order_type: str, customer_name: str, ticket_number: str, **kwargs) -> WriteResult:
        return await self.engine.create_order(title, order_type, customer_name, ticket_number, **kwargs)

    async def assign(self, order_id: str, agent_name: str) -> WriteResult:
        return await self.engine.assign(order_id, agent_name)

    async def toggle_task(self, order_id: str, task_id: str) -> WriteResult:
        return await self.engine.toggle_task(order_id, task_id)

    async def update_details(self, order_id: str, partial: dict) -> WriteResult:
        return await self.engine.update_details(order_id, partial)

    async def delete_order(self, order_id: str) -> WriteResult:
        return await self.engine.delete_order(order_id)
