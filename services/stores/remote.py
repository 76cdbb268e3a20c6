from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError as SchemaError

from models.orders import Order
from models.staff import DEFAULT_AGENT, DEFAULT_DEPARTMENT, Agent, Department
from services.errors import NotFoundError, StoreConnectionError

from .base import OrderStore

logger = logging.getLogger(__name__)

RETURN_ROWS = "return=representation"
UPSERT = "resolution=merge-duplicates,return=minimal"
UPSERT_RETURN_ROWS = "resolution=merge-duplicates,return=representation"


def _in_list(values: list[str]) -> str:
    """Format a PostgREST ``in`` list with quoted values."""
    quoted = []
    for value in values:
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        quoted.append(f'"{escaped}"')
    return f"({','.join(quoted)})"


class RemoteStore(OrderStore):
    """
    Remote store client for a PostgREST-compatible REST API.

    Tables: ``orders``, ``departments`` and ``agents`` (agents reference their
    department by ``department_name``).
    """

    name = "remote"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the REST client.

        Args:
            base_url: Project URL, ``/rest/v1`` is appended
            api_key: API key sent as ``apikey`` and bearer token
            timeout: Per-request timeout in seconds
            transport: Optional transport (tests use ``httpx.MockTransport``)
        """
        self.base_url = f"{base_url.rstrip('/')}/rest/v1"
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        """
        Make API request.

        Returns:
            Decoded JSON body, or None for empty responses

        Raises:
            StoreConnectionError: On transport errors, timeouts, error status
                codes and undecodable bodies
        """
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = await self.client.request(
                method, f"/{path}", params=params, json=json, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise StoreConnectionError(
                f"{method} {path} failed with {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise StoreConnectionError(f"{method} {path} failed: {exc}") from exc

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise StoreConnectionError(f"{method} {path} returned invalid JSON") from exc

    # --------------------------- lifecycle ---------------------------
    async def initialize(self) -> None:
        rows = await self._request("GET", "departments", params={"select": "name", "limit": 1})
        if rows:
            return
        logger.info("[RemoteStore] Seeding default department %s", DEFAULT_DEPARTMENT)
        await self._request("POST", "departments", json=[{"name": DEFAULT_DEPARTMENT}], prefer=UPSERT)
        await self._request(
            "POST",
            "agents",
            params={"on_conflict": "name"},
            json=[DEFAULT_AGENT.to_row(DEFAULT_DEPARTMENT)],
            prefer=UPSERT,
        )

    async def close(self) -> None:
        await self.client.aclose()

    # --------------------------- orders ---------------------------
    async def list_orders(self) -> list[Order]:
        rows = await self._request(
            "GET", "orders", params={"select": "*", "order": "created_at.asc"}
        )
        return [self._order_from_row(row) for row in self._rows(rows, "orders")]

    async def create_order(self, order: Order) -> Order:
        rows = await self._request("POST", "orders", json=[order.to_row()], prefer=RETURN_ROWS)
        return self._order_from_row(rows[0]) if rows else order

    async def upsert_order(self, order: Order) -> Order:
        rows = await self._request(
            "POST",
            "orders",
            params={"on_conflict": "id"},
            json=[order.to_row()],
            prefer=UPSERT_RETURN_ROWS,
        )
        return self._order_from_row(rows[0]) if rows else order

    async def update_order(self, order: Order) -> Order:
        row = order.to_row()
        row.pop("id")
        row.pop("created_at")
        rows = await self._request(
            "PATCH", "orders", params={"id": f"eq.{order.id}"}, json=row, prefer=RETURN_ROWS
        )
        if not rows:
            raise NotFoundError("Order", order.id)
        return self._order_from_row(rows[0])

    async def delete_order(self, order_id: str) -> None:
        rows = await self._request(
            "DELETE", "orders", params={"id": f"eq.{order_id}"}, prefer=RETURN_ROWS
        )
        if not rows:
            raise NotFoundError("Order", order_id)

    # --------------------------- departments ---------------------------
    async def list_departments(self) -> list[Department]:
        departments = await self._request(
            "GET", "departments", params={"select": "name", "order": "name.asc"}
        )
        agents = await self._request("GET", "agents", params={"select": "*", "order": "name.asc"})

        by_department: dict[str, list[Agent]] = {
            self._department_name(row): [] for row in self._rows(departments, "departments")
        }
        for row in self._rows(agents, "agents"):
            department_name = row.get("department_name")
            if department_name in by_department:
                by_department[department_name].append(self._agent_from_row(row))
        return [Department(name=name, agents=members) for name, members in by_department.items()]

    async def save_department(self, department: Department) -> Department:
        await self._request("POST", "departments", json=[{"name": department.name}], prefer=UPSERT)
        if department.agents:
            await self._request(
                "POST",
                "agents",
                params={"on_conflict": "name"},
                json=[agent.to_row(department.name) for agent in department.agents],
                prefer=UPSERT,
            )
        params = {"department_name": f"eq.{department.name}"}
        if department.agents:
            params["name"] = f"not.in.{_in_list(department.agent_names())}"
        await self._request("DELETE", "agents", params=params)
        return department

    async def delete_department(self, name: str) -> None:
        await self._request("DELETE", "agents", params={"department_name": f"eq.{name}"})
        rows = await self._request(
            "DELETE", "departments", params={"name": f"eq.{name}"}, prefer=RETURN_ROWS
        )
        if not rows:
            raise NotFoundError("Department", name)

    async def rename_department(self, old_name: str, new_name: str) -> Department:
        existing = await self._request(
            "GET", "departments", params={"select": "name", "name": f"eq.{old_name}"}
        )
        if not existing:
            raise NotFoundError("Department", old_name)

        await self._request("POST", "departments", json=[{"name": new_name}], prefer=UPSERT)
        moved = await self._request(
            "PATCH",
            "agents",
            params={"department_name": f"eq.{old_name}"},
            json={"department_name": new_name},
            prefer=RETURN_ROWS,
        )
        await self._request("DELETE", "departments", params={"name": f"eq.{old_name}"})
        return Department(name=new_name, agents=[self._agent_from_row(row) for row in moved or []])

    # --------------------------- change detection ---------------------------
    async def fingerprint(self, table: str) -> str:
        """Hash of the table contents, used to detect remote changes by polling."""
        if table == "departments":
            payload = [department.model_dump() for department in await self.list_departments()]
        else:
            payload = await self._request("GET", table, params={"select": "*", "order": "id.asc"})
        encoded = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
        return hashlib.sha1(encoded).hexdigest()

    # --------------------------- helpers ---------------------------
    @staticmethod
    def _rows(payload: Any, table: str) -> list[dict]:
        if payload is None:
            return []
        if not isinstance(payload, list) or not all(isinstance(row, dict) for row in payload):
            raise StoreConnectionError(f"Remote {table} response is not a list of rows")
        return payload

    @staticmethod
    def _department_name(row: dict) -> str:
        name = row.get("name")
        if not isinstance(name, str) or not name:
            raise StoreConnectionError(f"Remote department row {row!r} has no name")
        return name

    @staticmethod
    def _order_from_row(row: dict) -> Order:
        try:
            return Order.model_validate(row)
        except SchemaError as exc:
            raise StoreConnectionError(f"Remote order row {row.get('id')!r} is invalid: {exc}") from exc

    @staticmethod
    def _agent_from_row(row: dict) -> Agent:
        try:
            return Agent.model_validate(row)
        except SchemaError as exc:
            raise StoreConnectionError(f"Remote agent row {row.get('name')!r} is invalid: {exc}") from exc
