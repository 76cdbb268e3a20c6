"""Dashboard statistics derived from the order set."""

from collections import Counter
from typing import Iterable

from models.dashboard import DashboardStats
from models.orders import Order, OrderStatus
from models.staff import Department


def compute_stats(orders: Iterable[Order]) -> DashboardStats:
    """
    Count orders for the dashboard header.

    pending = total - completed, i.e. unassigned and in-progress orders.
    """
    total = 0
    completed = 0
    for order in orders:
        total += 1
        if order.status == OrderStatus.COMPLETED:
            completed += 1
    return DashboardStats(
        total_orders=total,
        completed_orders=completed,
        pending_orders=total - completed,
    )


def compute_agent_stats(departments: Iterable[Department], orders: Iterable[Order]) -> list[Department]:
    """
    Recompute agent counters from the order set.

    Stored counters are a cache; the returned copies replace them. Orders
    assigned to names that are in no department are ignored.
    """
    totals: Counter[str] = Counter()
    completed: Counter[str] = Counter()
    for order in orders:
        if not order.assigned_to:
            continue
        totals[order.assigned_to] += 1
        if order.status == OrderStatus.COMPLETED:
            completed[order.assigned_to] += 1

    return [
        department.model_copy(
            update={
                "agents": [
                    agent.model_copy(
                        update={
                            "total_orders": totals[agent.name],
                            "completed_orders": completed[agent.name],
                        }
                    )
                    for agent in department.agents
                ]
            }
        )
        for department in departments
    ]
