"""
Order board projection.

Pure functions turning (orders, filters, search, sort) into the visible board
columns. Nothing here mutates an order or touches a store.
"""

from datetime import datetime, timedelta, tzinfo
from functools import cmp_to_key
from typing import Callable, Iterable, Optional

from models.orders import Order, OrderStatus, utcnow
from models.staff import Department
from models.view import (
    Board,
    BoardColumn,
    CreatedWithin,
    FilterState,
    SearchField,
    SearchState,
    SortDirection,
    SortOption,
    SortState,
    ViewState,
)

_CREATED_WITHIN = {
    CreatedWithin.DAY: timedelta(hours=24),
    CreatedWithin.WEEK: timedelta(days=7),
    CreatedWithin.MONTH: timedelta(days=30),
}

_STATUS_TOGGLES = {
    OrderStatus.UNASSIGNED: "unassigned",
    OrderStatus.IN_PROGRESS: "in_progress",
    OrderStatus.COMPLETED: "completed",
}


# ============================================================================
# Filtering
# ============================================================================


def matches_search(order: Order, search: SearchState) -> bool:
    """
    Free-text search on one field.

    Customer and agent match case-insensitively; ticket numbers match
    case-sensitively. An absent value never matches a non-empty term.
    """
    term = search.term
    if not term:
        return True

    if search.field == SearchField.CUSTOMER:
        return term.lower() in (order.customer_name or "").lower()
    if search.field == SearchField.AGENT:
        return bool(order.assigned_to) and term.lower() in order.assigned_to.lower()
    if search.field == SearchField.TICKET:
        return term in (order.ticket_number or "")
    return True


def matches_filters(order: Order, filters: FilterState, *, now: Optional[datetime] = None) -> bool:
    """Filter panel predicate. Every active filter must hold."""
    if filters.customer_name and filters.customer_name.lower() not in order.customer_name.lower():
        return False

    if filters.assigned_to and order.assigned_to != filters.assigned_to:
        return False

    toggle = _STATUS_TOGGLES.get(OrderStatus(order.status))
    if toggle and not getattr(filters.status, toggle):
        return False

    allowed = {getattr(priority, "value", priority) for priority in filters.priority}
    if getattr(order.priority, "value", order.priority) not in allowed:
        return False

    window = _CREATED_WITHIN.get(CreatedWithin(filters.created_within))
    if window is not None and order.created_at < (now or utcnow()) - window:
        return False

    if filters.closed_after is not None:
        if order.completed_at is None or order.completed_at.date() < filters.closed_after:
            return False

    return True


def filter_orders(
    orders: Iterable[Order],
    filters: FilterState,
    search: SearchState,
    *,
    now: Optional[datetime] = None,
) -> list[Order]:
    now = now or utcnow()
    return [
        order
        for order in orders
        if matches_search(order, search) and matches_filters(order, filters, now=now)
    ]


def scope_orders(
    orders: Iterable[Order],
    departments: Iterable[Department],
    *,
    agent: Optional[str] = None,
    department: Optional[str] = None,
) -> list[Order]:
    """
    Dashboard click-through scope: one agent, or every agent of a department.

    An agent scope wins over a department scope.
    """
    if agent:
        return [order for order in orders if order.assigned_to == agent]
    if department:
        members: set[str] = set()
        for candidate in departments:
            if candidate.name == department:
                members = set(candidate.agent_names())
                break
        return [order for order in orders if order.assigned_to and order.assigned_to in members]
    return list(orders)


# ============================================================================
# Sorting
# ============================================================================


def _cmp(a, b) -> int:
    return (a > b) - (a < b)


def _cmp_text(a: str, b: str) -> int:
    return _cmp((a.casefold(), a), (b.casefold(), b))


def _hour(order: Order, tz: Optional[tzinfo]) -> int:
    created = order.created_at.astimezone(tz) if tz else order.created_at
    return created.hour


def comparator(sort_by: str, tz: Optional[tzinfo] = None) -> Callable[[Order, Order], int]:
    """
    Ascending comparator for ``sort_by``.

    ``date`` and ``time`` put newer orders first on ascending. ``time`` only
    looks at the hour of creation, so orders within the same hour tie.
    """
    option = SortOption(sort_by)
    if option == SortOption.AGENT:
        return lambda a, b: _cmp_text(a.assigned_to or "", b.assigned_to or "")
    if option == SortOption.DATE:
        return lambda a, b: _cmp(b.created_at, a.created_at)
    if option == SortOption.TIME:
        return lambda a, b: _cmp(_hour(b, tz), _hour(a, tz))
    return lambda a, b: _cmp_text(a.ticket_number or "", b.ticket_number or "")


def sort_orders(orders: Iterable[Order], sort: SortState, *, tz: Optional[tzinfo] = None) -> list[Order]:
    compare = comparator(sort.sort_by, tz)
    if sort.direction == SortDirection.DESC:
        base = compare

        def compare(a, b):
            return -base(a, b)

    return sorted(orders, key=cmp_to_key(compare))


# ============================================================================
# Columns
# ============================================================================


def bucket_columns(orders: list[Order], *, show_completed: bool) -> list[BoardColumn]:
    """
    Partition sorted orders into board columns.

    Unassigned is omitted when empty; Completed only appears when
    ``show_completed`` is on, even if it is empty.
    """
    by_status: dict[str, list[Order]] = {status.value: [] for status in OrderStatus}
    for order in orders:
        by_status[OrderStatus(order.status).value].append(order)

    columns = []
    if by_status[OrderStatus.UNASSIGNED.value]:
        columns.append(
            BoardColumn(key="unassigned", title="Unassigned", orders=by_status["unassigned"])
        )
    columns.append(
        BoardColumn(key="in-progress", title="In Progress", orders=by_status["in-progress"])
    )
    if show_completed:
        columns.append(
            BoardColumn(key="completed", title="Completed", orders=by_status["completed"])
        )
    return columns


def project(
    orders: Iterable[Order],
    filters: Optional[FilterState] = None,
    search: Optional[SearchState] = None,
    sort: Optional[SortState] = None,
    *,
    show_completed: bool = False,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> Board:
    """
    Project the order set into board columns.

    Args:
        orders: Current order set
        filters: Filter panel state (default: everything visible)
        search: Search term and field
        sort: Sort option and direction
        show_completed: Show the Completed column
        now: Reference time for relative filters
        tz: Timezone for the hour-of-day sort

    Returns:
        Board with the visible columns
    """
    filters = filters or FilterState()
    search = search or SearchState()
    sort = sort or SortState()

    visible = sort_orders(filter_orders(orders, filters, search, now=now), sort, tz=tz)
    completed_count = sum(1 for order in visible if order.status == OrderStatus.COMPLETED)
    return Board(
        columns=bucket_columns(visible, show_completed=show_completed),
        completed_count=completed_count,
        visible_orders=len(visible),
    )


def project_view(
    orders: Iterable[Order],
    view: ViewState,
    *,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> Board:
    return project(
        orders,
        view.filters,
        view.search,
        view.sort,
        show_completed=view.show_completed,
        now=now,
        tz=tz,
    )
