"""View state models for the order board (search, filters, sort, columns)."""

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models.orders import Order, Priority


class SearchField(str, Enum):
    CUSTOMER = "customer"
    AGENT = "agent"
    TICKET = "ticket"


class SortOption(str, Enum):
    AGENT = "agent"
    DATE = "date"
    TIME = "time"
    TICKET = "ticket"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class CreatedWithin(str, Enum):
    ALL = "all"
    DAY = "24h"
    WEEK = "7d"
    MONTH = "30d"


class SearchState(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    term: str = ""
    field: SearchField = SearchField.CUSTOMER


class SortState(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    sort_by: SortOption = SortOption.TICKET
    direction: SortDirection = SortDirection.ASC


class StatusFilter(BaseModel):
    """Independent visibility toggle per status."""

    unassigned: bool = True
    in_progress: bool = True
    completed: bool = True


def _all_priorities() -> set[str]:
    return {priority.value for priority in Priority}


class FilterState(BaseModel):
    """Filter panel state. Defaults let every order through."""

    model_config = ConfigDict(use_enum_values=True)

    customer_name: str = ""
    assigned_to: str = ""
    created_within: CreatedWithin = CreatedWithin.ALL
    closed_after: Optional[date] = None
    status: StatusFilter = Field(default_factory=StatusFilter)
    priority: set[Priority] = Field(default_factory=_all_priorities)


class BoardColumn(BaseModel):
    key: str
    title: str
    orders: list[Order] = Field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.orders)


class Board(BaseModel):
    """Projection result: the visible columns of the order board."""

    columns: list[BoardColumn] = Field(default_factory=list)
    completed_count: int = 0
    visible_orders: int = 0

    def column(self, key: str) -> Optional[BoardColumn]:
        for column in self.columns:
            if column.key == key:
                return column
        return None

    def column_keys(self) -> list[str]:
        return [column.key for column in self.columns]


class ViewState(BaseModel):
    """
    Per-session board state.

    Expanded cards only affect presentation; nothing here is persisted.
    """

    search: SearchState = Field(default_factory=SearchState)
    sort: SortState = Field(default_factory=SortState)
    filters: FilterState = Field(default_factory=FilterState)
    show_completed: bool = False
    expanded_cards: set[str] = Field(default_factory=set)

    def toggle_card(self, order_id: str) -> bool:
        """Expand or collapse an order card. Returns the new expanded flag."""
        if order_id in self.expanded_cards:
            self.expanded_cards.discard(order_id)
            return False
        self.expanded_cards.add(order_id)
        return True

    def is_expanded(self, order_id: str) -> bool:
        return order_id in self.expanded_cards

    def toggle_sort_direction(self) -> str:
        self.sort.direction = (
            SortDirection.DESC.value
            if self.sort.direction == SortDirection.ASC
            else SortDirection.ASC.value
        )
        return self.sort.direction

    def toggle_show_completed(self) -> bool:
        self.show_completed = not self.show_completed
        return self.show_completed

    def reset_filters(self) -> None:
        self.filters = FilterState()

    def forget(self, order_ids: set[str]) -> None:
        """Drop expansion state for orders that no longer exist."""
        self.expanded_cards &= order_ids
