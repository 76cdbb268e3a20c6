"""Models package with lazy imports to keep ``import models`` cheap."""

from typing import Any

__all__ = [
    # Order models
    "Order",
    "OrderDetails",
    "OrderStatus",
    "Priority",
    "Task",
    # Staff models
    "Agent",
    "Department",
    "Category",
    # Dashboard models
    "DashboardStats",
    # Results
    "WriteResult",
    "PendingWrite",
    # View models
    "Board",
    "BoardColumn",
    "FilterState",
    "SearchState",
    "SortState",
    "StatusFilter",
    "ViewState",
    "SearchField",
    "SortOption",
    "SortDirection",
    "CreatedWithin",
]


_LAZY_IMPORTS = {
    # Order models
    "Order": ("models.orders", "Order"),
    "OrderDetails": ("models.orders", "OrderDetails"),
    "OrderStatus": ("models.orders", "OrderStatus"),
    "Priority": ("models.orders", "Priority"),
    "Task": ("models.orders", "Task"),
    # Staff models
    "Agent": ("models.staff", "Agent"),
    "Department": ("models.staff", "Department"),
    "Category": ("models.staff", "Category"),
    # Dashboard models
    "DashboardStats": ("models.dashboard", "DashboardStats"),
    # Results
    "WriteResult": ("models.results", "WriteResult"),
    "PendingWrite": ("models.results", "PendingWrite"),
    # View models
    "Board": ("models.view", "Board"),
    "BoardColumn": ("models.view", "BoardColumn"),
    "FilterState": ("models.view", "FilterState"),
    "SearchState": ("models.view", "SearchState"),
    "SortState": ("models.view", "SortState"),
    "StatusFilter": ("models.view", "StatusFilter"),
    "ViewState": ("models.view", "ViewState"),
    "SearchField": ("models.view", "SearchField"),
    "SortOption": ("models.view", "SortOption"),
    "SortDirection": ("models.view", "SortDirection"),
    "CreatedWithin": ("models.view", "CreatedWithin"),
}


def __getattr__(name: str) -> Any:
    """
    Lazy import implementation.

    Example:
        from models import Order  # Only imports models.orders when Order is accessed
    """
    if name in _LAZY_IMPORTS:
        module_name, attr_name = _LAZY_IMPORTS[name]
        import importlib

        module = importlib.import_module(module_name)
        return getattr(module, attr_name)

    raise AttributeError(f"module 'models' has no attribute '{name}'")


def __dir__() -> list[str]:
    """Return list of available attributes for autocomplete."""
    return __all__
