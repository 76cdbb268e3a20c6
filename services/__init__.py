"""Order board services."""

from services.dashboard import DashboardSession
from services.directory import CategoryCatalog, DepartmentDirectory
from services.errors import NotFoundError, OrderBoardError, StoreConnectionError, ValidationError
from services.gateway import PersistenceGateway
from services.lifecycle import OrderLifecycleEngine

__all__ = [
    "CategoryCatalog",
    "DashboardSession",
    "DepartmentDirectory",
    "NotFoundError",
    "OrderBoardError",
    "OrderLifecycleEngine",
    "PersistenceGateway",
    "StoreConnectionError",
    "ValidationError",
]
