"""Order stores: remote REST store and local SQLite fallback."""

from .base import ChangeProbe, OrderStore, SnapshotMirror
from .local import LocalStore
from .remote import RemoteStore

__all__ = [
    "ChangeProbe",
    "LocalStore",
    "OrderStore",
    "RemoteStore",
    "SnapshotMirror",
]
