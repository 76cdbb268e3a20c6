"""Write results reported by the persistence gateway and lifecycle engine."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from models.orders import Order, utcnow


class WriteResult(BaseModel):
    """
    Outcome of a write.

    ``success`` means the remote store accepted the write. A write that only
    reached the local fallback store is ``persisted`` and ``degraded`` but not
    successful, so callers can offer a retry.
    """

    success: bool
    persisted: bool = Field(default=False, description="Committed to any store")
    degraded: bool = Field(default=False, description="Committed to the local fallback only")
    skipped: bool = Field(default=False, description="No-op: unknown id or no transition")
    error: Optional[str] = None
    order: Optional[Order] = None

    @classmethod
    def ok(cls, order: Optional[Order] = None) -> "WriteResult":
        return cls(success=True, persisted=True, order=order)

    @classmethod
    def fallback(cls, error: str, order: Optional[Order] = None) -> "WriteResult":
        return cls(success=False, persisted=True, degraded=True, error=error, order=order)

    @classmethod
    def failed(cls, error: str) -> "WriteResult":
        return cls(success=False, persisted=False, error=error)

    @classmethod
    def noop(cls, error: Optional[str] = None, order: Optional[Order] = None) -> "WriteResult":
        return cls(success=error is None, persisted=False, skipped=True, error=error, order=order)


class PendingWrite(BaseModel):
    """
    Gateway write that only reached the local store.

    Kept in the local store until it has been replayed to the remote store.
    Entries for the same order collapse into the newest one.
    """

    seq: Optional[int] = Field(default=None, description="Assigned by the journal")
    operation: str = Field(..., description="Gateway write method, e.g. update_order")
    order_id: Optional[str] = Field(default=None, description="Order the write targets")
    args: list[Any] = Field(default_factory=list, description="JSON-encoded call arguments")
    queued_at: datetime = Field(default_factory=utcnow)
