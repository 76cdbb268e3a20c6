"""Dashboard aggregate models."""

from pydantic import BaseModel, Field


class DashboardStats(BaseModel):
    """
    Dashboard counters.

    Always derived from the order set; a stored copy is a cache that a fresh
    computation overwrites.
    """

    total_orders: int = Field(default=0, ge=0)
    completed_orders: int = Field(default=0, ge=0)
    pending_orders: int = Field(default=0, ge=0)
