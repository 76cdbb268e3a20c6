"""Agent, Department and Category Models.

Departments are keyed by name (no synthetic id). Agent counters are a cache of
what the order set already says and can be recomputed at any time.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class Agent(BaseModel):
    """Agent who can be assigned orders."""

    name: str
    email: str = ""
    extension: str = ""
    completed_orders: int = Field(default=0, ge=0)
    total_orders: int = Field(default=0, ge=0)

    @field_validator("email", "extension", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("completed_orders", "total_orders", mode="before")
    @classmethod
    def _none_as_zero(cls, value: Any) -> Any:
        return 0 if value is None else value

    def to_row(self, department_name: str) -> dict[str, Any]:
        """Serialize to the ``agents`` table row shape."""
        return {
            "name": self.name,
            "department_name": department_name,
            "email": self.email,
            "extension": self.extension,
            "completed_orders": self.completed_orders,
            "total_orders": self.total_orders,
        }


class Department(BaseModel):
    """Named group of agents."""

    name: str
    agents: list[Agent] = Field(default_factory=list)

    def agent(self, name: str) -> Optional[Agent]:
        for agent in self.agents:
            if agent.name == name:
                return agent
        return None

    def agent_names(self) -> list[str]:
        return [agent.name for agent in self.agents]


class Category(BaseModel):
    """Order category with the checklist template new orders start from."""

    name: str
    tasks: list[str] = Field(default_factory=list)


DEFAULT_DEPARTMENT = "Management"
DEFAULT_AGENT = Agent(name="Admin", email="admin@example.com", extension="100")

DEFAULT_CATEGORIES: list[Category] = [
    Category(
        name="Outage",
        tasks=["Confirm service address", "Check node status", "Dispatch technician"],
    ),
    Category(
        name="Repair",
        tasks=["Troubleshoot with customer", "Schedule visit", "Replace equipment", "Verify service"],
    ),
    Category(
        name="Billing",
        tasks=["Review account", "Apply adjustment", "Send invoice"],
    ),
    Category(
        name="Upgrade",
        tasks=["Confirm plan", "Provision service", "Update invoice"],
    ),
    Category(
        name="Cancellation",
        tasks=["Retention offer", "Schedule equipment pickup", "Close account"],
    ),
    Category(
        name="New Service",
        tasks=["Site survey", "Install", "Activate", "Welcome call"],
    ),
]
