"""
Settings directory: departments, agents and order categories.

Departments and agents are persisted through the gateway. Categories are the
checklist templates new orders start from and live in memory only.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from models.orders import Task
from models.results import WriteResult
from models.staff import DEFAULT_CATEGORIES, Agent, Category, Department
from services.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def _required(value: Optional[str], field: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{field} is required", field=field)
    return value


def _not_found(kind: str, key: str) -> WriteResult:
    return WriteResult.noop(error=str(NotFoundError(kind, key)))


class DepartmentDirectory:
    """Department and agent management on top of the persistence gateway."""

    def __init__(self, gateway):
        self.gateway = gateway
        self._departments: list[Department] = []

    @property
    def departments(self) -> list[Department]:
        return list(self._departments)

    async def refresh(self) -> list[Department]:
        self._departments = await self.gateway.list_departments()
        return self.departments

    def replace(self, departments: Iterable[Department]) -> None:
        """Take a refetched department list (subscription delivery)."""
        self._departments = list(departments)

    def find(self, name: str) -> Optional[Department]:
        for department in self._departments:
            if department.name == name:
                return department
        return None

    def department_of(self, agent_name: str) -> Optional[Department]:
        for department in self._departments:
            if department.agent(agent_name) is not None:
                return department
        return None

    def agents(self) -> list[Agent]:
        return [agent for department in self._departments for agent in department.agents]

    # --------------------------- departments ---------------------------
    async def add_department(self, name: str) -> WriteResult:
        name = _required(name, "name")
        if self.find(name) is not None:
            raise ValidationError(f"Department {name!r} already exists", field="name")
        return await self._save(Department(name=name))

    async def rename_department(self, old_name: str, new_name: str) -> WriteResult:
        new_name = _required(new_name, "name")
        department = self.find(old_name)
        if department is None:
            return _not_found("Department", old_name)
        if new_name == old_name:
            return WriteResult.noop()
        if self.find(new_name) is not None:
            raise ValidationError(f"Department {new_name!r} already exists", field="name")

        result = await self.gateway.rename_department(old_name, new_name)
        if result.persisted:
            renamed = department.model_copy(update={"name": new_name})
            self._departments = [
                renamed if candidate.name == old_name else candidate
                for candidate in self._departments
            ]
            logger.info("[Directory] Renamed department %s -> %s", old_name, new_name)
        return result

    async def delete_department(self, name: str) -> WriteResult:
        """
        Delete a department and its agents.

        Orders assigned to those agents keep their ``assigned_to`` value.
        """
        if self.find(name) is None:
            return _not_found("Department", name)
        result = await self.gateway.delete_department(name)
        if result.persisted or result.skipped:
            self._departments = [d for d in self._departments if d.name != name]
            logger.info("[Directory] Deleted department %s", name)
        return result

    # --------------------------- agents ---------------------------
    async def add_agent(
        self, name: str, email: str, extension: str = "", department: str = ""
    ) -> WriteResult:
        name = _required(name, "name")
        email = _required(email, "email")
        department_name = _required(department, "department")

        target = self.find(department_name)
        if target is None:
            raise ValidationError(f"Department {department_name!r} does not exist", field="department")
        if self.department_of(name) is not None:
            raise ValidationError(f"Agent {name!r} already exists", field="name")

        agent = Agent(name=name, email=email, extension=(extension or "").strip())
        return await self._save(target.model_copy(update={"agents": [*target.agents, agent]}))

    async def update_agent(
        self, name: str, *, email: Optional[str] = None, extension: Optional[str] = None
    ) -> WriteResult:
        department = self.department_of(name)
        if department is None:
            return _not_found("Agent", name)

        changes = {}
        if email is not None:
            changes["email"] = _required(email, "email")
        if extension is not None:
            changes["extension"] = extension.strip()
        if not changes:
            return WriteResult.noop()

        agents = [
            agent.model_copy(update=changes) if agent.name == name else agent
            for agent in department.agents
        ]
        return await self._save(department.model_copy(update={"agents": agents}))

    async def remove_agent(self, name: str) -> WriteResult:
        department = self.department_of(name)
        if department is None:
            return _not_found("Agent", name)
        agents = [agent for agent in department.agents if agent.name != name]
        return await self._save(department.model_copy(update={"agents": agents}))

    async def move_agent(self, name: str, department: str) -> WriteResult:
        source = self.department_of(name)
        if source is None:
            return _not_found("Agent", name)
        target = self.find(department)
        if target is None:
            raise ValidationError(f"Department {department!r} does not exist", field="department")
        if target.name == source.name:
            return WriteResult.noop()

        agent = source.agent(name)
        # Agent names are unique across departments: the target upsert re-parents
        # the row, the source save then no longer lists it.
        result = await self._save(target.model_copy(update={"agents": [*target.agents, agent]}))
        if not result.persisted:
            return result
        remaining = [candidate for candidate in source.agents if candidate.name != name]
        return await self._save(source.model_copy(update={"agents": remaining}))

    # --------------------------- internals ---------------------------
    async def _save(self, department: Department) -> WriteResult:
        result = await self.gateway.save_department(department)
        if result.persisted:
            if self.find(department.name) is None:
                self._departments.append(department)
            else:
                self._departments = [
                    department if candidate.name == department.name else candidate
                    for candidate in self._departments
                ]
        else:
            logger.error("[Directory] Saving department %s failed: %s", department.name, result.error)
        return result


def build_checklist(labels: Iterable[str]) -> list[Task]:
    """Fresh, uncompleted tasks for the given labels. Blank labels are dropped."""
    return [Task(label=label.strip()) for label in labels if label and label.strip()]


class CategoryCatalog:
    """Order categories and their checklist templates."""

    def __init__(self, categories: Optional[Iterable[Category]] = None):
        source = DEFAULT_CATEGORIES if categories is None else categories
        self._categories = [category.model_copy(deep=True) for category in source]

    @property
    def categories(self) -> list[Category]:
        return list(self._categories)

    def names(self) -> list[str]:
        return [category.name for category in self._categories]

    def find(self, name: str) -> Optional[Category]:
        for category in self._categories:
            if category.name == name:
                return category
        return None

    def tasks_for(self, name: str) -> list[str]:
        """Checklist template of a category; unknown categories have none."""
        category = self.find(name)
        return list(category.tasks) if category else []

    def build_checklist(self, name: str) -> list[Task]:
        return build_checklist(self.tasks_for(name))

    def add_category(self, name: str, tasks: Optional[Iterable[str]] = None) -> Category:
        name = _required(name, "name")
        if self.find(name) is not None:
            raise ValidationError(f"Category {name!r} already exists", field="name")
        category = Category(name=name, tasks=[t.strip() for t in tasks or [] if t and t.strip()])
        self._categories.append(category)
        return category

    def remove_category(self, name: str) -> bool:
        before = len(self._categories)
        self._categories = [category for category in self._categories if category.name != name]
        return len(self._categories) < before

    # Task edits return None for an unknown category or task index.
    def add_task(self, category: str, label: str) -> Optional[Category]:
        label = _required(label, "label")
        target = self.find(category)
        if target is None:
            return None
        target.tasks.append(label)
        return target

    def update_task(self, category: str, index: int, label: str) -> Optional[Category]:
        label = _required(label, "label")
        target = self._task_owner(category, index)
        if target is None:
            return None
        target.tasks[index] = label
        return target

    def remove_task(self, category: str, index: int) -> Optional[Category]:
        target = self._task_owner(category, index)
        if target is None:
            return None
        del target.tasks[index]
        return target

    def _task_owner(self, name: str, index: int) -> Optional[Category]:
        category = self.find(name)
        if category is None or not 0 <= index < len(category.tasks):
            return None
        return category
