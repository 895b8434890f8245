from __future__ import annotations

import json
from collections import deque
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from stepwright.errors import InvalidDeclaration, PersistenceError
from stepwright.tags import Module, parse_module


def _positive_int(value: object, *, label: str, task_id: object | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidDeclaration(f"{label} must be an integer, got {value!r}.", task_id=task_id)
    if value <= 0:
        raise InvalidDeclaration(f"{label} must be positive, got {value}.", task_id=task_id)
    return value


@dataclass(frozen=True, slots=True)
class TaskDeclaration:
    id: int
    title: str
    depends_on: tuple[int, ...] = ()
    parallel_safe: bool = False
    module: Module = Module.UNASSIGNED

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskDeclaration:
        if not isinstance(data, dict):
            raise InvalidDeclaration(f"Declaration must be an object, got {type(data).__name__}.")
        task_id = _positive_int(data.get("id"), label="id")

        title = data.get("title", "")
        if not isinstance(title, str):
            raise InvalidDeclaration("title must be a string.", task_id=task_id)

        raw_deps = data.get("dependsOn") or []
        if not isinstance(raw_deps, list | tuple | set | frozenset):
            raise InvalidDeclaration("dependsOn must be a list of step ids.", task_id=task_id)
        depends_on: list[int] = []
        for dep in raw_deps:
            dep_id = _positive_int(dep, label="dependsOn entry", task_id=task_id)
            if dep_id not in depends_on:
                depends_on.append(dep_id)

        parallel = data.get("parallelSafe", data.get("parallel", False))
        if not isinstance(parallel, bool):
            raise InvalidDeclaration("parallelSafe must be a boolean.", task_id=task_id)

        try:
            module = parse_module(data.get("module"))
        except InvalidDeclaration as exc:
            raise InvalidDeclaration(exc.reason, task_id=task_id) from exc

        return cls(
            id=task_id,
            title=title.strip() or f"Step {task_id}",
            depends_on=tuple(depends_on),
            parallel_safe=parallel,
            module=module,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "dependsOn": list(self.depends_on),
            "parallelSafe": self.parallel_safe,
            "module": self.module.to_json(),
        }


@dataclass(slots=True)
class Graph:
    """Validated dependency DAG. Built only through ``GraphBuilder``."""

    declarations: dict[int, TaskDeclaration] = field(default_factory=dict)
    forward_edges: dict[int, frozenset[int]] = field(default_factory=dict)
    reverse_edges: dict[int, frozenset[int]] = field(default_factory=dict)
    _positions: dict[int, int] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self.declarations

    def __len__(self) -> int:
        return len(self.declarations)

    def __iter__(self) -> Iterator[TaskDeclaration]:
        return iter(self.declarations.values())

    @property
    def ids(self) -> list[int]:
        return list(self.declarations)

    @property
    def edge_count(self) -> int:
        return sum(len(deps) for deps in self.forward_edges.values())

    def get(self, task_id: int) -> TaskDeclaration | None:
        return self.declarations.get(task_id)

    def dependencies(self, task_id: int) -> tuple[int, ...]:
        declaration = self.declarations.get(task_id)
        if declaration is None:
            return ()
        return declaration.depends_on

    def position(self, task_id: int) -> int:
        """Index of the step in declaration order."""
        if len(self._positions) != len(self.declarations):
            self._positions = {item: index for index, item in enumerate(self.declarations)}
        return self._positions[task_id]

    def dependents(self, task_id: int) -> list[int]:
        return sorted(self.reverse_edges.get(task_id, frozenset()), key=self.position)

    def topological_order(self) -> list[int]:
        remaining = {task_id: len(deps) for task_id, deps in self.forward_edges.items()}
        queue = deque(task_id for task_id in self.declarations if remaining[task_id] == 0)
        order: list[int] = []
        while queue:
            task_id = queue.popleft()
            order.append(task_id)
            for dependent in self.dependents(task_id):
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    queue.append(dependent)
        return order


def declarations_from_records(records: Iterable[Any]) -> list[TaskDeclaration]:
    return [TaskDeclaration.from_dict(record) for record in records]


def load_declarations(path: Path) -> list[TaskDeclaration]:
    """Read parser output: a JSON array of step records, or ``{"steps": [...]}``."""
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PersistenceError(f"Cannot read declarations file {path}: {exc}", path=path) from exc
    except UnicodeDecodeError as exc:
        raise InvalidDeclaration(f"Declarations file {path} is not valid UTF-8.") from exc
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidDeclaration(f"Declarations file {path} is not valid JSON: {exc}") from exc

    if isinstance(payload, dict):
        payload = payload.get("steps")
    if not isinstance(payload, list):
        raise InvalidDeclaration(
            f"Declarations file {path} must hold a list of steps or an object with 'steps'."
        )
    return declarations_from_records(payload)
