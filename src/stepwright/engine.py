from __future__ import annotations

from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from stepwright.graph import CriticalPathAnalyzer, TaskDeclaration
from stepwright.graph.render import to_ascii, to_mermaid
from stepwright.state import MilestonePlanner, ProgressAggregator, TaskRecord, TaskStore
from stepwright.state.milestones import DEFAULT_MILESTONES


def _record_brief(record: TaskRecord) -> dict[str, Any]:
    return {
        "step": record.id,
        "title": record.title,
        "agent": record.agent.value,
        "module": record.module.value,
        "status": record.status.value,
    }


class Engine:
    def __init__(
        self,
        store: TaskStore,
        *,
        milestone_names: Sequence[str] = DEFAULT_MILESTONES,
        steps_per_milestone: int | None = None,
    ) -> None:
        self.store = store
        self.graph = store.graph
        self.readiness = store.readiness
        self.analyzer = CriticalPathAnalyzer(store.graph)
        self.progress = ProgressAggregator(store)
        self.milestones = MilestonePlanner(
            store, names=milestone_names, steps_per_milestone=steps_per_milestone
        )

    @classmethod
    def open(cls, path: Path, **options: Any) -> Engine:
        return cls(TaskStore.load(path), **options)

    @classmethod
    def initialize(
        cls, path: Path, declarations: Iterable[TaskDeclaration], *, project: str
    ) -> Engine:
        return cls(TaskStore.initialize(path, declarations, project=project))

    def _records(self, declarations: Iterable[TaskDeclaration]) -> list[TaskRecord]:
        return [self.store.require(item.id) for item in declarations]

    def available(self) -> list[TaskRecord]:
        return self._records(self.readiness.available(self.store.completed_ids()))

    def parallel_candidates(self) -> list[TaskRecord]:
        return self._records(self.readiness.parallel_candidates(self.store.completed_ids()))

    def next_task(self) -> TaskRecord | None:
        available = self.available()
        return available[0] if available else None

    def can_start(self, task_id: int) -> bool:
        return self.readiness.can_start(task_id, self.store.completed_ids())

    def blocking_dependencies(self, task_id: int) -> list[int]:
        self.store.require(task_id)
        return self.readiness.blocking_dependencies(task_id, self.store.completed_ids())

    def critical_path(self) -> list[int]:
        return self.analyzer.critical_path()

    def mark_prompted(self, task_id: int) -> TaskRecord:
        return self.store.mark_prompted(task_id)

    def mark_completed(self, task_id: int) -> TaskRecord:
        return self.store.mark_completed(task_id)

    def reset(self, task_id: int) -> TaskRecord:
        return self.store.reset(task_id)

    def is_finished(self) -> bool:
        summary = self.progress.summary()
        return summary.completed == summary.total

    def render(self, fmt: str = "ascii") -> str:
        if fmt == "mermaid":
            return to_mermaid(self.graph)
        return to_ascii(self.graph, self.store.completed_ids())

    def status(
        self,
        *,
        max_ready: int | None = None,
        modules: bool = False,
        agents: bool = False,
        milestones: bool = False,
    ) -> dict[str, Any]:
        ready = self.available()
        shown = ready if max_ready is None else ready[:max_ready]
        payload: dict[str, Any] = {
            "project": self.store.project,
            "summary": self.progress.summary().to_dict(),
            "available": [_record_brief(record) for record in shown],
            "available_hidden": len(ready) - len(shown),
            "parallel": [record.id for record in self.parallel_candidates()],
            "critical_path": self.critical_path(),
        }
        if modules:
            payload["by_module"] = {
                name: group.to_dict() for name, group in self.progress.by_module().items()
            }
        if agents:
            payload["by_agent"] = {
                name: group.to_dict() for name, group in self.progress.by_agent().items()
            }
        if milestones:
            current = self.milestones.current()
            upcoming = self.milestones.upcoming()
            payload["milestones"] = [item.to_dict() for item in self.milestones.milestones()]
            payload["current_milestone"] = current.name if current else None
            payload["next_milestone"] = upcoming.name if upcoming else None
        return payload
