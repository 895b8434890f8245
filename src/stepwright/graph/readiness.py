from __future__ import annotations

from collections.abc import Iterable

from stepwright.graph.models import Graph, TaskDeclaration


class ReadinessCalculator:
    """Answers "what can start now" for a graph and a set of completed step ids.

    Results keep the declaration order of the graph; the first available step is
    what ``next`` suggests to the user.
    """

    def __init__(self, graph: Graph) -> None:
        self.graph = graph

    def available(self, completed: Iterable[int]) -> list[TaskDeclaration]:
        done = set(completed)
        return [
            item
            for item in self.graph
            if item.id not in done and done.issuperset(item.depends_on)
        ]

    def parallel_candidates(self, completed: Iterable[int]) -> list[TaskDeclaration]:
        return [item for item in self.available(completed) if item.parallel_safe]

    def can_start(self, task_id: int, completed: Iterable[int]) -> bool:
        if task_id not in self.graph:
            return False
        return set(completed).issuperset(self.graph.dependencies(task_id))

    def blocking_dependencies(self, task_id: int, completed: Iterable[int]) -> list[int]:
        done = set(completed)
        return [dep for dep in self.graph.dependencies(task_id) if dep not in done]
