from __future__ import annotations

from stepwright.graph.models import Graph


class CriticalPathAnalyzer:
    """Longest dependency chain through an acyclic graph.

    ``length(n)`` is 1 for a step without dependencies, otherwise one more than the
    longest of its dependencies. Lengths are filled in topological order, so no
    recursion is involved. Ties are broken by declaration order: the earliest
    declared step wins, both for the chain's last step and for every predecessor.
    """

    def __init__(self, graph: Graph) -> None:
        self.graph = graph
        self._lengths: dict[int, int] | None = None

    def chain_lengths(self) -> dict[int, int]:
        if self._lengths is None:
            lengths: dict[int, int] = {}
            for task_id in self.graph.topological_order():
                deps = self.graph.dependencies(task_id)
                lengths[task_id] = 1 + max((lengths[dep] for dep in deps), default=0)
            self._lengths = {task_id: lengths[task_id] for task_id in self.graph.ids}
        return self._lengths

    def _best(self, candidates: list[int] | tuple[int, ...]) -> int | None:
        lengths = self.chain_lengths()
        best: int | None = None
        for task_id in sorted(candidates, key=self.graph.position):
            if best is None or lengths[task_id] > lengths[best]:
                best = task_id
        return best

    def critical_path(self) -> list[int]:
        current = self._best(self.graph.ids)
        path: list[int] = []
        while current is not None:
            path.append(current)
            current = self._best(self.graph.dependencies(current))
        path.reverse()
        return path

    def length(self) -> int:
        return max(self.chain_lengths().values(), default=0)

    def depth_levels(self) -> list[list[int]]:
        """Step ids grouped by depth (0 for steps without dependencies)."""
        levels: list[list[int]] = [[] for _ in range(self.length())]
        for task_id, chain in self.chain_lengths().items():
            levels[chain - 1].append(task_id)
        return levels
