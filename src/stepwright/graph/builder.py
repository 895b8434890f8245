from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from stepwright.errors import (
    CycleDetected,
    DanglingDependency,
    DuplicateTaskId,
    GraphError,
    SelfDependency,
)
from stepwright.graph.models import Graph, TaskDeclaration

logger = logging.getLogger(__name__)

_UNVISITED = 0
_IN_PROGRESS = 1
_DONE = 2


class GraphBuilder:
    def build(self, declarations: Iterable[TaskDeclaration]) -> Graph:
        items = list(declarations)
        try:
            by_id = self._index(items)
            self._check_references(items, by_id)
            self._check_acyclic(by_id)
        except GraphError as exc:
            logger.warning("Rejected step declarations: %s", exc)
            raise

        forward = {task_id: frozenset(item.depends_on) for task_id, item in by_id.items()}
        reverse: dict[int, set[int]] = {task_id: set() for task_id in by_id}
        for task_id, item in by_id.items():
            for dep in item.depends_on:
                reverse[dep].add(task_id)

        graph = Graph(
            declarations=by_id,
            forward_edges=forward,
            reverse_edges={task_id: frozenset(deps) for task_id, deps in reverse.items()},
        )
        logger.debug(
            "Built dependency graph with %d steps and %d edges", len(graph), graph.edge_count
        )
        return graph

    @staticmethod
    def _index(items: Sequence[TaskDeclaration]) -> dict[int, TaskDeclaration]:
        by_id: dict[int, TaskDeclaration] = {}
        for item in items:
            if item.id in by_id:
                raise DuplicateTaskId(item.id)
            by_id[item.id] = item
        return by_id

    @staticmethod
    def _check_references(
        items: Sequence[TaskDeclaration], by_id: dict[int, TaskDeclaration]
    ) -> None:
        for item in items:
            if item.id in item.depends_on:
                raise SelfDependency(item.id)
            for dep in item.depends_on:
                if dep not in by_id:
                    raise DanglingDependency(item.id, dep)

    @staticmethod
    def _check_acyclic(by_id: dict[int, TaskDeclaration]) -> None:
        """Iterative three-colour DFS over dependency edges."""
        state = dict.fromkeys(by_id, _UNVISITED)
        for root in by_id:
            if state[root] != _UNVISITED:
                continue
            state[root] = _IN_PROGRESS
            path = [root]
            pending = [iter(by_id[root].depends_on)]
            while pending:
                child = next(pending[-1], None)
                if child is None:
                    state[path.pop()] = _DONE
                    pending.pop()
                    continue
                if state[child] == _IN_PROGRESS:
                    raise CycleDetected(path[path.index(child):])
                if state[child] == _UNVISITED:
                    state[child] = _IN_PROGRESS
                    path.append(child)
                    pending.append(iter(by_id[child].depends_on))


def build_graph(declarations: Iterable[TaskDeclaration]) -> Graph:
    return GraphBuilder().build(declarations)
