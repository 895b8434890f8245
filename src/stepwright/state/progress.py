from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import asdict, dataclass

from stepwright.state.store import TaskRecord, TaskStatus, TaskStore


def percentage_of(completed: int, total: int) -> int:
    if total == 0:
        return 0
    # halves round up
    return math.floor(completed / total * 100 + 0.5)


@dataclass(slots=True)
class ProgressSummary:
    total: int = 0
    completed: int = 0
    ready: int = 0
    pending: int = 0
    prompted: int = 0
    percentage: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(slots=True)
class GroupProgress:
    total: int = 0
    completed: int = 0
    ready: int = 0
    pending: int = 0

    @property
    def percentage(self) -> int:
        return percentage_of(self.completed, self.total)

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class ProgressAggregator:
    """Read-only rollups over a ``TaskStore``.

    Within a group, prompted steps are counted as pending: they still wait on the
    developer.
    """

    def __init__(self, store: TaskStore) -> None:
        self.store = store

    def summary(self) -> ProgressSummary:
        records = self.store.records
        counts = {status: 0 for status in TaskStatus}
        for record in records:
            counts[record.status] += 1
        completed = counts[TaskStatus.COMPLETED]
        return ProgressSummary(
            total=len(records),
            completed=completed,
            ready=counts[TaskStatus.READY],
            pending=counts[TaskStatus.PENDING],
            prompted=counts[TaskStatus.PROMPTED],
            percentage=percentage_of(completed, len(records)),
        )

    def by_module(self) -> dict[str, GroupProgress]:
        return self._group(lambda record: record.module.value)

    def by_agent(self) -> dict[str, GroupProgress]:
        return self._group(lambda record: record.agent.value)

    def _group(self, key: Callable[[TaskRecord], str]) -> dict[str, GroupProgress]:
        groups: dict[str, GroupProgress] = {}
        for record in self.store.records:
            group = groups.setdefault(key(record), GroupProgress())
            group.total += 1
            if record.status is TaskStatus.COMPLETED:
                group.completed += 1
            elif record.status is TaskStatus.READY:
                group.ready += 1
            else:
                group.pending += 1
        return groups
