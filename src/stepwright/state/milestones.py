"""Milestone rollups: consecutive slices of the plan with their own progress.

Without explicit definitions, steps are split in declaration order into
``ceil(total / len(names))`` sized groups (or ``steps_per_milestone`` when
given); whatever is left over joins the last milestone.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from stepwright.state.progress import percentage_of
from stepwright.state.store import TaskStore

DEFAULT_MILESTONES: tuple[str, ...] = ("MVP", "Beta", "Production")


class MilestoneStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass(slots=True)
class MilestoneDefinition:
    name: str
    steps: list[int] = field(default_factory=list)


@dataclass(slots=True)
class MilestoneProgress:
    id: int
    name: str
    steps: list[int] = field(default_factory=list)
    completed_steps: list[int] = field(default_factory=list)

    @property
    def percentage(self) -> int:
        return percentage_of(len(self.completed_steps), len(self.steps))

    @property
    def status(self) -> MilestoneStatus:
        if self.steps and len(self.completed_steps) == len(self.steps):
            return MilestoneStatus.COMPLETED
        if self.completed_steps:
            return MilestoneStatus.IN_PROGRESS
        return MilestoneStatus.PENDING

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "steps": list(self.steps),
            "completed": list(self.completed_steps),
            "percentage": self.percentage,
            "status": self.status.value,
        }


def auto_group(
    step_ids: Sequence[int],
    names: Sequence[str] = DEFAULT_MILESTONES,
    steps_per_milestone: int | None = None,
) -> list[MilestoneDefinition]:
    if not step_ids or not names:
        return []
    size = steps_per_milestone or math.ceil(len(step_ids) / len(names))
    groups: list[MilestoneDefinition] = []
    for index, name in enumerate(names):
        chunk = list(step_ids[index * size : (index + 1) * size])
        if not chunk:
            break
        groups.append(MilestoneDefinition(name=name, steps=chunk))
    groups[-1].steps.extend(step_ids[len(groups) * size :])
    return groups


class MilestonePlanner:
    """Read-only milestone view over a ``TaskStore``."""

    def __init__(
        self,
        store: TaskStore,
        definitions: Sequence[MilestoneDefinition] | None = None,
        *,
        names: Sequence[str] = DEFAULT_MILESTONES,
        steps_per_milestone: int | None = None,
    ) -> None:
        self.store = store
        if definitions is None:
            ids = [record.id for record in store.records]
            definitions = auto_group(ids, names, steps_per_milestone)
        for definition in definitions:
            for task_id in definition.steps:
                store.require(task_id)
        self.definitions = list(definitions)

    def milestones(self) -> list[MilestoneProgress]:
        completed = self.store.completed_ids()
        return [
            MilestoneProgress(
                id=index,
                name=definition.name,
                steps=list(definition.steps),
                completed_steps=[task_id for task_id in definition.steps if task_id in completed],
            )
            for index, definition in enumerate(self.definitions, start=1)
        ]

    def current(self) -> MilestoneProgress | None:
        """First milestone that is not completed yet."""
        for milestone in self.milestones():
            if milestone.status is not MilestoneStatus.COMPLETED:
                return milestone
        return None

    def upcoming(self) -> MilestoneProgress | None:
        current = self.current()
        if current is None:
            return None
        milestones = self.milestones()
        return milestones[current.id] if current.id < len(milestones) else None

