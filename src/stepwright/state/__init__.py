from stepwright.state.milestones import (
    MilestoneDefinition,
    MilestonePlanner,
    MilestoneProgress,
    MilestoneStatus,
)
from stepwright.state.progress import GroupProgress, ProgressAggregator, ProgressSummary
from stepwright.state.store import TaskRecord, TaskStatus, TaskStore

__all__ = [
    "GroupProgress",
    "MilestoneDefinition",
    "MilestonePlanner",
    "MilestoneProgress",
    "MilestoneStatus",
    "ProgressAggregator",
    "ProgressSummary",
    "TaskRecord",
    "TaskStatus",
    "TaskStore",
]
