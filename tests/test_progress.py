from pathlib import Path

import pytest

from stepwright.graph import TaskDeclaration
from stepwright.state import GroupProgress, ProgressAggregator, ProgressSummary, TaskStore
from stepwright.tags import Module


def _store(tmp_path: Path, declarations: list[TaskDeclaration]) -> TaskStore:
    return TaskStore.initialize(tmp_path / "tasks.json", declarations, project="p")


def test_empty_store_reports_zero(tmp_path: Path) -> None:
    summary = ProgressAggregator(_store(tmp_path, [])).summary()

    assert summary == ProgressSummary()
    assert summary.to_dict() == {
        "total": 0,
        "completed": 0,
        "ready": 0,
        "pending": 0,
        "prompted": 0,
        "percentage": 0,
    }


def test_summary_counts_each_status(tmp_path: Path, diamond: list[TaskDeclaration]) -> None:
    store = _store(tmp_path, diamond)
    store.mark_completed(1)
    store.mark_prompted(2)

    summary = ProgressAggregator(store).summary()

    assert summary.total == 4
    assert summary.completed == 1
    assert summary.prompted == 1
    assert summary.ready == 1
    assert summary.pending == 1
    assert summary.percentage == 25


@pytest.mark.parametrize(
    ("size", "done", "expected"),
    [(3, 1, 33), (3, 2, 67), (6, 1, 17), (8, 1, 13), (8, 5, 63), (8, 3, 38), (2, 2, 100)],
)
def test_percentage_rounds_halves_up(tmp_path: Path, size: int, done: int, expected: int) -> None:
    store = _store(tmp_path, [TaskDeclaration(id=n, title=f"S{n}") for n in range(1, size + 1)])
    for task_id in range(1, done + 1):
        store.mark_completed(task_id)

    assert ProgressAggregator(store).summary().percentage == expected


def test_groups_bucket_untagged_steps(tmp_path: Path) -> None:
    store = _store(
        tmp_path,
        [
            TaskDeclaration(id=1, title="Schema", module=Module.DATABASE),
            TaskDeclaration(id=2, title="Routes", depends_on=(1,), module=Module.API),
            TaskDeclaration(id=3, title="Login", depends_on=(1,), module=Module.AUTH),
            TaskDeclaration(id=4, title="Readme"),
        ],
    )
    store.mark_completed(1)
    store.mark_prompted(3)
    aggregator = ProgressAggregator(store)

    modules = aggregator.by_module()
    assert set(modules) == {"database", "api", "auth", "other"}
    assert modules["database"] == GroupProgress(total=1, completed=1)
    assert modules["auth"] == GroupProgress(total=1, pending=1)
    assert modules["other"] == GroupProgress(total=1, ready=1)

    agents = aggregator.by_agent()
    assert agents["backend"] == GroupProgress(total=2, ready=1, pending=1)
    assert agents["generic"].total == 1
    assert agents["database"].percentage == 100
    assert agents["backend"].percentage == 0


def test_aggregation_does_not_touch_the_document(
    tmp_path: Path, diamond: list[TaskDeclaration]
) -> None:
    store = _store(tmp_path, diamond)
    before = store.path.read_bytes()
    aggregator = ProgressAggregator(store)

    aggregator.summary()
    aggregator.by_module()
    aggregator.by_agent()

    assert store.path.read_bytes() == before
