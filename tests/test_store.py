import json
import os
from pathlib import Path

import pytest

from stepwright.errors import (
    CycleDetected,
    DanglingDependency,
    InvalidTransition,
    MalformedDocument,
    PersistenceError,
    SelfDependency,
    TaskNotFound,
)
from stepwright.graph import TaskDeclaration
from stepwright.state import TaskRecord, TaskStatus, TaskStore
from stepwright.tags import Agent, Module


def _statuses(store: TaskStore) -> dict[int, TaskStatus]:
    return {record.id: record.status for record in store.records}


def _document(*entries: dict) -> dict:
    return {
        "generatedAt": "2026-01-05T10:00:00+00:00",
        "project": "shop",
        "totalSteps": len(entries),
        "entries": list(entries),
    }


def _entry(step: int, *deps: int, status: str = "pending", **extra: object) -> dict:
    payload = {
        "step": step,
        "title": f"Step {step}",
        "dependsOn": list(deps),
        "module": None,
        "agent": None,
        "status": status,
        "promptedAt": None,
        "completedAt": None,
    }
    payload.update(extra)
    return payload


@pytest.fixture
def store(tmp_path: Path, diamond: list[TaskDeclaration]) -> TaskStore:
    return TaskStore.initialize(tmp_path / ".ai" / "tasks.json", diamond, project="shop")


def test_initialize_sets_ready_for_roots_only(store: TaskStore) -> None:
    assert _statuses(store) == {
        1: TaskStatus.READY,
        2: TaskStatus.PENDING,
        3: TaskStatus.PENDING,
        4: TaskStatus.PENDING,
    }
    document = json.loads(store.path.read_text(encoding="utf-8"))
    assert document["project"] == "shop"
    assert document["totalSteps"] == 4
    assert [entry["step"] for entry in document["entries"]] == [1, 2, 3, 4]


def test_initialize_resolves_agent_from_module(tmp_path: Path) -> None:
    declarations = [
        TaskDeclaration(id=1, title="Schema", module=Module.DATABASE),
        TaskDeclaration(id=2, title="Login", module=Module.AUTH),
        TaskDeclaration(id=3, title="Notes"),
    ]
    store = TaskStore.initialize(tmp_path / "tasks.json", declarations, project="p")

    assert [record.agent for record in store.records] == [
        Agent.DATABASE,
        Agent.BACKEND,
        Agent.UNASSIGNED,
    ]
    entries = json.loads(store.path.read_text(encoding="utf-8"))["entries"]
    assert entries[2]["module"] is None
    assert entries[2]["agent"] is None


def test_completion_promotes_dependents_once_all_deps_are_done(store: TaskStore) -> None:
    store.mark_completed(1)
    assert _statuses(store) == {
        1: TaskStatus.COMPLETED,
        2: TaskStatus.READY,
        3: TaskStatus.READY,
        4: TaskStatus.PENDING,
    }

    store.mark_completed(2)
    assert store.require(4).status is TaskStatus.PENDING

    store.mark_completed(3)
    assert store.require(4).status is TaskStatus.READY

    reloaded = TaskStore.load(store.path)
    assert _statuses(reloaded) == _statuses(store)
    assert reloaded.require(1).completed_at is not None


def test_completion_leaves_prompted_dependents_alone(tmp_path: Path) -> None:
    declarations = [
        TaskDeclaration(id=1, title="Base"),
        TaskDeclaration(id=2, title="Follow up", depends_on=(1,)),
        TaskDeclaration(id=3, title="Unrelated"),
    ]
    store = TaskStore.initialize(tmp_path / "tasks.json", declarations, project="p")
    store.mark_prompted(2)

    store.mark_completed(1)

    assert store.require(2).status is TaskStatus.PROMPTED
    assert store.require(3).status is TaskStatus.READY


def test_mark_prompted_records_timestamp(store: TaskStore) -> None:
    record = store.mark_prompted(1)

    assert record.status is TaskStatus.PROMPTED
    assert record.prompted_at is not None
    assert TaskStore.load(store.path).require(1).status is TaskStatus.PROMPTED


def test_mark_prompted_on_completed_step_is_rejected(store: TaskStore) -> None:
    store.mark_completed(1)
    with pytest.raises(InvalidTransition) as exc_info:
        store.mark_prompted(1)
    assert exc_info.value.current == "completed"
    assert store.require(1).status is TaskStatus.COMPLETED


def test_completing_twice_keeps_first_timestamp(store: TaskStore) -> None:
    first = store.mark_completed(1).completed_at
    before = store.path.read_bytes()

    assert store.mark_completed(1).completed_at == first
    assert store.path.read_bytes() == before


def test_unknown_step_leaves_document_untouched(store: TaskStore) -> None:
    before = store.path.read_bytes()

    for operation in (store.mark_prompted, store.mark_completed, store.reset):
        with pytest.raises(TaskNotFound) as exc_info:
            operation(99)
        assert exc_info.value.task_id == 99

    assert store.path.read_bytes() == before


def test_failed_write_keeps_previous_document_and_memory(
    store: TaskStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    before = store.path.read_bytes()

    def refuse(src: object, dst: object) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", refuse)
    with pytest.raises(PersistenceError):
        store.mark_completed(1)

    assert store.path.read_bytes() == before
    assert store.require(1).status is TaskStatus.READY
    assert store.require(2).status is TaskStatus.PENDING
    assert [path.name for path in store.path.parent.iterdir()] == ["tasks.json"]


def test_reset_is_readiness_aware_and_idempotent(store: TaskStore) -> None:
    store.mark_completed(1)
    store.mark_completed(2)

    assert store.reset(2).status is TaskStatus.READY
    assert store.reset(2).status is TaskStatus.READY
    assert store.require(2).completed_at is None

    store.reset(1)
    assert store.require(1).status is TaskStatus.READY
    # no cascade: dependents keep their status
    assert store.require(2).status is TaskStatus.READY
    assert store.reset(4).status is TaskStatus.PENDING


def test_load_missing_document(tmp_path: Path) -> None:
    with pytest.raises(PersistenceError, match="stepwright build"):
        TaskStore.load(tmp_path / "tasks.json")


def test_load_invalid_json(tmp_path: Path) -> None:
    path = tmp_path / "tasks.json"
    path.write_text("{oops", encoding="utf-8")
    with pytest.raises(MalformedDocument):
        TaskStore.load(path)


@pytest.mark.parametrize(
    "entry",
    [
        _entry(1, status="finished"),
        _entry(1, module="quantum"),
        _entry(1, agent="wizard"),
        _entry(0),
        _entry(1, parallel="yes"),
        {"title": "no step number"},
    ],
)
def test_schema_violations_are_malformed(tmp_path: Path, entry: dict) -> None:
    with pytest.raises(MalformedDocument):
        TaskStore.from_document(tmp_path / "tasks.json", _document(entry))


def test_duplicate_entries_are_malformed(tmp_path: Path) -> None:
    with pytest.raises(MalformedDocument):
        TaskStore.from_document(tmp_path / "tasks.json", _document(_entry(1), _entry(1)))


@pytest.mark.parametrize(
    ("entries", "cause"),
    [
        ((_entry(1), _entry(2, 5)), DanglingDependency),
        ((_entry(1, 2), _entry(2, 1)), CycleDetected),
        ((_entry(1), _entry(2, 2)), SelfDependency),
    ],
)
def test_document_with_broken_graph_is_malformed(
    tmp_path: Path, entries: tuple[dict, ...], cause: type[Exception]
) -> None:
    with pytest.raises(MalformedDocument) as exc_info:
        TaskStore.from_document(tmp_path / "tasks.json", _document(*entries))
    assert isinstance(exc_info.value.__cause__, cause)


def test_load_invalid_utf8(tmp_path: Path) -> None:
    path = tmp_path / "tasks.json"
    path.write_bytes(b'{"entries": [], "project": "\xff\xfe"}')

    with pytest.raises(MalformedDocument, match="UTF-8"):
        TaskStore.load(path)


def test_document_round_trip_preserves_unknown_keys(tmp_path: Path) -> None:
    document = _document(
        _entry(1, status="completed", completedAt="2026-01-05T11:00:00+00:00", notes="done"),
        _entry(2, 1, status="ready", module="api", agent="backend", parallel=True),
    )
    document["owner"] = "platform-team"

    store = TaskStore.from_document(tmp_path / "tasks.json", document)

    assert store.to_document() == document
    assert store.require(2).parallel_safe is True
    assert store.require(1).extras == {"notes": "done"}


def test_record_from_declaration_keeps_parallel_flag() -> None:
    record = TaskRecord.from_declaration(
        TaskDeclaration(id=2, title="Docs", depends_on=(1,), parallel_safe=True)
    )
    assert record.status is TaskStatus.PENDING
    assert record.to_dict()["parallel"] is True
    assert record.to_declaration().parallel_safe is True


def test_literal_unassigned_tags_are_written_back(tmp_path: Path) -> None:
    document = _document(
        _entry(1, module="other", agent="generic"),
        _entry(2, 1, module=None, agent="Generic"),
    )

    store = TaskStore.from_document(tmp_path / "tasks.json", document)

    assert store.require(1).module is Module.UNASSIGNED
    assert store.require(2).agent is Agent.UNASSIGNED
    assert store.to_document() == document
