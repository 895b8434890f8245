"""Persisted step status and the transitions that change it.

The store is loaded once per process, mutated through ``mark_prompted``,
``mark_completed`` and ``reset``, and rewritten in full after every change by
writing a sibling temp file and renaming it over the document.

There is no locking: two processes mutating the same document concurrently
race, and the last writer wins. The tool assumes one invocation at a time.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from stepwright.errors import (
    DuplicateTaskId,
    GraphError,
    InvalidDeclaration,
    InvalidTransition,
    MalformedDocument,
    PersistenceError,
    TaskNotFound,
)
from stepwright.graph import Graph, ReadinessCalculator, TaskDeclaration, build_graph
from stepwright.tags import Agent, Module, parse_agent, parse_module, resolve_agent

logger = logging.getLogger(__name__)

_KNOWN_ENTRY_KEYS = {
    "step",
    "title",
    "dependsOn",
    "module",
    "agent",
    "status",
    "parallel",
    "promptedAt",
    "completedAt",
}
_KNOWN_DOCUMENT_KEYS = {"generatedAt", "project", "totalSteps", "entries"}


def _utcnow_iso() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat()


def _tag_literals(data: dict[str, Any], module: Module, agent: Agent) -> dict[str, str]:
    literals: dict[str, str] = {}
    for key, tag in (("module", module), ("agent", agent)):
        raw = data.get(key)
        if isinstance(raw, str) and not tag.is_assigned:
            literals[key] = raw
    return literals


class TaskStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"
    PROMPTED = "prompted"
    COMPLETED = "completed"


@dataclass(slots=True)
class TaskRecord:
    id: int
    title: str
    depends_on: list[int] = field(default_factory=list)
    status: TaskStatus = TaskStatus.PENDING
    module: Module = Module.UNASSIGNED
    agent: Agent = Agent.UNASSIGNED
    parallel: bool | None = None
    prompted_at: str | None = None
    completed_at: str | None = None
    extras: dict[str, Any] = field(default_factory=dict)
    # literal "other"/"generic" tags as read, written back unchanged
    tag_literals: dict[str, str] = field(default_factory=dict)

    @property
    def parallel_safe(self) -> bool:
        return bool(self.parallel)

    @classmethod
    def from_declaration(cls, declaration: TaskDeclaration) -> TaskRecord:
        return cls(
            id=declaration.id,
            title=declaration.title,
            depends_on=list(declaration.depends_on),
            status=TaskStatus.PENDING if declaration.depends_on else TaskStatus.READY,
            module=declaration.module,
            agent=resolve_agent(declaration.module),
            parallel=declaration.parallel_safe,
        )

    def to_declaration(self) -> TaskDeclaration:
        return TaskDeclaration(
            id=self.id,
            title=self.title,
            depends_on=tuple(self.depends_on),
            parallel_safe=self.parallel_safe,
            module=self.module,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "step": self.id,
            "title": self.title,
            "dependsOn": list(self.depends_on),
            "module": self.tag_literals.get("module", self.module.to_json()),
            "agent": self.tag_literals.get("agent", self.agent.to_json()),
            "status": self.status.value,
            "promptedAt": self.prompted_at,
            "completedAt": self.completed_at,
        }
        if self.parallel is not None:
            payload["parallel"] = self.parallel
        payload.update(self.extras)
        return payload

    @classmethod
    def from_dict(cls, data: Any, *, path: Path) -> TaskRecord:
        if not isinstance(data, dict):
            raise MalformedDocument(path, "every entry must be an object")
        step = data.get("step")
        if isinstance(step, bool) or not isinstance(step, int) or step <= 0:
            raise MalformedDocument(path, f"entry has invalid step number {step!r}")

        title = data.get("title", "")
        depends_on = data.get("dependsOn", [])
        if not isinstance(title, str):
            raise MalformedDocument(path, f"step {step} has a non-string title")
        if not isinstance(depends_on, list) or not all(
            isinstance(dep, int) and not isinstance(dep, bool) for dep in depends_on
        ):
            raise MalformedDocument(path, f"step {step} has invalid dependsOn")

        try:
            status = TaskStatus(data.get("status", TaskStatus.PENDING.value))
        except ValueError as exc:
            raise MalformedDocument(
                path, f"step {step} has unknown status {data.get('status')!r}"
            ) from exc

        parallel = data.get("parallel")
        if parallel is not None and not isinstance(parallel, bool):
            raise MalformedDocument(path, f"step {step} has a non-boolean parallel flag")

        prompted_at = data.get("promptedAt")
        completed_at = data.get("completedAt")
        for label, value in (("promptedAt", prompted_at), ("completedAt", completed_at)):
            if value is not None and not isinstance(value, str):
                raise MalformedDocument(path, f"step {step} has a non-string {label}")

        try:
            module = parse_module(data.get("module"))
            agent = parse_agent(data.get("agent"))
        except InvalidDeclaration as exc:
            raise MalformedDocument(path, f"step {step}: {exc.reason}") from exc

        return cls(
            id=step,
            title=title,
            depends_on=list(dict.fromkeys(depends_on)),
            status=status,
            module=module,
            agent=agent,
            parallel=parallel,
            prompted_at=prompted_at,
            completed_at=completed_at,
            extras={key: value for key, value in data.items() if key not in _KNOWN_ENTRY_KEYS},
            tag_literals=_tag_literals(data, module, agent),
        )


class TaskStore:
    def __init__(
        self,
        path: Path,
        records: Iterable[TaskRecord],
        *,
        project: str = "",
        generated_at: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self.path = path
        self.project = project
        self.generated_at = generated_at or _utcnow_iso()
        self.metadata = dict(metadata or {})
        self._records: dict[int, TaskRecord] = {}
        for record in records:
            if record.id in self._records:
                raise DuplicateTaskId(record.id)
            self._records[record.id] = record
        self.graph: Graph = build_graph(
            record.to_declaration() for record in self._records.values()
        )
        self.readiness = ReadinessCalculator(self.graph)

    @classmethod
    def initialize(
        cls, path: Path, declarations: Iterable[TaskDeclaration], *, project: str
    ) -> TaskStore:
        items = list(declarations)
        store = cls(
            path,
            [TaskRecord.from_declaration(item) for item in items],
            project=project,
        )
        store.save()
        logger.info("Initialized %d steps for project '%s' in %s", len(items), project, path)
        return store

    @classmethod
    def load(cls, path: Path) -> TaskStore:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise PersistenceError(
                f"Task document {path} not found. Run 'stepwright build' first.", path=path
            ) from exc
        except OSError as exc:
            raise PersistenceError(f"Cannot read task document {path}: {exc}", path=path) from exc
        except UnicodeDecodeError as exc:
            logger.warning("Task document %s is not valid UTF-8", path)
            raise MalformedDocument(path, "not valid UTF-8") from exc

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Task document %s is not valid JSON", path)
            raise MalformedDocument(path, f"invalid JSON ({exc.msg})") from exc
        return cls.from_document(path, payload)

    @classmethod
    def from_document(cls, path: Path, payload: Any) -> TaskStore:
        if not isinstance(payload, dict):
            raise MalformedDocument(path, "top level must be an object")
        entries = payload.get("entries")
        if not isinstance(entries, list):
            raise MalformedDocument(path, "'entries' must be a list")
        project = payload.get("project", "")
        generated_at = payload.get("generatedAt")
        if not isinstance(project, str):
            raise MalformedDocument(path, "'project' must be a string")
        if generated_at is not None and not isinstance(generated_at, str):
            raise MalformedDocument(path, "'generatedAt' must be a string")

        records = [TaskRecord.from_dict(entry, path=path) for entry in entries]
        seen: set[int] = set()
        for record in records:
            if record.id in seen:
                raise MalformedDocument(path, f"step {record.id} appears more than once")
            seen.add(record.id)

        metadata = {
            key: value for key, value in payload.items() if key not in _KNOWN_DOCUMENT_KEYS
        }
        try:
            return cls(
                path, records, project=project, generated_at=generated_at, metadata=metadata
            )
        except GraphError as exc:
            raise MalformedDocument(path, str(exc)) from exc

    def to_document(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "generatedAt": self.generated_at,
            "project": self.project,
            "totalSteps": len(self._records),
            "entries": [record.to_dict() for record in self._records.values()],
        }
        payload.update(self.metadata)
        return payload

    def save(self) -> None:
        serialized = json.dumps(self.to_document(), ensure_ascii=False, indent=2) + "\n"
        temp_path: Path | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                temp_path = Path(handle.name)
                handle.write(serialized)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_path, self.path)
        except OSError as exc:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)
            raise PersistenceError(
                f"Cannot write task document {self.path}: {exc}", path=self.path
            ) from exc
        logger.debug("Wrote %d steps to %s", len(self._records), self.path)

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        snapshot = {task_id: replace(record) for task_id, record in self._records.items()}
        try:
            yield
            self.save()
        except BaseException:
            self._records = snapshot
            raise

    @property
    def records(self) -> list[TaskRecord]:
        return list(self._records.values())

    def __len__(self) -> int:
        return len(self._records)

    def get(self, task_id: int) -> TaskRecord | None:
        return self._records.get(task_id)

    def require(self, task_id: int) -> TaskRecord:
        record = self._records.get(task_id)
        if record is None:
            raise TaskNotFound(task_id)
        return record

    def with_status(self, status: TaskStatus) -> list[TaskRecord]:
        return [record for record in self._records.values() if record.status is status]

    def completed_ids(self) -> set[int]:
        return {
            record.id
            for record in self._records.values()
            if record.status is TaskStatus.COMPLETED
        }

    def mark_prompted(self, task_id: int) -> TaskRecord:
        record = self.require(task_id)
        if record.status is TaskStatus.COMPLETED:
            raise InvalidTransition(task_id, record.status.value, TaskStatus.PROMPTED.value)
        with self._transaction():
            record = self._records[task_id]
            previous = record.status
            record.status = TaskStatus.PROMPTED
            record.prompted_at = _utcnow_iso()
        logger.info("Step %d: %s -> prompted", task_id, previous.value)
        return self._records[task_id]

    def mark_completed(self, task_id: int) -> TaskRecord:
        record = self.require(task_id)
        if record.status is TaskStatus.COMPLETED:
            logger.info("Step %d is already completed", task_id)
            return record
        with self._transaction():
            record = self._records[task_id]
            previous = record.status
            record.status = TaskStatus.COMPLETED
            record.completed_at = _utcnow_iso()
            promoted = self._promote_dependents(task_id)
        logger.info("Step %d: %s -> completed", task_id, previous.value)
        for dependent in promoted:
            logger.info("Step %d: pending -> ready", dependent)
        return self._records[task_id]

    def reset(self, task_id: int) -> TaskRecord:
        self.require(task_id)
        with self._transaction():
            record = self._records[task_id]
            previous = record.status
            others_done = self.completed_ids() - {task_id}
            record.status = (
                TaskStatus.READY
                if self.readiness.can_start(task_id, others_done)
                else TaskStatus.PENDING
            )
            record.prompted_at = None
            record.completed_at = None
        logger.info("Step %d: %s -> %s (reset)", task_id, previous.value, record.status.value)
        return self._records[task_id]

    def _promote_dependents(self, task_id: int) -> list[int]:
        completed = self.completed_ids()
        promoted: list[int] = []
        for dependent in self.graph.dependents(task_id):
            record = self._records[dependent]
            if record.status is TaskStatus.PENDING and self.readiness.can_start(
                dependent, completed
            ):
                record.status = TaskStatus.READY
                promoted.append(dependent)
        return promoted
