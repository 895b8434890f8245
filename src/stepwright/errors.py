from __future__ import annotations

from pathlib import Path


class StepwrightError(RuntimeError):
    """Base class for every error surfaced to the CLI layer."""


class InvalidDeclaration(StepwrightError):
    """Raised when a task declaration record cannot be ingested."""

    def __init__(self, reason: str, *, task_id: object | None = None) -> None:
        prefix = f"Step {task_id}: " if task_id is not None else ""
        super().__init__(f"{prefix}{reason}")
        self.reason = reason
        self.task_id = task_id


class GraphError(StepwrightError):
    """Raised when declarations do not form a valid dependency graph."""


class DuplicateTaskId(GraphError):
    def __init__(self, task_id: int) -> None:
        super().__init__(f"Step {task_id} is declared more than once.")
        self.task_id = task_id


class DanglingDependency(GraphError):
    def __init__(self, task_id: int, missing_id: int) -> None:
        super().__init__(f"Step {task_id} depends on unknown step {missing_id}.")
        self.task_id = task_id
        self.missing_id = missing_id


class SelfDependency(GraphError):
    def __init__(self, task_id: int) -> None:
        super().__init__(f"Step {task_id} depends on itself.")
        self.task_id = task_id


class CycleDetected(GraphError):
    def __init__(self, path: list[int]) -> None:
        chain = " -> ".join(str(item) for item in [*path, path[0]]) if path else ""
        super().__init__(f"Dependency cycle detected: {chain}")
        self.path = list(path)


class TaskNotFound(StepwrightError):
    def __init__(self, task_id: int) -> None:
        super().__init__(f"Step {task_id} not found.")
        self.task_id = task_id


class InvalidTransition(StepwrightError):
    def __init__(self, task_id: int, current: str, target: str) -> None:
        super().__init__(f"Step {task_id} cannot move from {current} to {target}.")
        self.task_id = task_id
        self.current = current
        self.target = target


class PersistenceError(StepwrightError):
    """Raised when the task document cannot be read from or written to disk."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class MalformedDocument(StepwrightError):
    """Raised when the task document exists but does not match the expected schema."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Malformed task document {path}: {reason}")
        self.path = path
        self.reason = reason
