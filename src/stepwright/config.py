from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

LogLevelName = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR")
CONFIG_FILENAME = "stepwright.toml"


@dataclass(slots=True)
class ProjectConfig:
    name: str = "my-project"


@dataclass(slots=True)
class StateConfig:
    directory: str = ".ai"
    tasks_file: str = "tasks.json"


@dataclass(slots=True)
class DisplayConfig:
    max_ready_shown: int = 5


@dataclass(slots=True)
class MilestonesConfig:
    names: list[str] = field(default_factory=lambda: ["MVP", "Beta", "Production"])
    steps_per_milestone: int = 0

    def __post_init__(self) -> None:
        if not self.names or not all(isinstance(name, str) and name for name in self.names):
            raise ValueError("milestones.names must be a non-empty list of names")
        if isinstance(self.steps_per_milestone, bool) or not isinstance(
            self.steps_per_milestone, int
        ):
            raise ValueError("milestones.steps_per_milestone must be an integer")
        if self.steps_per_milestone < 0:
            raise ValueError("milestones.steps_per_milestone must not be negative")


@dataclass(slots=True)
class LoggingConfig:
    level: LogLevelName = "WARNING"
    file: str = ""

    def __post_init__(self) -> None:
        level = str(self.level).upper()
        if level not in LOG_LEVELS:
            raise ValueError(
                f"logging.level must be one of {', '.join(LOG_LEVELS)}, got {self.level!r}"
            )
        self.level = level  # type: ignore[assignment]


@dataclass(slots=True)
class StepwrightConfig:
    project: ProjectConfig = field(default_factory=ProjectConfig)
    state: StateConfig = field(default_factory=StateConfig)
    display: DisplayConfig = field(default_factory=DisplayConfig)
    milestones: MilestonesConfig = field(default_factory=MilestonesConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def default(cls) -> StepwrightConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> StepwrightConfig:
        return cls(
            project=ProjectConfig(**data.get("project", {})),
            state=StateConfig(**data.get("state", {})),
            display=DisplayConfig(**data.get("display", {})),
            milestones=MilestonesConfig(**data.get("milestones", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )

    def to_dict(self) -> dict:
        return {
            "project": {
                "name": self.project.name,
            },
            "state": {
                "directory": self.state.directory,
                "tasks_file": self.state.tasks_file,
            },
            "display": {
                "max_ready_shown": self.display.max_ready_shown,
            },
            "milestones": {
                "names": list(self.milestones.names),
                "steps_per_milestone": self.milestones.steps_per_milestone,
            },
            "logging": {
                "level": self.logging.level,
                "file": self.logging.file,
            },
        }

    def tasks_path(self, root: Path) -> Path:
        return root / self.state.directory / self.state.tasks_file

    def log_path(self, root: Path) -> Path | None:
        if not self.logging.file:
            return None
        path = Path(self.logging.file)
        return path if path.is_absolute() else root / path


def _toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(item) for item in value) + "]"
    return json.dumps(str(value), ensure_ascii=False)


def dumps_toml(config: StepwrightConfig) -> str:
    data = config.to_dict()
    lines: list[str] = []
    for section in ["project", "state", "display", "milestones", "logging"]:
        lines.append(f"[{section}]")
        for key, value in data[section].items():
            lines.append(f"{key} = {_toml_value(value)}")
        lines.append("")
    return "\n".join(lines).strip() + "\n"


def load_config(path: Path) -> StepwrightConfig:
    if not path.exists():
        return StepwrightConfig.default()
    return StepwrightConfig.from_dict(tomllib.loads(path.read_text(encoding="utf-8")))


def save_config(path: Path, config: StepwrightConfig) -> None:
    path.write_text(dumps_toml(config), encoding="utf-8")
