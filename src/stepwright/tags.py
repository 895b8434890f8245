from __future__ import annotations

from enum import Enum

from stepwright.errors import InvalidDeclaration


class Module(str, Enum):
    FRONTEND = "frontend"
    BACKEND = "backend"
    API = "api"
    DATABASE = "database"
    INFRA = "infra"
    MOBILE = "mobile"
    AUTH = "auth"
    TESTING = "testing"
    UNASSIGNED = "other"

    @property
    def is_assigned(self) -> bool:
        return self is not Module.UNASSIGNED

    def to_json(self) -> str | None:
        return self.value if self.is_assigned else None


class Agent(str, Enum):
    FRONTEND = "frontend"
    BACKEND = "backend"
    DATABASE = "database"
    DEVOPS = "devops"
    QA = "qa"
    MOBILE = "mobile"
    ARCHITECTURE = "architecture"
    UNASSIGNED = "generic"

    @property
    def is_assigned(self) -> bool:
        return self is not Agent.UNASSIGNED

    def to_json(self) -> str | None:
        return self.value if self.is_assigned else None


MODULE_AGENTS: dict[Module, Agent] = {
    Module.FRONTEND: Agent.FRONTEND,
    Module.BACKEND: Agent.BACKEND,
    Module.API: Agent.BACKEND,
    Module.AUTH: Agent.BACKEND,
    Module.DATABASE: Agent.DATABASE,
    Module.INFRA: Agent.DEVOPS,
    Module.TESTING: Agent.QA,
    Module.MOBILE: Agent.MOBILE,
}


def parse_module(value: object) -> Module:
    if value is None or value == "":
        return Module.UNASSIGNED
    if isinstance(value, Module):
        return value
    if not isinstance(value, str):
        raise InvalidDeclaration(f"Module tag must be a string, got {type(value).__name__}.")
    normalized = value.strip().lower()
    if normalized in {"", Module.UNASSIGNED.value}:
        return Module.UNASSIGNED
    try:
        return Module(normalized)
    except ValueError as exc:
        allowed = ", ".join(item.value for item in Module if item.is_assigned)
        raise InvalidDeclaration(f"Unknown module '{value}' (expected one of: {allowed}).") from exc


def parse_agent(value: object) -> Agent:
    if value is None or value == "":
        return Agent.UNASSIGNED
    if isinstance(value, Agent):
        return value
    if not isinstance(value, str):
        raise InvalidDeclaration(f"Agent tag must be a string, got {type(value).__name__}.")
    normalized = value.strip().lower()
    if normalized in {"", Agent.UNASSIGNED.value}:
        return Agent.UNASSIGNED
    try:
        return Agent(normalized)
    except ValueError as exc:
        allowed = ", ".join(item.value for item in Agent if item.is_assigned)
        raise InvalidDeclaration(f"Unknown agent '{value}' (expected one of: {allowed}).") from exc


def resolve_agent(module: Module) -> Agent:
    return MODULE_AGENTS.get(module, Agent.UNASSIGNED)
