from __future__ import annotations

from collections.abc import Iterable

from stepwright.graph.critical_path import CriticalPathAnalyzer
from stepwright.graph.models import Graph

MAX_TITLE_WIDTH = 40


def _short(title: str) -> str:
    if len(title) <= MAX_TITLE_WIDTH:
        return title
    return title[: MAX_TITLE_WIDTH - 3] + "..."


def to_ascii(graph: Graph, completed: Iterable[int] = ()) -> str:
    if not len(graph):
        return "No steps defined"
    done = set(completed)
    lines = ["Dependency graph", ""]
    for depth, level in enumerate(CriticalPathAnalyzer(graph).depth_levels()):
        prefix = "" if depth == 0 else "    " * (depth - 1) + "└─> "
        for task_id in level:
            declaration = graph.declarations[task_id]
            marker = "[x]" if task_id in done else "[ ]"
            suffix = " (parallel)" if declaration.parallel_safe else ""
            lines.append(f"{prefix}{marker} S{task_id}: {_short(declaration.title)}{suffix}")
    return "\n".join(lines)


def to_mermaid(graph: Graph) -> str:
    lines = ["```mermaid", "graph LR"]
    for declaration in graph:
        node = f"S{declaration.id}"
        label = declaration.title.replace('"', "'")
        lines.append(f'    {node}["{node}: {label}"]')
        for dep in declaration.depends_on:
            lines.append(f"    S{dep} --> {node}")
    lines.append("```")
    return "\n".join(lines)
