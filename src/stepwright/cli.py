from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

import click

from stepwright.config import CONFIG_FILENAME, StepwrightConfig, load_config, save_config
from stepwright.engine import Engine
from stepwright.errors import MalformedDocument, StepwrightError
from stepwright.graph import load_declarations
from stepwright.logging_setup import configure_logging
from stepwright.state import GroupProgress, TaskRecord, TaskStore

STATUS_LABELS = {
    "completed": "[x] completed",
    "ready": "[>] ready",
    "prompted": "[~] prompted",
    "pending": "[ ] pending",
}
MILESTONE_MARKERS = {"completed": "[x]", "in_progress": "[~]", "pending": "[ ]"}

config_option = click.option(
    "--config", "config_value", default=CONFIG_FILENAME, show_default=True
)


@dataclass(slots=True)
class Runtime:
    repo_root: Path
    config_path: Path
    config: StepwrightConfig

    @property
    def tasks_path(self) -> Path:
        return self.config.tasks_path(self.repo_root)


def _resolve_config_path(repo_root: Path, config_value: str) -> Path:
    config_path = Path(config_value)
    if not config_path.is_absolute():
        config_path = repo_root / config_path
    return config_path.resolve()


def _load_runtime(config_value: str) -> Runtime:
    repo_root = Path.cwd().resolve()
    config_path = _resolve_config_path(repo_root, config_value)
    try:
        config = load_config(config_path)
        configure_logging(config.logging.level, config.log_path(repo_root))
    except (TypeError, ValueError) as exc:
        raise click.ClickException(f"Invalid config {config_path}: {exc}") from exc
    except OSError as exc:
        raise click.ClickException(f"Cannot open log file: {exc}") from exc
    return Runtime(repo_root=repo_root, config_path=config_path, config=config)


def _open_engine(runtime: Runtime, *, tolerate_malformed: bool = False) -> Engine:
    milestones = runtime.config.milestones
    options = {
        "milestone_names": milestones.names,
        "steps_per_milestone": milestones.steps_per_milestone or None,
    }
    try:
        return Engine.open(runtime.tasks_path, **options)
    except MalformedDocument as exc:
        if not tolerate_malformed:
            raise click.ClickException(str(exc)) from exc
        click.echo(f"Warning: {exc}. Treating as no tasks yet.", err=True)
        store = TaskStore(runtime.tasks_path, [], project=runtime.config.project.name)
        return Engine(store, **options)
    except StepwrightError as exc:
        raise click.ClickException(str(exc)) from exc


def _progress_bar(percentage: int, width: int = 30) -> str:
    filled = round(percentage / 100 * width)
    return "#" * filled + "." * (width - filled)


def _describe(record: TaskRecord) -> str:
    return (
        f"Step {record.id:>3} | {record.agent.value:<12} | "
        f"{STATUS_LABELS[record.status.value]:<14} | {record.title}"
    )


def _group_lines(title: str, groups: dict[str, GroupProgress]) -> list[str]:
    lines = ["", title]
    for name, group in groups.items():
        lines.append(
            f"  {name:<14} {group.completed}/{group.total} ({group.percentage}%)"
            f"  ready={group.ready} pending={group.pending}"
        )
    return lines


def _milestone_lines(engine: Engine) -> list[str]:
    lines = ["", "Milestones:"]
    for milestone in engine.milestones.milestones():
        lines.append(
            f"  {MILESTONE_MARKERS[milestone.status.value]} {milestone.name:<14} "
            f"{_progress_bar(milestone.percentage, 20)} {milestone.percentage:>3}% "
            f"[{len(milestone.completed_steps)}/{len(milestone.steps)}]"
        )
    current = engine.milestones.current()
    if current is not None:
        lines.append(f"Current milestone: {current.name}")
    return lines

@click.group()
def cli() -> None:
    """Track progress through a dependency graph of development steps."""


@cli.command("init")
@click.option("--project", "project_name", default=None)
@config_option
def init_command(project_name: str | None, config_value: str) -> None:
    runtime = _load_runtime(config_value)
    if project_name:
        runtime.config.project.name = project_name
    save_config(runtime.config_path, runtime.config)
    runtime.tasks_path.parent.mkdir(parents=True, exist_ok=True)

    click.echo(f"Initialized Stepwright in {runtime.repo_root}")
    click.echo(f"Config: {runtime.config_path}")
    click.echo(f"Task document: {runtime.tasks_path}")


@cli.command("build")
@click.argument("declarations_file", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--project", "project_name", default=None)
@click.option("--force", is_flag=True, default=False)
@config_option
def build_command(
    declarations_file: Path, project_name: str | None, force: bool, config_value: str
) -> None:
    runtime = _load_runtime(config_value)
    if runtime.tasks_path.exists() and not force:
        raise click.ClickException(
            f"{runtime.tasks_path} already exists. Use --force to rebuild and discard progress."
        )
    try:
        declarations = load_declarations(declarations_file)
        engine = Engine.initialize(
            runtime.tasks_path,
            declarations,
            project=project_name or runtime.config.project.name,
        )
    except StepwrightError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(f"Tracking {len(engine.store)} steps in {runtime.tasks_path}")
    ready = engine.available()
    if ready:
        click.echo("Ready: " + ", ".join(str(record.id) for record in ready))


@cli.command("status")
@click.option("--all", "show_all", is_flag=True, default=False)
@click.option("--modules", is_flag=True, default=False)
@click.option("--agents", is_flag=True, default=False)
@click.option("--milestones", is_flag=True, default=False)
@click.option("--json", "as_json", is_flag=True, default=False)
@config_option
def status_command(
    show_all: bool,
    modules: bool,
    agents: bool,
    milestones: bool,
    as_json: bool,
    config_value: str,
) -> None:
    runtime = _load_runtime(config_value)
    engine = _open_engine(runtime, tolerate_malformed=True)
    max_ready = None if show_all else runtime.config.display.max_ready_shown
    if as_json:
        payload = engine.status(
            max_ready=max_ready, modules=modules, agents=agents, milestones=milestones
        )
        click.echo(json.dumps(payload, ensure_ascii=False, indent=2))
        return

    summary = engine.progress.summary()
    lines = [
        f"Progress: {summary.completed}/{summary.total} steps ({summary.percentage}%)",
        f"  {_progress_bar(summary.percentage)}",
        f"  completed={summary.completed} ready={summary.ready} "
        f"prompted={summary.prompted} pending={summary.pending}",
    ]
    ready = engine.available()
    shown = ready if max_ready is None else ready[:max_ready]
    if shown:
        lines.append("")
        lines.append("Available now:")
        lines.extend(f"  {_describe(record)}" for record in shown)
        if len(ready) > len(shown):
            lines.append(f"  ... and {len(ready) - len(shown)} more (--all to list)")
    parallel = engine.parallel_candidates()
    if parallel:
        lines.append("Parallel-safe: " + ", ".join(str(record.id) for record in parallel))
    if modules:
        lines.extend(_group_lines("By module:", engine.progress.by_module()))
    if agents:
        lines.extend(_group_lines("By agent:", engine.progress.by_agent()))
    if milestones:
        lines.extend(_milestone_lines(engine))
    click.echo("\n".join(lines))


@cli.command("next")
@click.option("--prompt", "mark_prompted", is_flag=True, default=False)
@config_option
def next_command(mark_prompted: bool, config_value: str) -> None:
    runtime = _load_runtime(config_value)
    engine = _open_engine(runtime, tolerate_malformed=True)
    record = engine.next_task()
    if record is None:
        if not len(engine.store):
            click.echo("No steps tracked yet. Run 'stepwright build' first.")
        elif engine.is_finished():
            click.echo(f"All {len(engine.store)} steps are completed.")
        else:
            click.echo("No step is available right now. Check 'stepwright status'.")
        return

    if mark_prompted:
        try:
            record = engine.mark_prompted(record.id)
        except StepwrightError as exc:
            raise click.ClickException(str(exc)) from exc
    click.echo(_describe(record))


@cli.command("prompted")
@click.argument("step", type=int)
@config_option
def prompted_command(step: int, config_value: str) -> None:
    runtime = _load_runtime(config_value)
    engine = _open_engine(runtime)
    try:
        record = engine.mark_prompted(step)
    except StepwrightError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Step {record.id} marked as prompted.")


@cli.command("complete")
@click.argument("step", type=int)
@config_option
def complete_command(step: int, config_value: str) -> None:
    runtime = _load_runtime(config_value)
    engine = _open_engine(runtime)
    before = {record.id for record in engine.available()}
    try:
        record = engine.mark_completed(step)
    except StepwrightError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(f"Step {record.id} completed at {record.completed_at}.")
    unlocked = [item.id for item in engine.available() if item.id not in before]
    if unlocked:
        click.echo("Now available: " + ", ".join(str(item) for item in unlocked))
    elif engine.is_finished():
        click.echo("All steps are completed.")


@cli.command("reset")
@click.argument("step", type=int)
@config_option
def reset_command(step: int, config_value: str) -> None:
    runtime = _load_runtime(config_value)
    engine = _open_engine(runtime)
    try:
        record = engine.reset(step)
    except StepwrightError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Step {record.id} reset to {record.status.value}.")


@cli.command("blocked")
@click.argument("step", type=int)
@config_option
def blocked_command(step: int, config_value: str) -> None:
    runtime = _load_runtime(config_value)
    engine = _open_engine(runtime)
    try:
        blocking = engine.blocking_dependencies(step)
    except StepwrightError as exc:
        raise click.ClickException(str(exc)) from exc
    if not blocking:
        click.echo(f"Step {step} can start now.")
        return
    click.echo(f"Step {step} is waiting on: " + ", ".join(str(item) for item in blocking))


@cli.command("critical-path")
@config_option
def critical_path_command(config_value: str) -> None:
    runtime = _load_runtime(config_value)
    engine = _open_engine(runtime)
    path = engine.critical_path()
    if not path:
        click.echo("No steps defined.")
        return
    click.echo(" -> ".join(str(item) for item in path))
    click.echo(f"Length: {len(path)}")


@cli.command("graph")
@click.option(
    "--format", "fmt", type=click.Choice(["ascii", "mermaid"]), default="ascii", show_default=True
)
@config_option
def graph_command(fmt: str, config_value: str) -> None:
    runtime = _load_runtime(config_value)
    engine = _open_engine(runtime)
    click.echo(engine.render(fmt))
