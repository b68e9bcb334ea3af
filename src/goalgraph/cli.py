from __future__ import annotations

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from goalgraph.config.loader import load_goal
from goalgraph.config.schema import Goal, Plan, Strategy
from goalgraph.config.settings import Settings
from goalgraph.dag.levels import topological_levels
from goalgraph.exec.cancel import CancelFlag
from goalgraph.exec.events import Event, EventChannel
from goalgraph.exec.executor import Executor
from goalgraph.exec.invoker import ToolInvoker
from goalgraph.llm.client import CompletionClient, EchoCompletionClient
from goalgraph.llm.openai_client import OpenAICompletionClient
from goalgraph.observability.metrics import MetricsCollector
from goalgraph.plan.planner import Planner
from goalgraph.report.render_md import render_markdown
from goalgraph.report.summarize import build_summary
from goalgraph.state.model import Execution
from goalgraph.state.store import load_execution, save_execution_atomic
from goalgraph.tools.files import FileArtifactWriter
from goalgraph.util.errors import ConfigError, GoalError, PlanError, StateError
from goalgraph.util.ids import new_execution_id
from goalgraph.util.time import now

app = typer.Typer(help="Goal-to-task-graph planner and executor")
console = Console()
err_console = Console(stderr=True)
_EXECUTION_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
_EXECUTION_ID_MAX_LEN = 128

StrategyOption = Annotated[
    str, typer.Option("--strategy", "-s", help="simple | parallel_optimize | ...")
]


def _configure_logging(verbose: int) -> None:
    if verbose <= 0:
        return
    logging.basicConfig(
        level=logging.DEBUG if verbose > 1 else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


def _exit_code_for_execution(execution: Execution) -> int:
    if execution.status == "canceled":
        return 4
    if execution.count("failed"):
        return 3
    return 0


def _load_settings_or_exit() -> Settings:
    try:
        return Settings.from_env()
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        raise typer.Exit(2) from exc


def _load_goal_or_exit(goal_path: Path) -> Goal:
    try:
        return load_goal(goal_path)
    except GoalError as exc:
        console.print(f"[red]Goal validation error:[/red] {exc}")
        raise typer.Exit(2) from exc


def _validate_execution_id_or_exit(execution_id: str) -> None:
    if (
        len(execution_id) > _EXECUTION_ID_MAX_LEN
        or _EXECUTION_ID_PATTERN.fullmatch(execution_id) is None
    ):
        console.print(f"[red]Invalid execution_id:[/red] {execution_id}")
        raise typer.Exit(2)


def _run_dir(home: Path, execution_id: str) -> Path:
    return home / "runs" / execution_id


def _levels_table(plan: Plan, levels: list[list[str]]) -> Table:
    table = Table(title=f"Plan: {plan.strategy.value} (parallelism {plan.parallelism})")
    table.add_column("level", justify="right")
    table.add_column("task_id")
    table.add_column("name")
    table.add_column("tool")
    table.add_column("depends_on")
    table.add_column("est_tokens", justify="right")
    table.add_column("est_sec", justify="right")
    for index, level in enumerate(levels):
        for task_id in level:
            spec = plan.task(task_id)
            table.add_row(
                str(index),
                task_id,
                spec.name,
                spec.operation.value,
                ", ".join(spec.depends_on) or "-",
                str(spec.cost_estimate),
                str(spec.estimated_time),
            )
    return table


def _print_event(event: Event) -> None:
    data = event.data
    if event.type == "start":
        console.print(f"[bold]execution[/bold] {data['execution_id']} started")
    elif event.type == "level_start":
        console.rule(f"level {data['level']}")
    elif event.type == "task_start":
        console.print(f"  > {data['name']} `{data['task_id']}` attempt {data['attempt']}")
    elif event.type == "task_retry":
        console.print(
            f"  [yellow]retry[/yellow] {data['task_id']} ({data['retries']}): {data['error']}"
        )
    elif event.type == "task_done":
        console.print(f"  [green]done[/green] {data['task_id']} tokens={data['tokens']}")
    elif event.type == "task_failed":
        console.print(f"  [red]failed[/red] {data['task_id']}: {data['error']}")
    elif event.type == "canceled":
        console.print("[yellow]canceled before remaining levels[/yellow]")
    elif event.type == "done":
        console.print(
            f"[bold]done[/bold] completed={data['completed']} failed={data['failed']} "
            f"tokens={data['total_tokens']}"
        )


async def _consume(channel: EventChannel, *, quiet: bool) -> None:
    async for event in channel:
        if not quiet:
            _print_event(event)


async def _execute(
    executor: Executor,
    plan: Plan,
    goal: Goal,
    *,
    channel: EventChannel,
    run_dir: Path,
    execution_id: str,
    quiet: bool,
) -> Execution:
    consumer = asyncio.create_task(_consume(channel, quiet=quiet))
    try:
        return await executor.run(
            plan,
            goal,
            channel.publish,
            should_cancel=CancelFlag(run_dir),
            execution_id=execution_id,
        )
    finally:
        await channel.close()
        await consumer


def _write_report(execution: Execution, run_dir: Path) -> Path:
    report_path = run_dir / "report" / "final_report.md"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(render_markdown(build_summary(execution)) + "\n", encoding="utf-8")
    return report_path


@app.command()
def strategies() -> None:
    table = Table(title="Planning strategies")
    table.add_column("name")
    table.add_column("shape")
    table.add_row("simple", "synthesize -> validate + tests -> finalize")
    table.add_row("parallel_optimize", "synthesize -> validate + tests + docs -> finalize")
    table.add_row("resource_aware", "priority-ordered tasks admitted under the token budget")
    table.add_row("cost_optimize", "single synthesize-all call -> finalize")
    console.print(table)


@app.command()
def plan(
    goal_path: Annotated[Path, typer.Argument(exists=True, dir_okay=False)],
    strategy: StrategyOption = Strategy.PARALLEL_OPTIMIZE.value,
    token_budget: Annotated[int | None, typer.Option("--token-budget", min=1)] = None,
    as_json: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    settings = _load_settings_or_exit()
    goal = _load_goal_or_exit(goal_path)
    budget = token_budget or settings.token_budget
    built = Planner().plan(goal, {"token_budget": budget}, strategy)
    try:
        levels = topological_levels(built.tasks)
    except PlanError as exc:
        console.print(f"[red]Plan validation error:[/red] {exc}")
        raise typer.Exit(2) from exc
    if as_json:
        typer.echo(json.dumps({"plan": built.to_dict(), "levels": levels}, indent=2))
        raise typer.Exit(0)
    console.print(_levels_table(built, levels))


@app.command()
def run(
    goal_path: Annotated[Path, typer.Argument(exists=True, dir_okay=False)],
    strategy: StrategyOption = Strategy.PARALLEL_OPTIMIZE.value,
    echo: Annotated[bool, typer.Option("--echo", help="Use the offline echo client")] = False,
    max_parallel: Annotated[int | None, typer.Option("--max-parallel", min=1)] = None,
    token_budget: Annotated[int | None, typer.Option("--token-budget", min=1)] = None,
    home: Annotated[Path | None, typer.Option("--home")] = None,
    out: Annotated[Path | None, typer.Option("--out")] = None,
    as_json: Annotated[bool, typer.Option("--json")] = False,
    verbose: Annotated[int, typer.Option("--verbose", "-v", count=True)] = 0,
) -> None:
    _configure_logging(verbose)
    settings = _load_settings_or_exit()
    goal = _load_goal_or_exit(goal_path)
    budget = token_budget or settings.token_budget
    built = Planner().plan(goal, {"token_budget": budget}, strategy)

    client: CompletionClient
    if echo:
        client = EchoCompletionClient()
    else:
        try:
            client = OpenAICompletionClient(
                api_key=settings.openai_api_key, model=settings.openai_model
            )
        except ConfigError as exc:
            console.print(f"[red]Configuration error:[/red] {exc}")
            raise typer.Exit(2) from exc

    execution_id = new_execution_id(now())
    current_run_dir = _run_dir(home or settings.home, execution_id)
    try:
        (current_run_dir / "report").mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        console.print(f"[red]Failed to initialize run:[/red] {exc}")
        raise typer.Exit(2) from exc

    writer = FileArtifactWriter((out or settings.out_dir) / execution_id)
    metrics = MetricsCollector()
    executor = Executor(
        ToolInvoker.for_collaborators(client, writer),
        metrics=metrics,
        max_parallel=max_parallel or settings.max_parallel,
    )
    channel = EventChannel(settings.event_queue_size, settings.event_queue_policy)
    try:
        execution = asyncio.run(
            _execute(
                executor,
                built,
                goal,
                channel=channel,
                run_dir=current_run_dir,
                execution_id=execution_id,
                quiet=as_json,
            )
        )
    except PlanError as exc:
        console.print(f"[red]Plan validation error:[/red] {exc}")
        raise typer.Exit(2) from exc
    finally:
        CancelFlag(current_run_dir).clear()

    try:
        save_execution_atomic(current_run_dir, execution)
        report_path = _write_report(execution, current_run_dir)
    except OSError as exc:
        console.print(f"[yellow]Warning:[/yellow] failed to persist execution: {exc}")
        report_path = current_run_dir / "report" / "final_report.md"

    if as_json:
        typer.echo(json.dumps(execution.to_dict(), ensure_ascii=False, indent=2, default=str))
    else:
        console.print(f"execution_id: [bold]{execution.id}[/bold]")
        console.print(f"status: [bold]{execution.status}[/bold]")
        console.print(f"report: {report_path}")
    raise typer.Exit(_exit_code_for_execution(execution))


@app.command()
def status(
    execution_id: Annotated[str, typer.Argument()],
    home: Annotated[Path | None, typer.Option("--home")] = None,
    as_json: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    _validate_execution_id_or_exit(execution_id)
    settings = _load_settings_or_exit()
    try:
        execution = load_execution(_run_dir(home or settings.home, execution_id))
    except StateError as exc:
        console.print(f"[red]Failed to load execution:[/red] {exc}")
        raise typer.Exit(2) from exc

    if as_json:
        typer.echo(json.dumps(execution.to_dict(), ensure_ascii=False, indent=2, default=str))
        raise typer.Exit(0)

    table = Table(title=f"Execution {execution_id}: {execution.status}")
    table.add_column("task_id")
    table.add_column("name")
    table.add_column("status")
    table.add_column("retries", justify="right")
    table.add_column("tokens", justify="right")
    table.add_column("duration_sec", justify="right")
    for task_id, task_run in execution.tasks.items():
        table.add_row(
            task_id,
            task_run.spec.name,
            task_run.status,
            str(task_run.retries),
            str(task_run.tokens),
            "-" if task_run.duration_sec is None else str(task_run.duration_sec),
        )
    console.print(table)
    console.print(f"total tokens: {execution.total_tokens}")


@app.command()
def cancel(
    execution_id: Annotated[str, typer.Argument()],
    home: Annotated[Path | None, typer.Option("--home")] = None,
) -> None:
    _validate_execution_id_or_exit(execution_id)
    settings = _load_settings_or_exit()
    current_run_dir = _run_dir(home or settings.home, execution_id)
    if not current_run_dir.is_dir() or current_run_dir.is_symlink():
        console.print(f"[red]Execution not found:[/red] {execution_id}")
        raise typer.Exit(2)
    try:
        CancelFlag(current_run_dir).raise_flag()
    except OSError as exc:
        console.print(f"[red]Failed to request cancel:[/red] {exc}")
        raise typer.Exit(2) from exc
    console.print(f"cancel requested: [bold]{execution_id}[/bold]")


if __name__ == "__main__":
    app()
