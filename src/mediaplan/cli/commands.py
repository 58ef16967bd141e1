"""CLI commands for mediaplan.

- rename: admit a rename task file, ask for confirmation, apply it.
- recognize: match a folder's video files to an episode catalog and confirm
  the labels.
- plans / show: inspect stored plans and their history.
- reject / complete: the manual state operations.
- recover: re-offer or expire plans left pending by an earlier run.
- config-set / version: housekeeping.

Design:
- Typer app and Console are instantiated at module level for reuse across
  commands.
- Every command builds its own PlanStore from configuration (``plans.dir``,
  ``MEDIAPLAN_PLANS_DIR``); nothing is shared between invocations.
- Without ``--yes`` confirmations are asked on the terminal; with it they are
  answered automatically.
- Exit codes are defined as an Enum so scripts can tell a rejected plan from a
  partly applied one.
"""

import asyncio
import json
import sys
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, List, Optional, Tuple

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.traceback import install as install_traceback

from mediaplan.channel.confirmation import ConfirmationChannel, ConfirmationTransport
from mediaplan.channel.transports import AutoResponder, ConsoleConfirmationTransport
from mediaplan.cli.renderer import (
    render_history,
    render_plan,
    render_plans,
    render_request,
    render_violations,
)
from mediaplan.core.episode_matcher import match_episodes
from mediaplan.core.orchestrator import PlanOrchestrator, PlanOutcome
from mediaplan.errors import (
    InvalidTransitionError,
    PartialExecutionError,
    PlanNotFoundError,
    PlanValidationError,
)
from mediaplan.models.catalog import EpisodeCatalog
from mediaplan.models.core import PlanStatus
from mediaplan.utils.config import (
    get_confirmation_timeout_ms,
    get_title_fallback,
    set_setting,
)
from mediaplan.utils.debug import setup_logger
from mediaplan.utils.plan_store import AnyPlan, PlanStore

# Install rich traceback handler
install_traceback(show_locals=True)

app = typer.Typer(
    name="mediaplan",
    help="Plan, confirm and apply media file renames.",
    add_completion=False,
)
console = Console()


class ExitCode(int, Enum):
    """Exit codes for CLI commands."""

    SUCCESS = 0
    ERROR = 1
    NEEDS_FOLLOW_UP = 2
    REJECTED = 3


YES = Annotated[
    bool,
    typer.Option("--yes", "-y", help="Confirm automatically instead of prompting"),
]

TIMEOUT_MS = Annotated[
    Optional[int],
    typer.Option(
        "--timeout-ms",
        min=0,
        help="How long to wait for a confirmation (default: confirmation.timeout_ms)",
    ),
]

CLIENT_ID = Annotated[
    Optional[str],
    typer.Option("--client-id", help="Consumer the confirmation is addressed to"),
]

JSON_OUTPUT = Annotated[
    bool,
    typer.Option("--json", help="Output results in JSON format"),
]

PLAN_ID = Annotated[str, typer.Argument(help="ID of a stored plan")]


@app.callback()
def callback(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Enable debug logging")
    ] = False,
) -> None:
    """Plan, confirm and apply media file renames."""
    setup_logger(verbose=verbose)


def _store() -> PlanStore:
    return PlanStore.from_config()


def _transport(yes: bool) -> ConfirmationTransport:
    if yes:
        return AutoResponder(confirmed=True)
    return ConsoleConfirmationTransport(console=console, render=render_request)


def _orchestrator(yes: bool, timeout_ms: Optional[int]) -> PlanOrchestrator:
    channel = ConfirmationChannel(
        _transport(yes), default_timeout_ms=get_confirmation_timeout_ms(timeout_ms)
    )
    return PlanOrchestrator(_store(), channel)


def _print_json(data: Any) -> None:
    sys.stdout.write(json.dumps(data, indent=2, default=str) + "\n")


def _plan_json(plan: AnyPlan) -> Any:
    return json.loads(plan.model_dump_json(by_alias=True))


def _report(outcome: PlanOutcome, json_output: bool) -> None:
    """Print an outcome and exit non-zero unless the plan completed."""
    if json_output:
        _print_json(_plan_json(outcome.plan))
    else:
        render_plan(outcome.plan, console=console, results=outcome.results)
    if outcome.status is PlanStatus.REJECTED:
        raise typer.Exit(ExitCode.REJECTED)


def _run(coro: Any, json_output: bool) -> PlanOutcome:
    """Run an orchestrator coroutine, mapping its errors to exit codes."""
    try:
        return asyncio.run(coro)
    except PlanValidationError as e:
        if json_output:
            _print_json({"violations": e.violations, "planId": e.plan_id})
        else:
            render_violations(e.violations, console=console)
        raise typer.Exit(ExitCode.ERROR)
    except PartialExecutionError as e:
        plan = _store().get(e.plan_id)
        if json_output:
            _print_json(_plan_json(plan))
        else:
            render_plan(plan, console=console, results=e.results)
            console.print(
                f"[bold yellow]Warning:[/bold yellow] {len(e.failures)} task(s) failed. "
                "Nothing was rolled back; submit a corrective plan for the rest."
            )
        raise typer.Exit(ExitCode.NEEDS_FOLLOW_UP)


def _load_tasks(tasks_file: Path, folder: Optional[str]) -> Tuple[str, List[Any]]:
    """Read ``[{from, to}, ...]`` or ``{mediaFolderPath, files}`` from JSON."""
    data = json.loads(tasks_file.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        folder = folder or data.get("mediaFolderPath")
        data = data.get("files", [])
    if not folder:
        raise typer.BadParameter("media folder not given (--folder or mediaFolderPath)")
    if not isinstance(data, list):
        raise typer.BadParameter("tasks must be a JSON list of {from, to} objects")
    return folder, data


def _load_catalog(catalog_file: Path) -> EpisodeCatalog:
    """Read an episode catalog from a JSON or YAML file."""
    text = catalog_file.read_text(encoding="utf-8")
    if catalog_file.suffix.lower() in {".yaml", ".yml"}:
        return EpisodeCatalog.model_validate(yaml.safe_load(text) or {})
    return EpisodeCatalog.model_validate_json(text)


@app.command()
def rename(
    tasks_file: Annotated[
        Path,
        typer.Argument(exists=True, dir_okay=False, help="JSON file with rename tasks"),
    ],
    folder: Annotated[
        Optional[str],
        typer.Option("--folder", "-f", help="Media folder every path must be under"),
    ] = None,
    yes: YES = False,
    timeout_ms: TIMEOUT_MS = None,
    client_id: CLIENT_ID = None,
    json_output: JSON_OUTPUT = False,
) -> None:
    """Plan a batch of renames, ask for confirmation and apply it."""
    try:
        media_folder, tasks = _load_tasks(tasks_file, folder)
        orchestrator = _orchestrator(yes, timeout_ms)
        outcome = _run(
            orchestrator.run_rename_plan(media_folder, tasks, client_id=client_id),
            json_output,
        )
    except (ValueError, ValidationError) as e:
        console.print(f"Error: {e}", style="red", markup=False)
        raise typer.Exit(ExitCode.ERROR)
    _report(outcome, json_output)


@app.command()
def recognize(
    folder: Annotated[
        Path,
        typer.Argument(exists=True, file_okay=False, resolve_path=True, help="Media folder"),
    ],
    catalog_file: Annotated[
        Path,
        typer.Option(
            "--catalog",
            "-c",
            exists=True,
            dir_okay=False,
            help="Episode catalog (JSON or YAML)",
        ),
    ],
    title_fallback: Annotated[
        Optional[bool],
        typer.Option("--title-fallback/--no-title-fallback", help="Match by episode title"),
    ] = None,
    yes: YES = False,
    timeout_ms: TIMEOUT_MS = None,
    client_id: CLIENT_ID = None,
    json_output: JSON_OUTPUT = False,
) -> None:
    """Recognize season/episode numbers for a folder's videos and confirm them."""
    try:
        catalog = _load_catalog(catalog_file)
    except (ValueError, yaml.YAMLError) as e:
        console.print(f"Error: invalid catalog: {e}", style="red", markup=False)
        raise typer.Exit(ExitCode.ERROR)
    files = [str(p) for p in folder.rglob("*") if p.is_file()]
    matches = match_episodes(
        catalog, files, title_fallback=get_title_fallback(title_fallback)
    ).to_recognized_files()
    if not matches:
        console.print("[yellow]No episodes recognized.[/yellow]")
        raise typer.Exit(ExitCode.SUCCESS)
    orchestrator = _orchestrator(yes, timeout_ms)
    outcome = _run(
        orchestrator.run_recognize_plan(str(folder), matches, client_id=client_id),
        json_output,
    )
    _report(outcome, json_output)


@app.command("plans")
def list_plans_cmd(
    status: Annotated[
        Optional[PlanStatus],
        typer.Option("--status", "-s", case_sensitive=False, help="Filter by status"),
    ] = None,
    task: Annotated[
        Optional[str],
        typer.Option("--task", help="Filter by task (rename-files, recognize-media-file)"),
    ] = None,
    json_output: JSON_OUTPUT = False,
) -> None:
    """List stored plans, oldest first."""
    plans = _store().list_plans(status=status, task=task)
    if json_output:
        _print_json([_plan_json(p) for p in plans])
    else:
        render_plans(plans, console=console)


@app.command()
def show(plan_id: PLAN_ID, json_output: JSON_OUTPUT = False) -> None:
    """Show one plan and its history."""
    store = _store()
    try:
        plan = store.get(plan_id)
    except PlanNotFoundError as e:
        console.print(f"Error: {e}", style="red", markup=False)
        raise typer.Exit(ExitCode.ERROR)
    history = store.history(plan_id)
    if json_output:
        data = _plan_json(plan)
        data["history"] = [event.model_dump(mode="json") for event in history]
        _print_json(data)
        return
    render_plan(plan, console=console)
    render_history(history, console=console)


def _transition(plan_id: str, target: PlanStatus) -> None:
    orchestrator = PlanOrchestrator(_store(), ConfirmationChannel())
    try:
        if target is PlanStatus.REJECTED:
            changed = orchestrator.reject_plan(plan_id)
        else:
            changed = orchestrator.complete_plan(plan_id)
    except (PlanNotFoundError, InvalidTransitionError) as e:
        console.print(f"Error: {e}", style="red", markup=False)
        raise typer.Exit(ExitCode.ERROR)
    if changed:
        console.print(f"Plan {plan_id} marked {target.value}.")
    else:
        console.print(f"Plan {plan_id} was already {target.value}.")


@app.command()
def reject(plan_id: PLAN_ID) -> None:
    """Reject a pending plan."""
    _transition(plan_id, PlanStatus.REJECTED)


@app.command()
def complete(plan_id: PLAN_ID) -> None:
    """Mark a pending plan completed (e.g. after fixing it up by hand)."""
    _transition(plan_id, PlanStatus.COMPLETED)


@app.command()
def recover(
    policy: Annotated[
        Optional[str],
        typer.Option("--policy", "-p", help="reoffer or expire (default: recovery.policy)"),
    ] = None,
    yes: YES = False,
    timeout_ms: TIMEOUT_MS = None,
    client_id: CLIENT_ID = None,
    json_output: JSON_OUTPUT = False,
) -> None:
    """Re-offer or expire plans left pending by an earlier run."""
    orchestrator = _orchestrator(yes, timeout_ms)
    try:
        outcomes: List[PlanOutcome] = asyncio.run(
            orchestrator.recover_pending(client_id=client_id, policy=policy)
        )
    except ValueError as e:
        console.print(f"Error: {e}", style="red", markup=False)
        raise typer.Exit(ExitCode.ERROR)
    if json_output:
        _print_json([_plan_json(outcome.plan) for outcome in outcomes])
    else:
        render_plans([outcome.plan for outcome in outcomes], console=console)
    if any(outcome.plan.needs_follow_up for outcome in outcomes):
        raise typer.Exit(ExitCode.NEEDS_FOLLOW_UP)


def _parse_value(raw: str) -> Any:
    lowered = raw.strip().lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    try:
        return int(raw)
    except ValueError:
        return raw


@app.command("config-set")
def config_set(
    key: Annotated[str, typer.Argument(help="Dotted key, e.g. confirmation.timeout_ms")],
    value: Annotated[str, typer.Argument(help="Value; true/false and integers are typed")],
) -> None:
    """Persist a setting in config.toml."""
    set_setting(key, _parse_value(value))
    console.print(f"Set {key} = {value}", markup=False)


@app.command()
def version() -> None:
    """Show the version of mediaplan."""
    from mediaplan.__about__ import __version__

    console.print(f"mediaplan version: [bold]{__version__}[/bold]")


def main() -> None:
    """Main entry point for the CLI."""
    app()
