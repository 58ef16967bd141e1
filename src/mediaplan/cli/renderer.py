"""Rich rendering of plans, outcomes and confirmation requests.

Status colours are shared by every table so a plan looks the same in ``plans``,
``show`` and the confirmation prompt.
"""

from typing import List, Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from mediaplan.core.path_safety import to_platform_path
from mediaplan.models.confirmation import (
    ASK_FOR_RENAME_FILES_CONFIRMATION,
    ConfirmationRequest,
)
from mediaplan.models.core import PlanStatus, TaskResult
from mediaplan.models.plan import RenameFilesPlan
from mediaplan.utils.plan_store import AnyPlan, PlanEvent

STATUS_STYLES = {
    PlanStatus.PENDING: "yellow bold",
    PlanStatus.COMPLETED: "green bold",
    PlanStatus.REJECTED: "red bold",
}


def _status_label(plan: AnyPlan) -> str:
    if plan.needs_follow_up:
        return "pending (needs follow-up)"
    if plan.reason is not None:
        return f"{plan.status.value} ({plan.reason.value})"
    return plan.status.value


def render_plan(
    plan: AnyPlan,
    console: Optional[Console] = None,
    results: Optional[Sequence[TaskResult]] = None,
) -> None:
    """Render one plan as a rich table.

    Args:
        plan: The plan to render.
        console: Optional Console instance to use for rendering.
        results: Per-task results to show; defaults to the plan's recorded
            execution results.
    """
    console = console or Console()
    style = STATUS_STYLES.get(plan.status, "white")
    table = Table(title=f"{plan.task} plan: {plan.id}")

    if isinstance(plan, RenameFilesPlan):
        results = list(results if results is not None else plan.execution_results)
        table.add_column("Source", style="cyan")
        table.add_column("Destination", style="green")
        if results:
            table.add_column("Result")
        for index, task in enumerate(plan.files):
            row = [
                Text(to_platform_path(task.source)),
                Text(to_platform_path(task.destination)),
            ]
            if results:
                result = results[index] if index < len(results) else None
                if result is None:
                    row.append("")
                elif result.success:
                    row.append("[green]ok[/green]")
                else:
                    row.append(f"[red]failed: {escape(result.error or 'unknown error')}[/red]")
            table.add_row(*row)
    else:
        table.add_column("Season", justify="right")
        table.add_column("Episode", justify="right")
        table.add_column("Path", style="cyan")
        for recognized in plan.files:
            table.add_row(
                str(recognized.season),
                str(recognized.episode),
                Text(to_platform_path(recognized.path)),
            )

    console.print(table)
    console.print(
        f"Folder: {escape(to_platform_path(plan.media_folder_path))} | "
        f"Files: {len(plan.files)} | Status: [{style}]{_status_label(plan)}[/{style}]"
    )


def render_plans(plans: Sequence[AnyPlan], console: Optional[Console] = None) -> None:
    """Render a list of plans as a summary table."""
    console = console or Console()
    if not plans:
        console.print("[yellow]No plans found.[/yellow]")
        return
    table = Table(title="Plans")
    table.add_column("ID", style="bold")
    table.add_column("Task")
    table.add_column("Status")
    table.add_column("Folder", style="cyan")
    table.add_column("Files", justify="right")
    table.add_column("Created")
    for plan in plans:
        table.add_row(
            plan.id,
            plan.task,
            _status_label(plan),
            Text(to_platform_path(plan.media_folder_path)),
            str(len(plan.files)),
            plan.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            style=STATUS_STYLES.get(plan.status, "white"),
        )
    console.print(table)


def render_history(events: Sequence[PlanEvent], console: Optional[Console] = None) -> None:
    """Render a plan's audit trail."""
    console = console or Console()
    table = Table(title="History")
    table.add_column("When")
    table.add_column("Status")
    table.add_column("Reason")
    table.add_column("Detail")
    for event in events:
        table.add_row(
            event.at.strftime("%Y-%m-%d %H:%M:%S"),
            event.status.value,
            event.reason.value if event.reason else "",
            event.detail or "",
            style=STATUS_STYLES.get(event.status, "white"),
        )
    console.print(table)


def render_violations(violations: List[str], console: Optional[Console] = None) -> None:
    """Print admission violations, one per line."""
    console = console or Console()
    console.print(f"[red]Plan rejected: {len(violations)} violation(s)[/red]")
    for violation in violations:
        console.print(f"  - {violation}", markup=False)


def render_request(console: Console, request: ConfirmationRequest) -> None:
    """Describe a confirmation request before prompting for it."""
    files = request.data.get("files", [])
    table = Table(title=f"Confirm: {escape(str(request.data.get('mediaFolderPath', '')))}")
    if request.event == ASK_FOR_RENAME_FILES_CONFIRMATION:
        table.add_column("From", style="cyan")
        table.add_column("To", style="green")
        for entry in files:
            table.add_row(Text(str(entry.get("from", ""))), Text(str(entry.get("to", ""))))
    else:
        table.add_column("Season", justify="right")
        table.add_column("Episode", justify="right")
        table.add_column("Path", style="cyan")
        for entry in files:
            table.add_row(
                str(entry.get("season", "")),
                str(entry.get("episode", "")),
                Text(str(entry.get("path", ""))),
            )
    console.print(table)
