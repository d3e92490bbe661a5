"""Rich terminal renderer for patches, rollouts and audit timelines.

Color scheme
------------
- green     : validated / applied / delivered, successful results
- red       : rejected / rolled back / failed
- yellow    : rolling out, pending, paused
- cyan      : validating
- dim       : draft, stages not reached yet
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from patchforge.models.notifications import NotificationStatus
from patchforge.models.patches import PatchStatus, Severity
from patchforge.models.rollout import RolloutStage

if TYPE_CHECKING:
    from patchforge.models.audit import AuditEntry
    from patchforge.models.notifications import NotificationRecord, NotificationSummary
    from patchforge.models.patches import SecurityPatch
    from patchforge.models.rollout import RolloutState
    from patchforge.models.versioning import VersionRecord


# ---------------------------------------------------------------------------
# Value -> Rich style mapping
# ---------------------------------------------------------------------------

_STATUS_STYLES: dict[PatchStatus, str] = {
    PatchStatus.DRAFT: "dim",
    PatchStatus.VALIDATING: "cyan",
    PatchStatus.VALIDATED: "green",
    PatchStatus.ROLLING_OUT: "bold yellow",
    PatchStatus.APPLIED: "bold green",
    PatchStatus.REJECTED: "bold red",
    PatchStatus.ROLLED_BACK: "red",
}

_SEVERITY_STYLES: dict[Severity, str] = {
    Severity.LOW: "dim",
    Severity.MEDIUM: "yellow",
    Severity.HIGH: "bold yellow",
    Severity.CRITICAL: "bold red",
}

_NOTIFICATION_STYLES: dict[NotificationStatus, str] = {
    NotificationStatus.PENDING: "yellow",
    NotificationStatus.DELIVERED: "green",
    NotificationStatus.FAILED: "bold red",
    NotificationStatus.ACKNOWLEDGED: "bold green",
}


def _styled(value: str, style: str) -> str:
    return f"[{style}]{value}[/{style}]" if style else value


class PatchRenderer:
    """Renders patch lifecycle models as Rich terminal output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Patches
    # ------------------------------------------------------------------

    def render_patch(self, patch: SecurityPatch) -> Panel:
        """A panel with the patch metadata and its validation checks."""
        status = _styled(patch.status.value, _STATUS_STYLES.get(patch.status, ""))
        severity = _styled(patch.severity.value, _SEVERITY_STYLES.get(patch.severity, ""))
        lines = [
            f"[bold]ID:[/bold]          {patch.id}",
            f"[bold]Title:[/bold]       {patch.title}",
            f"[bold]Severity:[/bold]    {severity}",
            f"[bold]Status:[/bold]      {status}",
            f"[bold]Version:[/bold]     {patch.version}",
            f"[bold]Advisory:[/bold]    {patch.advisory_id or '-'}",
            f"[bold]Targets:[/bold]     {len(patch.affected_targets)}",
            f"[bold]Payload:[/bold]     {len(patch.payload)} bytes",
            f"[bold]SHA-256:[/bold]     {patch.payload_hash}",
            f"[bold]Created by:[/bold]  {patch.created_by}",
        ]
        body: list = [Text.from_markup("\n".join(lines))]

        if patch.validation_results:
            checks = Table(show_header=True, header_style="bold cyan", expand=True)
            checks.add_column("Check")
            checks.add_column("Result", justify="center")
            checks.add_column("Message")
            for result in patch.validation_results:
                checks.add_row(
                    result.check_name,
                    "[green]PASS[/green]" if result.passed else "[bold red]FAIL[/bold red]",
                    result.message or "[dim]-[/dim]",
                )
            body.extend([Text(""), checks])

        return Panel(
            Group(*body),
            title="[bold]Security Patch[/bold]",
            subtitle=f"Updated: {patch.updated_at.strftime('%Y-%m-%d %H:%M:%S UTC')}",
            border_style="blue",
            padding=(1, 2),
        )

    def render_patch_list(self, patches: list[SecurityPatch]) -> Table:
        table = Table(title="Security Patches", header_style="bold cyan", expand=True)
        table.add_column("ID", style="dim", no_wrap=True)
        table.add_column("Title", min_width=20)
        table.add_column("Severity", justify="center")
        table.add_column("Status", justify="center")
        table.add_column("Version", justify="right")
        table.add_column("Targets", justify="right")

        for patch in patches:
            table.add_row(
                patch.id,
                patch.title,
                _styled(patch.severity.value, _SEVERITY_STYLES.get(patch.severity, "")),
                _styled(patch.status.value, _STATUS_STYLES.get(patch.status, "")),
                str(patch.version),
                str(len(patch.affected_targets)),
            )
        return table

    def render_versions(self, records: list[VersionRecord]) -> Table:
        table = Table(title="Release History", header_style="bold cyan")
        table.add_column("Version", justify="right")
        table.add_column("Severity", justify="center")
        table.add_column("Major", justify="center")
        table.add_column("Released")
        table.add_column("Notes")
        for record in records:
            table.add_row(
                str(record.version),
                _styled(record.severity.value, _SEVERITY_STYLES.get(record.severity, "")),
                "[bold]yes[/bold]" if record.is_major else "[dim]no[/dim]",
                record.released_at.strftime("%Y-%m-%d %H:%M:%S"),
                record.release_notes or "[dim]-[/dim]",
            )
        return table

    # ------------------------------------------------------------------
    # Rollouts
    # ------------------------------------------------------------------

    def render_rollout(self, state: RolloutState) -> Panel:
        """A panel with one row per stage plus a summary footer."""
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("#", style="dim", width=3, justify="right")
        table.add_column("Stage", min_width=22)
        table.add_column("State", justify="center", min_width=12)
        table.add_column("Targets", justify="right")
        table.add_column("Succeeded", justify="right")
        table.add_column("Failed", justify="right")

        for stage in RolloutStage:
            results = state.results_for_stage(stage)
            failed = sum(1 for r in results if not r.success)
            table.add_row(
                str(stage.ordinal),
                stage.value,
                self._stage_state(state, stage),
                str(len(state.stage_assignments.for_stage(stage))),
                str(len(results) - failed),
                f"[red]{failed}[/red]" if failed else "[dim]0[/dim]",
            )

        if state.rolled_back:
            outcome = "[bold red]ROLLED BACK[/bold red]"
        elif state.completed:
            outcome = "[bold green]COMPLETED[/bold green]"
        elif state.paused:
            outcome = "[yellow]awaiting approval[/yellow]"
        else:
            outcome = "[yellow]in progress[/yellow]"

        plan = state.plan
        summary = "  |  ".join([
            f"[bold]Patch:[/bold] {state.patch_id}",
            f"[bold]Plan:[/bold] {plan.canary_percentage}% / "
            f"{plan.early_adopter_percentage}% / rest",
            f"[bold]Max failure:[/bold] {plan.max_failure_rate * 100:.2f}%",
            f"[bold]Status:[/bold] {outcome}",
        ])

        return Panel(
            Group(table, Text(""), Text.from_markup(summary)),
            title="[bold]Staged Rollout[/bold]",
            subtitle=f"Started: {state.started_at.strftime('%Y-%m-%d %H:%M:%S UTC')}",
            border_style="blue",
            padding=(1, 2),
        )

    @staticmethod
    def _stage_state(state: RolloutState, stage: RolloutStage) -> str:
        if stage < state.current_stage or (state.completed and stage in state.executed_stages):
            return "[green]DONE[/green]"
        if stage > state.current_stage:
            return "[dim]WAITING[/dim]"
        if state.rolled_back:
            return "[red]HALTED[/red]"
        if state.paused:
            return "[yellow]PAUSED[/yellow]"
        if stage in state.executed_stages:
            return "[cyan]EXECUTED[/cyan]"
        return "[bold yellow]CURRENT[/bold yellow]"

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def render_notifications(
        self, records: list[NotificationRecord], summary: NotificationSummary
    ) -> Panel:
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("Notification", style="dim", no_wrap=True)
        table.add_column("Target")
        table.add_column("Status", justify="center")
        table.add_column("Attempts", justify="right")
        table.add_column("Last error")
        for record in records:
            table.add_row(
                record.notification_id,
                record.target_id,
                _styled(record.status.value, _NOTIFICATION_STYLES.get(record.status, "")),
                str(record.attempt_count),
                record.last_error or "[dim]-[/dim]",
            )

        footer = (
            f"[bold]Total:[/bold] {summary.total}  |  "
            f"[yellow]pending {summary.pending}[/yellow]  |  "
            f"[green]delivered {summary.delivered}[/green]  |  "
            f"[red]failed {summary.failed}[/red]  |  "
            f"[bold green]acknowledged {summary.acknowledged}[/bold green]"
        )
        return Panel(
            Group(table, Text(""), Text.from_markup(footer)),
            title="[bold]Notifications[/bold]",
            border_style="blue",
            padding=(1, 2),
        )

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def render_timeline(self, entries: list[AuditEntry]) -> Table:
        table = Table(title="Audit Timeline", header_style="bold cyan", expand=True)
        table.add_column("Time", no_wrap=True)
        table.add_column("Action")
        table.add_column("Target")
        table.add_column("By")
        table.add_column("Details")
        for entry in entries:
            table.add_row(
                entry.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
                entry.action.value,
                entry.target_id or "[dim]-[/dim]",
                entry.performed_by,
                entry.details or "[dim]-[/dim]",
            )
        return table

    def print_chain_verification(self, valid: bool, detail: str = "") -> None:
        """Print an audit chain verification result."""
        if valid:
            self.console.print("[green]Audit hash chain is valid.[/green]")
        else:
            self.console.print(f"[bold red]Audit hash chain is BROKEN![/bold red] {detail}")
