"""``patchforge rollout ...`` — drive a staged rollout one step at a time."""

from __future__ import annotations

from pathlib import Path

import typer

from patchforge.cli.commands.common import (
    STATE_OPTION_HELP,
    console,
    open_coordinator,
    reported_errors,
)
from patchforge.config import config
from patchforge.models.rollout import RolloutPlan
from patchforge.monitor.renderer import PatchRenderer


def start_cmd(
    patch_id: str = typer.Argument(..., help="Validated patch to roll out."),
    canary: int | None = typer.Option(None, "--canary", min=0, max=100, help="Canary %."),
    early_adopter: int | None = typer.Option(
        None, "--early-adopter", min=0, max=100, help="Early adopter %."
    ),
    soak_time: int | None = typer.Option(None, "--soak-time", min=0, help="Seconds per stage."),
    max_failure_rate: float | None = typer.Option(
        None, "--max-failure-rate", min=0.0, max=1.0, help="Allowed failure ratio per stage."
    ),
    no_approval: bool = typer.Option(
        False, "--no-approval",
        help="Advance without pausing for approval (overrides PATCHFORGE_REQUIRE_APPROVAL).",
    ),
    notify: bool = typer.Option(True, "--notify/--no-notify", help="Notify affected targets."),
    performed_by: str | None = typer.Option(None, "--by"),
    state: Path | None = typer.Option(None, "--state", help=STATE_OPTION_HELP),
) -> None:
    """Partition targets into cohorts and open the rollout at canary."""
    overrides = {
        key: value
        for key, value in {
            "canary_percentage": canary,
            "early_adopter_percentage": early_adopter,
            "soak_time_secs": soak_time,
            "max_failure_rate": max_failure_rate,
            "require_approval": False if no_approval else None,
        }.items()
        if value is not None
    }
    plan = RolloutPlan(**{**config.default_rollout_plan().model_dump(), **overrides})

    coordinator = open_coordinator(state)
    with reported_errors():
        rollout = coordinator.start_rollout(patch_id, performed_by, plan=plan, notify=notify)
    console.print(PatchRenderer(console).render_rollout(rollout))


def execute_cmd(
    patch_id: str = typer.Argument(...),
    performed_by: str | None = typer.Option(None, "--by"),
    state: Path | None = typer.Option(None, "--state", help=STATE_OPTION_HELP),
) -> None:
    """Apply the patch to every target of the current stage."""
    coordinator = open_coordinator(state)
    with reported_errors():
        results = coordinator.execute_stage(patch_id, performed_by)
        rollout = coordinator.rollouts.get_rollout(patch_id)

    failed = [r for r in results if not r.success]
    for result in failed:
        console.print(f"[red]{result.target_id}:[/red] {result.error}")
    console.print(
        f"[bold]{rollout.current_stage.value}:[/bold] "
        f"{len(results) - len(failed)} succeeded, {len(failed)} failed"
    )


def advance_cmd(
    patch_id: str = typer.Argument(...),
    performed_by: str | None = typer.Option(None, "--by"),
    state: Path | None = typer.Option(None, "--state", help=STATE_OPTION_HELP),
) -> None:
    """Pass the failure-rate gate and move to the next stage."""
    coordinator = open_coordinator(state)
    with reported_errors():
        stage = coordinator.advance_stage(patch_id, performed_by)
        rollout = coordinator.rollouts.get_rollout(patch_id)

    if rollout.completed:
        console.print(f"[bold green]Rollout of {patch_id} completed.[/bold green]")
    elif rollout.paused:
        console.print(f"[yellow]Now at {stage.value}; awaiting approval.[/yellow]")
    else:
        console.print(f"[green]Now at {stage.value}.[/green]")


def approve_cmd(
    patch_id: str = typer.Argument(...),
    performed_by: str | None = typer.Option(None, "--by"),
    state: Path | None = typer.Option(None, "--state", help=STATE_OPTION_HELP),
) -> None:
    """Approve the current stage so it may execute."""
    coordinator = open_coordinator(state)
    with reported_errors():
        rollout = coordinator.approve_stage(patch_id, performed_by)
    console.print(f"[green]Approved {rollout.current_stage.value} for {patch_id}.[/green]")


def rollback_cmd(
    patch_id: str = typer.Argument(...),
    reason: str | None = typer.Option(None, "--reason", "-r"),
    performed_by: str | None = typer.Option(None, "--by"),
    state: Path | None = typer.Option(None, "--state", help=STATE_OPTION_HELP),
) -> None:
    """Halt the rollout and mark the patch rolled back."""
    coordinator = open_coordinator(state)
    with reported_errors():
        rollout = coordinator.rollback(patch_id, performed_by, reason)
    console.print(
        f"[bold red]Rolled back {patch_id} at {rollout.current_stage.value}.[/bold red]"
    )


def status_cmd(
    patch_id: str = typer.Argument(...),
    state: Path | None = typer.Option(None, "--state", help=STATE_OPTION_HELP),
) -> None:
    """Show the per-stage state of a rollout."""
    coordinator = open_coordinator(state)
    with reported_errors():
        rollout = coordinator.rollouts.get_rollout(patch_id)
        progress = coordinator.rollouts.rollout_progress(patch_id)
    console.print(PatchRenderer(console).render_rollout(rollout))
    console.print(f"[bold]Progress:[/bold] {progress:.1f}% of targets patched")
