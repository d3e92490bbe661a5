"""``patchforge demo`` — run a complete patch lifecycle with sample data.

Registers a critical patch against synthetic targets, validates it, walks
it through every rollout stage (approving each pause), and prints the
rollout and the audit timeline along the way.
"""

from __future__ import annotations

import time
from pathlib import Path

import typer
from rich.panel import Panel

from patchforge.cli.commands.common import console, reported_errors
from patchforge.config import config
from patchforge.core.coordinator import PatchCoordinator
from patchforge.core.errors import ApplyError, RolloutFailedError
from patchforge.models.patches import Severity
from patchforge.models.rollout import RolloutPlan
from patchforge.monitor.renderer import PatchRenderer


class _DemoApplier:
    """Accepts every target except those listed in ``failing``."""

    def __init__(self, failing: set[str]) -> None:
        self._failing = failing

    def apply(self, target_id: str, payload: bytes) -> None:
        if target_id in self._failing:
            raise ApplyError(target_id, "simulated deployment failure")


def demo_cmd(
    targets: int = typer.Option(20, "--targets", "-n", min=1, help="Number of synthetic targets."),
    fail_target: list[str] = typer.Option(
        [], "--fail-target", help="Target id whose apply should fail (repeatable)."
    ),
    delay: float = typer.Option(
        0.5, "--delay", "-d", help="Delay in seconds between steps for visual effect."
    ),
    state: Path | None = typer.Option(
        None, "--state", help="Persist demo state here (in memory if omitted)."
    ),
) -> None:
    """Run a complete demo rollout with synthetic targets."""
    applier = _DemoApplier(set(fail_target))
    coordinator = PatchCoordinator(config, store_path=state, applier=applier)
    renderer = PatchRenderer(console)

    console.print()
    console.print(
        Panel(
            "[bold]Patchforge Demo Rollout[/bold]\n\n"
            f"One critical patch, {targets} targets, three stages.\n"
            "Every pause for approval is approved automatically.",
            border_style="cyan",
            padding=(1, 2),
        )
    )

    target_ids = [f"target-{i:03d}" for i in range(1, targets + 1)]
    plan = RolloutPlan(
        canary_percentage=10,
        early_adopter_percentage=30,
        soak_time_secs=0,
        max_failure_rate=0.1,
        require_approval=True,
    )

    with reported_errors():
        patch = coordinator.create_patch(
            "Fix reentrancy in withdraw",
            "Guards the withdraw path against reentrant calls.",
            Severity.CRITICAL,
            b"\x00asm-demo-payload",
            target_ids,
            advisory_id="DEMO-2026-0001",
            created_by="demo",
        )
        coordinator.validate_patch(patch.id, "demo")
        console.print(renderer.render_patch(coordinator.patches.get_patch(patch.id)))
        time.sleep(delay)

        coordinator.start_rollout(patch.id, "demo", plan=plan)
        while True:
            rollout = coordinator.rollouts.get_rollout(patch.id)
            if rollout.completed:
                break
            if rollout.paused:
                console.print(
                    f"\n[cyan]>>> Approving:[/cyan] [bold]{rollout.current_stage.value}[/bold]"
                )
                coordinator.approve_stage(patch.id, "demo")

            console.print(
                f"[cyan]>>> Executing:[/cyan] [bold]{rollout.current_stage.value}[/bold]"
            )
            coordinator.execute_stage(patch.id, "demo")
            console.print(renderer.render_rollout(coordinator.rollouts.get_rollout(patch.id)))
            time.sleep(delay)
            try:
                coordinator.advance_stage(patch.id, "demo")
            except RolloutFailedError as exc:
                console.print(f"[bold red]Gate closed:[/bold red] {exc}")
                coordinator.rollback(patch.id, "demo", str(exc))
                break

    console.print(renderer.render_timeline(coordinator.audit.patch_timeline(patch.id)))
    coordinator.audit.verify_chain()
    renderer.print_chain_verification(True)

    final = coordinator.patches.get_patch(patch.id)
    console.print(
        Panel(
            "\n".join([
                "[bold green]Demo Complete![/bold green]",
                "",
                f"[bold]Patch:[/bold]         {final.id}",
                f"[bold]Status:[/bold]        {final.status.value}",
                f"[bold]Version:[/bold]       {final.version}",
                f"[bold]Applied to:[/bold]    {coordinator.audit.application_count(final.id)}"
                f"/{len(target_ids)} targets",
                f"[bold]Audit entries:[/bold] {coordinator.audit.count()}",
            ]),
            title="[bold]Demo Summary[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )
