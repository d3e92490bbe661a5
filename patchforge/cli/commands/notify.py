"""``patchforge notify ...`` — notification tracking for affected targets."""

from __future__ import annotations

from pathlib import Path

import typer

from patchforge.cli.commands.common import (
    STATE_OPTION_HELP,
    console,
    open_coordinator,
    reported_errors,
)
from patchforge.monitor.renderer import PatchRenderer


def list_cmd(
    patch_id: str = typer.Argument(...),
    state: Path | None = typer.Option(None, "--state", help=STATE_OPTION_HELP),
) -> None:
    """List the notifications of a patch."""
    coordinator = open_coordinator(state)
    with reported_errors():
        coordinator.patches.get_patch(patch_id)
    records = coordinator.distribution.list_notifications(patch_id)
    summary = coordinator.distribution.notification_summary(patch_id)
    console.print(PatchRenderer(console).render_notifications(records, summary))


def ack_cmd(
    notification_id: str = typer.Argument(...),
    performed_by: str | None = typer.Option(None, "--by"),
    state: Path | None = typer.Option(None, "--state", help=STATE_OPTION_HELP),
) -> None:
    """Record that a target owner acknowledged a notification."""
    coordinator = open_coordinator(state)
    with reported_errors():
        record = coordinator.acknowledge_notification(notification_id, performed_by)
    console.print(f"[green]{record.target_id} acknowledged patch {record.patch_id}.[/green]")


def retry_cmd(
    patch_id: str = typer.Argument(...),
    performed_by: str | None = typer.Option(None, "--by"),
    state: Path | None = typer.Option(None, "--state", help=STATE_OPTION_HELP),
) -> None:
    """Requeue failed notifications and redeliver pending ones."""
    coordinator = open_coordinator(state)
    with reported_errors():
        delivered = coordinator.retry_notifications(patch_id, performed_by)
    console.print(f"Delivered {len(delivered)} notifications.")


def summary_cmd(
    patch_id: str = typer.Argument(...),
    state: Path | None = typer.Option(None, "--state", help=STATE_OPTION_HELP),
) -> None:
    """Counts of notifications by delivery status."""
    coordinator = open_coordinator(state)
    with reported_errors():
        coordinator.patches.get_patch(patch_id)
    s = coordinator.distribution.notification_summary(patch_id)
    console.print(
        f"total={s.total} pending={s.pending} delivered={s.delivered} "
        f"failed={s.failed} acknowledged={s.acknowledged}"
    )
