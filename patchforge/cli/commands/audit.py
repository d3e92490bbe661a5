"""``patchforge audit ...`` — read the append-only audit trail."""

from __future__ import annotations

from pathlib import Path

import typer

from patchforge.cli.commands.common import (
    STATE_OPTION_HELP,
    console,
    open_coordinator,
    reported_errors,
)
from patchforge.core.errors import AuditIntegrityError
from patchforge.monitor.renderer import PatchRenderer


def timeline_cmd(
    patch_id: str = typer.Argument(...),
    state: Path | None = typer.Option(None, "--state", help=STATE_OPTION_HELP),
) -> None:
    """Every audit entry of a patch, oldest first."""
    coordinator = open_coordinator(state)
    entries = coordinator.audit.patch_timeline(patch_id)
    if not entries:
        console.print(f"[dim]No audit entries for {patch_id}.[/dim]")
        return
    console.print(PatchRenderer(console).render_timeline(entries))


def export_cmd(
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Write to this file instead of stdout."
    ),
    state: Path | None = typer.Option(None, "--state", help=STATE_OPTION_HELP),
) -> None:
    """Export the whole audit trail as JSON."""
    coordinator = open_coordinator(state)
    with reported_errors():
        document = coordinator.audit.export_json()
    if output is None:
        typer.echo(document)
        return
    output.write_text(document, encoding="utf-8")
    console.print(f"[green]Wrote {coordinator.audit.count()} entries to {output}.[/green]")


def verify_cmd(
    state: Path | None = typer.Option(None, "--state", help=STATE_OPTION_HELP),
) -> None:
    """Recompute every audit seal and check the hash chain."""
    coordinator = open_coordinator(state)
    renderer = PatchRenderer(console)
    try:
        coordinator.audit.verify_chain()
    except AuditIntegrityError as exc:
        renderer.print_chain_verification(False, str(exc))
        raise typer.Exit(code=1) from exc
    renderer.print_chain_verification(True)
