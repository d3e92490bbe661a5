"""Patch registry commands: create, validate, show, list, verify, versions."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.panel import Panel

from patchforge.cli.commands.common import (
    STATE_OPTION_HELP,
    console,
    open_coordinator,
    reported_errors,
)
from patchforge.models.patches import PatchStatus, Severity
from patchforge.monitor.renderer import PatchRenderer


def create_cmd(
    title: str = typer.Option(..., "--title", help="Short patch title."),
    description: str = typer.Option(..., "--description", help="What the patch fixes."),
    severity: Severity = typer.Option(Severity.MEDIUM, "--severity", "-s"),
    targets: list[str] = typer.Option(
        ..., "--target", "-t", help="Affected target id (repeatable)."
    ),
    payload_file: Path | None = typer.Option(
        None, "--payload-file", "-f", exists=True, dir_okay=False,
        help="File holding the patch payload.",
    ),
    payload: str | None = typer.Option(
        None, "--payload", help="Inline payload text (UTF-8)."
    ),
    advisory_id: str | None = typer.Option(None, "--advisory", help="e.g. CVE-2026-0001."),
    created_by: str | None = typer.Option(None, "--by", help="Author recorded in the audit."),
    state: Path | None = typer.Option(None, "--state", help=STATE_OPTION_HELP),
) -> None:
    """Register a new patch in draft status."""
    if payload_file is not None and payload is not None:
        console.print("[bold red]Use either --payload-file or --payload, not both.[/bold red]")
        raise typer.Exit(code=2)

    if payload_file is not None:
        data = payload_file.read_bytes()
    elif payload is not None:
        data = payload.encode("utf-8")
    else:
        data = b""

    coordinator = open_coordinator(state)
    with reported_errors():
        patch = coordinator.create_patch(
            title, description, severity, data, targets, advisory_id, created_by
        )

    console.print(
        Panel(
            "\n".join([
                "[bold green]Patch registered.[/bold green]",
                "",
                f"[bold]Patch ID:[/bold]  {patch.id}",
                f"[bold]Severity:[/bold]  {patch.severity.value}",
                f"[bold]Targets:[/bold]   {len(patch.affected_targets)}",
                f"[bold]SHA-256:[/bold]   {patch.payload_hash}",
            ]),
            title="[bold]Patchforge[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )
    # Plain id on its own line for scripting
    console.print(patch.id)


def validate_cmd(
    patch_id: str = typer.Argument(..., help="Patch to validate."),
    performed_by: str | None = typer.Option(None, "--by"),
    state: Path | None = typer.Option(None, "--state", help=STATE_OPTION_HELP),
) -> None:
    """Run the validation checks on a draft patch."""
    coordinator = open_coordinator(state)
    with reported_errors():
        passed = coordinator.validate_patch(patch_id, performed_by)
        patch = coordinator.patches.get_patch(patch_id)

    console.print(PatchRenderer(console).render_patch(patch))
    if not passed:
        console.print("[bold red]Patch rejected.[/bold red]")
        raise typer.Exit(code=1)
    console.print(f"[green]Patch validated as version {patch.version}.[/green]")


def show_cmd(
    patch_id: str = typer.Argument(...),
    state: Path | None = typer.Option(None, "--state", help=STATE_OPTION_HELP),
) -> None:
    """Show one patch with its validation checks."""
    coordinator = open_coordinator(state)
    with reported_errors():
        patch = coordinator.patches.get_patch(patch_id)
    console.print(PatchRenderer(console).render_patch(patch))


def list_cmd(
    status: PatchStatus | None = typer.Option(None, "--status", help="Filter by status."),
    severity: Severity | None = typer.Option(None, "--severity", help="Filter by severity."),
    state: Path | None = typer.Option(None, "--state", help=STATE_OPTION_HELP),
) -> None:
    """List registered patches."""
    coordinator = open_coordinator(state)
    patches = coordinator.patches.list_patches(status)
    if severity is not None:
        patches = [p for p in patches if p.severity == severity]
    if not patches:
        console.print("[dim]No patches found.[/dim]")
        return
    console.print(PatchRenderer(console).render_patch_list(patches))


def verify_cmd(
    patch_id: str = typer.Argument(...),
    state: Path | None = typer.Option(None, "--state", help=STATE_OPTION_HELP),
) -> None:
    """Recompute the payload digest and compare it to the recorded hash."""
    coordinator = open_coordinator(state)
    with reported_errors():
        intact = coordinator.patches.verify_integrity(patch_id)
    if intact:
        console.print(f"[green]Payload of {patch_id} matches its SHA-256.[/green]")
        return
    console.print(f"[bold red]Payload of {patch_id} does NOT match its SHA-256![/bold red]")
    raise typer.Exit(code=1)


def versions_cmd(
    patch_id: str = typer.Argument(...),
    state: Path | None = typer.Option(None, "--state", help=STATE_OPTION_HELP),
) -> None:
    """Show the release history of a patch."""
    coordinator = open_coordinator(state)
    with reported_errors():
        coordinator.patches.get_patch(patch_id)
    history = coordinator.versions.release_history(patch_id)
    if not history:
        console.print("[dim]No releases recorded.[/dim]")
        return
    console.print(PatchRenderer(console).render_versions(history))
