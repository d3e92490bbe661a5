"""Helpers shared by every CLI command: state location and error reporting."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import typer
from rich.console import Console

from patchforge.config import config
from patchforge.core.coordinator import PatchCoordinator
from patchforge.core.errors import SecurityPatchError

console = Console()

STATE_OPTION_HELP = "Path to the state database (defaults to PATCHFORGE_STATE_PATH)."


def open_coordinator(state_path: Path | None = None) -> PatchCoordinator:
    """A coordinator over the configured SQLite state file."""
    return PatchCoordinator(config, store_path=state_path or config.state_path)


@contextmanager
def reported_errors() -> Iterator[None]:
    """Print a patch error in red and exit with status 1."""
    try:
        yield
    except SecurityPatchError as exc:
        console.print(f"[bold red]{type(exc).__name__}:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc
