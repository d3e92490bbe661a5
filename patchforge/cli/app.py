"""Main Typer application — imports and registers all CLI commands.

Entry point: ``patchforge`` (configured via pyproject.toml scripts).

Commands: create, validate, show, list, verify, versions, demo, plus the
``rollout``, ``notify`` and ``audit`` groups.
"""

from __future__ import annotations

import logging

import typer
from rich.logging import RichHandler

from patchforge.cli.commands import audit, notify, patch, rollout
from patchforge.cli.commands.demo import demo_cmd
from patchforge.config import config

app = typer.Typer(
    name="patchforge",
    help="Patchforge: security patch lifecycle with staged, audited rollout.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)
rollout_app = typer.Typer(help="Drive a staged rollout.", no_args_is_help=True)
notify_app = typer.Typer(help="Track notifications to affected targets.", no_args_is_help=True)
audit_app = typer.Typer(help="Inspect the audit trail.", no_args_is_help=True)


def configure_logging(level: str) -> None:
    """Route library logging through Rich at ``level``."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=config.debug, show_path=config.debug)],
        force=True,
    )


@app.callback()
def main_callback(
    log_level: str | None = typer.Option(
        None, "--log-level", help="Overrides PATCHFORGE_LOG_LEVEL."
    ),
) -> None:
    configure_logging(log_level or config.log_level)


# Patch registry
app.command(name="create", help="Register a new patch.")(patch.create_cmd)
app.command(name="validate", help="Validate a draft patch.")(patch.validate_cmd)
app.command(name="show", help="Show a patch.")(patch.show_cmd)
app.command(name="list", help="List patches.")(patch.list_cmd)
app.command(name="verify", help="Check a patch payload against its hash.")(patch.verify_cmd)
app.command(name="versions", help="Show the release history of a patch.")(patch.versions_cmd)
app.command(name="demo", help="Run a complete demo rollout with sample data.")(demo_cmd)

# Rollout
rollout_app.command(name="start", help="Open a staged rollout.")(rollout.start_cmd)
rollout_app.command(name="execute", help="Execute the current stage.")(rollout.execute_cmd)
rollout_app.command(name="advance", help="Advance past the current stage.")(rollout.advance_cmd)
rollout_app.command(name="approve", help="Approve the current stage.")(rollout.approve_cmd)
rollout_app.command(name="rollback", help="Roll the patch back.")(rollout.rollback_cmd)
rollout_app.command(name="status", help="Show rollout state.")(rollout.status_cmd)

# Notifications
notify_app.command(name="list", help="List notifications of a patch.")(notify.list_cmd)
notify_app.command(name="ack", help="Acknowledge a notification.")(notify.ack_cmd)
notify_app.command(name="retry", help="Retry failed notifications.")(notify.retry_cmd)
notify_app.command(name="summary", help="Notification counts by status.")(notify.summary_cmd)

# Audit
audit_app.command(name="timeline", help="Audit timeline of a patch.")(audit.timeline_cmd)
audit_app.command(name="export", help="Export the audit trail as JSON.")(audit.export_cmd)
audit_app.command(name="verify", help="Verify the audit hash chain.")(audit.verify_cmd)

app.add_typer(rollout_app, name="rollout")
app.add_typer(notify_app, name="notify")
app.add_typer(audit_app, name="audit")


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
