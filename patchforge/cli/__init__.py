"""Patchforge CLI — Typer-based command-line interface.

Provides the ``patchforge`` command with subcommands for registering and
validating patches, driving staged rollouts, tracking notifications and
inspecting the audit trail.  State lives in the SQLite file named by
``PATCHFORGE_STATE_PATH``.

All output uses Rich for formatted terminal display.
"""
