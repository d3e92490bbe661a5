"""Patchforge monitor — read-only terminal views over patch state.

The monitor never holds state of its own.  Every render reads the current
models handed to it by the coordinator.

Modules
-------
renderer
    ``PatchRenderer`` turns ``SecurityPatch``, ``RolloutState`` and audit
    entries into Rich renderables for terminal display.
"""
