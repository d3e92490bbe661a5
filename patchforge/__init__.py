"""Patchforge: security patch lifecycle and staged rollout.

  - Patch registry with SHA-256 payload integrity and a strict status machine
  - Staged rollout (canary -> early adopter -> general availability) with a
    per-stage failure-rate gate and manual approval
  - Severity-driven semantic versioning with monotonic ordering
  - Per-target notification tracking with retry and acknowledgement
  - Append-only, hash-chained audit trail with JSON export
"""

__version__ = "0.1.0"
__description__ = "Security patch lifecycle management with staged, audited rollout"

from patchforge.core.coordinator import PatchCoordinator
from patchforge.config import PatchforgeConfig
from patchforge.cli.app import app as cli

__all__ = ["PatchCoordinator", "PatchforgeConfig", "cli", "__version__"]
