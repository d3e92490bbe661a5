"""Typed error hierarchy for the patch lifecycle.

Every public operation either returns a value or raises one of these.
Structured attributes carry the data each error kind reports so callers
(the CLI, an HTTP layer) can translate them without parsing messages.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from patchforge.models.patches import PatchStatus
    from patchforge.models.rollout import RolloutStage


class SecurityPatchError(RuntimeError):
    """Base class for all patch lifecycle errors."""


class PatchNotFoundError(SecurityPatchError):
    """Raised when a patch (or its rollout) is not known."""

    def __init__(self, patch_id: str) -> None:
        self.patch_id = patch_id
        super().__init__(f"Patch '{patch_id}' not found")


class InvalidTransitionError(SecurityPatchError):
    """Raised when a requested status change is not in the edge table."""

    def __init__(
        self,
        from_status: PatchStatus,
        to_status: PatchStatus,
        reason: str | None = None,
    ) -> None:
        self.from_status = from_status
        self.to_status = to_status
        message = (
            f"Invalid patch transition from {from_status.value} to {to_status.value}"
        )
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ValidationFailedError(SecurityPatchError):
    """Raised when a patch that failed validation is used as if it passed."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Patch validation failed: {reason}")


class IntegrityCheckFailedError(SecurityPatchError):
    """Raised when a payload no longer matches its recorded hash."""

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Integrity check failed - expected hash {expected}, got {actual}"
        )


class RolloutFailedError(SecurityPatchError):
    """Raised when a rollout operation is refused at a given stage."""

    def __init__(self, stage: RolloutStage, reason: str) -> None:
        self.stage = stage
        self.reason = reason
        super().__init__(f"Rollout failed at stage {stage.value}: {reason}")


class NoVulnerableTargetsError(SecurityPatchError):
    """Raised when an operation needs at least one affected target."""

    def __init__(self, patch_id: str) -> None:
        self.patch_id = patch_id
        super().__init__(f"No vulnerable targets found for patch '{patch_id}'")


class DuplicatePatchIdError(SecurityPatchError):
    """Raised on a patch id collision."""

    def __init__(self, patch_id: str) -> None:
        self.patch_id = patch_id
        super().__init__(f"Duplicate patch ID: '{patch_id}'")


class VersionConflictError(SecurityPatchError):
    """Raised when a proposed version is not strictly newer than the latest."""

    def __init__(self, current: str, proposed: str) -> None:
        self.current = current
        self.proposed = proposed
        super().__init__(f"Version conflict: current {current}, proposed {proposed}")


class DistributionError(SecurityPatchError):
    """Raised for notification bookkeeping failures."""


class SerializationError(SecurityPatchError):
    """Raised when state cannot be serialized or deserialized."""


class AuditIntegrityError(SecurityPatchError):
    """Raised when the audit hash chain is broken."""


class ApplyError(SecurityPatchError):
    """Raised by a target applier when a patch cannot be applied to a target."""

    def __init__(self, target_id: str, reason: str) -> None:
        self.target_id = target_id
        self.reason = reason
        super().__init__(f"Failed to apply patch to {target_id}: {reason}")
