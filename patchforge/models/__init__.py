"""Patchforge data models — all Pydantic v2, all frozen (immutable)."""

from patchforge.models.audit import AuditAction, AuditEntry
from patchforge.models.notifications import (
    DeliveryOutcome,
    NotificationMessage,
    NotificationRecord,
    NotificationStatus,
    NotificationSummary,
)
from patchforge.models.patches import (
    TERMINAL_STATUSES,
    VALID_TRANSITIONS,
    PatchStatus,
    PatchVersion,
    SecurityPatch,
    Severity,
    ValidationResult,
)
from patchforge.models.rollout import (
    RolloutPlan,
    RolloutStage,
    RolloutState,
    StageAssignments,
    TargetRolloutResult,
)
from patchforge.models.versioning import VersionRecord

__all__ = [
    # patches
    "Severity",
    "PatchStatus",
    "PatchVersion",
    "ValidationResult",
    "SecurityPatch",
    "VALID_TRANSITIONS",
    "TERMINAL_STATUSES",
    # rollout
    "RolloutStage",
    "RolloutPlan",
    "StageAssignments",
    "TargetRolloutResult",
    "RolloutState",
    # versioning
    "VersionRecord",
    # notifications
    "NotificationStatus",
    "NotificationMessage",
    "DeliveryOutcome",
    "NotificationRecord",
    "NotificationSummary",
    # audit
    "AuditAction",
    "AuditEntry",
]
