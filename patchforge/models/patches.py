"""Security patch models — severity, lifecycle status, version, patch entity.

The patch lifecycle is a closed state machine:

    draft -> validating -> validated -> rolling_out -> applied
                  |                          |
                  +-> rejected               +-> rolled_back

``VALID_TRANSITIONS`` is the only source of truth for legal edges.
Terminal statuses (rejected, applied, rolled_back) have no outgoing edges.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    """Ordered risk classification: low < medium < high < critical."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    # Ordering is by rank; the str mixin would otherwise compare alphabetically.
    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_RANK: dict[Severity, int] = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class PatchStatus(str, Enum):
    """Lifecycle status of a security patch."""

    DRAFT = "draft"
    VALIDATING = "validating"
    VALIDATED = "validated"
    ROLLING_OUT = "rolling_out"
    APPLIED = "applied"
    REJECTED = "rejected"
    ROLLED_BACK = "rolled_back"


# Legal status edges, enforced by PatchManager.transition().
VALID_TRANSITIONS: dict[PatchStatus, set[PatchStatus]] = {
    PatchStatus.DRAFT: {PatchStatus.VALIDATING},
    PatchStatus.VALIDATING: {PatchStatus.VALIDATED, PatchStatus.REJECTED},
    PatchStatus.VALIDATED: {PatchStatus.ROLLING_OUT},
    PatchStatus.ROLLING_OUT: {PatchStatus.APPLIED, PatchStatus.ROLLED_BACK},
    PatchStatus.APPLIED: set(),  # terminal
    PatchStatus.REJECTED: set(),  # terminal
    PatchStatus.ROLLED_BACK: set(),  # terminal
}

TERMINAL_STATUSES: frozenset[PatchStatus] = frozenset(
    status for status, edges in VALID_TRANSITIONS.items() if not edges
)


class PatchVersion(BaseModel):
    """Semantic version of a patch release, ordered on (major, minor, patch)."""

    model_config = ConfigDict(frozen=True)

    major: int = Field(default=0, ge=0)
    minor: int = Field(default=1, ge=0)
    patch: int = Field(default=0, ge=0)

    @classmethod
    def parse(cls, text: str) -> PatchVersion:
        """Parse ``"MAJOR.MINOR.PATCH"`` (a leading ``v`` is tolerated)."""
        parts = text.strip().lstrip("vV").split(".")
        if len(parts) != 3:
            raise ValueError(f"Expected MAJOR.MINOR.PATCH, got {text!r}")
        major, minor, patch = (int(p) for p in parts)
        return cls(major=major, minor=minor, patch=patch)

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def bump_major(self) -> PatchVersion:
        return PatchVersion(major=self.major + 1, minor=0, patch=0)

    def bump_minor(self) -> PatchVersion:
        return PatchVersion(major=self.major, minor=self.minor + 1, patch=0)

    def bump_patch(self) -> PatchVersion:
        return PatchVersion(major=self.major, minor=self.minor, patch=self.patch + 1)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, PatchVersion):
            return NotImplemented
        return self.as_tuple() < other.as_tuple()

    def __le__(self, other: object) -> bool:
        if not isinstance(other, PatchVersion):
            return NotImplemented
        return self.as_tuple() <= other.as_tuple()

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, PatchVersion):
            return NotImplemented
        return self.as_tuple() > other.as_tuple()

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, PatchVersion):
            return NotImplemented
        return self.as_tuple() >= other.as_tuple()

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


class ValidationResult(BaseModel):
    """Outcome of one named validation check."""

    model_config = ConfigDict(frozen=True)

    check_name: str
    passed: bool
    message: str | None = None


class SecurityPatch(BaseModel):
    """A versioned security fix with a payload and its integrity hash.

    ``payload`` is serialized as base64 in JSON so arbitrary bytecode
    survives a round trip through the SQLite store.
    """

    model_config = ConfigDict(
        frozen=True,
        ser_json_bytes="base64",
        val_json_bytes="base64",
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    description: str
    severity: Severity = Severity.MEDIUM
    status: PatchStatus = PatchStatus.DRAFT
    version: PatchVersion = PatchVersion()
    payload: bytes = b""
    payload_hash: str
    affected_targets: list[str] = []
    advisory_id: str | None = None
    created_by: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    validation_results: list[ValidationResult] = []

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def failed_checks(self) -> list[str]:
        return [r.check_name for r in self.validation_results if not r.passed]
