"""Staged rollout models — stages, plan, cohort assignments, per-target results."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class RolloutStage(str, Enum):
    """Successive target cohorts: canary < early_adopter < general_availability."""

    CANARY = "canary"
    EARLY_ADOPTER = "early_adopter"
    GENERAL_AVAILABILITY = "general_availability"

    @property
    def ordinal(self) -> int:
        return _STAGE_ORDER.index(self)

    def next(self) -> RolloutStage | None:
        """Return the following stage, or None past general availability."""
        idx = self.ordinal + 1
        return _STAGE_ORDER[idx] if idx < len(_STAGE_ORDER) else None

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, RolloutStage):
            return NotImplemented
        return self.ordinal < other.ordinal

    def __le__(self, other: object) -> bool:
        if not isinstance(other, RolloutStage):
            return NotImplemented
        return self.ordinal <= other.ordinal

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, RolloutStage):
            return NotImplemented
        return self.ordinal > other.ordinal

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, RolloutStage):
            return NotImplemented
        return self.ordinal >= other.ordinal


_STAGE_ORDER: tuple[RolloutStage, ...] = (
    RolloutStage.CANARY,
    RolloutStage.EARLY_ADOPTER,
    RolloutStage.GENERAL_AVAILABILITY,
)


class RolloutPlan(BaseModel):
    """Cohort sizing, failure tolerance, and approval requirements.

    The two percentages are validated individually; their sum is not
    (partitioning clamps an overflow and logs it).
    """

    model_config = ConfigDict(frozen=True)

    canary_percentage: int = Field(default=5, ge=0, le=100)
    early_adopter_percentage: int = Field(default=25, ge=0, le=100)
    soak_time_secs: int = Field(default=3600, ge=0)
    max_failure_rate: float = Field(default=0.01, ge=0.0, le=1.0)
    require_approval: bool = True


class StageAssignments(BaseModel):
    """Disjoint cohorts whose concatenation is the original target list."""

    model_config = ConfigDict(frozen=True)

    canary: list[str] = []
    early_adopter: list[str] = []
    general_availability: list[str] = []

    def for_stage(self, stage: RolloutStage) -> list[str]:
        if stage == RolloutStage.CANARY:
            return list(self.canary)
        if stage == RolloutStage.EARLY_ADOPTER:
            return list(self.early_adopter)
        return list(self.general_availability)

    def all_targets(self) -> list[str]:
        return [*self.canary, *self.early_adopter, *self.general_availability]

    @property
    def total(self) -> int:
        return len(self.canary) + len(self.early_adopter) + len(self.general_availability)


class TargetRolloutResult(BaseModel):
    """Outcome of applying a patch to one target during one stage."""

    model_config = ConfigDict(frozen=True)

    target_id: str
    stage: RolloutStage
    success: bool
    error: str | None = None
    applied_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RolloutState(BaseModel):
    """Progress of the staged rollout of one patch."""

    model_config = ConfigDict(frozen=True)

    patch_id: str
    plan: RolloutPlan
    current_stage: RolloutStage = RolloutStage.CANARY
    stage_assignments: StageAssignments
    results: list[TargetRolloutResult] = []
    executed_stages: list[RolloutStage] = []
    paused: bool = False
    started_at: datetime
    stage_started_at: datetime
    completed: bool = False
    rolled_back: bool = False

    def results_for_stage(self, stage: RolloutStage) -> list[TargetRolloutResult]:
        return [r for r in self.results if r.stage == stage]

    @property
    def succeeded_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if not r.success)
