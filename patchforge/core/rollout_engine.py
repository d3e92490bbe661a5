"""Staged rollout engine — canary, early adopter, general availability.

Targets are partitioned by position (not sampled) into three disjoint
cohorts.  Each stage is executed against its cohort through an injected
``TargetApplier`` and can only be advanced when the stage's own failure
rate stays within ``plan.max_failure_rate``.

The engine has no dependency on PatchManager; it shares only the patch id.
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from typing import Protocol, runtime_checkable

from patchforge.core.clock import Clock, SystemClock
from patchforge.core.errors import (
    NoVulnerableTargetsError,
    PatchNotFoundError,
    RolloutFailedError,
)
from patchforge.core.store import InMemoryRepository, Repository
from patchforge.models.rollout import (
    RolloutPlan,
    RolloutStage,
    RolloutState,
    StageAssignments,
    TargetRolloutResult,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class TargetApplier(Protocol):
    """Applies a patch payload to one target.

    Implementations raise (``ApplyError`` or anything else) on failure.
    Timeouts are the applier's business and must surface as exceptions;
    the engine turns every exception into a failed per-target result.
    """

    def apply(self, target_id: str, payload: bytes) -> None:
        ...


class NoopApplier:
    """Applier that accepts every target. Stands in for a real deployer."""

    def apply(self, target_id: str, payload: bytes) -> None:
        logger.debug("NoopApplier: %s accepted %d bytes", target_id, len(payload))


class RolloutEngine:
    """Orchestrates staged application of a patch across target cohorts.

    Parameters
    ----------
    repository:
        Where rollout states are stored, keyed by patch id.
    applier:
        The target applier. Defaults to ``NoopApplier``.
    clock:
        Time source for stage timestamps and result stamps.
    enforce_soak_time:
        If True, ``advance_stage`` refuses until ``plan.soak_time_secs``
        have elapsed since the current stage started.
    max_workers:
        Upper bound on concurrent ``apply`` calls within one stage.
    """

    def __init__(
        self,
        repository: Repository[RolloutState] | None = None,
        *,
        applier: TargetApplier | None = None,
        clock: Clock | None = None,
        enforce_soak_time: bool = False,
        max_workers: int = 8,
    ) -> None:
        self._rollouts: Repository[RolloutState] = (
            repository if repository is not None else InMemoryRepository()
        )
        self._applier = applier or NoopApplier()
        self._clock = clock or SystemClock()
        self._enforce_soak_time = enforce_soak_time
        self._max_workers = max(1, max_workers)

    # ------------------------------------------------------------------
    # Partitioning
    # ------------------------------------------------------------------

    @staticmethod
    def partition_targets(targets: list[str], plan: RolloutPlan) -> StageAssignments:
        """Split ``targets`` positionally into canary / early adopter / GA.

        ``canary = min(ceil(n * c%), n)``, ``early = min(ceil(n * e%), n - canary)``,
        the remainder is general availability.
        """
        total = len(targets)
        canary_count = min(math.ceil(total * plan.canary_percentage / 100), total)
        early_count = min(
            math.ceil(total * plan.early_adopter_percentage / 100),
            total - canary_count,
        )
        ga_start = canary_count + early_count
        return StageAssignments(
            canary=list(targets[:canary_count]),
            early_adopter=list(targets[canary_count:ga_start]),
            general_availability=list(targets[ga_start:]),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_rollout(
        self, patch_id: str, affected_targets: list[str], plan: RolloutPlan
    ) -> RolloutState:
        """Partition the targets and open the rollout at the canary stage."""
        if not affected_targets:
            raise NoVulnerableTargetsError(patch_id)
        if patch_id in self._rollouts:
            raise RolloutFailedError(
                RolloutStage.CANARY, f"A rollout for patch {patch_id} already exists"
            )

        if plan.canary_percentage + plan.early_adopter_percentage > 100:
            logger.warning(
                "Rollout plan for %s requests %d%% canary + %d%% early adopter; "
                "cohorts will be clamped to the target count.",
                patch_id, plan.canary_percentage, plan.early_adopter_percentage,
            )

        now = self._clock.now()
        state = RolloutState(
            patch_id=patch_id,
            plan=plan,
            current_stage=RolloutStage.CANARY,
            stage_assignments=self.partition_targets(affected_targets, plan),
            paused=False,
            started_at=now,
            stage_started_at=now,
            completed=False,
        )
        self._rollouts.put(patch_id, state)

        a = state.stage_assignments
        logger.info(
            "Rollout started for %s: canary=%d early_adopter=%d ga=%d",
            patch_id, len(a.canary), len(a.early_adopter), len(a.general_availability),
        )
        return state

    def execute_current_stage(
        self, patch_id: str, payload: bytes = b""
    ) -> list[TargetRolloutResult]:
        """Apply the patch to every target in the current cohort.

        Applier calls are fanned out over a thread pool; results are
        appended in cohort order and tagged with the stage.
        """
        state = self.get_rollout(patch_id)
        if state.paused:
            raise RolloutFailedError(
                state.current_stage, "Rollout is paused - manual approval required"
            )
        if state.completed:
            raise RolloutFailedError(state.current_stage, "Rollout is already completed")

        stage = state.current_stage
        cohort = state.stage_assignments.for_stage(stage)

        def _apply(target_id: str) -> TargetRolloutResult:
            try:
                self._applier.apply(target_id, payload)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "Apply failed for %s on %s (%s): %s",
                    patch_id, target_id, stage.value, exc,
                )
                return TargetRolloutResult(
                    target_id=target_id,
                    stage=stage,
                    success=False,
                    error=str(exc) or type(exc).__name__,
                    applied_at=self._clock.now(),
                )
            return TargetRolloutResult(
                target_id=target_id,
                stage=stage,
                success=True,
                applied_at=self._clock.now(),
            )

        if len(cohort) > 1 and self._max_workers > 1:
            with ThreadPoolExecutor(
                max_workers=min(self._max_workers, len(cohort))
            ) as pool:
                stage_results = list(pool.map(_apply, cohort))
        else:
            stage_results = [_apply(t) for t in cohort]

        executed = list(state.executed_stages)
        if stage not in executed:
            executed.append(stage)
        updated = state.model_copy(
            update={
                "results": [*state.results, *stage_results],
                "executed_stages": executed,
            }
        )
        self._rollouts.put(patch_id, updated)

        failures = sum(1 for r in stage_results if not r.success)
        logger.info(
            "Executed %s stage for %s: %d targets, %d failed",
            stage.value, patch_id, len(stage_results), failures,
        )
        return stage_results

    def advance_stage(self, patch_id: str) -> RolloutStage:
        """Gate on the current stage's failure rate, then move forward.

        Returns the stage the rollout is now at.  Advancing past general
        availability marks the rollout completed.  A refused advance
        leaves the state exactly as it was.
        """
        state = self.get_rollout(patch_id)
        stage = state.current_stage
        if state.completed:
            raise RolloutFailedError(stage, "Rollout is already completed")
        if stage not in state.executed_stages:
            raise RolloutFailedError(stage, "Current stage has not been executed yet")

        failure_rate = self._stage_failure_rate(state, stage)
        if failure_rate > state.plan.max_failure_rate:
            logger.warning(
                "Failure-rate gate closed for %s at %s: %.2f%% > %.2f%%",
                patch_id, stage.value, failure_rate * 100,
                state.plan.max_failure_rate * 100,
            )
            raise RolloutFailedError(
                stage,
                f"Failure rate {failure_rate * 100:.2f}% exceeds max "
                f"{state.plan.max_failure_rate * 100:.2f}%",
            )

        now = self._clock.now()
        if self._enforce_soak_time:
            soaked = (now - state.stage_started_at).total_seconds()
            if soaked < state.plan.soak_time_secs:
                raise RolloutFailedError(
                    stage,
                    f"Soak time not elapsed: {soaked:.0f}s of "
                    f"{state.plan.soak_time_secs}s",
                )

        next_stage = stage.next()
        if next_stage is None:
            updated = state.model_copy(update={"completed": True, "paused": False})
            self._rollouts.put(patch_id, updated)
            logger.info("Rollout for %s completed.", patch_id)
            return stage

        updated = state.model_copy(
            update={
                "current_stage": next_stage,
                "stage_started_at": now,
                "paused": state.plan.require_approval,
            }
        )
        self._rollouts.put(patch_id, updated)
        logger.info(
            "Rollout for %s advanced %s -> %s%s",
            patch_id, stage.value, next_stage.value,
            " (awaiting approval)" if updated.paused else "",
        )
        return next_stage

    def approve_stage(self, patch_id: str) -> RolloutState:
        """Clear the approval pause so the current stage may execute."""
        state = self.get_rollout(patch_id)
        updated = state.model_copy(update={"paused": False})
        self._rollouts.put(patch_id, updated)
        logger.info("Rollout for %s approved at %s.", patch_id, state.current_stage.value)
        return updated

    def rollback(self, patch_id: str) -> RolloutState:
        """Close the rollout. Remote effects are not undone here."""
        state = self.get_rollout(patch_id)
        updated = state.model_copy(
            update={"completed": True, "paused": False, "rolled_back": True}
        )
        self._rollouts.put(patch_id, updated)
        logger.warning(
            "Rollout for %s rolled back at %s.", patch_id, state.current_stage.value
        )
        return updated

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    def get_rollout(self, patch_id: str) -> RolloutState:
        state = self._rollouts.get(patch_id)
        if state is None:
            raise PatchNotFoundError(patch_id)
        return state

    def list_rollouts(self, *, active_only: bool = False) -> list[RolloutState]:
        rollouts = self._rollouts.values()
        if active_only:
            return [r for r in rollouts if not r.completed]
        return rollouts

    def stage_results(
        self, patch_id: str, stage: RolloutStage
    ) -> list[TargetRolloutResult]:
        return self.get_rollout(patch_id).results_for_stage(stage)

    def failure_rate(self, patch_id: str, stage: RolloutStage | None = None) -> float:
        """Failure ratio for ``stage`` (default: the current stage)."""
        state = self.get_rollout(patch_id)
        return self._stage_failure_rate(state, stage or state.current_stage)

    def rollout_progress(self, patch_id: str) -> float:
        """Successful applications across all stages as a percentage of all targets."""
        state = self.get_rollout(patch_id)
        total = state.stage_assignments.total
        if total == 0:
            return 100.0
        return state.succeeded_count / total * 100.0

    def count(self) -> int:
        return len(self._rollouts)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _stage_failure_rate(state: RolloutState, stage: RolloutStage) -> float:
        results = state.results_for_stage(stage)
        if not results:
            return 0.0
        failures = sum(1 for r in results if not r.success)
        return failures / len(results)
