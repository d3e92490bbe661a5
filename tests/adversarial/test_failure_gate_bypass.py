"""Adversarial tests — attempts to push a failing rollout forward.

These tests verify that:
1. The failure-rate gate cannot be passed by executing a stage twice
2. An unexecuted stage cannot be advanced
3. Approval lifts the pause but never the gate
4. A rolled-back rollout stays closed
"""

from __future__ import annotations

import pytest

from patchforge.core.errors import RolloutFailedError
from patchforge.models.rollout import RolloutPlan, RolloutStage

TEN = [f"T{i}" for i in range(10)]


class TestFailureGate:
    def test_re_executing_does_not_dilute_failures(self, rollout_engine, applier):
        applier.failing = {"T0"}
        rollout_engine.start_rollout("p1", TEN, RolloutPlan(require_approval=False))
        rollout_engine.execute_current_stage("p1")
        applier.failing = set()
        rollout_engine.execute_current_stage("p1")
        # One failure out of two canary attempts is still above 1%.
        assert rollout_engine.failure_rate("p1") == 0.5
        with pytest.raises(RolloutFailedError, match="exceeds max"):
            rollout_engine.advance_stage("p1")

    def test_approval_does_not_open_gate(self, rollout_engine, applier):
        applier.failing = {"T0"}
        rollout_engine.start_rollout("p1", TEN, RolloutPlan())
        rollout_engine.execute_current_stage("p1")
        rollout_engine.approve_stage("p1")
        with pytest.raises(RolloutFailedError):
            rollout_engine.advance_stage("p1")
        assert rollout_engine.get_rollout("p1").current_stage == RolloutStage.CANARY

    def test_cannot_skip_execution_of_later_stage(self, rollout_engine):
        rollout_engine.start_rollout("p1", TEN, RolloutPlan(require_approval=False))
        rollout_engine.execute_current_stage("p1")
        rollout_engine.advance_stage("p1")
        with pytest.raises(RolloutFailedError, match="not been executed"):
            rollout_engine.advance_stage("p1")

    def test_zero_tolerance_plan(self, rollout_engine, applier):
        applier.failing = {"T9"}
        plan = RolloutPlan(
            canary_percentage=50, early_adopter_percentage=50,
            max_failure_rate=0.0, require_approval=False,
        )
        rollout_engine.start_rollout("p1", TEN, plan)
        rollout_engine.execute_current_stage("p1")
        rollout_engine.advance_stage("p1")
        rollout_engine.execute_current_stage("p1")
        with pytest.raises(RolloutFailedError, match=r"20\.00% exceeds max 0\.00%"):
            rollout_engine.advance_stage("p1")


class TestClosedRollouts:
    def test_rolled_back_rollout_cannot_resume(self, rollout_engine):
        rollout_engine.start_rollout("p1", TEN, RolloutPlan())
        rollout_engine.rollback("p1")
        rollout_engine.approve_stage("p1")
        with pytest.raises(RolloutFailedError, match="already completed"):
            rollout_engine.execute_current_stage("p1")
        with pytest.raises(RolloutFailedError, match="already completed"):
            rollout_engine.advance_stage("p1")

    def test_rollout_cannot_be_restarted(self, rollout_engine):
        rollout_engine.start_rollout("p1", TEN, RolloutPlan())
        rollout_engine.rollback("p1")
        with pytest.raises(RolloutFailedError):
            rollout_engine.start_rollout("p1", TEN, RolloutPlan())
