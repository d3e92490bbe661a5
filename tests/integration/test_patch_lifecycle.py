"""End-to-end integration tests — create -> validate -> staged rollout -> applied.

These tests exercise the PatchCoordinator, PatchManager, RolloutEngine,
VersionManager, DistributionManager and AuditTrail working together, both
in memory and over a shared SQLite state file.
"""

from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from patchforge.core.clock import ManualClock
from patchforge.core.coordinator import PatchCoordinator
from patchforge.core.errors import RolloutFailedError
from patchforge.models.audit import AuditAction
from patchforge.models.notifications import NotificationStatus
from patchforge.models.patches import PatchStatus, Severity
from patchforge.models.rollout import RolloutPlan, RolloutStage

TARGETS = [f"contract-{i:02d}" for i in range(10)]
PLAN = RolloutPlan(canary_percentage=10, early_adopter_percentage=30, max_failure_rate=0.2)


def _drive_to_completion(coordinator: PatchCoordinator, patch_id: str) -> None:
    while not coordinator.rollouts.get_rollout(patch_id).completed:
        if coordinator.rollouts.get_rollout(patch_id).paused:
            coordinator.approve_stage(patch_id, "lead")
        coordinator.execute_stage(patch_id, "deployer")
        coordinator.advance_stage(patch_id, "deployer")


class TestFullLifecycle:
    def test_critical_patch_rolls_out_everywhere(self, coordinator, clock):
        patch = coordinator.create_patch(
            "Fix reentrancy", "Adds a reentrancy guard.", Severity.CRITICAL,
            b"\x00asm-fix", TARGETS, "CVE-2026-1000", "alice",
        )
        assert coordinator.validate_patch(patch.id, "reviewer")
        clock.advance(60)
        coordinator.start_rollout(patch.id, "lead", plan=PLAN)
        _drive_to_completion(coordinator, patch.id)

        final = coordinator.patches.get_patch(patch.id)
        assert final.status == PatchStatus.APPLIED
        assert str(final.version) == "1.0.0"
        assert coordinator.rollouts.rollout_progress(patch.id) == 100.0
        assert all(coordinator.audit.is_patch_applied(patch.id, t) for t in TARGETS)

        summary = coordinator.distribution.notification_summary(patch.id)
        assert summary.total == summary.delivered == 10

        actions = [e.action for e in coordinator.audit.patch_timeline(patch.id)]
        assert actions[:3] == [
            AuditAction.PATCH_CREATED, AuditAction.PATCH_VALIDATED, AuditAction.VERSION_BUMPED,
        ]
        assert actions.count(AuditAction.ROLLOUT_STAGE_COMPLETED) == 3
        assert coordinator.audit.verify_chain()

        exported = json.loads(coordinator.audit.export_json())
        assert len(exported) == coordinator.audit.count()

    def test_failing_canary_is_rolled_back(self, coordinator, applier):
        applier.failing = {"contract-00"}
        patch = coordinator.create_patch(
            "Bad fix", "Breaks things.", Severity.HIGH, b"oops", TARGETS, None, "alice",
        )
        coordinator.validate_patch(patch.id)
        coordinator.start_rollout(patch.id, plan=PLAN)
        coordinator.execute_stage(patch.id)

        with pytest.raises(RolloutFailedError) as excinfo:
            coordinator.advance_stage(patch.id)
        assert excinfo.value.stage == RolloutStage.CANARY

        coordinator.rollback(patch.id, "oncall", str(excinfo.value))
        assert coordinator.patches.get_patch(patch.id).status == PatchStatus.ROLLED_BACK
        # Only the canary was attempted; nobody else was touched.
        assert applier.applied_targets == ["contract-00"]
        assert coordinator.audit.application_count(patch.id) == 0

    def test_medium_patch_notifications_queue_until_delivered(self, config, clock):
        # The default sender queues non-urgent notifications for batch delivery.
        coordinator = PatchCoordinator.in_memory(config, clock=clock)
        patch = coordinator.create_patch(
            "Tighten input checks", "Defense in depth.", Severity.MEDIUM,
            b"fix", TARGETS[:3], None, "alice",
        )
        coordinator.validate_patch(patch.id)
        coordinator.start_rollout(patch.id, plan=PLAN)
        assert str(coordinator.patches.get_patch(patch.id).version) == "0.2.0"
        assert coordinator.distribution.notification_summary(patch.id).pending == 3

        (first, *_) = coordinator.distribution.list_notifications(patch.id)
        coordinator.acknowledge_notification(first.notification_id, "owner")
        assert (
            coordinator.distribution.get_notification(first.notification_id).status
            == NotificationStatus.ACKNOWLEDGED
        )

    def test_parallel_patches_do_not_interfere(self, config):
        coordinator = PatchCoordinator.in_memory(config, clock=ManualClock())
        patch_ids = []
        for i in range(6):
            patch = coordinator.create_patch(
                f"Fix {i}", "desc", Severity.HIGH, f"p{i}".encode(), TARGETS, None, "ci",
            )
            coordinator.validate_patch(patch.id)
            coordinator.start_rollout(
                patch.id, plan=RolloutPlan(require_approval=False), notify=False
            )
            patch_ids.append(patch.id)

        with ThreadPoolExecutor(max_workers=6) as pool:
            list(pool.map(lambda pid: _drive_to_completion(coordinator, pid), patch_ids))

        for pid in patch_ids:
            assert coordinator.patches.get_patch(pid).status == PatchStatus.APPLIED
            assert coordinator.audit.application_count(pid) == len(TARGETS)
        assert coordinator.audit.verify_chain()


class TestSqlitePersistence:
    def test_state_survives_reopen_mid_rollout(self, tmp_path: Path, config, applier, clock):
        db = tmp_path / "state.db"
        first = PatchCoordinator(config, store_path=db, applier=applier, clock=clock)
        patch = first.create_patch(
            "Fix", "desc", Severity.CRITICAL, bytes(range(256)), TARGETS, "CVE-1", "alice",
        )
        first.validate_patch(patch.id)
        first.start_rollout(patch.id, plan=PLAN)
        first.execute_stage(patch.id)
        first.advance_stage(patch.id)

        second = PatchCoordinator(config, store_path=db, applier=applier, clock=clock)
        restored = second.patches.get_patch(patch.id)
        assert restored.payload == bytes(range(256))
        assert second.patches.verify_integrity(patch.id)
        assert restored.status == PatchStatus.ROLLING_OUT

        rollout = second.rollouts.get_rollout(patch.id)
        assert rollout.current_stage == RolloutStage.EARLY_ADOPTER
        assert rollout.paused

        _drive_to_completion(second, patch.id)
        assert second.patches.get_patch(patch.id).status == PatchStatus.APPLIED
        assert second.versions.latest_version(patch.id) == restored.version
        assert second.distribution.count() == len(TARGETS)
        assert second.audit.verify_chain()
        assert second.audit.application_count(patch.id) == len(TARGETS)

    def test_from_config_uses_state_path(self, tmp_path: Path, config):
        configured = config.model_copy(update={"state_path": tmp_path / "pf" / "state.db"})
        coordinator = PatchCoordinator.from_config(configured)
        coordinator.create_patch("t", "d", Severity.LOW, b"x", ["C1"], None, "a")
        assert (tmp_path / "pf" / "state.db").exists()
