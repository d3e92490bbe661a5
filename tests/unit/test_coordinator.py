"""Unit tests for PatchCoordinator — lifecycle wiring, status sync, audit."""

from __future__ import annotations

import pytest

from patchforge.core.coordinator import PatchCoordinator
from patchforge.core.errors import (
    IntegrityCheckFailedError,
    InvalidTransitionError,
    NoVulnerableTargetsError,
    RolloutFailedError,
    ValidationFailedError,
)
from patchforge.models.audit import AuditAction
from patchforge.models.notifications import DeliveryOutcome, NotificationStatus
from patchforge.models.patches import PatchStatus, Severity
from patchforge.models.rollout import RolloutPlan, RolloutStage

NO_APPROVAL = RolloutPlan(require_approval=False)


def _create(coordinator: PatchCoordinator, **overrides):
    fields = {
        "title": "Fix overflow",
        "description": "Checked arithmetic.",
        "severity": Severity.CRITICAL,
        "payload": b"wasm",
        "affected_targets": [f"C{i}" for i in range(10)],
        "advisory_id": "CVE-2026-0002",
    }
    fields.update(overrides)
    return coordinator.create_patch(**fields)


def _actions(coordinator: PatchCoordinator, patch_id: str) -> list[AuditAction]:
    return [e.action for e in coordinator.audit.entries_for_patch(patch_id)]


class TestCreateAndValidate:
    def test_create_records_audit_with_default_actor(self, coordinator):
        patch = _create(coordinator)
        (entry,) = coordinator.audit.entries_for_patch(patch.id)
        assert entry.action == AuditAction.PATCH_CREATED
        assert entry.performed_by == "tester"
        assert patch.created_by == "tester"

    def test_validate_assigns_version(self, coordinator):
        patch = _create(coordinator)
        assert coordinator.validate_patch(patch.id, "reviewer") is True
        validated = coordinator.patches.get_patch(patch.id)
        assert validated.status == PatchStatus.VALIDATED
        assert str(validated.version) == "1.0.0"
        assert _actions(coordinator, patch.id) == [
            AuditAction.PATCH_CREATED,
            AuditAction.PATCH_VALIDATED,
            AuditAction.VERSION_BUMPED,
        ]
        assert coordinator.versions.latest_version(patch.id) == validated.version

    def test_rejection_recorded(self, coordinator):
        patch = _create(coordinator, payload=b"")
        assert coordinator.validate_patch(patch.id) is False
        assert _actions(coordinator, patch.id)[-1] == AuditAction.PATCH_REJECTED
        assert "payload_non_empty" in coordinator.audit.entries_for_patch(patch.id)[-1].details
        assert coordinator.versions.release_history(patch.id) == []


class TestStartRollout:
    def test_start_moves_patch_and_notifies(self, coordinator, sender):
        patch = _create(coordinator)
        coordinator.validate_patch(patch.id)
        state = coordinator.start_rollout(patch.id, plan=NO_APPROVAL)

        assert state.current_stage == RolloutStage.CANARY
        assert coordinator.patches.get_patch(patch.id).status == PatchStatus.ROLLING_OUT
        assert len(sender.sent) == 10
        assert sender.sent[0].subject.startswith("[CRITICAL]")
        assert _actions(coordinator, patch.id).count(AuditAction.NOTIFICATION_SENT) == 10
        assert AuditAction.ROLLOUT_STARTED in _actions(coordinator, patch.id)

    def test_without_notify(self, coordinator, sender):
        patch = _create(coordinator)
        coordinator.validate_patch(patch.id)
        coordinator.start_rollout(patch.id, plan=NO_APPROVAL, notify=False)
        assert sender.sent == []
        assert coordinator.distribution.count() == 0

    def test_rejected_patch_cannot_roll_out(self, coordinator):
        patch = _create(coordinator, affected_targets=[])
        coordinator.validate_patch(patch.id)
        with pytest.raises(ValidationFailedError, match="affected_targets_listed"):
            coordinator.start_rollout(patch.id)
        assert coordinator.rollouts.count() == 0

    def test_draft_patch_cannot_roll_out(self, coordinator):
        patch = _create(coordinator)
        with pytest.raises(InvalidTransitionError):
            coordinator.start_rollout(patch.id)
        assert coordinator.rollouts.count() == 0
        assert coordinator.patches.get_patch(patch.id).status == PatchStatus.DRAFT

    def test_tampered_payload_blocks_rollout(self, coordinator):
        patch = _create(coordinator)
        coordinator.validate_patch(patch.id)
        stored = coordinator.patches.get_patch(patch.id)
        coordinator.patches._patches.put(patch.id, stored.model_copy(update={"payload": b"evil"}))
        with pytest.raises(IntegrityCheckFailedError):
            coordinator.start_rollout(patch.id)
        assert coordinator.patches.get_patch(patch.id).status == PatchStatus.VALIDATED

    def test_default_plan_comes_from_config(self, coordinator):
        patch = _create(coordinator)
        coordinator.validate_patch(patch.id)
        state = coordinator.start_rollout(patch.id)
        assert state.plan == coordinator.config.default_rollout_plan()


class TestStages:
    def _rolling(self, coordinator, plan=NO_APPROVAL, **overrides):
        patch = _create(coordinator, **overrides)
        coordinator.validate_patch(patch.id)
        coordinator.start_rollout(patch.id, plan=plan, notify=False)
        return patch

    def test_execute_audits_each_success(self, coordinator, applier):
        patch = self._rolling(coordinator)
        results = coordinator.execute_stage(patch.id)
        assert len(results) == 1
        assert applier.calls == [("C0", b"wasm")]
        assert coordinator.audit.is_patch_applied(patch.id, "C0")

    def test_failed_targets_not_audited_as_applied(self, coordinator, applier):
        applier.failing = {"C0"}
        patch = self._rolling(coordinator)
        coordinator.execute_stage(patch.id)
        assert not coordinator.audit.is_patch_applied(patch.id, "C0")
        with pytest.raises(RolloutFailedError):
            coordinator.advance_stage(patch.id)

    def test_completion_marks_patch_applied(self, coordinator):
        patch = self._rolling(coordinator)
        for _ in range(3):
            coordinator.execute_stage(patch.id)
            coordinator.advance_stage(patch.id)
        assert coordinator.patches.get_patch(patch.id).status == PatchStatus.APPLIED
        assert coordinator.audit.application_count(patch.id) == 10
        assert _actions(coordinator, patch.id).count(AuditAction.ROLLOUT_STAGE_COMPLETED) == 3

    def test_approval_flow(self, coordinator):
        patch = self._rolling(coordinator, plan=RolloutPlan())
        coordinator.execute_stage(patch.id)
        coordinator.advance_stage(patch.id)
        with pytest.raises(RolloutFailedError, match="approval"):
            coordinator.execute_stage(patch.id)
        coordinator.approve_stage(patch.id, "lead")
        assert len(coordinator.execute_stage(patch.id)) == 3

    def test_rollback(self, coordinator):
        patch = self._rolling(coordinator)
        coordinator.execute_stage(patch.id)
        state = coordinator.rollback(patch.id, "oncall", "bad canary")
        assert state.rolled_back
        assert coordinator.patches.get_patch(patch.id).status == PatchStatus.ROLLED_BACK
        last = coordinator.audit.entries_for_patch(patch.id)[-1]
        assert last.action == AuditAction.PATCH_ROLLED_BACK
        assert last.details == "bad canary"
        assert last.performed_by == "oncall"

    def test_rollback_of_applied_patch_refused(self, coordinator):
        patch = self._rolling(coordinator)
        for _ in range(3):
            coordinator.execute_stage(patch.id)
            coordinator.advance_stage(patch.id)
        with pytest.raises(InvalidTransitionError):
            coordinator.rollback(patch.id)
        assert not coordinator.rollouts.get_rollout(patch.id).rolled_back


class TestNotifications:
    def test_acknowledge(self, coordinator):
        patch = _create(coordinator, affected_targets=["C1"])
        coordinator.validate_patch(patch.id)
        coordinator.start_rollout(patch.id, plan=NO_APPROVAL)
        (record,) = coordinator.distribution.list_notifications(patch.id)

        acked = coordinator.acknowledge_notification(record.notification_id, "owner")
        assert acked.status == NotificationStatus.ACKNOWLEDGED
        last = coordinator.audit.entries_for_patch(patch.id)[-1]
        assert last.action == AuditAction.NOTIFICATION_ACKNOWLEDGED
        assert last.target_id == "C1"

    def test_retry_redelivers(self, coordinator, sender):
        sender.script["C1"] = DeliveryOutcome.failed("timeout")
        patch = _create(coordinator, affected_targets=["C1", "C2"])
        coordinator.validate_patch(patch.id)
        coordinator.start_rollout(patch.id, plan=NO_APPROVAL)
        del sender.script["C1"]

        delivered = coordinator.retry_notifications(patch.id)
        assert len(delivered) == 1
        record = coordinator.distribution.get_notification(delivered[0])
        assert record.target_id == "C1"
        assert record.attempt_count == 2
        assert coordinator.distribution.notification_summary(patch.id).delivered == 2


class TestMisc:
    def test_no_targets_at_rollout(self, coordinator):
        # A validated patch always lists targets; the engine still guards directly.
        with pytest.raises(NoVulnerableTargetsError):
            coordinator.rollouts.start_rollout("p", [], NO_APPROVAL)

    def test_audit_chain_valid_after_lifecycle(self, coordinator):
        patch = _create(coordinator)
        coordinator.validate_patch(patch.id)
        coordinator.start_rollout(patch.id, plan=NO_APPROVAL)
        coordinator.execute_stage(patch.id)
        assert coordinator.audit.verify_chain() is True
