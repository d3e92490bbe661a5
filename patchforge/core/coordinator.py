"""Patch coordinator — the central wiring of the patch lifecycle.

The PatchCoordinator ties together the PatchManager, RolloutEngine,
VersionManager, DistributionManager and AuditTrail:

    create -> validate -> (version bump) -> start rollout + notify
           -> execute / advance stages -> applied | rolled back

Every mutating call for a patch runs under that patch's lock, and every
step is recorded in the audit trail.  The patch status and the rollout
state are updated together so they cannot drift apart.
"""

from __future__ import annotations

import logging
from pathlib import Path

from patchforge.config import PatchforgeConfig
from patchforge.core.audit_trail import AuditTrail
from patchforge.core.clock import Clock, SystemClock
from patchforge.core.distribution import DistributionManager, NotificationSender
from patchforge.core.errors import InvalidTransitionError, ValidationFailedError
from patchforge.core.locks import PatchLocks
from patchforge.core.patch_manager import PatchManager
from patchforge.core.rollout_engine import RolloutEngine, TargetApplier
from patchforge.core.store import SqliteRepository
from patchforge.core.version_manager import VersionManager
from patchforge.models.audit import AuditAction, AuditEntry
from patchforge.models.notifications import NotificationRecord
from patchforge.models.patches import PatchStatus, SecurityPatch, Severity
from patchforge.models.rollout import (
    RolloutPlan,
    RolloutStage,
    RolloutState,
    TargetRolloutResult,
)
from patchforge.models.versioning import VersionRecord

logger = logging.getLogger(__name__)


class PatchCoordinator:
    """Drives patches through their lifecycle with full audit.

    Parameters
    ----------
    config:
        Runtime configuration. Uses defaults if not provided.
    store_path:
        SQLite file for durable state. Everything stays in memory if None.
    applier:
        Target applier handed to the RolloutEngine.
    sender:
        Notification sender handed to the DistributionManager.
    clock:
        Single time source shared by all five managers.
    """

    def __init__(
        self,
        config: PatchforgeConfig | None = None,
        *,
        store_path: Path | None = None,
        applier: TargetApplier | None = None,
        sender: NotificationSender | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config or PatchforgeConfig()
        self.clock = clock or SystemClock()
        self.store_path = Path(store_path) if store_path is not None else None

        if self.store_path is not None:
            patch_repo = SqliteRepository(self.store_path, "patches", SecurityPatch)
            rollout_repo = SqliteRepository(self.store_path, "rollouts", RolloutState)
            version_repo = SqliteRepository(self.store_path, "versions", VersionRecord)
            notification_repo = SqliteRepository(
                self.store_path, "notifications", NotificationRecord
            )
            audit_repo = SqliteRepository(self.store_path, "audit", AuditEntry)
        else:
            patch_repo = rollout_repo = version_repo = None
            notification_repo = audit_repo = None

        self.patches = PatchManager(patch_repo, clock=self.clock)
        self.rollouts = RolloutEngine(
            rollout_repo,
            applier=applier,
            clock=self.clock,
            enforce_soak_time=self.config.enforce_soak_time,
            max_workers=self.config.max_apply_workers,
        )
        self.versions = VersionManager(version_repo, clock=self.clock)
        self.distribution = DistributionManager(
            notification_repo, sender=sender, clock=self.clock
        )
        self.audit = AuditTrail(audit_repo, clock=self.clock)
        self.locks = PatchLocks()

    @classmethod
    def in_memory(cls, config: PatchforgeConfig | None = None, **kwargs) -> PatchCoordinator:
        """Build a coordinator that keeps all state in process memory."""
        return cls(config, store_path=None, **kwargs)

    @classmethod
    def from_config(cls, config: PatchforgeConfig, **kwargs) -> PatchCoordinator:
        """Build a coordinator persisting to ``config.state_path``."""
        return cls(config, store_path=config.state_path, **kwargs)

    # ------------------------------------------------------------------
    # Patch lifecycle
    # ------------------------------------------------------------------

    def create_patch(
        self,
        title: str,
        description: str,
        severity: Severity,
        payload: bytes,
        affected_targets: list[str],
        advisory_id: str | None = None,
        created_by: str | None = None,
    ) -> SecurityPatch:
        """Register a draft patch and record its creation."""
        actor = self._actor(created_by)
        patch = self.patches.create_patch(
            title, description, severity, payload, affected_targets, advisory_id, actor
        )
        self.audit.record(
            patch.id,
            None,
            AuditAction.PATCH_CREATED,
            actor,
            f"severity={severity.value} targets={len(patch.affected_targets)} "
            f"sha256={patch.payload_hash}",
        )
        return patch

    def validate_patch(self, patch_id: str, performed_by: str | None = None) -> bool:
        """Validate a draft; on success allocate its release version."""
        actor = self._actor(performed_by)
        with self.locks.hold(patch_id):
            passed = self.patches.validate_patch(patch_id)
            patch = self.patches.get_patch(patch_id)
            if not passed:
                self.audit.record(
                    patch_id,
                    None,
                    AuditAction.PATCH_REJECTED,
                    actor,
                    "failed checks: " + ", ".join(patch.failed_checks),
                )
                return False

            self.audit.record(
                patch_id, None, AuditAction.PATCH_VALIDATED, actor,
                f"{len(patch.validation_results)} checks passed",
            )
            record = self.versions.bump_for_severity(
                patch_id, patch.severity, release_notes=patch.title
            )
            self.patches.set_version(patch_id, record.version)
            self.audit.record(
                patch_id,
                None,
                AuditAction.VERSION_BUMPED,
                actor,
                f"version={record.version} major={record.is_major}",
            )
            return True

    # ------------------------------------------------------------------
    # Rollout lifecycle
    # ------------------------------------------------------------------

    def start_rollout(
        self,
        patch_id: str,
        performed_by: str | None = None,
        *,
        plan: RolloutPlan | None = None,
        notify: bool = True,
    ) -> RolloutState:
        """Open a staged rollout for a validated patch and notify its targets."""
        actor = self._actor(performed_by)
        with self.locks.hold(patch_id):
            patch = self.patches.get_patch(patch_id)
            if patch.status == PatchStatus.REJECTED:
                raise ValidationFailedError(
                    f"patch {patch_id} was rejected: " + ", ".join(patch.failed_checks)
                )
            self._assert_can_transition(patch, PatchStatus.ROLLING_OUT)
            self.patches.assert_integrity(patch_id)

            state = self.rollouts.start_rollout(
                patch_id, patch.affected_targets, plan or self.config.default_rollout_plan()
            )
            self.patches.transition(patch_id, PatchStatus.ROLLING_OUT)

            a = state.stage_assignments
            self.audit.record(
                patch_id,
                None,
                AuditAction.ROLLOUT_STARTED,
                actor,
                f"canary={len(a.canary)} early_adopter={len(a.early_adopter)} "
                f"general_availability={len(a.general_availability)}",
            )

            if notify:
                self._notify(patch, actor)
            return state

    def execute_stage(
        self, patch_id: str, performed_by: str | None = None
    ) -> list[TargetRolloutResult]:
        """Apply the patch to the current cohort; audit every success."""
        actor = self._actor(performed_by)
        with self.locks.hold(patch_id):
            self.patches.assert_integrity(patch_id)
            patch = self.patches.get_patch(patch_id)
            results = self.rollouts.execute_current_stage(patch_id, patch.payload)
            for result in results:
                if result.success:
                    self.audit.record(
                        patch_id,
                        result.target_id,
                        AuditAction.PATCH_APPLIED,
                        actor,
                        f"stage={result.stage.value}",
                    )
            return results

    def advance_stage(self, patch_id: str, performed_by: str | None = None) -> RolloutStage:
        """Advance past the current stage; mark the patch applied on completion."""
        actor = self._actor(performed_by)
        with self.locks.hold(patch_id):
            before = self.rollouts.get_rollout(patch_id)
            stage = self.rollouts.advance_stage(patch_id)
            after = self.rollouts.get_rollout(patch_id)

            rate = self.rollouts.failure_rate(patch_id, before.current_stage)
            self.audit.record(
                patch_id,
                None,
                AuditAction.ROLLOUT_STAGE_COMPLETED,
                actor,
                f"stage={before.current_stage.value} failure_rate={rate:.4f}",
            )
            if after.completed:
                self.patches.transition(patch_id, PatchStatus.APPLIED)
                logger.info("Patch %s applied to all targets.", patch_id)
            return stage

    def approve_stage(self, patch_id: str, performed_by: str | None = None) -> RolloutState:
        """Lift the approval pause on a rollout."""
        actor = self._actor(performed_by)
        with self.locks.hold(patch_id):
            state = self.rollouts.approve_stage(patch_id)
            logger.info(
                "%s approved %s stage of %s.", actor, state.current_stage.value, patch_id
            )
            return state

    def rollback(
        self,
        patch_id: str,
        performed_by: str | None = None,
        reason: str | None = None,
    ) -> RolloutState:
        """Close the rollout and mark the patch rolled back."""
        actor = self._actor(performed_by)
        with self.locks.hold(patch_id):
            patch = self.patches.get_patch(patch_id)
            self._assert_can_transition(patch, PatchStatus.ROLLED_BACK)
            state = self.rollouts.rollback(patch_id)
            self.patches.transition(patch_id, PatchStatus.ROLLED_BACK)
            self.audit.record(
                patch_id,
                None,
                AuditAction.PATCH_ROLLED_BACK,
                actor,
                reason or f"rolled back at {state.current_stage.value}",
            )
            return state

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def acknowledge_notification(
        self, notification_id: str, performed_by: str | None = None
    ) -> NotificationRecord:
        actor = self._actor(performed_by)
        record = self.distribution.get_notification(notification_id)
        with self.locks.hold(record.patch_id):
            updated = self.distribution.acknowledge(notification_id)
            self.audit.record(
                updated.patch_id,
                updated.target_id,
                AuditAction.NOTIFICATION_ACKNOWLEDGED,
                actor,
                f"notification={notification_id}",
            )
            return updated

    def retry_notifications(self, patch_id: str, performed_by: str | None = None) -> list[str]:
        """Requeue failed notifications and redeliver everything pending.

        Returns the ids delivered by this call.
        """
        actor = self._actor(performed_by)
        with self.locks.hold(patch_id):
            patch = self.patches.get_patch(patch_id)
            self.distribution.retry_failed(patch_id)
            delivered = self.distribution.deliver_pending(patch_id, patch.severity)
            for notification_id in delivered:
                record = self.distribution.get_notification(notification_id)
                self.audit.record(
                    patch_id,
                    record.target_id,
                    AuditAction.NOTIFICATION_SENT,
                    actor,
                    f"notification={notification_id} attempt={record.attempt_count}",
                )
            return delivered

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _actor(self, performed_by: str | None) -> str:
        return performed_by or self.config.default_actor

    def _assert_can_transition(self, patch: SecurityPatch, to_status: PatchStatus) -> None:
        if to_status not in self.patches.available_transitions(patch.id):
            raise InvalidTransitionError(patch.status, to_status)

    def _notify(self, patch: SecurityPatch, actor: str) -> None:
        ids = self.distribution.notify_vulnerable_contracts(
            patch.id,
            patch.affected_targets,
            patch.severity,
            subject=f"[{patch.severity.value.upper()}] {patch.title} ({patch.version})",
        )
        for notification_id in ids:
            record = self.distribution.get_notification(notification_id)
            self.audit.record(
                patch.id,
                record.target_id,
                AuditAction.NOTIFICATION_SENT,
                actor,
                f"notification={notification_id} status={record.status.value}",
            )
