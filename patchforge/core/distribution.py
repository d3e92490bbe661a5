"""Notification distribution — tells vulnerable targets about a patch.

Every affected target gets one ``NotificationRecord``.  Delivery itself is
delegated to a pluggable ``NotificationSender``; the manager only tracks
what the sender reported.  A sender failure for one target is recorded on
that target's record and never blocks the others.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from patchforge.core.clock import Clock, SystemClock
from patchforge.core.errors import DistributionError, NoVulnerableTargetsError
from patchforge.core.store import InMemoryRepository, Repository
from patchforge.models.notifications import (
    DeliveryOutcome,
    NotificationMessage,
    NotificationRecord,
    NotificationStatus,
    NotificationSummary,
)
from patchforge.models.patches import Severity

logger = logging.getLogger(__name__)


@runtime_checkable
class NotificationSender(Protocol):
    """Protocol that every notification transport must implement.

    ``send`` reports a ``DeliveryOutcome``.  Raising is tolerated: the
    manager records the exception as a failed delivery.
    """

    def send(self, target_id: str, message: NotificationMessage) -> DeliveryOutcome:
        ...


class UrgencyPolicySender:
    """Default sender: urgent disclosures go out now, the rest are batched.

    High and critical severities are reported as delivered immediately;
    lower severities are queued (pending) for batch delivery.
    """

    def __init__(self, immediate_from: Severity = Severity.HIGH) -> None:
        self._immediate_from = immediate_from

    def send(self, target_id: str, message: NotificationMessage) -> DeliveryOutcome:
        if message.severity >= self._immediate_from:
            return DeliveryOutcome.delivered()
        return DeliveryOutcome.queued()


class DistributionManager:
    """Tracks notification delivery state per target.

    Parameters
    ----------
    repository:
        Where notification records are stored, keyed by notification id.
    sender:
        The transport. Defaults to ``UrgencyPolicySender``.
    clock:
        Time source for record timestamps.
    """

    def __init__(
        self,
        repository: Repository[NotificationRecord] | None = None,
        *,
        sender: NotificationSender | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._records: Repository[NotificationRecord] = (
            repository if repository is not None else InMemoryRepository()
        )
        self._sender = sender or UrgencyPolicySender()
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def notify_vulnerable_contracts(
        self,
        patch_id: str,
        affected_targets: list[str],
        severity: Severity,
        subject: str | None = None,
    ) -> list[str]:
        """Create and attempt one notification per affected target.

        Returns the new notification ids in target order.
        """
        if not affected_targets:
            raise NoVulnerableTargetsError(patch_id)

        subject = subject or f"[{severity.value.upper()}] Security patch {patch_id}"
        notification_ids: list[str] = []
        for target_id in affected_targets:
            message = NotificationMessage(
                patch_id=patch_id,
                target_id=target_id,
                severity=severity,
                subject=subject,
            )
            outcome = self._attempt(target_id, message)
            now = self._clock.now()
            record = NotificationRecord(
                patch_id=patch_id,
                target_id=target_id,
                status=outcome.status,
                created_at=now,
                updated_at=now,
                attempt_count=1,
                last_error=outcome.error,
            )
            self._records.put(record.notification_id, record)
            notification_ids.append(record.notification_id)

        logger.info(
            "Notified %d targets for patch %s (%s).",
            len(notification_ids), patch_id, severity.value,
        )
        return notification_ids

    def deliver_pending(self, patch_id: str, severity: Severity) -> list[str]:
        """Hand every pending record of a patch back to the sender.

        Returns the ids that are now delivered.
        """
        delivered: list[str] = []
        for record in self.list_notifications(patch_id):
            if record.status != NotificationStatus.PENDING:
                continue
            message = NotificationMessage(
                patch_id=patch_id,
                target_id=record.target_id,
                severity=severity,
                subject=f"[{severity.value.upper()}] Security patch {patch_id}",
            )
            outcome = self._attempt(record.target_id, message)
            updated = record.model_copy(
                update={
                    "status": outcome.status,
                    "last_error": outcome.error,
                    "updated_at": self._clock.now(),
                }
            )
            self._records.put(updated.notification_id, updated)
            if outcome.status == NotificationStatus.DELIVERED:
                delivered.append(updated.notification_id)
        return delivered

    def acknowledge(self, notification_id: str) -> NotificationRecord:
        """Mark a notification acknowledged by the target owner."""
        record = self._records.get(notification_id)
        if record is None:
            raise DistributionError(f"Notification '{notification_id}' not found")
        updated = record.model_copy(
            update={
                "status": NotificationStatus.ACKNOWLEDGED,
                "updated_at": self._clock.now(),
            }
        )
        self._records.put(notification_id, updated)
        logger.info(
            "Notification %s acknowledged (was %s).",
            notification_id, record.status.value,
        )
        return updated

    def retry_failed(self, patch_id: str) -> list[str]:
        """Reset failed notifications of a patch to pending.

        Bumps ``attempt_count``; does not deliver anything itself.
        """
        retried: list[str] = []
        for record in self.list_notifications(patch_id):
            if record.status != NotificationStatus.FAILED:
                continue
            updated = record.model_copy(
                update={
                    "status": NotificationStatus.PENDING,
                    "attempt_count": record.attempt_count + 1,
                    "updated_at": self._clock.now(),
                }
            )
            self._records.put(updated.notification_id, updated)
            retried.append(updated.notification_id)
        if retried:
            logger.info("Queued %d failed notifications of %s for retry.", len(retried), patch_id)
        return retried

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    def get_notification(self, notification_id: str) -> NotificationRecord:
        record = self._records.get(notification_id)
        if record is None:
            raise DistributionError(f"Notification '{notification_id}' not found")
        return record

    def list_notifications(self, patch_id: str) -> list[NotificationRecord]:
        return [r for r in self._records.values() if r.patch_id == patch_id]

    def list_by_status(self, status: NotificationStatus) -> list[NotificationRecord]:
        return [r for r in self._records.values() if r.status == status]

    def notification_summary(self, patch_id: str) -> NotificationSummary:
        records = self.list_notifications(patch_id)

        def _count(status: NotificationStatus) -> int:
            return sum(1 for r in records if r.status == status)

        return NotificationSummary(
            total=len(records),
            pending=_count(NotificationStatus.PENDING),
            delivered=_count(NotificationStatus.DELIVERED),
            failed=_count(NotificationStatus.FAILED),
            acknowledged=_count(NotificationStatus.ACKNOWLEDGED),
        )

    def count(self) -> int:
        return len(self._records)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _attempt(self, target_id: str, message: NotificationMessage) -> DeliveryOutcome:
        try:
            outcome = self._sender.send(target_id, message)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Sender failed for %s on patch %s: %s",
                target_id, message.patch_id, exc,
            )
            return DeliveryOutcome.failed(str(exc) or type(exc).__name__)
        if outcome.status == NotificationStatus.ACKNOWLEDGED:
            # Only the target owner acknowledges; a sender cannot.
            return DeliveryOutcome.delivered()
        if outcome.status == NotificationStatus.FAILED:
            logger.warning(
                "Delivery to %s for patch %s failed: %s",
                target_id, message.patch_id, outcome.error,
            )
        return outcome
