"""Notification models — per-target delivery tracking for patch disclosures."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from patchforge.models.patches import Severity


class NotificationStatus(str, Enum):
    """Delivery state of a notification."""

    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"
    ACKNOWLEDGED = "acknowledged"


class NotificationMessage(BaseModel):
    """What a notification sender is asked to deliver to one target."""

    model_config = ConfigDict(frozen=True)

    patch_id: str
    target_id: str
    severity: Severity
    subject: str
    body: str = ""


class DeliveryOutcome(BaseModel):
    """Result reported by a sender for a single delivery attempt.

    ``status`` is one of delivered, pending (queued for batch delivery)
    or failed.
    """

    model_config = ConfigDict(frozen=True)

    status: NotificationStatus
    error: str | None = None

    @classmethod
    def delivered(cls) -> DeliveryOutcome:
        return cls(status=NotificationStatus.DELIVERED)

    @classmethod
    def queued(cls) -> DeliveryOutcome:
        return cls(status=NotificationStatus.PENDING)

    @classmethod
    def failed(cls, error: str) -> DeliveryOutcome:
        return cls(status=NotificationStatus.FAILED, error=error)


class NotificationRecord(BaseModel):
    """Delivery record for one (patch, target) notification."""

    model_config = ConfigDict(frozen=True)

    notification_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    patch_id: str
    target_id: str
    status: NotificationStatus = NotificationStatus.PENDING
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    attempt_count: int = Field(default=1, ge=0)
    last_error: str | None = None


class NotificationSummary(BaseModel):
    """Per-status counts for one patch; the four counts sum to ``total``."""

    model_config = ConfigDict(frozen=True)

    total: int = 0
    pending: int = 0
    delivered: int = 0
    failed: int = 0
    acknowledged: int = 0
