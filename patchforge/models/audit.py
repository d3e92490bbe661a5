"""Audit trail entry model (append-only, hash-chained).

The audit trail is the provenance record for every patch:
- Append-only (entries are never updated or deleted)
- Hash-chained (each entry seals the previous entry's hash)
- Presented by timestamp, stored by insertion order
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class AuditAction(str, Enum):
    """Auditable actions within the patch lifecycle."""

    PATCH_CREATED = "patch_created"
    PATCH_VALIDATED = "patch_validated"
    PATCH_REJECTED = "patch_rejected"
    ROLLOUT_STARTED = "rollout_started"
    ROLLOUT_STAGE_COMPLETED = "rollout_stage_completed"
    PATCH_APPLIED = "patch_applied"
    PATCH_ROLLED_BACK = "patch_rolled_back"
    NOTIFICATION_SENT = "notification_sent"
    NOTIFICATION_ACKNOWLEDGED = "notification_acknowledged"
    VERSION_BUMPED = "version_bumped"


class AuditEntry(BaseModel):
    """A single sealed entry in the audit trail."""

    model_config = ConfigDict(frozen=True)

    entry_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    patch_id: str
    target_id: str | None = None
    action: AuditAction
    performed_by: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    details: str | None = None
    previous_entry_hash: str = ""  # seal of the preceding entry, "" for the first
    entry_hash: str = ""  # computed on append
