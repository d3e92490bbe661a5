"""Patch lifecycle state machine with payload integrity validation.

Enforces:
- Valid status transitions only (VALID_TRANSITIONS table)
- Legality checked before any mutation (all-or-nothing)
- SHA-256 payload hash computed at creation, re-verifiable at any time
- Single-shot validation: draft -> validating -> validated | rejected
"""

from __future__ import annotations

import logging
import uuid

from patchforge.core.clock import Clock, SystemClock
from patchforge.core.errors import (
    DuplicatePatchIdError,
    IntegrityCheckFailedError,
    InvalidTransitionError,
    PatchNotFoundError,
)
from patchforge.core.hasher import compute_payload_hash
from patchforge.core.store import InMemoryRepository, Repository
from patchforge.models.patches import (
    VALID_TRANSITIONS,
    PatchStatus,
    PatchVersion,
    SecurityPatch,
    Severity,
    ValidationResult,
)

logger = logging.getLogger(__name__)


class PatchManager:
    """Owns patch identity, payload integrity, and the status state machine.

    Parameters
    ----------
    repository:
        Where patches are stored. In-memory if not provided.
    clock:
        Time source for ``created_at`` / ``updated_at``.
    """

    def __init__(
        self,
        repository: Repository[SecurityPatch] | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._patches: Repository[SecurityPatch] = (
            repository if repository is not None else InMemoryRepository()
        )
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_patch(
        self,
        title: str,
        description: str,
        severity: Severity,
        payload: bytes,
        affected_targets: list[str],
        advisory_id: str | None,
        created_by: str,
    ) -> SecurityPatch:
        """Register a new patch in DRAFT status.

        The ``payload_hash`` is computed from ``payload``; nothing is
        validated here (see ``validate_patch``).
        """
        patch_id = str(uuid.uuid4())
        if patch_id in self._patches:
            raise DuplicatePatchIdError(patch_id)

        now = self._clock.now()
        patch = SecurityPatch(
            id=patch_id,
            title=title,
            description=description,
            severity=severity,
            status=PatchStatus.DRAFT,
            version=PatchVersion(),
            payload=bytes(payload),
            payload_hash=compute_payload_hash(payload),
            affected_targets=list(affected_targets),
            advisory_id=advisory_id,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        self._patches.put(patch.id, patch)
        logger.info(
            "Created %s patch %s (%d targets) by %s.",
            severity.value, patch.id, len(patch.affected_targets), created_by,
        )
        return patch

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def get_patch(self, patch_id: str) -> SecurityPatch:
        """Return a patch by id, raising ``PatchNotFoundError`` if unknown."""
        patch = self._patches.get(patch_id)
        if patch is None:
            raise PatchNotFoundError(patch_id)
        return patch

    def list_patches(self, status: PatchStatus | None = None) -> list[SecurityPatch]:
        """Return all patches, optionally filtered by status."""
        patches = self._patches.values()
        if status is None:
            return patches
        return [p for p in patches if p.status == status]

    def list_patches_by_severity(self, severity: Severity) -> list[SecurityPatch]:
        return [p for p in self._patches.values() if p.severity == severity]

    def count(self) -> int:
        return len(self._patches)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_patch(self, patch_id: str) -> bool:
        """Run the validation checks and settle the patch as VALIDATED or REJECTED.

        Checks (each recorded individually):
        1. payload is non-empty
        2. payload digest matches ``payload_hash``
        3. at least one affected target is listed
        4. title and description are not blank

        Returns True if every check passed.
        """
        patch = self.get_patch(patch_id)
        self._assert_transition(patch.status, PatchStatus.VALIDATING)
        patch = self._store_status(patch, PatchStatus.VALIDATING)

        payload_ok = len(patch.payload) > 0
        hash_ok = compute_payload_hash(patch.payload) == patch.payload_hash
        targets_ok = len(patch.affected_targets) > 0
        metadata_ok = bool(patch.title.strip()) and bool(patch.description.strip())

        results = [
            ValidationResult(
                check_name="payload_non_empty",
                passed=payload_ok,
                message=None if payload_ok else "Patch payload is empty",
            ),
            ValidationResult(
                check_name="integrity_hash",
                passed=hash_ok,
                message=None if hash_ok else "Payload hash mismatch",
            ),
            ValidationResult(
                check_name="affected_targets_listed",
                passed=targets_ok,
                message=None if targets_ok else "No affected targets specified",
            ),
            ValidationResult(
                check_name="metadata_present",
                passed=metadata_ok,
                message=None if metadata_ok else "Title or description is missing",
            ),
        ]
        all_passed = all(r.passed for r in results)
        outcome = PatchStatus.VALIDATED if all_passed else PatchStatus.REJECTED

        settled = patch.model_copy(
            update={
                "status": outcome,
                "validation_results": results,
                "updated_at": self._clock.now(),
            }
        )
        self._patches.put(settled.id, settled)

        if all_passed:
            logger.info("Patch %s validated.", patch_id)
        else:
            logger.warning(
                "Patch %s rejected; failed checks: %s",
                patch_id, ", ".join(settled.failed_checks),
            )
        return all_passed

    def verify_integrity(self, patch_id: str) -> bool:
        """Recompute the payload digest and compare it to the recorded hash."""
        patch = self.get_patch(patch_id)
        return compute_payload_hash(patch.payload) == patch.payload_hash

    def assert_integrity(self, patch_id: str) -> None:
        """Like ``verify_integrity`` but raises ``IntegrityCheckFailedError``."""
        patch = self.get_patch(patch_id)
        actual = compute_payload_hash(patch.payload)
        if actual != patch.payload_hash:
            raise IntegrityCheckFailedError(expected=patch.payload_hash, actual=actual)

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def transition(self, patch_id: str, new_status: PatchStatus) -> SecurityPatch:
        """Move a patch to ``new_status`` if the edge is legal.

        Raises ``InvalidTransitionError`` and leaves the patch untouched
        otherwise.
        """
        patch = self.get_patch(patch_id)
        self._assert_transition(patch.status, new_status)
        updated = self._store_status(patch, new_status)
        logger.info(
            "Patch %s: %s -> %s", patch_id, patch.status.value, new_status.value
        )
        return updated

    def available_transitions(self, patch_id: str) -> set[PatchStatus]:
        """Return the set of statuses reachable in one step."""
        return set(VALID_TRANSITIONS.get(self.get_patch(patch_id).status, set()))

    def set_version(self, patch_id: str, version: PatchVersion) -> SecurityPatch:
        """Record the allocated release version on the patch.

        Terminal patches are immutable; attempting this on one raises
        ``InvalidTransitionError``.
        """
        patch = self.get_patch(patch_id)
        if patch.is_terminal:
            raise InvalidTransitionError(
                patch.status, patch.status, "patch is in a terminal status"
            )
        updated = patch.model_copy(
            update={"version": version, "updated_at": self._clock.now()}
        )
        self._patches.put(updated.id, updated)
        return updated

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _assert_transition(from_status: PatchStatus, to_status: PatchStatus) -> None:
        allowed = VALID_TRANSITIONS.get(from_status, set())
        if to_status not in allowed:
            raise InvalidTransitionError(from_status, to_status)

    def _store_status(self, patch: SecurityPatch, status: PatchStatus) -> SecurityPatch:
        updated = patch.model_copy(
            update={"status": status, "updated_at": self._clock.now()}
        )
        self._patches.put(updated.id, updated)
        return updated
