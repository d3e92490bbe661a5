"""Append-only, hash-chained audit trail of the patch lifecycle.

Design:
- Append-only: ``record()`` is the only write; no update, no delete.
- Hash-chained: each entry seals the hash of the entry before it, across
  the whole trail (not per patch), so any rewrite is detectable.
- Filters preserve insertion order; ``patch_timeline`` orders by timestamp.
"""

from __future__ import annotations

import json
import logging
import threading

from patchforge.core.clock import Clock, SystemClock
from patchforge.core.errors import AuditIntegrityError, SerializationError
from patchforge.core.hasher import compute_entry_hash
from patchforge.core.store import InMemoryRepository, Repository
from patchforge.models.audit import AuditAction, AuditEntry

logger = logging.getLogger(__name__)


class AuditTrail:
    """Immutable record of every lifecycle action taken on a patch.

    Parameters
    ----------
    repository:
        Where entries are stored, keyed by entry id. In-memory by default.
    clock:
        Time source for entry timestamps.
    """

    def __init__(
        self,
        repository: Repository[AuditEntry] | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._entries: Repository[AuditEntry] = (
            repository if repository is not None else InMemoryRepository()
        )
        self._clock = clock or SystemClock()
        # Appends for different patches may arrive concurrently; the chain is global.
        self._lock = threading.Lock()
        existing = self._entries.values()
        self._last_hash = existing[-1].entry_hash if existing else ""

    # ------------------------------------------------------------------
    # Core: append-only write
    # ------------------------------------------------------------------

    def record(
        self,
        patch_id: str,
        target_id: str | None,
        action: AuditAction,
        performed_by: str,
        details: str | None = None,
    ) -> AuditEntry:
        """Append a sealed entry and return it."""
        with self._lock:
            entry = AuditEntry(
                patch_id=patch_id,
                target_id=target_id,
                action=action,
                performed_by=performed_by,
                timestamp=self._clock.now(),
                details=details,
                previous_entry_hash=self._last_hash,
            )
            sealed = entry.model_copy(
                update={"entry_hash": compute_entry_hash(entry.model_dump(mode="json"))}
            )
            self._entries.put(sealed.entry_id, sealed)
            self._last_hash = sealed.entry_hash

        logger.debug(
            "Audit %s: %s%s by %s",
            action.value, patch_id, f" / {target_id}" if target_id else "", performed_by,
        )
        return sealed

    # ------------------------------------------------------------------
    # Query methods (read-only)
    # ------------------------------------------------------------------

    def all_entries(self) -> list[AuditEntry]:
        return self._entries.values()

    def entries_for_patch(self, patch_id: str) -> list[AuditEntry]:
        return [e for e in self._entries.values() if e.patch_id == patch_id]

    def entries_for_contract(self, target_id: str) -> list[AuditEntry]:
        return [e for e in self._entries.values() if e.target_id == target_id]

    entries_for_target = entries_for_contract

    def entries_by_action(self, action: AuditAction) -> list[AuditEntry]:
        return [e for e in self._entries.values() if e.action == action]

    def is_patch_applied(self, patch_id: str, target_id: str) -> bool:
        """True iff a PATCH_APPLIED entry exists for this exact pair."""
        return any(
            e.patch_id == patch_id
            and e.target_id == target_id
            and e.action == AuditAction.PATCH_APPLIED
            for e in self._entries.values()
        )

    def patch_timeline(self, patch_id: str) -> list[AuditEntry]:
        """Entries for a patch, stably sorted ascending by timestamp."""
        return sorted(self.entries_for_patch(patch_id), key=lambda e: e.timestamp)

    def application_count(self, patch_id: str) -> int:
        """Number of PATCH_APPLIED entries for a patch, across all targets."""
        return sum(
            1
            for e in self._entries.values()
            if e.patch_id == patch_id and e.action == AuditAction.PATCH_APPLIED
        )

    def count(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Export & verification
    # ------------------------------------------------------------------

    def export_json(self) -> str:
        """Serialize the entire trail (every patch) as a JSON array."""
        try:
            return json.dumps(
                [e.model_dump(mode="json") for e in self._entries.values()],
                indent=2,
            )
        except (TypeError, ValueError) as exc:
            raise SerializationError(f"Could not export audit trail: {exc}") from exc

    def verify_chain(self) -> bool:
        """Walk the trail, recompute every seal and check every link.

        Returns True if the chain is intact, raises ``AuditIntegrityError``
        otherwise.
        """
        prev_hash = ""
        for entry in self._entries.values():
            if entry.previous_entry_hash != prev_hash:
                raise AuditIntegrityError(
                    f"Chain broken at entry {entry.entry_id}: "
                    f"expected previous_hash={prev_hash!r}, "
                    f"got {entry.previous_entry_hash!r}"
                )
            expected_hash = compute_entry_hash(entry.model_dump(mode="json"))
            if entry.entry_hash != expected_hash:
                raise AuditIntegrityError(
                    f"Tampered entry {entry.entry_id}: "
                    f"expected hash={expected_hash!r}, got {entry.entry_hash!r}"
                )
            prev_hash = entry.entry_hash
        return True
