"""Severity-driven semantic versioning with monotonic ordering per patch.

- critical / high -> major bump
- medium          -> minor bump
- low             -> patch bump

Every release for a patch must be strictly newer than the one before it.
"""

from __future__ import annotations

import logging

from patchforge.core.clock import Clock, SystemClock
from patchforge.core.errors import VersionConflictError
from patchforge.core.store import InMemoryRepository, Repository
from patchforge.models.patches import PatchVersion, Severity
from patchforge.models.versioning import VersionRecord

logger = logging.getLogger(__name__)


class VersionManager:
    """Allocates and records release versions for patches."""

    def __init__(
        self,
        repository: Repository[VersionRecord] | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._records: Repository[VersionRecord] = (
            repository if repository is not None else InMemoryRepository()
        )
        self._clock = clock or SystemClock()

    def release_version(
        self,
        patch_id: str,
        version: PatchVersion,
        severity: Severity,
        release_notes: str | None = None,
    ) -> VersionRecord:
        """Append a release record after checking it is strictly newer.

        ``is_major`` is set when the major component is non-zero and
        greater than the previous release's (or there is no previous one).
        """
        self.verify_version_order(patch_id, version)
        previous = self.latest_version(patch_id)
        is_major = version.major > 0 and (
            previous is None or version.major > previous.major
        )
        record = VersionRecord(
            patch_id=patch_id,
            version=version,
            is_major=is_major,
            severity=severity,
            released_at=self._clock.now(),
            release_notes=release_notes,
        )
        self._records.put(record.record_key, record)
        logger.info(
            "Released %s for patch %s (%s%s)",
            version, patch_id, severity.value, ", major" if is_major else "",
        )
        return record

    def bump_for_severity(
        self,
        patch_id: str,
        severity: Severity,
        release_notes: str | None = None,
    ) -> VersionRecord:
        """Release the next version implied by ``severity``.

        Starts from the latest recorded version, or ``0.1.0`` if none.
        """
        current = self.latest_version(patch_id) or PatchVersion()
        if severity in (Severity.CRITICAL, Severity.HIGH):
            proposed = current.bump_major()
        elif severity == Severity.MEDIUM:
            proposed = current.bump_minor()
        else:
            proposed = current.bump_patch()
        return self.release_version(patch_id, proposed, severity, release_notes)

    def latest_version(self, patch_id: str) -> PatchVersion | None:
        history = self.release_history(patch_id)
        return history[-1].version if history else None

    def release_history(self, patch_id: str) -> list[VersionRecord]:
        """All releases for a patch in the order they were recorded."""
        return [r for r in self._records.values() if r.patch_id == patch_id]

    def verify_version_order(self, patch_id: str, proposed: PatchVersion) -> None:
        """Raise ``VersionConflictError`` unless ``proposed`` is newer than the latest."""
        current = self.latest_version(patch_id)
        if current is not None and not proposed > current:
            raise VersionConflictError(current=str(current), proposed=str(proposed))

    def count(self) -> int:
        return len(self._records)
