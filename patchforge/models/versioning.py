"""Version release record model."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from patchforge.models.patches import PatchVersion, Severity


class VersionRecord(BaseModel):
    """One released version of a patch.

    For a fixed ``patch_id`` successive records are strictly increasing
    under (major, minor, patch) ordering.
    """

    model_config = ConfigDict(frozen=True)

    patch_id: str
    version: PatchVersion
    is_major: bool = False
    severity: Severity
    released_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    release_notes: str | None = None

    @property
    def record_key(self) -> str:
        return f"{self.patch_id}@{self.version}"
