"""Runtime configuration — env-driven via pydantic-settings.

Reads from a .env file and PATCHFORGE_* environment variables.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from patchforge.models.rollout import RolloutPlan


class PatchforgeConfig(BaseSettings):
    """Configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export PATCHFORGE_LOG_LEVEL=DEBUG
        export PATCHFORGE_STATE_PATH=/data/patchforge.db
        export PATCHFORGE_REQUIRE_APPROVAL=false

    Or via .env file::

        PATCHFORGE_ENVIRONMENT=production
        PATCHFORGE_ENFORCE_SOAK_TIME=true
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PATCHFORGE_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    # Storage
    state_path: Path = Path(".patchforge/state.db")

    # Actor recorded in the audit trail when none is given
    default_actor: str = "operator"

    # Rollout plan defaults
    canary_percentage: int = Field(default=5, ge=0, le=100)
    early_adopter_percentage: int = Field(default=25, ge=0, le=100)
    soak_time_secs: int = Field(default=3600, ge=0)
    max_failure_rate: float = Field(default=0.01, ge=0.0, le=1.0)
    require_approval: bool = True

    # Rollout execution
    enforce_soak_time: bool = False
    max_apply_workers: int = Field(default=8, ge=1)

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"

    def default_rollout_plan(self) -> RolloutPlan:
        """The rollout plan used when a caller does not supply one."""
        return RolloutPlan(
            canary_percentage=self.canary_percentage,
            early_adopter_percentage=self.early_adopter_percentage,
            soak_time_secs=self.soak_time_secs,
            max_failure_rate=self.max_failure_rate,
            require_approval=self.require_approval,
        )


# Module-level singleton, import as `from patchforge.config import config`
config = PatchforgeConfig()
