"""Shared test fixtures for Patchforge."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

import pytest

from patchforge.config import PatchforgeConfig
from patchforge.core.audit_trail import AuditTrail
from patchforge.core.clock import ManualClock
from patchforge.core.coordinator import PatchCoordinator
from patchforge.core.distribution import DistributionManager
from patchforge.core.errors import ApplyError
from patchforge.core.patch_manager import PatchManager
from patchforge.core.rollout_engine import RolloutEngine
from patchforge.core.version_manager import VersionManager
from patchforge.models.notifications import DeliveryOutcome, NotificationMessage
from patchforge.models.patches import SecurityPatch, Severity


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class RecordingApplier:
    """Applier that fails a chosen set of targets and records every call."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = set(failing or ())
        self.calls: list[tuple[str, bytes]] = []
        self._lock = threading.Lock()

    def apply(self, target_id: str, payload: bytes) -> None:
        with self._lock:
            self.calls.append((target_id, payload))
        if target_id in self.failing:
            raise ApplyError(target_id, "simulated failure")

    @property
    def applied_targets(self) -> list[str]:
        return [target for target, _ in self.calls]


class ScriptedSender:
    """Sender that returns a scripted outcome per target (delivered otherwise).

    A target mapped to an exception instance raises it.
    """

    def __init__(self, script: dict[str, Any] | None = None) -> None:
        self.script: dict[str, Any] = dict(script or {})
        self.sent: list[NotificationMessage] = []

    def send(self, target_id: str, message: NotificationMessage) -> DeliveryOutcome:
        self.sent.append(message)
        outcome = self.script.get(target_id, DeliveryOutcome.delivered())
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


# ---------------------------------------------------------------------------
# Managers
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> ManualClock:
    """A clock pinned to 2026-01-01T00:00:00Z that moves only on demand."""
    return ManualClock()


@pytest.fixture
def applier() -> RecordingApplier:
    return RecordingApplier()


@pytest.fixture
def sender() -> ScriptedSender:
    return ScriptedSender()


@pytest.fixture
def patch_manager(clock: ManualClock) -> PatchManager:
    return PatchManager(clock=clock)


@pytest.fixture
def rollout_engine(clock: ManualClock, applier: RecordingApplier) -> RolloutEngine:
    return RolloutEngine(applier=applier, clock=clock, max_workers=4)


@pytest.fixture
def version_manager(clock: ManualClock) -> VersionManager:
    return VersionManager(clock=clock)


@pytest.fixture
def distribution(clock: ManualClock, sender: ScriptedSender) -> DistributionManager:
    return DistributionManager(sender=sender, clock=clock)


@pytest.fixture
def audit_trail(clock: ManualClock) -> AuditTrail:
    return AuditTrail(clock=clock)


@pytest.fixture
def config() -> PatchforgeConfig:
    """Defaults, independent of the caller's environment and .env file."""
    return PatchforgeConfig(_env_file=None, default_actor="tester")


@pytest.fixture
def coordinator(
    config: PatchforgeConfig,
    applier: RecordingApplier,
    sender: ScriptedSender,
    clock: ManualClock,
) -> PatchCoordinator:
    return PatchCoordinator.in_memory(config, applier=applier, sender=sender, clock=clock)


# ---------------------------------------------------------------------------
# Patch factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_patch(patch_manager: PatchManager) -> Callable[..., SecurityPatch]:
    """Factory fixture: register a patch with sensible defaults."""

    def _factory(**overrides: Any) -> SecurityPatch:
        fields: dict[str, Any] = {
            "title": "Fix overflow in transfer",
            "description": "Checked arithmetic on balance updates.",
            "severity": Severity.HIGH,
            "payload": b"\x00asm\x01\x00\x00\x00",
            "affected_targets": ["C1", "C2", "C3"],
            "advisory_id": "CVE-2026-0001",
            "created_by": "alice",
        }
        fields.update(overrides)
        return patch_manager.create_patch(**fields)

    return _factory
