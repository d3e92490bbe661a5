"""Adversarial tests — patch status and rollout bypass attempts.

These tests verify that:
1. Every edge outside the transition table is rejected
2. A refused transition never changes the stored patch
3. Terminal statuses cannot be exited
4. Validation cannot be skipped or repeated to launder a rejection
"""

from __future__ import annotations

import itertools

import pytest

from patchforge.core.errors import InvalidTransitionError, ValidationFailedError
from patchforge.core.patch_manager import PatchManager
from patchforge.models.patches import (
    TERMINAL_STATUSES,
    VALID_TRANSITIONS,
    PatchStatus,
    PatchVersion,
    Severity,
)

ILLEGAL_EDGES = [
    (src, dst)
    for src, dst in itertools.product(PatchStatus, PatchStatus)
    if dst not in VALID_TRANSITIONS[src]
]


def _force_status(manager: PatchManager, patch_id: str, status: PatchStatus) -> None:
    patch = manager.get_patch(patch_id)
    manager._patches.put(patch_id, patch.model_copy(update={"status": status}))


class TestIllegalEdges:
    @pytest.mark.parametrize("src,dst", ILLEGAL_EDGES, ids=lambda s: s.value)
    def test_every_illegal_edge_rejected(self, patch_manager, make_patch, src, dst):
        patch = make_patch()
        _force_status(patch_manager, patch.id, src)
        before = patch_manager.get_patch(patch.id)

        with pytest.raises(InvalidTransitionError):
            patch_manager.transition(patch.id, dst)
        assert patch_manager.get_patch(patch.id) == before

    def test_cannot_jump_from_draft_to_rolling_out(self, patch_manager, make_patch):
        patch = make_patch()
        with pytest.raises(InvalidTransitionError, match="draft to rolling_out"):
            patch_manager.transition(patch.id, PatchStatus.ROLLING_OUT)

    def test_self_loops_rejected(self, patch_manager, make_patch):
        patch = make_patch()
        with pytest.raises(InvalidTransitionError):
            patch_manager.transition(patch.id, PatchStatus.DRAFT)


class TestTerminalStatuses:
    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
    def test_terminal_cannot_be_exited(self, patch_manager, make_patch, terminal):
        patch = make_patch()
        _force_status(patch_manager, patch.id, terminal)
        for target in PatchStatus:
            with pytest.raises(InvalidTransitionError):
                patch_manager.transition(patch.id, target)

    def test_terminal_version_frozen(self, patch_manager, make_patch):
        patch = make_patch()
        _force_status(patch_manager, patch.id, PatchStatus.APPLIED)
        with pytest.raises(InvalidTransitionError):
            patch_manager.set_version(patch.id, PatchVersion.parse("99.0.0"))


class TestValidationLaundering:
    def test_rejected_patch_cannot_be_revalidated(self, patch_manager, make_patch):
        patch = make_patch(payload=b"")
        patch_manager.validate_patch(patch.id)
        with pytest.raises(InvalidTransitionError):
            patch_manager.validate_patch(patch.id)
        assert patch_manager.get_patch(patch.id).status == PatchStatus.REJECTED

    def test_rejected_patch_cannot_be_rolled_out(self, coordinator):
        patch = coordinator.create_patch(
            "t", "d", Severity.HIGH, b"", ["C1"], None, "mallory"
        )
        coordinator.validate_patch(patch.id)
        with pytest.raises(ValidationFailedError):
            coordinator.start_rollout(patch.id)
        with pytest.raises(InvalidTransitionError):
            coordinator.patches.transition(patch.id, PatchStatus.ROLLING_OUT)
