"""Tests for frozen workflow states."""

import pydantic
import pytest

from braid.workflow.state import (
    MergeInput,
    MergeResultState,
    MergeState,
    SyncOutput,
    SyncResultState,
)


def test_state_is_frozen():
    state = MergeInput(path="/repo", source="main")

    with pytest.raises(pydantic.ValidationError):
        state.source = "other"


def test_evolve_returns_new_value():
    state = MergeState(path="/repo", source="main")

    updated = state.evolve(is_clean=True, current_branch="feature")

    assert updated.is_clean is True
    assert updated.current_branch == "feature"
    assert state.is_clean is None


def test_grow_carries_shared_fields():
    request = MergeInput(path="/repo", source="main", push=True)

    state = request.grow(MergeState, current_branch="feature")

    assert isinstance(state, MergeState)
    assert state.push is True
    assert state.source == "main"
    assert state.current_branch == "feature"


def test_output_drops_internal_fields():
    result = SyncResultState(
        path="/repo", success=True, synced=True, force_push=True
    )

    output = result.output()

    assert type(output) is SyncOutput
    assert output.synced is True
    assert "force_push" not in output.model_dump()


def test_merge_output_keeps_target():
    result = MergeResultState(
        path="/repo", source="main", target="feature", success=True
    )

    assert result.output().target == "feature"


def test_max_iterations_must_be_positive():
    from braid.workflow.state import SyncInput

    with pytest.raises(pydantic.ValidationError):
        SyncInput(path="/repo", source="main", max_iterations=0)
