"""Tests for persisted plan state."""

import json
from pathlib import Path

import pytest

from stackplan.core.errors import StateError
from stackplan.core.state import REDACTED, PlanState, load_state, save_state


def test_record_masks_passwords() -> None:
    """Test that secret values never reach the snapshot."""
    state = PlanState()
    state.record(
        "database",
        "database",
        {"master_username": "postgres", "master_password": "hunter2"},
        {"endpoint_address": "db.local", "password": "hunter2"},
    )

    entry = state.resources["database"]
    assert entry.resolved_config == {"master_username": "postgres", "master_password": REDACTED}
    assert entry.outputs["password"] == REDACTED
    assert "hunter2" not in state.model_dump_json()


def test_save_and_load(tmp_path: Path) -> None:
    """Test that a saved state loads back with its order."""
    path = tmp_path / "nested" / "state.json"
    state = PlanState()
    state.record("vpc", "vpc", {"cidr": "10.0.0.0/16"}, {"vpc_id": "vpc-1"})
    state.record("subnet", "subnet", {"vpc_id": "vpc-1"}, {"subnet_id": "subnet-1"})

    save_state(state, path)
    loaded = load_state(path)

    assert loaded.order == ["vpc", "subnet"]
    assert loaded.outputs() == {"vpc": {"vpc_id": "vpc-1"}, "subnet": {"subnet_id": "subnet-1"}}


def test_missing_file_is_empty_state(tmp_path: Path) -> None:
    """Test that no state file means nothing was deployed."""
    assert load_state(tmp_path / "state.json").order == []


def test_forget_removes_entry() -> None:
    """Test that a destroyed resource leaves the state."""
    state = PlanState()
    state.record("vpc", "vpc", {}, {"vpc_id": "vpc-1"})

    state.forget("vpc")

    assert state.order == []
    assert state.resources == {}


@pytest.mark.parametrize(
    "content",
    ["{not json", json.dumps(["vpc"]), json.dumps({"order": "vpc"})],
)
def test_invalid_state_raises(tmp_path: Path, content: str) -> None:
    """Test that unreadable state is reported as a StateError."""
    path = tmp_path / "state.json"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(StateError):
        load_state(path)
