"""Persisted plan state for destroy passes."""

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from stackplan.core.errors import StateError


REDACTED = "********"
SENSITIVE_KEYS = frozenset({"password", "master_password"})


def redact(value: Any) -> Any:
    """Mask sensitive keys before a value is written to disk."""
    if isinstance(value, dict):
        return {
            key: REDACTED if key in SENSITIVE_KEYS else redact(item) for key, item in value.items()
        }
    if isinstance(value, list):
        return [redact(item) for item in value]
    return value


class ResourceState(BaseModel):
    """Snapshot of one synthesized resource."""

    model_config = ConfigDict(extra="ignore")

    kind: str
    resolved_config: dict[str, Any] = Field(default_factory=dict)
    outputs: dict[str, Any] = Field(default_factory=dict)


class PlanState(BaseModel):
    """Synthesized resources in creation order."""

    model_config = ConfigDict(extra="ignore")

    resources: dict[str, ResourceState] = Field(default_factory=dict)
    order: list[str] = Field(default_factory=list)

    def record(
        self,
        resource_id: str,
        kind: str,
        resolved_config: dict[str, Any],
        outputs: dict[str, Any],
    ) -> None:
        """Record a created resource, masking secret values."""
        self.resources[resource_id] = ResourceState(
            kind=kind,
            resolved_config=redact(resolved_config),
            outputs=redact(outputs),
        )
        if resource_id not in self.order:
            self.order.append(resource_id)

    def forget(self, resource_id: str) -> None:
        """Drop a destroyed resource."""
        self.resources.pop(resource_id, None)
        if resource_id in self.order:
            self.order.remove(resource_id)

    def outputs(self) -> dict[str, dict[str, Any]]:
        """Return recorded outputs keyed by resource id."""
        return {resource_id: self.resources[resource_id].outputs for resource_id in self.order}


def load_state(path: Path) -> PlanState:
    """Load plan state from disk.

    Returns:
        The loaded state, or an empty state when the file does not exist.
    """
    if not path.exists():
        return PlanState()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise StateError(f"Invalid state file: {exc}") from exc

    if not isinstance(data, dict):
        raise StateError("State file must contain a JSON object.")

    try:
        return PlanState.model_validate(data)
    except ValidationError as exc:
        raise StateError(f"Invalid state values: {exc}") from exc


def save_state(state: PlanState, path: Path) -> Path:
    """Save plan state to disk.

    Returns:
        The saved state file path.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(state.model_dump(mode="json"), indent=2), encoding="utf-8")
    return path
