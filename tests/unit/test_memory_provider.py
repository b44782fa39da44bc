"""Tests for the in-memory provider."""

import pytest

from stackplan.core.errors import ProviderError
from stackplan.core.resources import ResourceKind
from stackplan.providers import InMemoryProvider


def test_outputs_are_deterministic_per_seed() -> None:
    """Test that equal seeds give equal identifiers and passwords."""
    config = {"name": "demo/database", "password_length": 30, "exclude_characters": ""}

    first = InMemoryProvider(seed=1).create(ResourceKind.SECRET, config)
    second = InMemoryProvider(seed=1).create(ResourceKind.SECRET, config)
    other = InMemoryProvider(seed=2).create(ResourceKind.SECRET, config)

    assert first == second
    assert first["password"] != other["password"]
    assert len(first["password"]) == 30


def test_calls_and_live_resources_are_tracked() -> None:
    """Test that create and destroy calls are logged and live resources removed."""
    provider = InMemoryProvider()
    outputs = provider.create(ResourceKind.VPC, {"cidr": "10.0.0.0/16"})

    provider.destroy(ResourceKind.VPC, outputs)

    assert [action for action, _, _ in provider.calls] == ["create", "destroy"]
    assert provider.live == {}


def test_destroying_unknown_resource_fails() -> None:
    """Test that a resource the provider never created cannot be destroyed."""
    with pytest.raises(ProviderError):
        InMemoryProvider().destroy(ResourceKind.VPC, {"vpc_id": "vpc-missing"})


def test_unregistered_kind_fails() -> None:
    """Test that an unknown kind is reported as a provider error."""
    with pytest.raises(ProviderError):
        InMemoryProvider().create("queue", {})
