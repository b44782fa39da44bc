"""Tests for synthesis and destroy passes."""

from typing import Any

import pytest

from stackplan.core.errors import (
    DestroyError,
    ProviderError,
    SynthesisAborted,
    SynthesisError,
    UnresolvedDependencyError,
)
from stackplan.core.graph import DependencyGraph
from stackplan.core.resources import Resource, ResourceKind, resource
from stackplan.core.settings import RetrySettings
from stackplan.core.state import PlanState
from stackplan.core.synthesizer import Synthesizer
from stackplan.providers import InMemoryProvider, RegistryProvider


def _network(graph: DependencyGraph) -> None:
    vpc = graph.add_resource(resource("vpc", ResourceKind.VPC, cidr="10.0.0.0/16"))
    graph.add_resource(
        resource("subnet", ResourceKind.SUBNET, vpc_id=vpc.ref("vpc_id"), cidr="10.0.0.0/24")
    )
    graph.add_resource(
        resource("sg-app", ResourceKind.SECURITY_GROUP, vpc_id=vpc.ref("vpc_id"))
    )


class FlakyProvider(RegistryProvider):
    """Fails a kind a fixed number of times before succeeding."""

    def __init__(self, failures: int, transient: bool = True) -> None:
        super().__init__()
        self.failures = failures
        self.created: list[dict[str, Any]] = []
        self.register(ResourceKind.VPC, self._create_vpc)
        self.register(ResourceKind.SUBNET, self._create)
        self.register(ResourceKind.SECURITY_GROUP, self._create)
        self.transient = transient

    def _create_vpc(self, config: dict[str, Any]) -> dict[str, Any]:
        if self.failures > 0:
            self.failures -= 1
            raise ProviderError("throttled", transient=self.transient, code="Throttling")
        return self._create(config)

    def _create(self, config: dict[str, Any]) -> dict[str, Any]:
        self.created.append(config)
        return {"vpc_id": "vpc-1", "subnet_id": "subnet-1", "group_id": "sg-1"}


def test_transient_failures_are_retried(retry: RetrySettings) -> None:
    """Test that two transient failures then success records three attempts."""
    graph = DependencyGraph()
    _network(graph)
    synthesizer = Synthesizer(FlakyProvider(failures=2), retry)

    outputs = synthesizer.synthesize(graph)

    assert synthesizer.attempts["vpc"] == 3
    assert synthesizer.attempts["subnet"] == 1
    assert outputs["vpc"]["vpc_id"] == "vpc-1"


def test_retry_budget_is_bounded(retry: RetrySettings) -> None:
    """Test that transient failures beyond the budget halt synthesis."""
    graph = DependencyGraph()
    _network(graph)
    synthesizer = Synthesizer(FlakyProvider(failures=5), retry)

    with pytest.raises(SynthesisError) as exc_info:
        synthesizer.synthesize(graph)

    assert synthesizer.attempts["vpc"] == 3
    assert exc_info.value.resource_id == "vpc"
    assert exc_info.value.synthesized == []


def test_permanent_failure_is_not_retried(retry: RetrySettings) -> None:
    """Test that a permanent error stops at once and reports created resources."""
    graph = DependencyGraph()
    _network(graph)
    provider = FlakyProvider(failures=0)
    provider.register(ResourceKind.SECURITY_GROUP, _fail_permanently)
    synthesizer = Synthesizer(provider, retry)

    with pytest.raises(SynthesisError) as exc_info:
        synthesizer.synthesize(graph)

    assert synthesizer.attempts["sg-app"] == 1
    assert exc_info.value.resource_id == "sg-app"
    assert exc_info.value.synthesized == ["vpc", "subnet"]
    assert isinstance(exc_info.value.cause, ProviderError)
    assert exc_info.value.cause.classification == "permanent"


def _fail_permanently(config: dict[str, Any]) -> dict[str, Any]:
    raise ProviderError("invalid parameter", code="InvalidParameterValue")


def test_abort_between_resources(retry: RetrySettings) -> None:
    """Test that cancellation stops before the next resource."""
    graph = DependencyGraph()
    _network(graph)
    checks = iter([True, True, False])

    with pytest.raises(SynthesisAborted) as exc_info:
        Synthesizer(InMemoryProvider(), retry).synthesize(
            graph, should_continue=lambda: next(checks)
        )

    assert exc_info.value.resource_id == "sg-app"
    assert exc_info.value.synthesized == ["vpc", "subnet"]


def test_missing_output_field_is_unresolved(retry: RetrySettings) -> None:
    """Test that referencing a field the source never produced fails."""
    graph = DependencyGraph()
    vpc = graph.add_resource(resource("vpc", ResourceKind.VPC))
    graph.add_resource(resource("subnet", ResourceKind.SUBNET, vpc_id=vpc.ref("no_such_field")))

    with pytest.raises(UnresolvedDependencyError) as exc_info:
        Synthesizer(InMemoryProvider(), retry).synthesize(graph)

    assert exc_info.value.resource_id == "subnet"
    assert exc_info.value.source_id == "vpc"
    assert exc_info.value.field == "no_such_field"
    assert exc_info.value.synthesized == ["vpc"]


def test_resolve_config_substitutes_outputs() -> None:
    """Test that nested deferred attributes are replaced with recorded values."""
    node = Resource(
        "service",
        ResourceKind.SERVICE,
        {"subnet_ids": [Resource("a", ResourceKind.SUBNET).ref("subnet_id")], "count": 2},
    )

    resolved = Synthesizer(InMemoryProvider()).resolve_config(
        node, {"a": {"subnet_id": "subnet-123"}}
    )

    assert resolved == {"subnet_ids": ["subnet-123"], "count": 2}


def test_synthesis_is_deterministic(retry: RetrySettings) -> None:
    """Test that the same graph against equally seeded providers yields equal outputs."""
    graph = DependencyGraph()
    _network(graph)

    first = Synthesizer(InMemoryProvider(seed=3), retry).synthesize(graph)
    second = Synthesizer(InMemoryProvider(seed=3), retry).synthesize(graph)

    assert first == second


def test_state_records_each_resource(retry: RetrySettings) -> None:
    """Test that state and checkpoints follow creation order."""
    graph = DependencyGraph()
    _network(graph)
    state = PlanState()
    snapshots: list[list[str]] = []

    Synthesizer(InMemoryProvider(), retry).synthesize(
        graph, state=state, checkpoint=lambda snapshot: snapshots.append(list(snapshot.order))
    )

    assert state.order == ["vpc", "subnet", "sg-app"]
    assert snapshots == [["vpc"], ["vpc", "subnet"], ["vpc", "subnet", "sg-app"]]
    assert state.resources["subnet"].resolved_config["vpc_id"] == state.outputs()["vpc"]["vpc_id"]


def test_destroy_runs_in_reverse_order(retry: RetrySettings) -> None:
    """Test that resources are destroyed newest first and removed from state."""
    graph = DependencyGraph()
    _network(graph)
    provider = InMemoryProvider()
    state = PlanState()
    synthesizer = Synthesizer(provider, retry)
    synthesizer.synthesize(graph, state=state)

    destroyed = synthesizer.destroy(state)

    assert destroyed == ["sg-app", "subnet", "vpc"]
    assert [kind for action, kind, _ in provider.calls if action == "destroy"] == [
        "security-group",
        "subnet",
        "vpc",
    ]
    assert state.order == []
    assert provider.live == {}


def test_destroy_continues_past_failures(retry: RetrySettings) -> None:
    """Test that one failed destroy does not stop the others."""
    graph = DependencyGraph()
    _network(graph)
    provider = InMemoryProvider()
    state = PlanState()
    synthesizer = Synthesizer(provider, retry)
    synthesizer.synthesize(graph, state=state)
    provider.register(ResourceKind.SUBNET, _fail_permanently, _fail_destroy)

    with pytest.raises(DestroyError) as exc_info:
        synthesizer.destroy(state)

    assert list(exc_info.value.failed) == ["subnet"]
    assert state.order == ["subnet"]


def _fail_destroy(outputs: dict[str, Any]) -> None:
    raise ProviderError("dependency violation", code="DependencyViolation")
