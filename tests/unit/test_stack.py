"""Tests for the sample container service stack."""

import pytest

from stackplan.core.attributes import Deferred, Literal
from stackplan.core.errors import UnknownGroupError
from stackplan.core.graph import DependencyGraph
from stackplan.core.network import APP_GROUP, SecurityRule
from stackplan.core.resources import ResourceKind
from stackplan.core.settings import StackPlanSettings
from stackplan.core.stack import build_stack
from stackplan.core.state import REDACTED, PlanState
from stackplan.core.synthesizer import Synthesizer
from stackplan.providers import InMemoryProvider


def test_stack_orders_vpc_first_and_attachment_after_listener(
    settings: StackPlanSettings,
) -> None:
    """Test the synthesis order of the declared stack."""
    graph = DependencyGraph()
    build_stack(graph, settings)

    order = graph.topological_order()

    assert order[0] == "vpc"
    assert order.index("listener") < order.index("service-attachment")
    assert order.index("cluster-capacity") < order.index("task-definition")
    assert order.index("secret-demo-database") < order.index("database")
    assert order.index("database") < order.index("task-definition") < order.index("service")
    assert "repository" not in graph


def test_registry_image_is_deferred(settings: StackPlanSettings) -> None:
    """Test that the task definition pulls from the stack's own registry when enabled."""
    settings.service.use_registry = True
    settings.service.image_tag = "v1"
    graph = DependencyGraph()
    declaration = build_stack(graph, settings)

    config = declaration.task_definition.config
    assert config["image"] == Deferred("repository", "repository_uri")
    assert config["image_tag"] == Literal("v1")
    assert graph.topological_order().index("repository") < graph.topological_order().index(
        "task-definition"
    )


def test_database_uses_generated_credential(settings: StackPlanSettings) -> None:
    """Test that the database master password comes from the secret."""
    graph = DependencyGraph()
    declaration = build_stack(graph, settings)

    config = declaration.database.config
    assert config["master_password"] == Deferred("secret-demo-database", "password")
    assert config["master_username"] == Literal("postgres")


def test_mismatched_rules_fail_declaration(settings: StackPlanSettings) -> None:
    """Test that custom rules are validated against the declared groups."""
    with pytest.raises(UnknownGroupError):
        build_stack(DependencyGraph(), settings, rules=[SecurityRule(APP_GROUP, "sg-missing", 80)])


def test_full_stack_synthesizes_in_memory(settings: StackPlanSettings) -> None:
    """Test that every declared resource is created and resolves its references."""
    graph = DependencyGraph()
    build_stack(graph, settings)
    provider = InMemoryProvider()
    state = PlanState()

    outputs = Synthesizer(provider, settings.retry).synthesize(graph, state=state)

    assert set(outputs) == {node.id for node in graph}
    secret_password = outputs["secret-demo-database"]["password"]
    database_config = next(
        config for action, kind, config in provider.calls if kind == ResourceKind.DATABASE
    )
    assert database_config["master_password"] == secret_password
    assert state.resources["database"].resolved_config["master_password"] == REDACTED

    task_config = next(
        config for _, kind, config in provider.calls if kind == ResourceKind.TASK_DEFINITION
    )
    assert task_config["environment"]["DATABASE_HOST"] == outputs["database"]["endpoint_address"]
    assert task_config["secrets"]["DATABASE_PASSWORD"]["arn"] == (
        outputs["secret-demo-database"]["arn"]
    )


def test_app_port_flows_to_both_sides_of_binding(settings: StackPlanSettings) -> None:
    """Test that the target group and container share the configured app port."""
    settings.service.app_port = 3000
    graph = DependencyGraph()
    declaration = build_stack(graph, settings)

    assert declaration.target_group.config["port"] == Literal(3000)
    assert declaration.task_definition.config["container_port"] == Literal(3000)
