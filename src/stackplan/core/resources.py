"""Resource declarations."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from stackplan.core.attributes import Deferred, as_attribute


class ResourceKind(StrEnum):
    """Resource kinds understood by providers."""

    VPC = "vpc"
    INTERNET_GATEWAY = "internet-gateway"
    SUBNET = "subnet"
    NAT_GATEWAY = "nat-gateway"
    SECURITY_GROUP = "security-group"
    SECURITY_GROUP_INGRESS = "security-group-ingress"
    LOAD_BALANCER = "load-balancer"
    TARGET_GROUP = "target-group"
    LISTENER = "listener"
    SECRET = "secret"
    DATABASE = "database"
    REPOSITORY = "repository"
    CLUSTER = "cluster"
    CLUSTER_CAPACITY = "cluster-capacity"
    TASK_DEFINITION = "task-definition"
    SERVICE = "service"
    TARGET_GROUP_ATTACHMENT = "target-group-attachment"


@dataclass(frozen=True)
class Resource:
    """A declared unit of infrastructure.

    ``config`` holds attributes (``Literal`` or ``Deferred``), optionally nested
    in lists and dicts. Plain values are wrapped as literals on creation.
    """

    id: str
    kind: ResourceKind
    config: dict[str, Any] = field(default_factory=dict)
    depends_on: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Resource id must not be empty.")
        object.__setattr__(self, "kind", ResourceKind(self.kind))
        object.__setattr__(self, "config", as_attribute(dict(self.config)))
        object.__setattr__(self, "depends_on", frozenset(self.depends_on))

    def ref(self, field_name: str) -> Deferred:
        """Return a deferred reference to one of this resource's outputs."""
        return Deferred(self.id, field_name)


def resource(
    resource_id: str,
    kind: ResourceKind,
    depends_on: set[str] | None = None,
    **config: Any,
) -> Resource:
    """Declare a resource with keyword config."""
    return Resource(
        id=resource_id,
        kind=kind,
        config=config,
        depends_on=frozenset(depends_on or ()),
    )
