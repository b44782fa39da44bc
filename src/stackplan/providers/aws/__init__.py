"""boto3-backed provider."""

from collections.abc import Callable
from functools import partial
from typing import Any

from stackplan.core.resources import ResourceKind
from stackplan.providers.aws import (
    database,
    ecr,
    ecs,
    load_balancer,
    network,
    secrets,
    security_groups,
)
from stackplan.providers.aws.session import AwsContext, create_session, get_identity
from stackplan.providers.base import RegistryProvider

HANDLERS: dict[ResourceKind, tuple[Callable[..., dict[str, Any]], Callable[..., None]]] = {
    ResourceKind.VPC: (network.create_vpc, network.delete_vpc),
    ResourceKind.INTERNET_GATEWAY: (
        network.create_internet_gateway,
        network.delete_internet_gateway,
    ),
    ResourceKind.SUBNET: (network.create_subnet, network.delete_subnet),
    ResourceKind.NAT_GATEWAY: (network.create_nat_gateway, network.delete_nat_gateway),
    ResourceKind.SECURITY_GROUP: (
        security_groups.create_security_group,
        security_groups.delete_security_group,
    ),
    ResourceKind.SECURITY_GROUP_INGRESS: (
        security_groups.create_ingress_rule,
        security_groups.delete_ingress_rule,
    ),
    ResourceKind.LOAD_BALANCER: (
        load_balancer.create_load_balancer,
        load_balancer.delete_load_balancer,
    ),
    ResourceKind.TARGET_GROUP: (
        load_balancer.create_target_group,
        load_balancer.delete_target_group,
    ),
    ResourceKind.LISTENER: (load_balancer.create_listener, load_balancer.delete_listener),
    ResourceKind.DATABASE: (database.create_database, database.delete_database),
    ResourceKind.REPOSITORY: (ecr.create_repository, ecr.delete_repository),
    ResourceKind.CLUSTER: (ecs.create_cluster, ecs.delete_cluster),
    ResourceKind.CLUSTER_CAPACITY: (ecs.create_capacity, ecs.delete_capacity),
    ResourceKind.TASK_DEFINITION: (
        ecs.register_task_definition,
        ecs.deregister_task_definition,
    ),
    ResourceKind.SERVICE: (ecs.create_service, ecs.delete_service),
    ResourceKind.TARGET_GROUP_ATTACHMENT: (ecs.attach_target_group, ecs.detach_target_group),
}


class AwsProvider(RegistryProvider):
    """Creates and deletes resources with boto3."""

    def __init__(
        self,
        session: Any,
        project_name: str,
        reporter: Callable[[str], None],
        force_delete_secrets: bool = False,
    ) -> None:
        super().__init__()
        self.context = AwsContext(session, project_name, reporter)
        for kind, (create, destroy) in HANDLERS.items():
            self.register(kind, partial(create, self.context), partial(destroy, self.context))
        self.register(
            ResourceKind.SECRET,
            partial(secrets.create_secret, self.context),
            partial(secrets.secret_deleter(force_delete_secrets), self.context),
        )


__all__ = ["AwsProvider", "create_session", "get_identity"]
