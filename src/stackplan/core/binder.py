"""Wires a container service to its cluster, task definition and target group."""

import logging
from collections.abc import Sequence

from stackplan.core.attributes import literal_value
from stackplan.core.errors import IncompatiblePortError
from stackplan.core.graph import DependencyGraph
from stackplan.core.resources import Resource, ResourceKind, resource

logger = logging.getLogger(__name__)


class ServiceBinder:
    """Declares a service and its target group attachment as separate resources."""

    def __init__(self, graph: DependencyGraph) -> None:
        self.graph = graph

    def bind(
        self,
        cluster: Resource,
        task_definition: Resource,
        target_group: Resource,
        security_groups: Sequence[Resource],
        service_id: str = "service",
        subnets: Sequence[object] = (),
        desired_count: int = 1,
    ) -> Resource:
        """Declare the service and the attachment that registers it with the target group.

        Args:
            cluster: Cluster the service runs on.
            task_definition: Task definition with ``container_name`` and ``container_port``.
            target_group: Target group with ``port``.
            security_groups: Groups attached to the service's network interfaces.
            service_id: Resource id of the service.
            subnets: Subnet ids (usually deferred) for ``awsvpc`` networking.
            desired_count: Number of tasks to keep running.

        Returns:
            The declared service resource.

        Raises:
            IncompatiblePortError: If the container port and target group port
                are both known and differ.
        """
        container_port = literal_value(task_definition.config.get("container_port"))
        target_port = literal_value(target_group.config.get("port"))
        if container_port is not None and target_port is not None:
            if int(container_port) != int(target_port):
                raise IncompatiblePortError(int(container_port), int(target_port))

        service = self.graph.add_resource(
            resource(
                service_id,
                ResourceKind.SERVICE,
                depends_on={cluster.id, task_definition.id, target_group.id}
                | {group.id for group in security_groups},
                name=service_id,
                cluster_arn=cluster.ref("cluster_arn"),
                cluster_name=cluster.ref("cluster_name"),
                task_definition_arn=task_definition.ref("task_definition_arn"),
                security_group_ids=[group.ref("group_id") for group in security_groups],
                subnet_ids=list(subnets),
                desired_count=desired_count,
            )
        )
        self.graph.add_resource(
            resource(
                f"{service_id}-attachment",
                ResourceKind.TARGET_GROUP_ATTACHMENT,
                cluster_name=cluster.ref("cluster_name"),
                service_name=service.ref("service_name"),
                target_group_arn=target_group.ref("target_group_arn"),
                container_name=task_definition.config.get("container_name"),
                container_port=task_definition.config.get("container_port"),
            )
        )
        logger.info("Bound %s to target group %s", service_id, target_group.id)
        return service
