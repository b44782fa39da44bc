"""Declaration of the load-balanced container service stack."""

import logging
from dataclasses import dataclass

from stackplan.core.binder import ServiceBinder
from stackplan.core.graph import DependencyGraph
from stackplan.core.network import (
    APP_GROUP,
    DATABASE_GROUP,
    LOAD_BALANCER_GROUP,
    NetworkLayout,
    NetworkPolicy,
    NetworkTopology,
    SecurityRule,
    SubnetType,
    default_rules,
)
from stackplan.core.resources import Resource, ResourceKind, resource
from stackplan.core.secrets import Credential, PasswordPolicy, SecretStore
from stackplan.core.settings import StackPlanSettings

logger = logging.getLogger(__name__)

CONTAINER_NAME = "Container"


@dataclass
class StackDeclaration:
    """Handles to the main resources of a declared stack."""

    network: NetworkLayout
    load_balancer: Resource
    listener: Resource
    target_group: Resource
    cluster: Resource
    capacity: Resource
    repository: Resource | None
    credential: Credential
    database: Resource
    task_definition: Resource
    service: Resource


def network_policy(
    settings: StackPlanSettings,
    rules: list[SecurityRule] | None = None,
) -> NetworkPolicy:
    """Build the network policy from settings, with the default rule chain unless given."""
    return NetworkPolicy(
        cidr=settings.network.cidr,
        subnet_prefix=settings.network.subnet_prefix,
        max_azs=settings.network.max_azs,
        rules=rules
        if rules is not None
        else default_rules(
            app_port=settings.service.app_port,
            load_balancer_port=settings.network.load_balancer_port,
            database_port=settings.network.database_port,
        ),
    )


def build_stack(
    graph: DependencyGraph,
    settings: StackPlanSettings,
    rules: list[SecurityRule] | None = None,
    password_policy: PasswordPolicy | None = None,
) -> StackDeclaration:
    """Declare every resource of the stack in ``graph``.

    Nothing is created here; the returned declaration only holds references.
    """
    service_settings = settings.service
    project = service_settings.project_name
    app_port = service_settings.app_port

    network = NetworkTopology(graph, network_policy(settings, rules), project_name=project).build()
    public_subnets = network.subnet_refs(SubnetType.PUBLIC)
    app_subnets = network.subnet_refs(SubnetType.PRIVATE_ROUTED)
    isolated_subnets = network.subnet_refs(SubnetType.PRIVATE_ISOLATED)

    alb = graph.add_resource(
        resource(
            "alb",
            ResourceKind.LOAD_BALANCER,
            name=f"{project}-alb",
            internet_facing=True,
            subnet_ids=public_subnets,
            security_group_ids=[network.group_ref(LOAD_BALANCER_GROUP)],
        )
    )
    target_group = graph.add_resource(
        resource(
            "target-group",
            ResourceKind.TARGET_GROUP,
            name=f"{project}-tg",
            vpc_id=network.vpc.ref("vpc_id"),
            port=app_port,
            protocol="HTTP",
            target_type="ip",
        )
    )
    listener = graph.add_resource(
        resource(
            "listener",
            ResourceKind.LISTENER,
            load_balancer_arn=alb.ref("load_balancer_arn"),
            target_group_arn=target_group.ref("target_group_arn"),
            port=settings.network.load_balancer_port,
            protocol="HTTP",
        )
    )

    cluster = graph.add_resource(resource("cluster", ResourceKind.CLUSTER, name=project))
    capacity = graph.add_resource(
        resource(
            "cluster-capacity",
            ResourceKind.CLUSTER_CAPACITY,
            name=f"{project}-capacity",
            cluster_name=cluster.ref("cluster_name"),
            instance_type=service_settings.instance_type,
            spot_price=service_settings.spot_price,
            spot_instance_draining=service_settings.spot_instance_draining,
            machine_image="amazon-linux-2",
            min_capacity=service_settings.min_capacity,
            max_capacity=service_settings.max_capacity,
            subnet_ids=app_subnets,
            security_group_ids=[network.group_ref(APP_GROUP)],
        )
    )

    repository = None
    image: object = service_settings.container_image
    image_tag = None
    if service_settings.use_registry:
        repository = graph.add_resource(
            resource("repository", ResourceKind.REPOSITORY, name=project, scan_on_push=True)
        )
        image = repository.ref("repository_uri")
        image_tag = service_settings.image_tag

    store = SecretStore(graph, password_policy)
    credential = store.generate(
        f"{project}/database",
        {
            "username": service_settings.database_username,
            "engine": service_settings.database_engine,
        },
    )
    database = graph.add_resource(
        resource(
            "database",
            ResourceKind.DATABASE,
            identifier=f"{project}-db",
            engine=service_settings.database_engine,
            instance_class=service_settings.database_instance_class,
            allocated_storage=service_settings.database_storage_gb,
            database_name=service_settings.database_name,
            master_username=credential.username,
            master_password=credential.password,
            port=settings.network.database_port,
            subnet_ids=isolated_subnets,
            security_group_ids=[network.group_ref(DATABASE_GROUP)],
        )
    )

    task_definition = graph.add_resource(
        resource(
            "task-definition",
            ResourceKind.TASK_DEFINITION,
            depends_on={capacity.id},
            family=project,
            network_mode="awsvpc",
            container_name=CONTAINER_NAME,
            image=image,
            image_tag=image_tag,
            cpu=service_settings.container_cpu,
            memory=service_settings.container_memory,
            container_port=app_port,
            host_port=app_port,
            protocol="tcp",
            log_group=f"/ecs/{project}",
            environment={
                "DATABASE_HOST": database.ref("endpoint_address"),
                "DATABASE_PORT": database.ref("endpoint_port"),
                "DATABASE_NAME": service_settings.database_name,
                "DATABASE_USER": credential.username,
            },
            secrets={"DATABASE_PASSWORD": {"arn": credential.secret_arn, "key": "password"}},
        )
    )

    service = ServiceBinder(graph).bind(
        cluster,
        task_definition,
        target_group,
        [network.security_groups[APP_GROUP]],
        subnets=app_subnets,
        desired_count=service_settings.desired_count,
    )
    # Targets only receive traffic once the listener forwards to the group.
    graph.add_edge(listener.id, f"{service.id}-attachment")

    logger.info("Declared stack %s with %d resources", project, len(graph))
    return StackDeclaration(
        network=network,
        load_balancer=alb,
        listener=listener,
        target_group=target_group,
        cluster=cluster,
        capacity=capacity,
        repository=repository,
        credential=credential,
        database=database,
        task_definition=task_definition,
        service=service,
    )
