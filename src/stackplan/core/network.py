"""Subnet layout and security-group reachability."""

import ipaddress
import itertools
import logging
from dataclasses import dataclass, field
from enum import StrEnum

from stackplan.core.attributes import Deferred
from stackplan.core.errors import AddressSpaceExhaustedError, UnknownGroupError
from stackplan.core.graph import DependencyGraph
from stackplan.core.resources import Resource, ResourceKind, resource

logger = logging.getLogger(__name__)

ANY_IPV4 = "0.0.0.0/0"

LOAD_BALANCER_GROUP = "sg-elb"
APP_GROUP = "sg-app"
DATABASE_GROUP = "sg-db"


class SubnetType(StrEnum):
    """Subnet groups, allocated from the address block in this order."""

    PUBLIC = "public"
    PRIVATE_ROUTED = "private-routed"
    PRIVATE_ISOLATED = "private-isolated"


@dataclass(frozen=True)
class SecurityRule:
    """Ingress permission into ``target_group`` from ``source``.

    ``source`` is a group name or ``ANY_IPV4``.
    """

    target_group: str
    source: str
    port: int
    protocol: str = "tcp"
    description: str = ""

    @property
    def from_any_ipv4(self) -> bool:
        return self.source == ANY_IPV4

    @property
    def rule_id(self) -> str:
        source = "world" if self.from_any_ipv4 else self.source
        return f"ingress-{self.target_group}-from-{source}-{self.port}"


def default_rules(
    app_port: int,
    load_balancer_port: int = 80,
    database_port: int = 5432,
) -> list[SecurityRule]:
    """Return the world -> load balancer -> app -> database rule chain."""
    return [
        SecurityRule(
            LOAD_BALANCER_GROUP,
            ANY_IPV4,
            load_balancer_port,
            description="Allow HTTP traffic from the world",
        ),
        SecurityRule(
            APP_GROUP,
            LOAD_BALANCER_GROUP,
            app_port,
            description="Allow HTTP traffic from the ELB",
        ),
        SecurityRule(
            DATABASE_GROUP,
            APP_GROUP,
            database_port,
            description="Allow database traffic from the app",
        ),
    ]


@dataclass
class NetworkPolicy:
    """Address plan, security groups and the rules between them."""

    cidr: str = "10.0.0.0/16"
    subnet_prefix: int = 24
    max_azs: int = 2
    groups: tuple[str, ...] = (LOAD_BALANCER_GROUP, APP_GROUP, DATABASE_GROUP)
    rules: list[SecurityRule] = field(default_factory=lambda: default_rules(app_port=80))
    trust_order: tuple[str, ...] = (ANY_IPV4, LOAD_BALANCER_GROUP, APP_GROUP, DATABASE_GROUP)


@dataclass(frozen=True)
class SubnetGroup:
    """Subnets of one type, one per availability zone."""

    subnet_type: SubnetType
    subnet_ids: list[str]
    cidrs: list[str]

    def refs(self) -> list[Deferred]:
        return [Deferred(subnet_id, "subnet_id") for subnet_id in self.subnet_ids]


@dataclass
class NetworkLayout:
    """Resources emitted by ``NetworkTopology.build``."""

    vpc: Resource
    internet_gateway: Resource
    nat_gateway: Resource
    subnet_groups: dict[SubnetType, SubnetGroup]
    security_groups: dict[str, Resource]
    ingress_rules: list[Resource]

    def subnet_refs(self, subnet_type: SubnetType) -> list[Deferred]:
        """Return deferred subnet ids of one group."""
        return self.subnet_groups[subnet_type].refs()

    def group_ref(self, name: str) -> Deferred:
        """Return the deferred id of a security group."""
        if name not in self.security_groups:
            raise UnknownGroupError(name)
        return self.security_groups[name].ref("group_id")


def trust_violations(rules: list[SecurityRule], trust_order: tuple[str, ...]) -> list[SecurityRule]:
    """Return rules that grant access against the trust order.

    A rule complies when its source sits earlier in ``trust_order`` than its
    target. Groups outside the trust order are not checked.
    """
    rank = {name: index for index, name in enumerate(trust_order)}
    violations = []
    for rule in rules:
        if rule.source not in rank or rule.target_group not in rank:
            continue
        if rank[rule.source] >= rank[rule.target_group]:
            violations.append(rule)
    return violations


def partition(cidr: str, prefix: int, count: int) -> list[str]:
    """Split an address block into ``count`` subnets of the given prefix length.

    Raises:
        AddressSpaceExhaustedError: If the block cannot hold that many subnets.
    """
    network = ipaddress.ip_network(cidr)
    if prefix < network.prefixlen:
        raise AddressSpaceExhaustedError(
            f"Subnet prefix /{prefix} is larger than the address block {cidr}."
        )
    candidates = itertools.islice(network.subnets(new_prefix=prefix), count)
    subnets = [str(subnet) for subnet in candidates]
    if len(subnets) < count:
        raise AddressSpaceExhaustedError(
            f"Address block {cidr} holds only {len(subnets)} /{prefix} subnets, {count} needed."
        )
    return subnets


class NetworkTopology:
    """Emits the VPC, subnet groups, security groups and ingress rules into a graph.

    Rules are validated against the declared groups on construction, before
    anything is added to the graph.
    """

    def __init__(
        self,
        graph: DependencyGraph,
        policy: NetworkPolicy,
        project_name: str = "stack",
    ) -> None:
        """Validate the policy.

        Raises:
            UnknownGroupError: If a rule references an undeclared group.
        """
        declared = set(policy.groups)
        for rule in policy.rules:
            if rule.target_group not in declared:
                raise UnknownGroupError(rule.target_group)
            if not rule.from_any_ipv4 and rule.source not in declared:
                raise UnknownGroupError(rule.source)

        self.graph = graph
        self.policy = policy
        self.project_name = project_name

    def build(self) -> NetworkLayout:
        """Declare every network resource in the graph."""
        policy = self.policy
        subnet_types = list(SubnetType)
        cidrs = partition(policy.cidr, policy.subnet_prefix, len(subnet_types) * policy.max_azs)

        vpc = self.graph.add_resource(
            resource(
                "vpc",
                ResourceKind.VPC,
                cidr=policy.cidr,
                enable_dns=True,
                name=f"{self.project_name}-vpc",
            )
        )
        igw = self.graph.add_resource(
            resource(
                "internet-gateway",
                ResourceKind.INTERNET_GATEWAY,
                vpc_id=vpc.ref("vpc_id"),
                name=f"{self.project_name}-igw",
            )
        )

        groups: dict[SubnetType, SubnetGroup] = {}
        blocks = iter(cidrs)
        for subnet_type in subnet_types:
            ids = []
            group_cidrs = []
            for az_index in range(policy.max_azs):
                block = next(blocks)
                subnet_id = f"subnet-{subnet_type}-{az_index + 1}"
                route: dict[str, Deferred] = {}
                if subnet_type is SubnetType.PUBLIC:
                    route = {"internet_gateway_id": igw.ref("internet_gateway_id")}
                elif subnet_type is SubnetType.PRIVATE_ROUTED:
                    route = {"nat_gateway_id": Deferred("nat-gateway", "nat_gateway_id")}
                self.graph.add_resource(
                    resource(
                        subnet_id,
                        ResourceKind.SUBNET,
                        vpc_id=vpc.ref("vpc_id"),
                        cidr=block,
                        az_index=az_index,
                        subnet_type=str(subnet_type),
                        map_public_ip=subnet_type is SubnetType.PUBLIC,
                        route=route,
                        name=f"{self.project_name}-{subnet_type}-{az_index + 1}",
                    )
                )
                ids.append(subnet_id)
                group_cidrs.append(block)
            groups[subnet_type] = SubnetGroup(subnet_type, ids, group_cidrs)

        nat = self.graph.add_resource(
            resource(
                "nat-gateway",
                ResourceKind.NAT_GATEWAY,
                depends_on={igw.id},
                subnet_id=groups[SubnetType.PUBLIC].refs()[0],
                name=f"{self.project_name}-nat",
            )
        )

        security_groups = {
            name: self.graph.add_resource(
                resource(
                    name,
                    ResourceKind.SECURITY_GROUP,
                    vpc_id=vpc.ref("vpc_id"),
                    name=f"{self.project_name}-{name}",
                    description=f"Security group {name}",
                )
            )
            for name in policy.groups
        }

        for rule in trust_violations(policy.rules, policy.trust_order):
            logger.warning(
                "Rule %s grants %s access into more trusted group %s",
                rule.rule_id,
                rule.source,
                rule.target_group,
            )

        ingress_rules = []
        for rule in policy.rules:
            source: dict[str, object]
            if rule.from_any_ipv4:
                source = {"cidr": ANY_IPV4}
            else:
                source = {"source_group_id": security_groups[rule.source].ref("group_id")}
            ingress_rules.append(
                self.graph.add_resource(
                    resource(
                        rule.rule_id,
                        ResourceKind.SECURITY_GROUP_INGRESS,
                        group_id=security_groups[rule.target_group].ref("group_id"),
                        port=rule.port,
                        protocol=rule.protocol,
                        description=rule.description,
                        **source,
                    )
                )
            )

        logger.info(
            "Declared network %s with %d subnets and %d ingress rules",
            policy.cidr,
            len(cidrs),
            len(ingress_rules),
        )
        return NetworkLayout(
            vpc=vpc,
            internet_gateway=igw,
            nat_gateway=nat,
            subnet_groups=groups,
            security_groups=security_groups,
            ingress_rules=ingress_rules,
        )
