"""In-memory provider with deterministic outputs."""

import itertools
import random
from collections import defaultdict
from collections.abc import Callable, Iterator
from typing import Any

from stackplan.core.errors import ProviderError
from stackplan.core.resources import ResourceKind
from stackplan.core.secrets import generate_password, policy_from_config
from stackplan.providers.base import RegistryProvider

ACCOUNT_ID = "123456789012"
REGION = "local-1"


class InMemoryProvider(RegistryProvider):
    """Pretends to create resources and records every call.

    Identifiers come from per-kind counters and generated passwords from a
    seeded RNG, so two providers built with the same seed return identical
    outputs for the same sequence of calls.
    """

    def __init__(self, seed: int = 0) -> None:
        super().__init__()
        self._rng = random.Random(seed)
        self._counters: dict[str, Iterator[int]] = defaultdict(lambda: itertools.count(1))
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.live: dict[str, str] = {}

        outputs: dict[ResourceKind, Callable[[dict[str, Any]], dict[str, Any]]] = {
            ResourceKind.VPC: lambda config: {"vpc_id": self._next_id("vpc")},
            ResourceKind.INTERNET_GATEWAY: lambda config: {
                "internet_gateway_id": self._next_id("igw")
            },
            ResourceKind.SUBNET: self._subnet,
            ResourceKind.NAT_GATEWAY: lambda config: {
                "nat_gateway_id": self._next_id("nat"),
                "allocation_id": self._next_id("eipalloc"),
            },
            ResourceKind.SECURITY_GROUP: lambda config: {"group_id": self._next_id("sg")},
            ResourceKind.SECURITY_GROUP_INGRESS: lambda config: {
                "rule_id": self._next_id("sgr"),
                "group_id": config["group_id"],
            },
            ResourceKind.LOAD_BALANCER: self._load_balancer,
            ResourceKind.TARGET_GROUP: lambda config: {
                "target_group_arn": self._arn(
                    "elasticloadbalancing", f"targetgroup/{config['name']}"
                ),
                "port": config["port"],
            },
            ResourceKind.LISTENER: lambda config: {
                "listener_arn": self._arn("elasticloadbalancing", self._next_id("listener"))
            },
            ResourceKind.SECRET: self._secret,
            ResourceKind.DATABASE: self._database,
            ResourceKind.REPOSITORY: lambda config: {
                "repository_name": config["name"],
                "repository_uri": (
                    f"{ACCOUNT_ID}.dkr.ecr.{REGION}.amazonaws.com/{config['name']}"
                ),
            },
            ResourceKind.CLUSTER: lambda config: {
                "cluster_name": config["name"],
                "cluster_arn": self._arn("ecs", f"cluster/{config['name']}"),
            },
            ResourceKind.CLUSTER_CAPACITY: lambda config: {
                "auto_scaling_group_name": f"{config['cluster_name']}-asg",
                "capacity_provider_name": f"{config['cluster_name']}-capacity",
            },
            ResourceKind.TASK_DEFINITION: lambda config: {
                "task_definition_arn": self._arn(
                    "ecs", f"task-definition/{config['family']}:{self._next_number('revision')}"
                )
            },
            ResourceKind.SERVICE: lambda config: {
                "service_name": config["name"],
                "service_arn": self._arn("ecs", f"service/{config['name']}"),
            },
            ResourceKind.TARGET_GROUP_ATTACHMENT: lambda config: {
                "attachment_id": f"{config['service_name']}|{config['target_group_arn']}",
                "service_name": config["service_name"],
                "target_group_arn": config["target_group_arn"],
            },
        }
        for kind, build in outputs.items():
            self.register(kind, self._creator(kind, build), self._destroyer(kind))

    def _creator(
        self,
        kind: ResourceKind,
        build: Callable[[dict[str, Any]], dict[str, Any]],
    ) -> Callable[[dict[str, Any]], dict[str, Any]]:
        def create(config: dict[str, Any]) -> dict[str, Any]:
            self.calls.append(("create", str(kind), config))
            result = build(config)
            self.live[_reference(result)] = str(kind)
            return result

        return create

    def _destroyer(self, kind: ResourceKind) -> Callable[[dict[str, Any]], None]:
        def destroy(outputs: dict[str, Any]) -> None:
            self.calls.append(("destroy", str(kind), outputs))
            reference = _reference(outputs)
            if reference not in self.live:
                raise ProviderError(f"{kind} {reference} does not exist.")
            del self.live[reference]

        return destroy

    def _next_number(self, prefix: str) -> int:
        return next(self._counters[prefix])

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{self._next_number(prefix):08x}"

    def _arn(self, service: str, resource_path: str) -> str:
        return f"arn:aws:{service}:{REGION}:{ACCOUNT_ID}:{resource_path}"

    def _subnet(self, config: dict[str, Any]) -> dict[str, Any]:
        zone = "abcdef"[int(config.get("az_index", 0)) % 6]
        return {
            "subnet_id": self._next_id("subnet"),
            "cidr": config["cidr"],
            "availability_zone": f"{REGION}{zone}",
        }

    def _load_balancer(self, config: dict[str, Any]) -> dict[str, Any]:
        name = config["name"]
        return {
            "load_balancer_arn": self._arn("elasticloadbalancing", f"loadbalancer/app/{name}"),
            "dns_name": f"{name}-{self._next_number('lb')}.{REGION}.elb.amazonaws.com",
        }

    def _secret(self, config: dict[str, Any]) -> dict[str, Any]:
        name = config["name"]
        return {
            "arn": self._arn("secretsmanager", f"secret:{name}"),
            "name": name,
            "password": generate_password(policy_from_config(config), rng=self._rng),
        }

    def _database(self, config: dict[str, Any]) -> dict[str, Any]:
        identifier = config["identifier"]
        return {
            "db_instance_identifier": identifier,
            "arn": self._arn("rds", f"db:{identifier}"),
            "endpoint_address": f"{identifier}.{REGION}.rds.amazonaws.com",
            "endpoint_port": config.get("port", 5432),
        }


def _reference(outputs: dict[str, Any]) -> str:
    """Return the first identifying output of a resource."""
    for key in (
        "attachment_id",
        "rule_id",
        "service_arn",
        "task_definition_arn",
        "target_group_arn",
        "listener_arn",
        "load_balancer_arn",
        "cluster_arn",
        "arn",
        "auto_scaling_group_name",
        "repository_uri",
    ):
        if key in outputs:
            return str(outputs[key])
    for key, value in outputs.items():
        if key.endswith("_id"):
            return str(value)
    raise ProviderError(f"Outputs {sorted(outputs)} carry no resource reference.")
