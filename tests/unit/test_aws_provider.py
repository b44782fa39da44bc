"""Tests for the boto3-backed provider with mocked clients."""

import json
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from stackplan.core.errors import ProviderError, SynthesisError
from stackplan.core.graph import DependencyGraph
from stackplan.core.resources import ResourceKind, resource
from stackplan.core.settings import RetrySettings
from stackplan.core.synthesizer import Synthesizer
from stackplan.providers.aws import AwsProvider, ecs
from stackplan.providers.aws.errors import is_transient, to_provider_error


def _client_error(code: str, operation: str = "CreateVpc") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


def _provider() -> tuple[AwsProvider, dict[str, MagicMock], list[str]]:
    clients: dict[str, MagicMock] = {}

    def client(service: str) -> MagicMock:
        return clients.setdefault(service, MagicMock(name=service))

    session = MagicMock()
    session.client.side_effect = client
    session.region_name = "ap-northeast-1"
    messages: list[str] = []
    return AwsProvider(session, "demo", messages.append), clients, messages


def test_create_vpc_enables_dns_and_tags() -> None:
    """Test that a VPC is created, configured and named."""
    provider, clients, messages = _provider()
    ec2 = clients.setdefault("ec2", MagicMock())
    ec2.create_vpc.return_value = {"Vpc": {"VpcId": "vpc-123"}}

    outputs = provider.create(
        ResourceKind.VPC, {"cidr": "10.0.0.0/16", "enable_dns": True, "name": "demo-vpc"}
    )

    assert outputs == {"vpc_id": "vpc-123"}
    ec2.create_vpc.assert_called_once_with(CidrBlock="10.0.0.0/16")
    assert ec2.modify_vpc_attribute.call_count == 2
    ec2.create_tags.assert_called_once_with(
        Resources=["vpc-123"], Tags=[{"Key": "Name", "Value": "demo-vpc"}]
    )
    assert messages == ["Creating VPC 10.0.0.0/16"]


def test_public_subnet_routes_through_internet_gateway() -> None:
    """Test that a public subnet gets a default route to the internet gateway."""
    provider, clients, _ = _provider()
    ec2 = clients.setdefault("ec2", MagicMock())
    ec2.describe_availability_zones.return_value = {
        "AvailabilityZones": [{"ZoneName": "ap-northeast-1c"}, {"ZoneName": "ap-northeast-1a"}]
    }
    ec2.create_subnet.return_value = {"Subnet": {"SubnetId": "subnet-1"}}
    ec2.create_route_table.return_value = {"RouteTable": {"RouteTableId": "rtb-1"}}

    outputs = provider.create(
        ResourceKind.SUBNET,
        {
            "vpc_id": "vpc-123",
            "cidr": "10.0.1.0/24",
            "az_index": 1,
            "subnet_type": "public",
            "map_public_ip": True,
            "route": {"internet_gateway_id": "igw-1"},
            "name": "demo-public-2",
        },
    )

    assert outputs["availability_zone"] == "ap-northeast-1c"
    assert outputs["route_table_id"] == "rtb-1"
    ec2.create_route.assert_called_once_with(
        RouteTableId="rtb-1", DestinationCidrBlock="0.0.0.0/0", GatewayId="igw-1"
    )
    ec2.associate_route_table.assert_called_once_with(RouteTableId="rtb-1", SubnetId="subnet-1")


def test_throttling_is_transient() -> None:
    """Test that throttled requests are classified as transient."""
    provider, clients, _ = _provider()
    ec2 = clients.setdefault("ec2", MagicMock())
    ec2.create_vpc.side_effect = _client_error("RequestLimitExceeded")

    with pytest.raises(ProviderError) as exc_info:
        provider.create(ResourceKind.VPC, {"cidr": "10.0.0.0/16", "name": "demo-vpc"})

    assert exc_info.value.transient is True
    assert exc_info.value.code == "RequestLimitExceeded"
    assert isinstance(exc_info.value.__cause__, ClientError)


def test_throttled_follow_up_does_not_repeat_vpc_create(retry: RetrySettings) -> None:
    """Test that a throttled call after the VPC exists fails without a second create."""
    provider, clients, _ = _provider()
    ec2 = clients.setdefault("ec2", MagicMock())
    ec2.create_vpc.return_value = {"Vpc": {"VpcId": "vpc-123"}}
    ec2.modify_vpc_attribute.side_effect = _client_error(
        "RequestLimitExceeded", "ModifyVpcAttribute"
    )
    graph = DependencyGraph()
    graph.add_resource(
        resource("vpc", ResourceKind.VPC, cidr="10.0.0.0/16", enable_dns=True, name="demo-vpc")
    )
    synthesizer = Synthesizer(provider, retry)

    with pytest.raises(SynthesisError) as exc_info:
        synthesizer.synthesize(graph)

    assert ec2.create_vpc.call_count == 1
    assert synthesizer.attempts["vpc"] == 1
    cause = exc_info.value.cause
    assert isinstance(cause, ProviderError)
    assert cause.transient is False
    assert cause.code == "RequestLimitExceeded"
    assert "vpc-123" in str(cause)


def test_throttled_nat_gateway_create_keeps_elastic_ip() -> None:
    """Test that a NAT gateway failure after the address allocation is permanent."""
    provider, clients, _ = _provider()
    ec2 = clients.setdefault("ec2", MagicMock())
    ec2.allocate_address.return_value = {"AllocationId": "eipalloc-1"}
    ec2.create_nat_gateway.side_effect = _client_error("Throttling", "CreateNatGateway")

    with pytest.raises(ProviderError) as exc_info:
        provider.create(ResourceKind.NAT_GATEWAY, {"subnet_id": "subnet-1", "name": "demo-nat"})

    assert exc_info.value.transient is False
    assert "eipalloc-1" in str(exc_info.value)
    ec2.allocate_address.assert_called_once_with(Domain="vpc")


def test_invalid_request_is_permanent() -> None:
    """Test that a rejected parameter is not retried."""
    error = to_provider_error("create VPC", _client_error("InvalidParameterValue"))

    assert error.classification == "permanent"
    assert is_transient(EndpointConnectionError(endpoint_url="https://ec2.local"))


def test_delete_ignores_missing_resources() -> None:
    """Test that destroying an already deleted VPC succeeds."""
    provider, clients, _ = _provider()
    ec2 = clients.setdefault("ec2", MagicMock())
    ec2.delete_vpc.side_effect = _client_error("InvalidVpcID.NotFound", "DeleteVpc")

    provider.destroy(ResourceKind.VPC, {"vpc_id": "vpc-123"})

    ec2.delete_vpc.assert_called_once_with(VpcId="vpc-123")


def test_delete_failure_is_wrapped() -> None:
    """Test that other delete errors surface as provider errors."""
    provider, clients, _ = _provider()
    ec2 = clients.setdefault("ec2", MagicMock())
    ec2.delete_vpc.side_effect = _client_error("DependencyViolation", "DeleteVpc")

    with pytest.raises(ProviderError) as exc_info:
        provider.destroy(ResourceKind.VPC, {"vpc_id": "vpc-123"})

    assert exc_info.value.code == "DependencyViolation"


def test_secret_stores_template_with_generated_password() -> None:
    """Test that the secret value carries the template fields and the password."""
    provider, clients, _ = _provider()
    secrets = clients.setdefault("secretsmanager", MagicMock())
    secrets.get_random_password.return_value = {"RandomPassword": "s3cretValue"}
    secrets.create_secret.return_value = {"ARN": "arn:aws:secretsmanager:::secret:demo"}

    outputs = provider.create(
        ResourceKind.SECRET,
        {
            "name": "demo/database",
            "template": {"username": "postgres"},
            "generate_field": "password",
            "password_length": 30,
            "exclude_punctuation": True,
            "exclude_whitespace": True,
            "exclude_characters": "\"@/\\'",
        },
    )

    assert outputs["password"] == "s3cretValue"
    stored = json.loads(secrets.create_secret.call_args.kwargs["SecretString"])
    assert stored == {"username": "postgres", "password": "s3cretValue"}
    assert secrets.get_random_password.call_args.kwargs["ExcludeCharacters"] == "\"@/\\'"


def test_every_kind_has_a_handler() -> None:
    """Test that the provider covers every declared resource kind."""
    provider, _, _ = _provider()

    assert set(provider.kinds) == {str(kind) for kind in ResourceKind}


CAPACITY_OUTPUTS = {
    "auto_scaling_group_name": "demo-capacity",
    "launch_template_id": "lt-123",
    "instance_role_name": "demo-capacity-instance",
}


def test_capacity_delete_waits_for_group_to_disappear(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that the launch template is removed only after the group is gone."""
    monkeypatch.setattr(ecs, "ASG_DELETE_POLL_SECONDS", 0)
    provider, clients, _ = _provider()
    autoscaling = clients.setdefault("autoscaling", MagicMock())
    ec2 = clients.setdefault("ec2", MagicMock())
    deleting = {"AutoScalingGroups": [{"AutoScalingGroupName": "demo-capacity"}]}
    autoscaling.describe_auto_scaling_groups.side_effect = [
        deleting,
        deleting,
        {"AutoScalingGroups": []},
    ]
    calls = MagicMock()
    calls.attach_mock(autoscaling.describe_auto_scaling_groups, "describe")
    calls.attach_mock(ec2.delete_launch_template, "delete_launch_template")

    provider.destroy(ResourceKind.CLUSTER_CAPACITY, CAPACITY_OUTPUTS)

    autoscaling.delete_auto_scaling_group.assert_called_once_with(
        AutoScalingGroupName="demo-capacity", ForceDelete=True
    )
    assert autoscaling.describe_auto_scaling_groups.call_count == 3
    assert [name for name, _, _ in calls.mock_calls][-1] == "delete_launch_template"
    ec2.delete_launch_template.assert_called_once_with(LaunchTemplateId="lt-123")


def test_capacity_delete_fails_while_group_remains(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that a group that never finishes deleting stops the teardown."""
    monkeypatch.setattr(ecs, "ASG_DELETE_POLL_SECONDS", 0)
    monkeypatch.setattr(ecs, "ASG_DELETE_POLL_ATTEMPTS", 2)
    provider, clients, _ = _provider()
    autoscaling = clients.setdefault("autoscaling", MagicMock())
    ec2 = clients.setdefault("ec2", MagicMock())
    autoscaling.describe_auto_scaling_groups.return_value = {
        "AutoScalingGroups": [{"AutoScalingGroupName": "demo-capacity"}]
    }

    with pytest.raises(ProviderError) as exc_info:
        provider.destroy(ResourceKind.CLUSTER_CAPACITY, CAPACITY_OUTPUTS)

    assert "still deleting" in str(exc_info.value)
    ec2.delete_launch_template.assert_not_called()


def test_capacity_delete_skips_missing_group() -> None:
    """Test that an already deleted group goes straight to the launch template."""
    provider, clients, _ = _provider()
    autoscaling = clients.setdefault("autoscaling", MagicMock())
    ec2 = clients.setdefault("ec2", MagicMock())
    autoscaling.describe_auto_scaling_groups.return_value = {"AutoScalingGroups": []}
    ec2.delete_launch_template.side_effect = _client_error(
        "InvalidLaunchTemplateId.NotFound", "DeleteLaunchTemplate"
    )

    provider.destroy(ResourceKind.CLUSTER_CAPACITY, CAPACITY_OUTPUTS)

    autoscaling.delete_auto_scaling_group.assert_not_called()
    ec2.delete_launch_template.assert_called_once_with(LaunchTemplateId="lt-123")


def test_capacity_group_failure_does_not_repeat_launch_template() -> None:
    """Test that a throttled group create after the launch template exists is permanent."""
    provider, clients, _ = _provider()
    clients.setdefault("iam", MagicMock()).get_role.return_value = {
        "Role": {"Arn": "arn:aws:iam::1:role/demo-capacity-instance"}
    }
    clients.setdefault("ssm", MagicMock()).get_parameter.return_value = {
        "Parameter": {"Value": "ami-123"}
    }
    ec2 = clients.setdefault("ec2", MagicMock())
    ec2.create_launch_template.return_value = {"LaunchTemplate": {"LaunchTemplateId": "lt-123"}}
    autoscaling = clients.setdefault("autoscaling", MagicMock())
    autoscaling.create_auto_scaling_group.side_effect = _client_error(
        "Throttling", "CreateAutoScalingGroup"
    )

    with pytest.raises(ProviderError) as exc_info:
        provider.create(
            ResourceKind.CLUSTER_CAPACITY,
            {
                "cluster_name": "demo",
                "name": "demo-capacity",
                "instance_type": "t3.micro",
                "min_capacity": 1,
                "max_capacity": 2,
                "subnet_ids": ["subnet-1"],
            },
        )

    assert exc_info.value.transient is False
    assert "lt-123" in str(exc_info.value)
