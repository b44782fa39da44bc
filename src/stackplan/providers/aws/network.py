"""VPC, gateway and subnet handlers."""

from typing import Any

from stackplan.core.errors import ProviderError
from stackplan.providers.aws.errors import committed, guarded, ignore_missing, read_back
from stackplan.providers.aws.session import AwsContext


@guarded("create VPC")
def create_vpc(ctx: AwsContext, config: dict[str, Any]) -> dict[str, Any]:
    """Create a VPC with DNS support."""
    ec2 = ctx.client("ec2")
    ctx.reporter(f"Creating VPC {config['cidr']}")
    vpc_id = ec2.create_vpc(CidrBlock=config["cidr"])["Vpc"]["VpcId"]
    with committed(f"VPC {vpc_id}", "configure it"):
        if config.get("enable_dns", True):
            ec2.modify_vpc_attribute(VpcId=vpc_id, EnableDnsSupport={"Value": True})
            ec2.modify_vpc_attribute(VpcId=vpc_id, EnableDnsHostnames={"Value": True})
        ctx.tag(vpc_id, config["name"])
    return {"vpc_id": vpc_id}


@guarded("delete VPC")
def delete_vpc(ctx: AwsContext, outputs: dict[str, Any]) -> None:
    ec2 = ctx.client("ec2")
    ignore_missing("delete VPC", lambda: ec2.delete_vpc(VpcId=outputs["vpc_id"]))


@guarded("create internet gateway")
def create_internet_gateway(ctx: AwsContext, config: dict[str, Any]) -> dict[str, Any]:
    """Create an internet gateway and attach it to the VPC."""
    ec2 = ctx.client("ec2")
    igw_id = ec2.create_internet_gateway()["InternetGateway"]["InternetGatewayId"]
    with committed(f"Internet gateway {igw_id}", "attach it to the VPC"):
        ec2.attach_internet_gateway(InternetGatewayId=igw_id, VpcId=config["vpc_id"])
        ctx.tag(igw_id, config["name"])
    return {"internet_gateway_id": igw_id, "vpc_id": config["vpc_id"]}


@guarded("delete internet gateway")
def delete_internet_gateway(ctx: AwsContext, outputs: dict[str, Any]) -> None:
    ec2 = ctx.client("ec2")
    igw_id = outputs["internet_gateway_id"]
    ignore_missing(
        "detach internet gateway",
        lambda: ec2.detach_internet_gateway(InternetGatewayId=igw_id, VpcId=outputs["vpc_id"]),
    )
    ignore_missing(
        "delete internet gateway",
        lambda: ec2.delete_internet_gateway(InternetGatewayId=igw_id),
    )


@guarded("create subnet")
def create_subnet(ctx: AwsContext, config: dict[str, Any]) -> dict[str, Any]:
    """Create a subnet and, for routed subnets, its route table."""
    ec2 = ctx.client("ec2")
    zone = _availability_zone(ec2, int(config.get("az_index", 0)))

    ctx.reporter(f"Creating {config['subnet_type']} subnet {config['cidr']} in {zone}")
    subnet_id = ec2.create_subnet(
        VpcId=config["vpc_id"],
        CidrBlock=config["cidr"],
        AvailabilityZone=zone,
    )["Subnet"]["SubnetId"]
    with committed(f"Subnet {subnet_id}", "configure its routing"):
        ec2.modify_subnet_attribute(
            SubnetId=subnet_id,
            MapPublicIpOnLaunch={"Value": bool(config.get("map_public_ip"))},
        )
        ctx.tag(subnet_id, config["name"])
        route_table_id = _route_table(ctx, config, subnet_id)

    return {
        "subnet_id": subnet_id,
        "cidr": config["cidr"],
        "availability_zone": zone,
        "route_table_id": route_table_id,
    }


@guarded("delete subnet")
def delete_subnet(ctx: AwsContext, outputs: dict[str, Any]) -> None:
    ec2 = ctx.client("ec2")
    ignore_missing("delete subnet", lambda: ec2.delete_subnet(SubnetId=outputs["subnet_id"]))
    route_table_id = outputs.get("route_table_id")
    if route_table_id:
        ignore_missing(
            "delete route table",
            lambda: ec2.delete_route_table(RouteTableId=route_table_id),
        )


@guarded("create NAT gateway")
def create_nat_gateway(ctx: AwsContext, config: dict[str, Any]) -> dict[str, Any]:
    """Create a NAT gateway in a public subnet and wait until it is available."""
    ec2 = ctx.client("ec2")
    ctx.reporter("Creating NAT gateway for outbound access (this can take a few minutes)")
    allocation_id = ec2.allocate_address(Domain="vpc")["AllocationId"]
    with committed(f"Elastic IP {allocation_id}", "create the NAT gateway"):
        nat_gateway_id = ec2.create_nat_gateway(
            SubnetId=config["subnet_id"],
            AllocationId=allocation_id,
        )["NatGateway"]["NatGatewayId"]
    with committed(f"NAT gateway {nat_gateway_id}", "wait for it"):
        ctx.tag(nat_gateway_id, config["name"])
        read_back(
            lambda: ec2.get_waiter("nat_gateway_available").wait(NatGatewayIds=[nat_gateway_id])
        )
    return {"nat_gateway_id": nat_gateway_id, "allocation_id": allocation_id}


@guarded("delete NAT gateway")
def delete_nat_gateway(ctx: AwsContext, outputs: dict[str, Any]) -> None:
    ec2 = ctx.client("ec2")
    nat_gateway_id = outputs["nat_gateway_id"]
    ctx.reporter(f"Deleting NAT gateway {nat_gateway_id}")
    ignore_missing(
        "delete NAT gateway",
        lambda: ec2.delete_nat_gateway(NatGatewayId=nat_gateway_id),
    )
    read_back(
        lambda: ec2.get_waiter("nat_gateway_deleted").wait(NatGatewayIds=[nat_gateway_id])
    )
    allocation_id = outputs.get("allocation_id")
    if allocation_id:
        ctx.reporter(f"Releasing Elastic IP {allocation_id}")
        ignore_missing(
            "release Elastic IP",
            lambda: ec2.release_address(AllocationId=allocation_id),
        )


def _availability_zone(ec2: Any, index: int) -> str:
    """Return the availability zone at ``index``, wrapping around."""
    response = read_back(ec2.describe_availability_zones)
    zones = sorted(zone["ZoneName"] for zone in response.get("AvailabilityZones", []))
    if not zones:
        raise ProviderError("No availability zones found for this region.")
    return str(zones[index % len(zones)])


def _route_table(ctx: AwsContext, config: dict[str, Any], subnet_id: str) -> str | None:
    """Create the subnet's route table with a default route, if one is configured."""
    route = config.get("route") or {}
    if not route:
        return None
    ec2 = ctx.client("ec2")
    route_table_id = str(
        ec2.create_route_table(VpcId=config["vpc_id"])["RouteTable"]["RouteTableId"]
    )
    target: dict[str, str] = {}
    if "internet_gateway_id" in route:
        target["GatewayId"] = route["internet_gateway_id"]
    if "nat_gateway_id" in route:
        target["NatGatewayId"] = route["nat_gateway_id"]
    ec2.create_route(
        RouteTableId=route_table_id,
        DestinationCidrBlock="0.0.0.0/0",
        **target,
    )
    ec2.associate_route_table(RouteTableId=route_table_id, SubnetId=subnet_id)
    ctx.tag(route_table_id, f"{config['name']}-rt")
    return route_table_id
