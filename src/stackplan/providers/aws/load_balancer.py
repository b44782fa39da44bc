"""Application load balancer, target group and listener handlers."""

from typing import Any

from stackplan.providers.aws.errors import committed, guarded, ignore_missing, read_back
from stackplan.providers.aws.session import AwsContext


@guarded("create load balancer")
def create_load_balancer(ctx: AwsContext, config: dict[str, Any]) -> dict[str, Any]:
    """Create an application load balancer and wait until it is active."""
    elbv2 = ctx.client("elbv2")
    ctx.reporter(f"Creating load balancer {config['name']}")
    response = elbv2.create_load_balancer(
        Name=config["name"],
        Subnets=config["subnet_ids"],
        SecurityGroups=config["security_group_ids"],
        Scheme="internet-facing" if config.get("internet_facing", True) else "internal",
        Type="application",
        IpAddressType="ipv4",
    )
    balancer = response["LoadBalancers"][0]
    arn = balancer["LoadBalancerArn"]
    with committed(f"Load balancer {config['name']}", "wait for it"):
        read_back(
            lambda: elbv2.get_waiter("load_balancer_available").wait(LoadBalancerArns=[arn])
        )
    return {
        "load_balancer_arn": arn,
        "dns_name": balancer["DNSName"],
    }


@guarded("delete load balancer")
def delete_load_balancer(ctx: AwsContext, outputs: dict[str, Any]) -> None:
    elbv2 = ctx.client("elbv2")
    arn = outputs["load_balancer_arn"]
    ignore_missing("delete load balancer", lambda: elbv2.delete_load_balancer(LoadBalancerArn=arn))
    read_back(lambda: elbv2.get_waiter("load_balancers_deleted").wait(LoadBalancerArns=[arn]))


@guarded("create target group")
def create_target_group(ctx: AwsContext, config: dict[str, Any]) -> dict[str, Any]:
    """Create an IP target group."""
    elbv2 = ctx.client("elbv2")
    response = elbv2.create_target_group(
        Name=config["name"],
        Protocol=config.get("protocol", "HTTP"),
        Port=int(config["port"]),
        VpcId=config["vpc_id"],
        TargetType=config.get("target_type", "ip"),
        HealthCheckPath=config.get("health_check_path", "/"),
    )
    group = response["TargetGroups"][0]
    return {"target_group_arn": group["TargetGroupArn"], "port": group["Port"]}


@guarded("delete target group")
def delete_target_group(ctx: AwsContext, outputs: dict[str, Any]) -> None:
    elbv2 = ctx.client("elbv2")
    ignore_missing(
        "delete target group",
        lambda: elbv2.delete_target_group(TargetGroupArn=outputs["target_group_arn"]),
    )


@guarded("create listener")
def create_listener(ctx: AwsContext, config: dict[str, Any]) -> dict[str, Any]:
    """Create a listener forwarding to the target group."""
    elbv2 = ctx.client("elbv2")
    response = elbv2.create_listener(
        LoadBalancerArn=config["load_balancer_arn"],
        Protocol=config.get("protocol", "HTTP"),
        Port=int(config["port"]),
        DefaultActions=[{"Type": "forward", "TargetGroupArn": config["target_group_arn"]}],
    )
    return {"listener_arn": response["Listeners"][0]["ListenerArn"]}


@guarded("delete listener")
def delete_listener(ctx: AwsContext, outputs: dict[str, Any]) -> None:
    elbv2 = ctx.client("elbv2")
    ignore_missing(
        "delete listener",
        lambda: elbv2.delete_listener(ListenerArn=outputs["listener_arn"]),
    )
