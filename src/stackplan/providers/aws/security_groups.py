"""Security group and ingress rule handlers."""

from typing import Any

from stackplan.providers.aws.errors import committed, guarded, ignore_missing
from stackplan.providers.aws.session import AwsContext


@guarded("create security group")
def create_security_group(ctx: AwsContext, config: dict[str, Any]) -> dict[str, Any]:
    """Create a security group with default outbound access."""
    ec2 = ctx.client("ec2")
    response = ec2.create_security_group(
        VpcId=config["vpc_id"],
        GroupName=config["name"],
        Description=config["description"],
    )

    group_id = response["GroupId"]
    with committed(f"Security group {group_id}", "tag it"):
        ctx.tag(group_id, config["name"])
    return {"group_id": group_id, "name": config["name"]}


@guarded("delete security group")
def delete_security_group(ctx: AwsContext, outputs: dict[str, Any]) -> None:
    ec2 = ctx.client("ec2")
    ignore_missing(
        "delete security group",
        lambda: ec2.delete_security_group(GroupId=outputs["group_id"]),
    )


@guarded("authorize ingress")
def create_ingress_rule(ctx: AwsContext, config: dict[str, Any]) -> dict[str, Any]:
    """Authorize ingress from a CIDR block or another security group."""
    ec2 = ctx.client("ec2")
    permission: dict[str, Any] = {
        "IpProtocol": config.get("protocol", "tcp"),
        "FromPort": int(config["port"]),
        "ToPort": int(config["port"]),
    }
    description = config.get("description") or ""
    if config.get("source_group_id"):
        permission["UserIdGroupPairs"] = [
            {"GroupId": config["source_group_id"], "Description": description}
        ]
    else:
        permission["IpRanges"] = [{"CidrIp": config["cidr"], "Description": description}]

    response = ec2.authorize_security_group_ingress(
        GroupId=config["group_id"],
        IpPermissions=[permission],
    )
    rules = response.get("SecurityGroupRules", [])
    return {
        "group_id": config["group_id"],
        "rule_id": rules[0]["SecurityGroupRuleId"] if rules else None,
    }


@guarded("revoke ingress")
def delete_ingress_rule(ctx: AwsContext, outputs: dict[str, Any]) -> None:
    rule_id = outputs.get("rule_id")
    if not rule_id:
        return
    ec2 = ctx.client("ec2")
    ignore_missing(
        "revoke ingress",
        lambda: ec2.revoke_security_group_ingress(
            GroupId=outputs["group_id"], SecurityGroupRuleIds=[rule_id]
        ),
    )
