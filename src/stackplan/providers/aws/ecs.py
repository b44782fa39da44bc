"""ECS cluster, capacity, task definition and service handlers."""

import base64
from typing import Any, cast

from botocore.exceptions import ClientError

from stackplan.core.errors import ProviderError
from stackplan.providers.aws.errors import (
    committed,
    error_code,
    guarded,
    ignore_missing,
    poll_until,
    read_back,
)
from stackplan.providers.aws.iam import delete_role, ensure_execution_role, ensure_instance_profile
from stackplan.providers.aws.session import AwsContext

ECS_AMI_PARAMETERS = {
    "amazon-linux-2": "/aws/service/ecs/optimized-ami/amazon-linux-2/recommended/image_id",
    "amazon-linux-2023": "/aws/service/ecs/optimized-ami/amazon-linux-2023/recommended/image_id",
}

ASG_DELETE_POLL_ATTEMPTS = 60
ASG_DELETE_POLL_SECONDS = 10.0


@guarded("create ECS cluster")
def create_cluster(ctx: AwsContext, config: dict[str, Any]) -> dict[str, Any]:
    """Ensure an ECS cluster exists."""
    ecs = ctx.client("ecs")
    name = config["name"]
    response = read_back(lambda: ecs.describe_clusters(clusters=[name]))
    clusters = response.get("clusters", [])
    if clusters:
        cluster = clusters[0]
        status = str(cluster.get("status", ""))
        if status == "ACTIVE":
            return {"cluster_name": name, "cluster_arn": cluster["clusterArn"]}
        if status != "INACTIVE":
            raise ProviderError(
                f"ECS cluster {name} is in unexpected status {status} and cannot be used."
            )

    # If the cluster does not exist or is inactive, create it.
    ctx.reporter(f"Creating ECS cluster {name}")
    response = ecs.create_cluster(clusterName=name)
    return {"cluster_name": name, "cluster_arn": response["cluster"]["clusterArn"]}


@guarded("delete ECS cluster")
def delete_cluster(ctx: AwsContext, outputs: dict[str, Any]) -> None:
    ecs = ctx.client("ecs")
    ignore_missing(
        "delete ECS cluster",
        lambda: ecs.delete_cluster(cluster=outputs["cluster_name"]),
    )


@guarded("create cluster capacity")
def create_capacity(ctx: AwsContext, config: dict[str, Any]) -> dict[str, Any]:
    """Create an auto scaling group of ECS container instances, optionally on spot."""
    cluster_name = config["cluster_name"]
    name = config["name"]
    profile_arn = ensure_instance_profile(ctx, f"{name}-instance")
    image_id = _ecs_image_id(ctx, config.get("machine_image", "amazon-linux-2"))

    user_data = [
        "#!/bin/bash",
        f"echo ECS_CLUSTER={cluster_name} >> /etc/ecs/ecs.config",
    ]
    if config.get("spot_instance_draining"):
        user_data.append("echo ECS_ENABLE_SPOT_INSTANCE_DRAINING=true >> /etc/ecs/ecs.config")

    template: dict[str, Any] = {
        "ImageId": image_id,
        "InstanceType": config["instance_type"],
        "IamInstanceProfile": {"Arn": profile_arn},
        "SecurityGroupIds": config.get("security_group_ids", []),
        "UserData": base64.b64encode("\n".join(user_data).encode("utf-8")).decode("ascii"),
    }
    if config.get("spot_price"):
        template["InstanceMarketOptions"] = {
            "MarketType": "spot",
            "SpotOptions": {"MaxPrice": str(config["spot_price"])},
        }

    ec2 = ctx.client("ec2")
    ctx.reporter(f"Creating launch template {name}")
    launch_template_id = ec2.create_launch_template(
        LaunchTemplateName=name,
        LaunchTemplateData=template,
    )["LaunchTemplate"]["LaunchTemplateId"]

    autoscaling = ctx.client("autoscaling")
    ctx.reporter(f"Creating auto scaling group {name}")
    with committed(f"Launch template {launch_template_id}", "create the auto scaling group"):
        autoscaling.create_auto_scaling_group(
            AutoScalingGroupName=name,
            LaunchTemplate={"LaunchTemplateId": launch_template_id, "Version": "$Latest"},
            MinSize=int(config["min_capacity"]),
            MaxSize=int(config["max_capacity"]),
            VPCZoneIdentifier=",".join(config["subnet_ids"]),
        )
    return {
        "auto_scaling_group_name": name,
        "launch_template_id": launch_template_id,
        "instance_role_name": f"{name}-instance",
    }


@guarded("delete cluster capacity")
def delete_capacity(ctx: AwsContext, outputs: dict[str, Any]) -> None:
    """Delete the auto scaling group and wait until its instances are gone."""
    autoscaling = ctx.client("autoscaling")
    name = outputs["auto_scaling_group_name"]

    def group_exists() -> bool:
        response = read_back(
            lambda: autoscaling.describe_auto_scaling_groups(AutoScalingGroupNames=[name])
        )
        return bool(response.get("AutoScalingGroups"))

    if group_exists():
        ctx.reporter(f"Deleting auto scaling group {name}")
        ignore_missing(
            "delete auto scaling group",
            lambda: autoscaling.delete_auto_scaling_group(
                AutoScalingGroupName=name, ForceDelete=True
            ),
        )
        ctx.reporter(f"Waiting for the instances of {name} to terminate")
        gone = poll_until(
            lambda: not group_exists(),
            attempts=ASG_DELETE_POLL_ATTEMPTS,
            delay=ASG_DELETE_POLL_SECONDS,
        )
        if not gone:
            raise ProviderError(
                f"Auto scaling group {name} was still deleting after "
                f"{ASG_DELETE_POLL_ATTEMPTS * ASG_DELETE_POLL_SECONDS:.0f} seconds.",
                transient=True,
            )

    ec2 = ctx.client("ec2")
    ignore_missing(
        "delete launch template",
        lambda: ec2.delete_launch_template(LaunchTemplateId=outputs["launch_template_id"]),
    )
    delete_role(ctx, outputs["instance_role_name"], instance_profile=True)


def ensure_log_group(ctx: AwsContext, log_group_name: str) -> None:
    """Ensure a CloudWatch log group exists."""
    logs = ctx.client("logs")
    try:
        logs.create_log_group(logGroupName=log_group_name)
    except ClientError as exc:
        if error_code(exc) != "ResourceAlreadyExistsException":
            raise


@guarded("register task definition")
def register_task_definition(ctx: AwsContext, config: dict[str, Any]) -> dict[str, Any]:
    """Register an EC2 task definition with one container."""
    secrets = config.get("secrets") or {}
    secret_arns = sorted({str(ref["arn"]) for ref in secrets.values()})
    execution_role = f"{config['family']}-task-execution"
    exec_role_arn = ensure_execution_role(ctx, execution_role, secret_arns)

    container: dict[str, Any] = {
        "name": config["container_name"],
        "image": _image(config),
        "essential": True,
        "cpu": int(config["cpu"]),
        "memory": int(config["memory"]),
        "portMappings": [
            {
                "containerPort": int(config["container_port"]),
                "hostPort": int(config.get("host_port") or config["container_port"]),
                "protocol": config.get("protocol", "tcp"),
            }
        ],
        "environment": [
            {"name": key, "value": str(value)}
            for key, value in (config.get("environment") or {}).items()
        ],
        "secrets": [
            {"name": key, "valueFrom": f"{ref['arn']}:{ref['key']}::"}
            for key, ref in secrets.items()
        ],
    }
    log_group = config.get("log_group")
    if log_group:
        ensure_log_group(ctx, log_group)
        container["logConfiguration"] = {
            "logDriver": "awslogs",
            "options": {
                "awslogs-group": log_group,
                "awslogs-region": ctx.session.region_name,
                "awslogs-stream-prefix": config["container_name"],
            },
        }

    ecs = ctx.client("ecs")
    ctx.reporter(f"Registering task definition {config['family']}")
    response = ecs.register_task_definition(
        family=config["family"],
        networkMode=config.get("network_mode", "awsvpc"),
        requiresCompatibilities=["EC2"],
        executionRoleArn=exec_role_arn,
        containerDefinitions=[container],
    )
    return {
        "task_definition_arn": cast(str, response["taskDefinition"]["taskDefinitionArn"]),
        "execution_role_name": execution_role,
        "log_group": log_group,
    }


@guarded("deregister task definition")
def deregister_task_definition(ctx: AwsContext, outputs: dict[str, Any]) -> None:
    ecs = ctx.client("ecs")
    ecs.deregister_task_definition(taskDefinition=outputs["task_definition_arn"])
    delete_role(ctx, outputs["execution_role_name"])
    log_group = outputs.get("log_group")
    if log_group:
        logs = ctx.client("logs")
        ignore_missing(
            "delete log group",
            lambda: logs.delete_log_group(logGroupName=log_group),
        )


@guarded("create ECS service")
def create_service(ctx: AwsContext, config: dict[str, Any]) -> dict[str, Any]:
    """Create an EC2 service in private subnets."""
    ecs = ctx.client("ecs")
    ctx.reporter(f"Creating ECS service {config['name']}")
    response = ecs.create_service(
        cluster=config["cluster_arn"],
        serviceName=config["name"],
        taskDefinition=config["task_definition_arn"],
        desiredCount=int(config.get("desired_count", 1)),
        launchType="EC2",
        networkConfiguration={
            "awsvpcConfiguration": {
                "subnets": config["subnet_ids"],
                "securityGroups": config["security_group_ids"],
                "assignPublicIp": "DISABLED",
            }
        },
    )
    service = response["service"]
    return {
        "service_name": service["serviceName"],
        "service_arn": service["serviceArn"],
        "cluster_name": config["cluster_name"],
    }


@guarded("delete ECS service")
def delete_service(ctx: AwsContext, outputs: dict[str, Any]) -> None:
    ecs = ctx.client("ecs")
    cluster = outputs["cluster_name"]
    service = outputs["service_name"]
    ignore_missing(
        "scale down ECS service",
        lambda: ecs.update_service(cluster=cluster, service=service, desiredCount=0),
    )
    ignore_missing(
        "delete ECS service",
        lambda: ecs.delete_service(cluster=cluster, service=service, force=True),
    )
    read_back(
        lambda: ecs.get_waiter("services_inactive").wait(cluster=cluster, services=[service])
    )


@guarded("attach service to target group")
def attach_target_group(ctx: AwsContext, config: dict[str, Any]) -> dict[str, Any]:
    """Register the service's container with the target group."""
    ecs = ctx.client("ecs")
    ctx.reporter(f"Attaching {config['service_name']} to target group")
    ecs.update_service(
        cluster=config["cluster_name"],
        service=config["service_name"],
        loadBalancers=[
            {
                "targetGroupArn": config["target_group_arn"],
                "containerName": config["container_name"],
                "containerPort": int(config["container_port"]),
            }
        ],
    )
    return {
        "cluster_name": config["cluster_name"],
        "service_name": config["service_name"],
        "target_group_arn": config["target_group_arn"],
    }


@guarded("detach service from target group")
def detach_target_group(ctx: AwsContext, outputs: dict[str, Any]) -> None:
    ecs = ctx.client("ecs")
    ignore_missing(
        "detach service from target group",
        lambda: ecs.update_service(
            cluster=outputs["cluster_name"],
            service=outputs["service_name"],
            loadBalancers=[],
        ),
    )


def _ecs_image_id(ctx: AwsContext, machine_image: str) -> str:
    """Look up the recommended ECS-optimized AMI."""
    parameter = ECS_AMI_PARAMETERS.get(machine_image)
    if parameter is None:
        raise ProviderError(
            f"Unsupported machine image '{machine_image}'. "
            f"Use one of: {', '.join(sorted(ECS_AMI_PARAMETERS))}."
        )
    ssm = ctx.client("ssm")
    response = read_back(lambda: ssm.get_parameter(Name=parameter))
    return str(response["Parameter"]["Value"])


def _image(config: dict[str, Any]) -> str:
    """Return the container image, tagged when the config carries a tag."""
    image = str(config["image"])
    tag = config.get("image_tag")
    return f"{image}:{tag}" if tag else image
