"""IAM role helpers for task execution and container instances."""

import json
from typing import Any, cast

from botocore.exceptions import ClientError

from stackplan.providers.aws.errors import ignore_missing, is_not_found, to_provider_error
from stackplan.providers.aws.session import AwsContext

TASK_EXECUTION_POLICY = "arn:aws:iam::aws:policy/service-role/AmazonECSTaskExecutionRolePolicy"
CONTAINER_INSTANCE_POLICY = (
    "arn:aws:iam::aws:policy/service-role/AmazonEC2ContainerServiceforEC2Role"
)


def ensure_execution_role(ctx: AwsContext, role_name: str, secret_arns: list[str]) -> str:
    """Ensure the task execution role exists and can read the given secrets."""
    iam = ctx.client("iam")
    ctx.reporter("Ensuring task execution role")
    role_arn = _ensure_role(iam, role_name, _trust_policy("ecs-tasks.amazonaws.com"))
    _attach_managed_policy(iam, role_name, TASK_EXECUTION_POLICY)
    if secret_arns:
        _put_inline_policy(iam, role_name, f"{role_name}-secrets", _secrets_policy(secret_arns))
    return role_arn


def ensure_instance_profile(ctx: AwsContext, role_name: str) -> str:
    """Ensure a container instance role wrapped in an instance profile and return its ARN."""
    iam = ctx.client("iam")
    ctx.reporter("Ensuring container instance role")
    _ensure_role(iam, role_name, _trust_policy("ec2.amazonaws.com"))
    _attach_managed_policy(iam, role_name, CONTAINER_INSTANCE_POLICY)

    try:
        response = iam.get_instance_profile(InstanceProfileName=role_name)
        profile = response["InstanceProfile"]
    except ClientError as exc:
        if not is_not_found(exc):
            raise to_provider_error(f"read instance profile {role_name}", exc) from exc
        profile = iam.create_instance_profile(InstanceProfileName=role_name)["InstanceProfile"]

    if not any(role["RoleName"] == role_name for role in profile.get("Roles", [])):
        iam.add_role_to_instance_profile(InstanceProfileName=role_name, RoleName=role_name)
    return cast(str, profile["Arn"])


def delete_role(ctx: AwsContext, role_name: str, instance_profile: bool = False) -> None:
    """Detach policies and delete a role, and its instance profile when asked."""
    iam = ctx.client("iam")
    ctx.reporter(f"Removing IAM role {role_name}")
    if instance_profile:
        ignore_missing(
            "remove role from instance profile",
            lambda: iam.remove_role_from_instance_profile(
                InstanceProfileName=role_name, RoleName=role_name
            ),
        )
        ignore_missing(
            "delete instance profile",
            lambda: iam.delete_instance_profile(InstanceProfileName=role_name),
        )

    try:
        attached = iam.list_attached_role_policies(RoleName=role_name)
        inline = iam.list_role_policies(RoleName=role_name)
    except ClientError as exc:
        if is_not_found(exc):
            return
        raise to_provider_error(f"list policies for {role_name}", exc) from exc

    for policy in attached.get("AttachedPolicies", []):
        iam.detach_role_policy(RoleName=role_name, PolicyArn=policy["PolicyArn"])
    for policy_name in inline.get("PolicyNames", []):
        iam.delete_role_policy(RoleName=role_name, PolicyName=policy_name)
    ignore_missing("delete role", lambda: iam.delete_role(RoleName=role_name))


def _ensure_role(iam: Any, role_name: str, trust_policy: dict[str, Any]) -> str:
    """Create a role if needed and return its ARN."""
    try:
        response = iam.get_role(RoleName=role_name)
        return cast(str, response["Role"]["Arn"])
    except ClientError as exc:
        if not is_not_found(exc):
            raise to_provider_error(f"read role {role_name}", exc) from exc

    response = iam.create_role(
        RoleName=role_name,
        AssumeRolePolicyDocument=json.dumps(trust_policy),
    )
    return cast(str, response["Role"]["Arn"])


def _attach_managed_policy(iam: Any, role_name: str, policy_arn: str) -> None:
    """Attach a managed policy if it is missing."""
    response = iam.list_attached_role_policies(RoleName=role_name)
    attached = {policy["PolicyArn"] for policy in response.get("AttachedPolicies", [])}
    if policy_arn in attached:
        return
    iam.attach_role_policy(RoleName=role_name, PolicyArn=policy_arn)


def _put_inline_policy(
    iam: Any,
    role_name: str,
    policy_name: str,
    policy_doc: dict[str, Any],
) -> None:
    """Attach or update an inline policy."""
    iam.put_role_policy(
        RoleName=role_name,
        PolicyName=policy_name,
        PolicyDocument=json.dumps(policy_doc),
    )


def _trust_policy(service: str) -> dict[str, Any]:
    """Return a trust policy letting ``service`` assume the role."""
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {"Service": service},
                "Action": "sts:AssumeRole",
            }
        ],
    }


def _secrets_policy(secret_arns: list[str]) -> dict[str, Any]:
    """Allow read access to Secrets Manager."""
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Action": ["secretsmanager:GetSecretValue"],
                "Resource": secret_arns,
            }
        ],
    }
