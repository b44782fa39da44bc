"""ECR repository handlers."""

from typing import Any

from botocore.exceptions import ClientError

from stackplan.providers.aws.errors import error_code, guarded, ignore_missing
from stackplan.providers.aws.session import AwsContext


@guarded("create ECR repository")
def create_repository(ctx: AwsContext, config: dict[str, Any]) -> dict[str, Any]:
    """Ensure an ECR repository exists and return its URI."""
    ecr = ctx.client("ecr")
    name = config["name"]
    try:
        response = ecr.describe_repositories(repositoryNames=[name])
        repository = response["repositories"][0]
    except ClientError as exc:
        if error_code(exc) != "RepositoryNotFoundException":
            raise
        ctx.reporter(f"Creating ECR repository {name}")
        repository = ecr.create_repository(
            repositoryName=name,
            imageScanningConfiguration={"scanOnPush": bool(config.get("scan_on_push", True))},
        )["repository"]
    return {"repository_name": name, "repository_uri": repository["repositoryUri"]}


@guarded("delete ECR repository")
def delete_repository(ctx: AwsContext, outputs: dict[str, Any]) -> None:
    ecr = ctx.client("ecr")
    ignore_missing(
        "delete ECR repository",
        lambda: ecr.delete_repository(repositoryName=outputs["repository_name"], force=True),
    )
