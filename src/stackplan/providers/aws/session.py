"""AWS session helpers."""

from collections.abc import Callable
from typing import Any

import boto3
from botocore.exceptions import ClientError

from stackplan.core.settings import AWSSettings
from stackplan.providers.aws.errors import read_back


def create_session(settings: AWSSettings) -> boto3.session.Session:
    """Create a boto3 session."""
    if settings.profile:
        return boto3.session.Session(
            profile_name=settings.profile,
            region_name=settings.region,
        )

    return boto3.session.Session(region_name=settings.region)


def get_identity(session: boto3.session.Session) -> dict[str, str]:
    """Fetch the current AWS identity."""
    client = session.client("sts")
    try:
        response = client.get_caller_identity()
    except ClientError as exc:
        raise RuntimeError(f"Failed to read AWS identity: {exc}") from exc

    return {
        "Account": str(response.get("Account", "")),
        "Arn": str(response.get("Arn", "")),
        "UserId": str(response.get("UserId", "")),
    }


class AwsContext:
    """A session with cached service clients, shared by every handler."""

    def __init__(
        self,
        session: Any,
        project_name: str,
        reporter: Callable[[str], None],
    ) -> None:
        self.session = session
        self.project_name = project_name
        self.reporter = reporter
        self._clients: dict[str, Any] = {}

    def client(self, service: str) -> Any:
        """Return a cached client for ``service``."""
        if service not in self._clients:
            self._clients[service] = self.session.client(service)
        return self._clients[service]

    def tag(self, resource_id: str, name: str) -> None:
        """Apply a Name tag to an EC2 resource, retrying throttled requests."""
        ec2 = self.client("ec2")
        read_back(
            lambda: ec2.create_tags(
                Resources=[resource_id], Tags=[{"Key": "Name", "Value": name}]
            )
        )
