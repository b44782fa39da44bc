"""Runtime settings for stackplan."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from stackplan.config.paths import env_path, state_path

ENV_FILE_PATH = str(env_path())


class AWSSettings(BaseSettings):
    """AWS account access."""

    model_config = SettingsConfigDict(
        env_prefix="STACKPLAN_AWS_", env_file=ENV_FILE_PATH, extra="ignore"
    )

    region: str = Field(default="ap-northeast-1", description="AWS region")
    profile: str | None = Field(default=None, description="Named AWS profile")


class NetworkSettings(BaseSettings):
    """Address plan and reachability ports."""

    model_config = SettingsConfigDict(
        env_prefix="STACKPLAN_NETWORK_", env_file=ENV_FILE_PATH, extra="ignore"
    )

    cidr: str = Field(default="10.0.0.0/16", description="VPC address block")
    subnet_prefix: int = Field(default=24, ge=16, le=28, description="Subnet prefix length")
    max_azs: int = Field(default=2, ge=1, le=6, description="Availability zones to span")
    load_balancer_port: int = Field(default=80, description="Public listener port")
    database_port: int = Field(default=5432, description="Database port")


class ServiceSettings(BaseSettings):
    """Container service, cluster capacity and database sizing."""

    model_config = SettingsConfigDict(
        env_prefix="STACKPLAN_SERVICE_", env_file=ENV_FILE_PATH, extra="ignore"
    )

    project_name: str = "ecs-deploy-sample"
    app_port: int = Field(default=80, description="Container and target group port")
    container_image: str = "amazon/amazon-ecs-sample"
    use_registry: bool = Field(
        default=False,
        description="Run the image pushed to the stack's own registry instead of container_image",
    )
    image_tag: str = "latest"
    container_cpu: int = 256
    container_memory: int = 256
    desired_count: int = 1

    instance_type: str = "t2.small"
    spot_price: str = "1.0"
    spot_instance_draining: bool = True
    min_capacity: int = 1
    max_capacity: int = 2

    database_engine: str = "postgres"
    database_instance_class: str = "db.t3.micro"
    database_name: str = "app"
    database_username: str = "postgres"
    database_storage_gb: int = 20


class RetrySettings(BaseSettings):
    """Bounded retry for transient provider errors."""

    model_config = SettingsConfigDict(
        env_prefix="STACKPLAN_RETRY_", env_file=ENV_FILE_PATH, extra="ignore"
    )

    attempts: int = Field(default=3, ge=1, description="Attempts per resource")
    wait_seconds: float = Field(default=2.0, ge=0, description="Fixed backoff between attempts")


class StackPlanSettings(BaseSettings):
    """Main configuration."""

    model_config = SettingsConfigDict(
        env_prefix="STACKPLAN_",
        env_file=ENV_FILE_PATH,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    state_file: Path = Field(default_factory=state_path, description="Plan state snapshot")

    aws: AWSSettings
    network: NetworkSettings
    service: ServiceSettings
    retry: RetrySettings


def get_settings() -> StackPlanSettings:
    """Load and return the configuration.

    The sub-configs are populated from the environment and the user env file
    by pydantic-settings.
    """
    return StackPlanSettings(
        aws=AWSSettings(),
        network=NetworkSettings(),
        service=ServiceSettings(),
        retry=RetrySettings(),
    )
