"""RDS database handlers."""

from typing import Any

from botocore.exceptions import ClientError

from stackplan.providers.aws.errors import (
    committed,
    error_code,
    guarded,
    ignore_missing,
    read_back,
)
from stackplan.providers.aws.session import AwsContext


@guarded("create database")
def create_database(ctx: AwsContext, config: dict[str, Any]) -> dict[str, Any]:
    """Create a subnet group and a database instance, then wait for its endpoint."""
    rds = ctx.client("rds")
    identifier = config["identifier"]
    subnet_group = f"{identifier}-subnets"

    ctx.reporter(f"Creating database subnet group {subnet_group}")
    try:
        rds.create_db_subnet_group(
            DBSubnetGroupName=subnet_group,
            DBSubnetGroupDescription=f"Isolated subnets for {identifier}",
            SubnetIds=config["subnet_ids"],
        )
    except ClientError as exc:
        # A retried create finds the group from the earlier attempt.
        if error_code(exc) != "DBSubnetGroupAlreadyExists":
            raise

    ctx.reporter(f"Creating database {identifier} (this can take several minutes)")
    rds.create_db_instance(
        DBInstanceIdentifier=identifier,
        DBName=config["database_name"],
        Engine=config["engine"],
        DBInstanceClass=config["instance_class"],
        AllocatedStorage=int(config["allocated_storage"]),
        MasterUsername=config["master_username"],
        MasterUserPassword=config["master_password"],
        VpcSecurityGroupIds=config["security_group_ids"],
        DBSubnetGroupName=subnet_group,
        Port=int(config["port"]),
        PubliclyAccessible=False,
    )
    with committed(f"Database {identifier}", "read its endpoint"):
        read_back(
            lambda: rds.get_waiter("db_instance_available").wait(DBInstanceIdentifier=identifier)
        )
        response = read_back(lambda: rds.describe_db_instances(DBInstanceIdentifier=identifier))
    instance = response["DBInstances"][0]
    return {
        "db_instance_identifier": identifier,
        "arn": instance["DBInstanceArn"],
        "endpoint_address": instance["Endpoint"]["Address"],
        "endpoint_port": instance["Endpoint"]["Port"],
        "subnet_group_name": subnet_group,
    }


@guarded("delete database")
def delete_database(ctx: AwsContext, outputs: dict[str, Any]) -> None:
    rds = ctx.client("rds")
    identifier = outputs["db_instance_identifier"]
    ctx.reporter(f"Deleting database {identifier}")
    ignore_missing(
        "delete database",
        lambda: rds.delete_db_instance(
            DBInstanceIdentifier=identifier,
            SkipFinalSnapshot=True,
            DeleteAutomatedBackups=True,
        ),
    )
    read_back(
        lambda: rds.get_waiter("db_instance_deleted").wait(DBInstanceIdentifier=identifier)
    )
    subnet_group = outputs.get("subnet_group_name")
    if subnet_group:
        ignore_missing(
            "delete database subnet group",
            lambda: rds.delete_db_subnet_group(DBSubnetGroupName=subnet_group),
        )
