"""Secrets Manager handlers."""

import json
from typing import Any

from stackplan.providers.aws.errors import guarded, ignore_missing
from stackplan.providers.aws.session import AwsContext


@guarded("create secret")
def create_secret(ctx: AwsContext, config: dict[str, Any]) -> dict[str, Any]:
    """Generate a password and store it with the template fields as a JSON secret."""
    client = ctx.client("secretsmanager")
    generated = client.get_random_password(
        PasswordLength=int(config["password_length"]),
        ExcludeCharacters=config.get("exclude_characters", ""),
        ExcludePunctuation=bool(config.get("exclude_punctuation", True)),
        IncludeSpace=not config.get("exclude_whitespace", True),
        RequireEachIncludedType=True,
    )
    password = generated["RandomPassword"]
    field = config.get("generate_field", "password")
    value = {**config.get("template", {}), field: password}

    ctx.reporter(f"Storing secret {config['name']}")
    response = client.create_secret(Name=config["name"], SecretString=json.dumps(value))
    return {"arn": response["ARN"], "name": config["name"], field: password}


def secret_deleter(force_delete: bool) -> Any:
    """Return a delete handler honouring the recovery window setting."""

    @guarded("delete secret")
    def delete_secret(ctx: AwsContext, outputs: dict[str, Any]) -> None:
        client = ctx.client("secretsmanager")
        ignore_missing(
            "delete secret",
            lambda: client.delete_secret(
                SecretId=outputs["arn"],
                ForceDeleteWithoutRecovery=force_delete,
            ),
        )

    return delete_secret
