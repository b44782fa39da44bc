"""Error rendering for CLI commands."""

from botocore.exceptions import (
    ClientError,
    EndpointConnectionError,
    NoCredentialsError,
    ProfileNotFound,
)

from stackplan.cli.ui import console
from stackplan.core.errors import (
    CycleDetectedError,
    DestroyError,
    SynthesisAborted,
    SynthesisError,
    UnresolvedDependencyError,
)

AUTH_ERROR_CODES = frozenset(
    {
        "ExpiredToken",
        "ExpiredTokenException",
        # spellchecker:ignore-next-line
        "UnrecognizedClientException",
        "InvalidClientTokenId",
        "InvalidSignatureException",
        "AccessDenied",
        "AccessDeniedException",
    }
)


def report_error(exc: Exception) -> None:
    """Render a failed command with actionable guidance.

    Args:
        exc: Raised exception from a CLI command.
    """
    if is_aws_auth_error(exc):
        console.print(
            "[red]AWS authentication failed. Your credentials are missing, invalid, "
            "or expired.[/red]"
        )
        console.print(
            "[dim]If using AWS profile/SSO, run: aws sso login --profile <profile>. "
            "If using temporary keys, refresh AWS_SESSION_TOKEN and retry.[/dim]"
        )
        return

    if is_aws_endpoint_error(exc):
        console.print("[red]Could not reach AWS endpoint from this environment.[/red]")
        console.print("[dim]Check network connectivity and AWS region configuration.[/dim]")
        return

    if isinstance(exc, CycleDetectedError):
        console.print(f"[red]{exc}[/red]")
        console.print("[dim]Remove one of the listed dependencies and plan again.[/dim]")
        return

    if isinstance(exc, (SynthesisError, SynthesisAborted, UnresolvedDependencyError)):
        console.print(f"[red]{exc}[/red]")
        if exc.synthesized:
            console.print(
                "[dim]Created resources are kept. Run `stackplan destroy` to remove them.[/dim]"
            )
        return

    if isinstance(exc, DestroyError):
        console.print(f"[red]{exc}[/red]")
        console.print("[dim]Remaining resources stay in the state file. Retry destroy.[/dim]")
        return

    console.print(f"[red]Command failed: {exc}[/red]")


def is_aws_auth_error(exc: Exception) -> bool:
    """Return true when an exception chain indicates AWS auth issues.

    Args:
        exc: Raised exception from a CLI command.

    Returns:
        True when the chain contains an auth-related error.
    """
    for item in exception_chain(exc):
        if isinstance(item, (NoCredentialsError, ProfileNotFound)):
            return True
        if isinstance(item, ClientError):
            code = str(item.response.get("Error", {}).get("Code", ""))
            if code in AUTH_ERROR_CODES:
                return True
        text = str(item)
        if "security token included in the request is expired" in text.lower():
            return True
    return False


def is_aws_endpoint_error(exc: Exception) -> bool:
    """Return true when an exception chain indicates endpoint/network errors."""
    return any(isinstance(item, EndpointConnectionError) for item in exception_chain(exc))


def exception_chain(exc: BaseException) -> list[BaseException]:
    """Return exceptions in cause/context chain.

    Args:
        exc: Root exception.

    Returns:
        Ordered exception chain from root to cause/context.
    """
    chain: list[BaseException] = []
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        chain.append(current)
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return chain
