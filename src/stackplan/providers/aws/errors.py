"""Classification of botocore errors into provider errors."""

import functools
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, ParamSpec, TypeVar

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    WaiterError,
)
from tenacity import (
    Retrying,
    retry_if_exception,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)

from stackplan.core.errors import ProviderError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

# Requests rejected with these codes never took effect.
TRANSIENT_CODES = {
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "TooManyRequestsException",
    "RequestThrottled",
    "ServiceUnavailable",
    "ServiceUnavailableException",
    "PriorRequestNotComplete",
}

NOT_FOUND_CODES = {
    "ClusterNotFoundException",
    "DBInstanceNotFound",
    "DBSubnetGroupNotFoundFault",
    "InvalidLaunchTemplateId.NotFound",
    "InvalidLaunchTemplateName.NotFoundException",
    "InvalidAllocationID.NotFound",
    "InvalidGroup.NotFound",
    "InvalidInternetGatewayID.NotFound",
    "InvalidNatGatewayID.NotFound",
    "InvalidPermission.NotFound",
    "InvalidRouteTableID.NotFound",
    "InvalidSubnetID.NotFound",
    "InvalidVpcID.NotFound",
    "ListenerNotFound",
    "LoadBalancerNotFound",
    "NoSuchEntity",
    "RepositoryNotFoundException",
    "ResourceNotFoundException",
    "ServiceNotFoundException",
    "TargetGroupNotFound",
}


def error_code(exc: BaseException) -> str | None:
    """Return the AWS error code of a ClientError."""
    if isinstance(exc, ClientError):
        return str(exc.response.get("Error", {}).get("Code", "")) or None
    return None


def is_not_found(exc: BaseException) -> bool:
    return error_code(exc) in NOT_FOUND_CODES


def is_transient(exc: BaseException) -> bool:
    """Return true when the request failed before it could take effect."""
    if isinstance(exc, (EndpointConnectionError, ConnectTimeoutError)):
        return True
    return error_code(exc) in TRANSIENT_CODES


def to_provider_error(action: str, exc: Exception) -> ProviderError:
    """Wrap a botocore error, keeping its transient classification."""
    return ProviderError(
        f"Failed to {action}: {exc}",
        transient=is_transient(exc),
        code=error_code(exc),
    )


def guarded(action: str) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Convert botocore failures of a handler into ``ProviderError``."""

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except ProviderError:
                raise
            except (ClientError, BotoCoreError) as exc:
                raise to_provider_error(action, exc) from exc

        return wrapper

    return decorator


def read_back(call: Callable[[], T], attempts: int = 5) -> T:
    """Run an idempotent read (describe call or waiter), retrying transient failures."""

    def retryable(exc: BaseException) -> bool:
        if isinstance(exc, WaiterError):
            last = getattr(exc, "last_response", None) or {}
            code = str(last.get("Error", {}).get("Code", ""))
            return code in TRANSIENT_CODES
        return is_transient(exc)

    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception(retryable),
        reraise=True,
    )
    return retrying(call)


def ignore_missing(action: str, call: Callable[[], Any]) -> None:
    """Run a delete call, treating an already-missing resource as deleted."""
    try:
        call()
    except ClientError as exc:
        if is_not_found(exc):
            logger.info("Skipping %s: resource already gone", action)
            return
        raise to_provider_error(action, exc) from exc
    except BotoCoreError as exc:
        raise to_provider_error(action, exc) from exc


@contextmanager
def committed(resource_ref: str, action: str) -> Iterator[None]:
    """Run the follow-up calls of a handler whose create call already took effect.

    Any failure is raised as a permanent ``ProviderError`` naming the created
    resource, so the synthesizer never repeats the create.
    """
    try:
        yield
    except ProviderError as exc:
        if not exc.transient:
            raise
        raise ProviderError(
            f"{resource_ref} was created but could not {action}: {exc}",
            code=exc.code,
        ) from exc
    except (ClientError, BotoCoreError) as exc:
        raise ProviderError(
            f"{resource_ref} was created but could not {action}: {exc}",
            code=error_code(exc),
        ) from exc


def poll_until(condition: Callable[[], bool], attempts: int, delay: float) -> bool:
    """Call ``condition`` until it returns true or the attempts run out.

    Returns:
        The last value of ``condition``.
    """
    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(delay),
        retry=retry_if_result(lambda done: not done),
        retry_error_callback=lambda retry_state: retry_state.outcome.result(),
    )
    return bool(retrying(condition))
