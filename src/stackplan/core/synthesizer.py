"""Materializes a dependency graph against a provider."""

import logging
from collections import Counter
from collections.abc import Callable
from functools import partial
from typing import Any, NoReturn, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from stackplan.core.attributes import Deferred, resolve
from stackplan.core.errors import (
    DestroyError,
    ProviderError,
    SynthesisAborted,
    SynthesisError,
    UnresolvedDependencyError,
)
from stackplan.core.graph import DependencyGraph
from stackplan.core.resources import Resource
from stackplan.core.settings import RetrySettings
from stackplan.core.state import PlanState
from stackplan.providers.base import Provider

logger = logging.getLogger(__name__)

T = TypeVar("T")

Outputs = dict[str, dict[str, Any]]


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, ProviderError) and exc.transient


def _noop(_: str) -> None:
    return None


class Synthesizer:
    """Walks a graph in topological order and creates each resource once.

    Created resources are never rolled back. A fatal error stops the walk and
    reports the failing id together with the ids already created, so the
    caller can destroy them explicitly.
    """

    def __init__(
        self,
        provider: Provider,
        retry: RetrySettings | None = None,
        reporter: Callable[[str], None] | None = None,
    ) -> None:
        self.provider = provider
        self.retry = retry or RetrySettings()
        self.reporter = reporter or _noop
        self.attempts: Counter[str] = Counter()

    def synthesize(
        self,
        graph: DependencyGraph,
        state: PlanState | None = None,
        should_continue: Callable[[], bool] | None = None,
        checkpoint: Callable[[PlanState], None] | None = None,
    ) -> Outputs:
        """Create every resource in the graph.

        Args:
            graph: The declared resources.
            state: Snapshot updated after every created resource.
            should_continue: Consulted before each resource; returning False aborts.
            checkpoint: Called with ``state`` after every created resource.

        Returns:
            Outputs keyed by resource id.

        Raises:
            UnknownResourceError: If the graph references an undeclared id.
            CycleDetectedError: If the graph has no valid order.
            UnresolvedDependencyError: If a source produced no value for a field.
            SynthesisAborted: If ``should_continue`` returned False.
            SynthesisError: If the provider failed for a resource.
        """
        order = graph.topological_order()
        self.attempts.clear()
        outputs: Outputs = {}
        synthesized: list[str] = []
        logger.info("Synthesizing %d resources", len(order))

        for resource_id in order:
            if should_continue is not None and not should_continue():
                logger.warning("Synthesis aborted before %s", resource_id)
                raise SynthesisAborted(resource_id, synthesized)

            node = graph.get(resource_id)
            config = self.resolve_config(node, outputs, synthesized)
            self.reporter(f"Creating {node.kind} {resource_id}")
            try:
                created = self._with_retry(
                    resource_id, partial(self.provider.create, str(node.kind), config)
                )
            except ProviderError as exc:
                logger.error(
                    "Creating %s failed (%s): %s", resource_id, exc.classification, exc
                )
                raise SynthesisError(resource_id, synthesized, exc) from exc

            outputs[resource_id] = dict(created)
            synthesized.append(resource_id)
            logger.info("Created %s %s", node.kind, resource_id)
            if state is not None:
                state.record(resource_id, str(node.kind), config, outputs[resource_id])
                if checkpoint is not None:
                    checkpoint(state)

        self.reporter(f"Synthesized {len(synthesized)} resources")
        return outputs

    def resolve_config(
        self,
        node: Resource,
        outputs: Outputs,
        synthesized: list[str] | None = None,
    ) -> dict[str, Any]:
        """Return the node's config with every attribute replaced by its value.

        Raises:
            UnresolvedDependencyError: If a deferred source has no recorded value.
        """

        def missing(ref: Deferred) -> NoReturn:
            raise UnresolvedDependencyError(node.id, ref.source_id, ref.field, synthesized or [])

        resolved: dict[str, Any] = resolve(node.config, outputs, missing)
        return resolved

    def destroy(
        self,
        state: PlanState,
        checkpoint: Callable[[PlanState], None] | None = None,
    ) -> list[str]:
        """Delete recorded resources in reverse creation order.

        Every resource is attempted; destroyed entries are removed from
        ``state`` as they go.

        Returns:
            The destroyed resource ids, in destroy order.

        Raises:
            DestroyError: If any resource could not be destroyed.
        """
        destroyed: list[str] = []
        failed: dict[str, Exception] = {}
        self.attempts.clear()

        for resource_id in reversed(list(state.order)):
            entry = state.resources[resource_id]
            self.reporter(f"Destroying {entry.kind} {resource_id}")
            try:
                self._with_retry(
                    resource_id, partial(self.provider.destroy, entry.kind, entry.outputs)
                )
            except ProviderError as exc:
                logger.error("Destroying %s failed: %s", resource_id, exc)
                self.reporter(f"Failed to destroy {resource_id}: {exc}")
                failed[resource_id] = exc
                continue

            state.forget(resource_id)
            destroyed.append(resource_id)
            if checkpoint is not None:
                checkpoint(state)

        if failed:
            raise DestroyError(failed)
        return destroyed

    def _with_retry(self, resource_id: str, call: Callable[[], T]) -> T:
        """Run a provider call, retrying transient errors within the attempt budget."""

        def attempt() -> T:
            self.attempts[resource_id] += 1
            return call()

        def before_sleep(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                "Transient error for %s (attempt %d/%d): %s",
                resource_id,
                retry_state.attempt_number,
                self.retry.attempts,
                exc,
            )
            self.reporter(f"Retrying {resource_id} after transient error")

        retrying = Retrying(
            stop=stop_after_attempt(self.retry.attempts),
            wait=wait_fixed(self.retry.wait_seconds),
            retry=retry_if_exception(_is_transient),
            before_sleep=before_sleep,
            reraise=True,
        )
        return retrying(attempt)
