"""Provider contract and kind registry.

The synthesizer depends only on ``create`` and ``destroy``. Resource kinds are
added by registering a create function (and optionally a destroy function)
on a ``RegistryProvider``.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from stackplan.core.errors import ProviderError

logger = logging.getLogger(__name__)

CreateFn = Callable[[dict[str, Any]], dict[str, Any]]
DestroyFn = Callable[[dict[str, Any]], None]


class Provider(ABC):
    """Interface for infrastructure providers (AWS, in-memory, etc.)."""

    @abstractmethod
    def create(self, kind: str, config: dict[str, Any]) -> dict[str, Any]:
        """Create a resource from its fully resolved config and return its outputs."""
        raise NotImplementedError

    @abstractmethod
    def destroy(self, kind: str, outputs: dict[str, Any]) -> None:
        """Delete a resource identified by the outputs recorded at creation."""
        raise NotImplementedError


@dataclass(frozen=True)
class KindHandler:
    """Create and destroy functions for one resource kind."""

    create: CreateFn
    destroy: DestroyFn | None = None


class RegistryProvider(Provider):
    """Dispatches create and destroy calls to handlers registered per kind."""

    def __init__(self) -> None:
        self._handlers: dict[str, KindHandler] = {}

    @property
    def kinds(self) -> list[str]:
        return list(self._handlers)

    def register(self, kind: str, create: CreateFn, destroy: DestroyFn | None = None) -> None:
        """Register the handlers for a kind, replacing any previous registration."""
        self._handlers[str(kind)] = KindHandler(create=create, destroy=destroy)

    def create(self, kind: str, config: dict[str, Any]) -> dict[str, Any]:
        handler = self._handler(kind)
        logger.debug("Creating %s", kind)
        return handler.create(config)

    def destroy(self, kind: str, outputs: dict[str, Any]) -> None:
        handler = self._handler(kind)
        if handler.destroy is None:
            logger.debug("Nothing to destroy for %s", kind)
            return
        handler.destroy(outputs)

    def _handler(self, kind: str) -> KindHandler:
        handler = self._handlers.get(str(kind))
        if handler is None:
            raise ProviderError(f"No handler registered for resource kind '{kind}'.")
        return handler
