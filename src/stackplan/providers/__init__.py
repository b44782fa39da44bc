"""Providers that materialize resources."""

from stackplan.providers.base import KindHandler, Provider, RegistryProvider
from stackplan.providers.memory import InMemoryProvider

__all__ = [
    "InMemoryProvider",
    "KindHandler",
    "Provider",
    "RegistryProvider",
]
