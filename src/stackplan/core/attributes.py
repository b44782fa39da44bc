"""Literal and deferred configuration attributes."""

from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any, NoReturn


@dataclass(frozen=True)
class Literal:
    """A value known at declaration time."""

    value: Any


@dataclass(frozen=True)
class Deferred:
    """A value known only after its source resource is synthesized."""

    source_id: str
    field: str

    def __str__(self) -> str:
        return f"${{{self.source_id}.{self.field}}}"


Attribute = Literal | Deferred


def as_attribute(value: Any) -> Any:
    """Wrap plain values as literals, keeping containers of attributes walkable."""
    if isinstance(value, (Literal, Deferred)):
        return value
    if isinstance(value, Mapping):
        return {str(key): as_attribute(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [as_attribute(item) for item in value]
    return Literal(value)


def iter_deferred(value: Any) -> Iterator[Deferred]:
    """Yield every deferred attribute nested inside a config value."""
    if isinstance(value, Deferred):
        yield value
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from iter_deferred(item)
    elif isinstance(value, list):
        for item in value:
            yield from iter_deferred(item)


def resolve(
    value: Any,
    outputs: Mapping[str, Mapping[str, Any]],
    on_missing: Callable[[Deferred], NoReturn],
) -> Any:
    """Replace attributes with concrete values.

    Args:
        value: A config value, possibly nested.
        outputs: Recorded outputs keyed by resource id.
        on_missing: Called with the unresolvable ``Deferred``; must raise.

    Returns:
        The value with every attribute replaced by plain data.
    """
    if isinstance(value, Literal):
        return value.value
    if isinstance(value, Deferred):
        source = outputs.get(value.source_id)
        if source is None or value.field not in source:
            on_missing(value)
        return source[value.field]
    if isinstance(value, Mapping):
        return {key: resolve(item, outputs, on_missing) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve(item, outputs, on_missing) for item in value]
    return value


def literal_value(value: Any) -> Any | None:
    """Return the plain value of a literal, or None when it is deferred."""
    if isinstance(value, Literal):
        return value.value
    if isinstance(value, Deferred):
        return None
    return value
