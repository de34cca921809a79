"""Path results produced by the engine."""

from dataclasses import dataclass
from typing import Any, Union

from .errors import EngineError


@dataclass(frozen=True)
class Return:
    """The function returned ``value``."""

    value: Any


@dataclass(frozen=True)
class ReturnVoid:
    """The function returned without a value."""


@dataclass(frozen=True)
class Throw:
    """The path ended by throwing ``value`` (``__cxa_throw``)."""

    value: Any


@dataclass(frozen=True)
class Abort:
    """The path ended in ``abort``/``exit``."""


ReturnValue = Union[Return, ReturnVoid, Throw, Abort]
PathResult = Union[ReturnValue, EngineError]


def describe_result(result: PathResult) -> str:
    """Short human-readable description of a path result."""
    if isinstance(result, EngineError):
        return f"{type(result).__name__}: {result}"
    if isinstance(result, Return):
        return f"Return({result.value})"
    if isinstance(result, Throw):
        return f"Throw({result.value})"
    return type(result).__name__
