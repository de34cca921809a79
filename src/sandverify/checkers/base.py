"""Base trace checker interface."""

from abc import ABC, abstractmethod
from typing import NamedTuple

from llvmlite import ir

from ..engine.results import PathResult
from ..engine.state import State
from ..models import CheckKind, CheckResult

# Fixed check order; the first violation found on a path wins
CHECK_ORDER = (CheckKind.NULL_DEREFERENCE, CheckKind.DIVISION_BY_ZERO, CheckKind.OUT_OF_BOUNDS)


class ExecutionTrace(NamedTuple):
    """A finished path: how it ended and its final state."""

    result: PathResult
    state: State


class TraceChecker(ABC):
    """Base class for safety checkers.

    A checker may watch instructions while a path executes (``monitor``),
    raising a safety violation to end the path, and classifies the finished
    path afterwards (``check``).
    """

    # Whether ``monitor`` needs to be installed as an instruction callback
    monitors = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the name of this checker.

        Returns:
            Checker name, the value of its ``CheckKind``
        """
        pass

    @property
    @abstractmethod
    def kind(self) -> CheckKind:
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Get a description of what this checker finds.

        Returns:
            Human-readable description
        """
        pass

    def monitor(self, instr: ir.Instruction, state: State) -> None:
        """Inspect an instruction before it executes.

        Args:
            instr: Instruction about to execute
            state: State of the current path

        Raises:
            SafetyViolation: if the instruction can violate the property
        """

    @abstractmethod
    def check(self, trace: ExecutionTrace) -> CheckResult | None:
        """Classify a finished path.

        Args:
            trace: Path result and final state

        Returns:
            A violation result, or None if this checker found nothing
        """
        pass

    def violation(self, message: str) -> CheckResult:
        return CheckResult.violation(self.kind, message)


class CheckerRegistry:
    """Registry of trace checkers, instantiated in ``CHECK_ORDER``."""

    def __init__(self) -> None:
        """Initialize the registry."""
        self._checkers: dict[str, type[TraceChecker]] = {}

    def register(self, checker_class: type[TraceChecker]) -> type[TraceChecker]:
        """Register a checker class.

        Args:
            checker_class: Checker class to register

        Returns:
            The class, so this can be used as a decorator
        """
        self._checkers[checker_class().name] = checker_class
        return checker_class

    def get_checker(self, name: str) -> type[TraceChecker] | None:
        """Get a checker class by name."""
        return self._checkers.get(name)

    def names(self) -> list[str]:
        return list(self._checkers)

    def create_instances(self, names: tuple[str, ...] | list[str] | None = None) -> list[TraceChecker]:
        """Create checker instances in check order.

        Args:
            names: Checkers to create (all if None)

        Returns:
            List of checker instances

        Raises:
            ValueError: if a name is not registered
        """
        if names is not None:
            unknown = sorted(set(names) - set(self._checkers))
            if unknown:
                raise ValueError(f"unknown checker(s): {', '.join(unknown)}")
        instances = [cls() for name, cls in self._checkers.items() if names is None or name in names]
        return sorted(instances, key=lambda checker: CHECK_ORDER.index(checker.kind))


# Global registry instance
checker_registry = CheckerRegistry()
