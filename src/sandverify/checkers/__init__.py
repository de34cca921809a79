"""Safety checkers run on every explored path."""

from collections.abc import Sequence

from ..models import CheckResult
from .base import CheckerRegistry, ExecutionTrace, TraceChecker, checker_registry
from .division_by_zero import DivisionByZeroChecker
from .null_pointer import NullDereferenceChecker
from .out_of_bounds import OutOfBoundsChecker

__all__ = [
    "CheckerRegistry",
    "DivisionByZeroChecker",
    "ExecutionTrace",
    "NullDereferenceChecker",
    "OutOfBoundsChecker",
    "TraceChecker",
    "check_trace",
    "checker_registry",
]


def check_trace(trace: ExecutionTrace, checkers: Sequence[TraceChecker] | None = None) -> CheckResult:
    """Run the checkers over one finished path; the first violation wins.

    Args:
        trace: Path result and final state
        checkers: Checkers in check order (all registered checkers if None)

    Returns:
        The first violation found, or a passing result
    """
    if checkers is None:
        checkers = checker_registry.create_instances()
    for checker in checkers:
        result = checker.check(trace)
        if result is not None:
            return result
    return CheckResult.ok()
