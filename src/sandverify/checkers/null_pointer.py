"""Null pointer dereference checker."""

from ..engine.errors import NullPointerDereference
from ..errors import EngineRejected, NullDereference
from ..models import CheckKind, CheckResult
from .base import ExecutionTrace, TraceChecker, checker_registry


@checker_registry.register
class NullDereferenceChecker(TraceChecker):
    """Reports paths the engine ended with a null pointer dereference.

    The engine performs the check itself on every load and store; hooks
    report it wrapped in ``EngineRejected``.
    """

    @property
    def name(self) -> str:
        return CheckKind.NULL_DEREFERENCE.value

    @property
    def kind(self) -> CheckKind:
        return CheckKind.NULL_DEREFERENCE

    @property
    def description(self) -> str:
        return "Detects loads and stores through pointers that can be NULL"

    def check(self, trace: ExecutionTrace) -> CheckResult | None:
        result = trace.result
        if isinstance(result, EngineRejected) and isinstance(result.cause, NullPointerDereference):
            return self.violation(f"{result.cause} inside hooked call")
        if isinstance(result, (NullPointerDereference, NullDereference)):
            return self.violation(str(result))
        return None
