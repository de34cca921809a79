"""Division and remainder by zero checker."""

import logging

from llvmlite import ir

from ..engine.state import State
from ..errors import DivisionByZero
from ..models import CheckKind, CheckResult
from .base import ExecutionTrace, TraceChecker, checker_registry

logger = logging.getLogger(__name__)

DIVISION_OPCODES = frozenset(["udiv", "sdiv", "urem", "srem"])


@checker_registry.register
class DivisionByZeroChecker(TraceChecker):
    """Detects integer divisions whose divisor can be zero on the current path."""

    monitors = True

    @property
    def name(self) -> str:
        return CheckKind.DIVISION_BY_ZERO.value

    @property
    def kind(self) -> CheckKind:
        return CheckKind.DIVISION_BY_ZERO

    @property
    def description(self) -> str:
        return "Detects division or remainder by a possibly-zero divisor"

    def monitor(self, instr: ir.Instruction, state: State) -> None:
        if instr.opname not in DIVISION_OPCODES:
            return
        divisor = state.operand_to_bv(instr.operands[1])
        if state.sat([divisor == 0]):
            logger.info(f"divisor can be zero at {state.cur_loc}: {instr}")
            raise DivisionByZero(f"divisor can be zero at {state.cur_loc}: {str(instr).strip()}")

    def check(self, trace: ExecutionTrace) -> CheckResult | None:
        if isinstance(trace.result, DivisionByZero):
            return self.violation(str(trace.result))
        return None
