"""Out-of-bounds pointer arithmetic checker."""

import logging

from llvmlite import ir

from ..engine.executor import gep_offset
from ..engine.state import State
from ..errors import OutOfBounds
from ..models import CheckKind, CheckResult
from .base import ExecutionTrace, TraceChecker, checker_registry

logger = logging.getLogger(__name__)


@checker_registry.register
class OutOfBoundsChecker(TraceChecker):
    """Detects inbounds getelementptrs whose offset can reach past their object.

    The object is the instruction's source element type; a getelementptr
    without the inbounds flag makes no bounds claim and is not checked.
    """

    monitors = True

    @property
    def name(self) -> str:
        return CheckKind.OUT_OF_BOUNDS.value

    @property
    def kind(self) -> CheckKind:
        return CheckKind.OUT_OF_BOUNDS

    @property
    def description(self) -> str:
        return "Detects in-bounds pointer arithmetic that can leave its object"

    def monitor(self, instr: ir.Instruction, state: State) -> None:
        if instr.opname != "getelementptr" or not instr.inbounds:
            return
        object_type = instr.source_etype
        size = state.proj.size_in_bytes(object_type)
        offset = gep_offset(state, object_type, instr.indices, state.pointer_size_bits())
        if state.sat([offset.UGE(size)]):
            logger.info(f"offset can reach {size} at {state.cur_loc}: {instr}")
            raise OutOfBounds(f"offset can be >= {size} bytes at {state.cur_loc}: {str(instr).strip()}")

    def check(self, trace: ExecutionTrace) -> CheckResult | None:
        if isinstance(trace.result, OutOfBounds):
            return self.violation(str(trace.result))
        return None
