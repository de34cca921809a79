"""Base hook class for sandbox API call simulation."""

import logging

from llvmlite import ir

from ..engine.errors import EngineError
from ..engine.results import ReturnValue
from ..engine.state import State
from ..errors import EngineRejected, VerificationError
from ..utils.helpers import get_args_exact, get_function_name

logger = logging.getLogger(__name__)


def callee_name(call: ir.CallInstr) -> str:
    """Name of the function being called, for messages."""
    return get_function_name(call) or str(call.callee)


class BaseHook:
    """Base class for call hooks.

    Subclasses implement ``run``, which receives the path state, the call
    instruction and the call's argument operands. Hooks keep no per-call
    state, so one instance can serve every path of every analysis. Engine
    errors raised by state operations inside ``run`` are reported as
    ``EngineRejected``; verification errors propagate unchanged.
    """

    # Accepted argument count (int or tuple of ints), None for any
    num_args: int | tuple[int, ...] | None = None

    # Whether to log calls to this hook
    log_calls = True

    def __call__(self, state: State, call: ir.CallInstr) -> ReturnValue:
        if self.num_args is None:
            args = list(call.args)
        else:
            args = get_args_exact(call, self.num_args)
        self.log_call(call, args)
        try:
            return self.run(state, call, *args)
        except VerificationError:
            raise
        except EngineError as e:
            raise EngineRejected(e) from e

    def run(self, state: State, call: ir.CallInstr, *args: ir.Value) -> ReturnValue:
        raise NotImplementedError

    def log_call(self, call: ir.CallInstr, args: list[ir.Value]) -> None:
        """Log a hooked call if logging is enabled.

        Args:
            call: Call instruction
            args: Argument operands of the call
        """
        if self.log_calls:
            rendered = ", ".join(str(arg.type) for arg in args)
            logger.debug(f"{type(self).__name__}: {callee_name(call)}({rendered})")
