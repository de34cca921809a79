"""Path-by-path symbolic execution of LLVM IR built with ``llvmlite.ir``."""

from .config import Callbacks, Config, FunctionHooks
from .errors import (
    EngineError,
    FunctionNotFound,
    LoopBoundExceeded,
    NullPointerDereference,
    OtherError,
    UnreachableInstruction,
    UnsupportedInstruction,
)
from .executor import ExecutionManager, gep_address, gep_offset, symex_function
from .project import Project
from .results import Abort, PathResult, Return, ReturnValue, ReturnVoid, Throw, describe_result
from .state import Location, State

__all__ = [
    "Abort",
    "Callbacks",
    "Config",
    "EngineError",
    "ExecutionManager",
    "FunctionHooks",
    "FunctionNotFound",
    "Location",
    "LoopBoundExceeded",
    "NullPointerDereference",
    "OtherError",
    "PathResult",
    "Project",
    "Return",
    "ReturnValue",
    "ReturnVoid",
    "State",
    "Throw",
    "UnreachableInstruction",
    "UnsupportedInstruction",
    "describe_result",
    "gep_address",
    "gep_offset",
    "symex_function",
]
