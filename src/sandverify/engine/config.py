"""Engine configuration: loop bound, function hooks and instruction callbacks."""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from llvmlite import ir

    from .results import ReturnValue
    from .state import State

# hook(state, call_instruction) -> ReturnValue
FunctionHook = Callable[["State", "ir.CallInstr"], "ReturnValue"]
# callback(instruction, state) -> None, raising EngineError to end the path
InstructionCallback = Callable[["ir.Instruction", "State"], Any]


class FunctionHooks:
    """Hooks replacing calls by name, plus one hook for calls without a body."""

    def __init__(self) -> None:
        self._hooks: dict[str, FunctionHook] = {}
        self._default: FunctionHook | None = None

    def add(self, name: str, hook: FunctionHook) -> None:
        """Hook every call to the function with symbol ``name``."""
        self._hooks[name] = hook

    def add_default_hook(self, hook: FunctionHook) -> None:
        """Hook every call to a function that has no definition in the project."""
        self._default = hook

    def get(self, name: str) -> FunctionHook | None:
        return self._hooks.get(name)

    @property
    def default(self) -> FunctionHook | None:
        return self._default


class Callbacks:
    """Ordered per-instruction callbacks."""

    def __init__(self) -> None:
        self.instruction_callbacks: list[InstructionCallback] = []

    def add_instruction_callback(self, callback: InstructionCallback) -> None:
        self.instruction_callbacks.append(callback)


@dataclass
class Config:
    """Configuration for one symbolic exploration."""

    # Maximum visits of a single basic block on one path
    loop_bound: int = 1000

    # End a path when a load or store address can be NULL
    null_pointer_checking: bool = True

    # Maximum depth of inlined calls
    max_call_depth: int = 64

    function_hooks: FunctionHooks = field(default_factory=FunctionHooks)
    callbacks: Callbacks = field(default_factory=Callbacks)
