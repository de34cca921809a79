"""RLBox sandbox API hooks.

Each hook gives one sandbox-boundary operation its real effect on symbolic
memory, so that the monitors see the addresses the program actually uses.
Element widths and allocation sizes come from the IR types at the call site.
"""

import logging

from llvmlite import ir

from ..engine.executor import resize
from ..engine.results import Return, ReturnValue, ReturnVoid
from ..engine.state import State
from ..errors import Other
from ..utils.helpers import (
    get_function_return_type,
    get_operand,
    get_operand_type,
    get_pointer_type,
    size_in_bits,
)
from .base import BaseHook, callee_name
from .registry import HookRegistry

logger = logging.getLogger(__name__)


class UnsafeUnverifiedHook(BaseHook):
    """Hook for tainted<T>::UNSAFE_unverified and unverified_safe_because.

    Reads the wrapped payload out of the wrapper's storage and returns it,
    escaping the sandbox boundary.
    """

    num_args = (1, 2)

    def run(self, state: State, call: ir.CallInstr, wrapper: ir.Value, *reason: ir.Value) -> ReturnValue:
        width = size_in_bits(state, get_function_return_type(call))
        return Return(state.read(get_operand(state, wrapper), width))


class TaintedAssignHook(BaseHook):
    """Hook for tainted<T>::operator= and tainted_volatile<T>::operator=.

    Writes the value's payload into the destination wrapper and returns the
    destination. A pointer-typed value is itself a wrapper, whose payload is
    read first.
    """

    num_args = 2

    def run(self, state: State, call: ir.CallInstr, destination: ir.Value, value: ir.Value) -> ReturnValue:
        destination_bv = get_operand(state, destination)
        value_bv = get_operand(state, value)
        value_type = get_operand_type(state, value)
        if isinstance(value_type, ir.PointerType):
            payload_bits = size_in_bits(state, get_pointer_type(value_type))
            value_bv = state.read(value_bv, payload_bits)
        state.write(destination_bv, value_bv)

        if isinstance(get_function_return_type(call), ir.VoidType):
            return ReturnVoid()
        return Return(destination_bv)


class TaintedIndexHook(BaseHook):
    """Hook for tainted<T[N]>::operator[].

    Returns the address of the selected element, ``base + index * width``.
    The element width is the size of the returned reference's pointee. An
    index passed by reference is loaded first. Bounds are not checked here.
    """

    num_args = 2

    # Whether a pointer-typed index is a reference to the index value
    index_by_reference = True

    def run(self, state: State, call: ir.CallInstr, base: ir.Value, index: ir.Value) -> ReturnValue:
        base_bv = get_operand(state, base)
        index_bv = get_operand(state, index)
        index_type = get_operand_type(state, index)
        if self.index_by_reference and isinstance(index_type, ir.PointerType):
            index_bv = state.read(index_bv, size_in_bits(state, get_pointer_type(index_type)))

        element_type = get_pointer_type(get_function_return_type(call))
        element_width = state.proj.size_in_bytes(element_type)
        offset = resize(index_bv, base_bv.size()) * element_width
        logger.debug(f"{callee_name(call)}: {base_bv} + {index_bv} * {element_width}")
        return Return(base_bv + offset)


class StdArrayIndexHook(TaintedIndexHook):
    """Hook for std::array<T, N>::operator[], whose index is passed by value."""

    index_by_reference = False


class TaintedDerefHook(BaseHook):
    """Hook for tainted<T*>::operator*.

    Reads the pointer stored in the wrapper, at the width of the callee's
    return type.
    """

    num_args = 1

    def run(self, state: State, call: ir.CallInstr, wrapper: ir.Value) -> ReturnValue:
        width = size_in_bits(state, get_function_return_type(call))
        return Return(state.read(get_operand(state, wrapper), width))


class MallocInSandboxHook(BaseHook):
    """Hook for rlbox_sandbox::malloc_in_sandbox<T>.

    Allocates concrete storage for the returned pointer's pointee, times the
    element count when one is passed.
    """

    num_args = (1, 2)

    def run(self, state: State, call: ir.CallInstr, sandbox: ir.Value, *count: ir.Value) -> ReturnValue:
        pointee = get_pointer_type(get_function_return_type(call))
        bits = size_in_bits(state, pointee)
        if bits == 0:
            raise Other(f"{callee_name(call)} allocates zero-sized type {pointee}")
        if count:
            count_bv = get_operand(state, count[0])
            if count_bv.symbolic:
                raise Other(f"{callee_name(call)} called with a symbolic element count")
            bits *= state.eval_int(count_bv)
        return Return(state.allocate(bits))


# Canonical signature -> hook class
RLBOX_HOOKS = {
    "rlbox::tainted_base_impl::UNSAFE_unverified": UnsafeUnverifiedHook,
    "rlbox::tainted_base_impl::unverified_safe_because": UnsafeUnverifiedHook,
    "rlbox::tainted_volatile::operator=": TaintedAssignHook,
    "rlbox::tainted::operator=": TaintedAssignHook,
    "rlbox::tainted_base_impl::operator[]": TaintedIndexHook,
    "std::array::operator[]": StdArrayIndexHook,
    "rlbox::tainted_base_impl::operator*": TaintedDerefHook,
    "rlbox::rlbox_sandbox::malloc_in_sandbox": MallocInSandboxHook,
}


def register_hooks(registry: HookRegistry) -> None:
    """Register the RLBox hooks.

    Args:
        registry: Hook registry to register with
    """
    for signature, hook_class in RLBOX_HOOKS.items():
        registry.register(signature, hook_class())
