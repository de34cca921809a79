"""Helper utilities for hooks and monitors working on ``llvmlite.ir`` calls."""

from typing import Any

from llvmlite import ir

from ..engine.state import State
from ..errors import ArityMismatch, Other


def get_function_name(call: ir.CallInstr) -> str | None:
    """Get the symbol name of a call's target.

    Args:
        call: Call instruction

    Returns:
        Callee name, or None for indirect calls and inline assembly
    """
    callee = call.callee
    if isinstance(callee, ir.Function):
        return callee.name
    return None


def get_args_exact(call: ir.CallInstr, expected: int | tuple[int, ...]) -> list[ir.Value]:
    """Get a call's arguments, validating their count.

    Args:
        call: Call instruction
        expected: Accepted argument count, or a tuple of accepted counts

    Returns:
        The argument operands

    Raises:
        ArityMismatch: if the call passes a different number of arguments
    """
    args = list(call.args)
    accepted = expected if isinstance(expected, tuple) else (expected,)
    if len(args) not in accepted:
        raise ArityMismatch(get_function_name(call) or str(call.callee), expected, len(args))
    return args


def get_operand(state: State, operand: ir.Value) -> Any:
    """Convert a call argument to a bitvector."""
    return state.operand_to_bv(operand)


def get_operand_type(state: State, operand: ir.Value) -> ir.Type:
    return state.type_of(operand)


def get_pointer_type(ty: ir.Type) -> ir.Type:
    """Get the pointee type of a typed pointer.

    Raises:
        Other: if ``ty`` is not a pointer, or is an opaque pointer
    """
    if not isinstance(ty, ir.PointerType):
        raise Other(f"not a pointer type: {ty}")
    if ty.is_opaque:
        raise Other(f"pointee of opaque pointer {ty} is unknown")
    return ty.pointee


def get_function_return_type(call: ir.CallInstr) -> ir.Type:
    """Declared return type of the called function."""
    return call.type


def size_in_bits(state: State, ty: ir.Type) -> int:
    """Size of a sized type in bits.

    Raises:
        Other: if the type has no size
    """
    bits = state.size_in_bits(ty)
    if bits is None:
        raise Other(f"type {ty} has no size")
    return bits
