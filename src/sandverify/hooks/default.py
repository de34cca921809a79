"""Fallback hook for calls with no modeled semantics."""

from llvmlite import ir

from ..engine.results import Return, ReturnValue, ReturnVoid
from ..engine.state import State
from ..errors import Other
from ..utils.helpers import get_function_return_type, size_in_bits
from .base import BaseHook, callee_name

# Symbol prefix for placeholder return values, by return type
VALUE_PREFIXES = (
    (ir.IntType, "int"),
    ((ir.HalfType, ir.FloatType, ir.DoubleType), "fp"),
    (ir.VectorType, "vec"),
    (ir.ArrayType, "arr"),
    ((ir.LiteralStructType, ir.IdentifiedStructType), "struct"),
)


class DefaultHook(BaseHook):
    """Return a fresh symbolic value of the callee's return type.

    Pointer results point at freshly allocated storage for the pointee, or
    are themselves symbolic when the pointee has no size.
    """

    def run(self, state: State, call: ir.CallInstr, *args: ir.Value) -> ReturnValue:
        return_type = get_function_return_type(call)
        callee = callee_name(call)

        if isinstance(return_type, ir.VoidType):
            return ReturnVoid()

        if isinstance(return_type, ir.PointerType):
            pointee_bits = None if return_type.is_opaque else state.size_in_bits(return_type.pointee)
            if pointee_bits:
                return Return(state.allocate(pointee_bits))
            return Return(state.new_bv_with_name(f"ptr_{callee}", state.pointer_size_bits()))

        for types, prefix in VALUE_PREFIXES:
            if isinstance(return_type, types):
                if isinstance(return_type, ir.IdentifiedStructType) and return_type.elements is None:
                    raise Other(f"{callee} returns opaque struct {return_type}")
                bits = size_in_bits(state, return_type)
                return Return(state.new_bv_with_name(f"{prefix}_{callee}", bits))

        raise Other(f"{callee} returns unsupported type {return_type}")
