"""A set of LLVM IR modules under analysis."""

from collections.abc import Iterable, Iterator

from llvmlite import ir

from .errors import FunctionNotFound, OtherError

FP_WIDTHS = {
    ir.HalfType: 16,
    ir.FloatType: 32,
    ir.DoubleType: 64,
}


class Project:
    """Collection of ``llvmlite.ir.Module`` objects sharing one address space."""

    def __init__(self, modules: Iterable[ir.Module], pointer_size_bits: int = 64) -> None:
        """Initialize the project.

        Args:
            modules: IR modules to analyze
            pointer_size_bits: Width of pointers on the target
        """
        self.modules = list(modules)
        if not self.modules:
            raise ValueError("a project needs at least one module")
        self._pointer_size_bits = pointer_size_bits

    @classmethod
    def from_module(cls, module: ir.Module, pointer_size_bits: int = 64) -> "Project":
        """Create a project holding a single module."""
        return cls([module], pointer_size_bits=pointer_size_bits)

    def pointer_size_bits(self) -> int:
        return self._pointer_size_bits

    def functions(self) -> Iterator[tuple[ir.Function, ir.Module]]:
        """Iterate over every function (definitions and declarations)."""
        for module in self.modules:
            for func in module.functions:
                yield func, module

    def get_func_by_name(self, name: str) -> tuple[ir.Function, ir.Module]:
        """Find a function by its symbol name.

        Definitions win over declarations, so a function declared in one module
        and defined in another resolves to the definition.

        Raises:
            FunctionNotFound: if no module contains the function
        """
        declaration = None
        for func, module in self.functions():
            if func.name != name:
                continue
            if not func.is_declaration:
                return func, module
            declaration = declaration or (func, module)
        if declaration is None:
            raise FunctionNotFound(f"function {name!r} not found in project")
        return declaration

    def get_global_by_name(self, name: str) -> ir.GlobalVariable | None:
        """Find a global variable definition by name."""
        for module in self.modules:
            value = module.globals.get(name)
            if isinstance(value, ir.GlobalVariable):
                return value
        return None

    def get_global_value(self, name: str) -> ir.GlobalVariable | ir.Function | None:
        """Find a global variable or function by name, in any module."""
        for module in self.modules:
            value = module.globals.get(name)
            if value is not None:
                return value
        return None

    def size_in_bits(self, ty: ir.Type) -> int | None:
        """Size of a type in bits, without alignment padding.

        Returns:
            Width in bits, 0 for void, or None for types with no size
            (functions, labels, metadata, opaque structs)
        """
        if isinstance(ty, ir.VoidType):
            return 0
        if isinstance(ty, ir.IntType):
            return ty.width
        if isinstance(ty, ir.PointerType):
            return self._pointer_size_bits
        for fp_type, width in FP_WIDTHS.items():
            if isinstance(ty, fp_type):
                return width
        if isinstance(ty, (ir.ArrayType, ir.VectorType)):
            element_bits = self.size_in_bits(ty.element)
            return None if element_bits is None else element_bits * ty.count
        if isinstance(ty, (ir.LiteralStructType, ir.IdentifiedStructType)):
            if ty.elements is None:
                return None
            total = 0
            for element in ty.elements:
                element_bits = self.size_in_bits(element)
                if element_bits is None:
                    return None
                total += element_bits
            return total
        return None

    def size_in_bytes(self, ty: ir.Type) -> int:
        """Size of a sized type in bytes.

        Raises:
            OtherError: if the type is unsized or not a whole number of bytes
        """
        bits = self.size_in_bits(ty)
        if bits is None:
            raise OtherError(f"type {ty} has no size")
        if bits % 8 != 0:
            raise OtherError(f"type {ty} is not byte sized ({bits} bits)")
        return bits // 8
