"""Per-path symbolic execution state backed by an angr ``SimState``."""

import logging
import re
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import Any

import angr
import claripy
from llvmlite import ir
from llvmlite.ir.values import FormattedConstant, GlobalValue

from .config import Config
from .errors import NullPointerDereference, OtherError, UnsupportedInstruction
from .project import FP_WIDTHS, Project

logger = logging.getLogger(__name__)

# Concrete allocations are handed out from this base address
ALLOCATION_BASE = 0x10000000
ALLOCATION_ALIGN = 16

ARCH_FOR_POINTER_SIZE = {64: "AMD64", 32: "X86"}

ENDNESS = "Iend_LE"

# Constant expressions llvmlite keeps only as text (FormattedConstant)
GLOBAL_REFERENCE = re.compile(r'@(?:"((?:[^"\\]|\\[0-9A-Fa-f]{2})*)"|([-\w$.]+))')
CONSTANT_GEP = re.compile(r"getelementptr (?:inbounds )?\((.*)\)", re.DOTALL)
CONSTANT_CAST = re.compile(r"(bitcast|ptrtoint|inttoptr|addrspacecast) \((.*) to [^()]*\)", re.DOTALL)
CONSTANT_INDICES = re.compile(r"(?:,\s*i\d+\s+-?\d+)*\s*")
CONSTANT_INDEX = re.compile(r"i(\d+)\s+(-?\d+)")
INTEGER_OPERAND = re.compile(r"i\d+\s+(-?\d+)")
NESTED_EXPRESSION = re.compile(r"\b(getelementptr|bitcast|ptrtoint|inttoptr|addrspacecast) (?:inbounds )?\(")
PTRTOINT_WIDTH = re.compile(r" to i(\d+)\)$")


@dataclass(frozen=True)
class Location:
    """Position of the next instruction to execute."""

    function: ir.Function
    block: ir.Block
    index: int = 0
    previous_block: ir.Block | None = None

    def instruction(self) -> ir.Instruction:
        return self.block.instructions[self.index]

    def __str__(self) -> str:
        return f"{self.function.name}:{self.block.name}:{self.index}"


@dataclass
class Frame:
    """Activation record for one (possibly inlined) function call."""

    function: ir.Function
    # Keyed by id() of the SSA value; instructions and arguments live as long as the module
    bindings: dict[int, Any] = field(default_factory=dict)
    call_site: ir.Instruction | None = None
    return_loc: Location | None = None


class State:
    """Symbolic state of one execution path.

    Memory and the path condition live in an angr ``SimState``; SSA values are
    kept per frame as claripy bitvectors.
    """

    def __init__(self, project: Project, config: Config, sim_state: angr.SimState | None = None) -> None:
        self.proj = project
        self.config = config
        if sim_state is None:
            arch = ARCH_FOR_POINTER_SIZE.get(project.pointer_size_bits())
            if arch is None:
                raise ValueError(f"unsupported pointer size {project.pointer_size_bits()}")
            sim_state = angr.SimState(
                arch=arch,
                add_options={
                    angr.options.SYMBOL_FILL_UNCONSTRAINED_MEMORY,
                    angr.options.SYMBOL_FILL_UNCONSTRAINED_REGISTERS,
                },
            )
        self.sim = sim_state
        self.frames: list[Frame] = []
        self.cur_loc: Location | None = None
        self.block_visits: Counter[tuple[str, str]] = Counter()
        self.path: list[str] = []
        self.global_addresses: dict[str, Any] = {}
        self._next_allocation = ALLOCATION_BASE

    # -- forking ----------------------------------------------------------

    def fork(self) -> "State":
        """Copy this state so that an alternative path can continue from it."""
        other = State.__new__(State)
        other.proj = self.proj
        other.config = self.config
        other.sim = self.sim.copy()
        other.frames = [replace(frame, bindings=dict(frame.bindings)) for frame in self.frames]
        other.cur_loc = self.cur_loc
        other.block_visits = Counter(self.block_visits)
        other.path = list(self.path)
        other.global_addresses = dict(self.global_addresses)
        other._next_allocation = self._next_allocation
        return other

    # -- values -----------------------------------------------------------

    @property
    def solver(self):
        return self.sim.solver

    def pointer_size_bits(self) -> int:
        return self.proj.pointer_size_bits()

    def size_in_bits(self, ty: ir.Type) -> int | None:
        return self.proj.size_in_bits(ty)

    def type_of(self, value: ir.Value) -> ir.Type:
        return value.type

    def new_bv_with_name(self, name: str, bits: int):
        """Create a fresh unconstrained bitvector."""
        if bits <= 0:
            raise OtherError(f"cannot create a {bits}-bit value {name!r}")
        return claripy.BVS(name, bits)

    def bv_from_int(self, value: int, bits: int):
        return claripy.BVV(value & ((1 << bits) - 1), bits)

    def zero(self, bits: int):
        return claripy.BVV(0, bits)

    def bind(self, value: ir.Value, bv) -> None:
        """Record the symbolic value of an SSA value in the current frame."""
        self.frames[-1].bindings[id(value)] = bv

    def operand_to_bv(self, operand: ir.Value):
        """Resolve an IR operand to a bitvector."""
        if isinstance(operand, ir.Constant):
            return self._constant_to_bv(operand)
        if isinstance(operand, ir.GlobalVariable):
            return self._global_address(operand)
        if isinstance(operand, ir.Function):
            return self._function_address(operand)
        if self.frames:
            bindings = self.frames[-1].bindings
            if id(operand) in bindings:
                return bindings[id(operand)]
        raise OtherError(f"no value for operand {operand!r}")

    def _constant_to_bv(self, constant: ir.Constant):
        ty = constant.type
        value = constant.constant
        bits = self.size_in_bits(ty)
        if bits is None:
            raise OtherError(f"constant of unsized type {ty}")
        if isinstance(constant, FormattedConstant):
            return self._constant_expression_to_bv(constant, bits)
        if value is ir.Undefined:
            return self.new_bv_with_name("undef", bits)
        if value is None:
            return self.zero(bits)
        if isinstance(ty, ir.IntType):
            return self.bv_from_int(int(value), bits)
        if isinstance(ty, (ir.ArrayType, ir.VectorType)):
            if isinstance(value, (bytes, bytearray)):
                elements = [ir.Constant(ty.element, b) for b in value]
            else:
                elements = [v if isinstance(v, ir.Value) else ir.Constant(ty.element, v) for v in value]
            return self._concat_aggregate(elements)
        if isinstance(ty, (ir.LiteralStructType, ir.IdentifiedStructType)):
            elements = [v if isinstance(v, ir.Value) else ir.Constant(t, v) for v, t in zip(value, ty.elements)]
            return self._concat_aggregate(elements)
        if isinstance(ty, tuple(FP_WIDTHS)):
            # Floating point contents are not modeled
            return self.new_bv_with_name(f"const_{ty}", bits)
        raise UnsupportedInstruction(f"constant {constant} of type {ty} is not modeled")

    def _constant_expression_to_bv(self, constant: FormattedConstant, bits: int):
        return self._evaluate_constant_expression(constant.constant.strip(), bits)

    def _evaluate_constant_expression(self, text: str, bits: int):
        """Evaluate a constant getelementptr or cast on a global or an integer.

        Cast operands may themselves be constant expressions.

        Raises:
            UnsupportedInstruction: for any other constant expression
        """
        from .executor import gep_offset, resize

        gep = CONSTANT_GEP.fullmatch(text)
        if gep is not None:
            operands = gep.group(1)
            base = self._single_global_reference(operands)
            if base is not None:
                gv, end = base
                rest = operands[end:]
                if isinstance(gv, ir.GlobalVariable) and CONSTANT_INDICES.fullmatch(rest):
                    indices = [
                        ir.Constant(ir.IntType(int(width)), int(index))
                        for width, index in CONSTANT_INDEX.findall(rest)
                    ]
                    address = self._global_address(gv)
                    return address + gep_offset(self, gv.value_type, indices, address.size())

        cast = CONSTANT_CAST.fullmatch(text)
        if cast is not None:
            operand = cast.group(2).strip()
            nested = NESTED_EXPRESSION.search(operand)
            if nested is not None:
                inner = operand[nested.start() :]
                width = PTRTOINT_WIDTH.search(inner) if nested.group(1) == "ptrtoint" else None
                inner_bits = int(width.group(1)) if width else self.pointer_size_bits()
                return resize(self._evaluate_constant_expression(inner, inner_bits), bits)
            base = self._single_global_reference(operand)
            if base is not None and base[1] == len(operand):
                return resize(self.operand_to_bv(base[0]), bits)
            integer = INTEGER_OPERAND.fullmatch(operand)
            if integer is not None:
                return self.bv_from_int(int(integer.group(1)), bits)
            if operand.endswith(" null"):
                return self.zero(bits)

        raise UnsupportedInstruction(f"constant expression {text!r} is not modeled")

    def _single_global_reference(self, text: str) -> tuple[GlobalValue, int] | None:
        """The only ``@global`` referenced in ``text`` and the index just past it."""
        matches = list(GLOBAL_REFERENCE.finditer(text))
        if len(matches) != 1:
            return None
        match = matches[0]
        if match.group(1) is not None:
            name = re.sub(r"\\([0-9A-Fa-f]{2})", lambda m: chr(int(m.group(1), 16)), match.group(1))
        else:
            name = match.group(2)
        value = self.proj.get_global_value(name)
        if value is None:
            raise OtherError(f"constant expression refers to unknown global @{name}")
        return value, match.end()

    def _concat_aggregate(self, elements: list[ir.Value]):
        # Element 0 occupies the lowest bits, matching little-endian memory layout
        parts = [self.operand_to_bv(element) for element in elements]
        if not parts:
            raise OtherError("empty aggregate constant")
        if len(parts) == 1:
            return parts[0]
        return claripy.Concat(*reversed(parts))

    def _global_address(self, gv: ir.GlobalVariable):
        address = self.global_addresses.get(gv.name)
        if address is not None:
            return address
        bits = self.size_in_bits(gv.value_type) or 8
        address = self.allocate(bits)
        self.global_addresses[gv.name] = address
        if gv.initializer is not None:
            self.write(address, self.operand_to_bv(gv.initializer))
        logger.debug(f"materialized global @{gv.name} at {address}")
        return address

    def _function_address(self, func: ir.Function):
        address = self.global_addresses.get(func.name)
        if address is None:
            address = self.allocate(8)
            self.global_addresses[func.name] = address
        return address

    # -- memory -----------------------------------------------------------

    def allocate(self, bits: int):
        """Reserve fresh concrete storage and return its address."""
        size = max(1, (bits + 7) // 8)
        address = self._next_allocation
        self._next_allocation += (size + 2 * ALLOCATION_ALIGN - 1) // ALLOCATION_ALIGN * ALLOCATION_ALIGN
        return self.bv_from_int(address, self.pointer_size_bits())

    def _check_null(self, address) -> None:
        if not self.config.null_pointer_checking:
            return
        if self.sat([address == 0]):
            raise NullPointerDereference(str(address))

    def read(self, address, bits: int):
        """Load ``bits`` bits from ``address``."""
        self._check_null(address)
        size = (bits + 7) // 8
        data = self.sim.memory.load(address, size, endness=ENDNESS)
        if size * 8 != bits:
            data = data[bits - 1 : 0]
        return data

    def write(self, address, value) -> None:
        """Store ``value`` at ``address``."""
        self._check_null(address)
        bits = value.size()
        if bits % 8:
            value = value.zero_extend(8 - bits % 8)
        self.sim.memory.store(address, value, endness=ENDNESS)

    # -- constraints ------------------------------------------------------

    def sat(self, extra_constraints: Iterable[Any] = ()) -> bool:
        """Check the path condition, plus transient constraints, for satisfiability."""
        return self.sim.solver.satisfiable(extra_constraints=tuple(extra_constraints))

    def assume(self, constraint) -> None:
        """Permanently add a constraint to this path."""
        self.sim.solver.add(constraint)

    def eval_int(self, bv) -> int:
        return self.sim.solver.eval(bv)

    def demangle(self, name: str) -> str:
        """Demangle a C++ symbol name, returning non-mangled names unchanged."""
        from ..demangle import demangle

        return demangle(name)
