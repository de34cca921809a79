"""Depth-first symbolic exploration of LLVM IR functions."""

import logging
from collections.abc import Iterator

import claripy
from llvmlite import ir

from .config import Config
from .errors import (
    EngineError,
    LoopBoundExceeded,
    OtherError,
    UnreachableInstruction,
    UnsupportedInstruction,
)
from .project import Project
from .results import Abort, PathResult, Return, ReturnValue, ReturnVoid, Throw
from .state import Frame, Location, State

logger = logging.getLogger(__name__)

ABORTING_FUNCTIONS = frozenset(["abort", "exit", "_exit", "_Exit"])

NOOP_INTRINSIC_PREFIXES = ("llvm.lifetime.", "llvm.dbg.", "llvm.assume", "llvm.experimental.noalias")

MEMORY_INTRINSIC_PREFIXES = ("llvm.memcpy.", "llvm.memmove.", "llvm.memset.")

BINARY_OPS = {
    "add": lambda a, b: a + b,
    "sub": lambda a, b: a - b,
    "mul": lambda a, b: a * b,
    "udiv": lambda a, b: a // b,
    "sdiv": lambda a, b: a.SDiv(b),
    "urem": lambda a, b: a % b,
    "srem": lambda a, b: a.SMod(b),
    "and": lambda a, b: a & b,
    "or": lambda a, b: a | b,
    "xor": lambda a, b: a ^ b,
    "shl": lambda a, b: a << b,
    "lshr": lambda a, b: a.LShR(b),
    "ashr": lambda a, b: a >> b,
}

ICMP_OPS = {
    "eq": lambda a, b: a == b,
    "ne": lambda a, b: a != b,
    "ugt": lambda a, b: a.UGT(b),
    "uge": lambda a, b: a.UGE(b),
    "ult": lambda a, b: a.ULT(b),
    "ule": lambda a, b: a.ULE(b),
    "sgt": lambda a, b: a.SGT(b),
    "sge": lambda a, b: a.SGE(b),
    "slt": lambda a, b: a.SLT(b),
    "sle": lambda a, b: a.SLE(b),
}

CAST_OPS = frozenset(["trunc", "zext", "sext", "bitcast", "ptrtoint", "inttoptr", "addrspacecast"])


def bool_to_bv(condition):
    """Convert a claripy boolean to an ``i1`` bitvector."""
    return claripy.If(condition, claripy.BVV(1, 1), claripy.BVV(0, 1))


def resize(bv, bits: int, signed: bool = False):
    """Extend or truncate ``bv`` to ``bits`` bits."""
    width = bv.size()
    if width == bits:
        return bv
    if width > bits:
        return bv[bits - 1 : 0]
    if signed:
        return bv.sign_extend(bits - width)
    return bv.zero_extend(bits - width)


def called_function(call: ir.Instruction) -> ir.Function | None:
    """The statically known callee of a call, or None for indirect calls and inline asm."""
    callee = call.callee
    if isinstance(callee, ir.Function):
        return callee
    return None


class _PathEnded(Exception):
    """Internal signal carrying the result of a finished path."""

    def __init__(self, result: ReturnValue) -> None:
        self.result = result
        super().__init__(str(result))


class ExecutionManager:
    """Explores the paths of one function, one path at a time.

    Iterating yields one ``PathResult`` per explored path; ``state`` is the
    final state of the path most recently yielded.
    """

    def __init__(self, func_name: str, project: Project, config: Config | None = None) -> None:
        """Initialize the execution manager.

        Args:
            func_name: Symbol name of the function to explore
            project: Project containing the function
            config: Engine configuration (uses defaults if None)
        """
        self.project = project
        self.config = config or Config()
        self.func, _ = project.get_func_by_name(func_name)
        if self.func.is_declaration:
            raise OtherError(f"function {func_name!r} has no body")
        # Each pending path is (state, first block, predecessor block)
        self._pending: list[tuple[State, ir.Block, ir.Block | None]] = [
            (self._initial_state(), self.func.blocks[0], None)
        ]
        self.state: State | None = None

    def _initial_state(self) -> State:
        state = State(self.project, self.config)
        state.frames.append(Frame(self.func))
        for arg in self.func.args:
            bits = self.project.size_in_bits(arg.type)
            if bits is None:
                raise OtherError(f"parameter {arg.name} of unsized type {arg.type}")
            state.bind(arg, state.new_bv_with_name(f"arg_{arg.name or 'anon'}", bits))
        return state

    def __iter__(self) -> Iterator[PathResult]:
        return self

    def __next__(self) -> PathResult:
        if not self._pending:
            raise StopIteration
        state, block, previous = self._pending.pop()
        result = self._run_path(state, block, previous)
        self.state = state
        logger.debug(f"path finished after {len(state.path)} blocks: {result!r}")
        return result

    # -- path execution ---------------------------------------------------

    def _run_path(self, state: State, block: ir.Block, previous: ir.Block | None) -> PathResult:
        try:
            self._enter_block(state, block, previous)
            while True:
                instr = state.cur_loc.instruction()
                for callback in self.config.callbacks.instruction_callbacks:
                    callback(instr, state)
                self._step(state, instr)
        except _PathEnded as ended:
            return ended.result
        except EngineError as e:
            return e

    def _enter_block(self, state: State, block: ir.Block, previous: ir.Block | None) -> None:
        func = block.parent
        key = (func.name, block.name)
        state.block_visits[key] += 1
        if state.block_visits[key] > self.config.loop_bound:
            raise LoopBoundExceeded(f"{func.name}:{block.name}", self.config.loop_bound)
        state.path.append(f"{func.name}:{block.name}")
        state.cur_loc = Location(func, block, 0, previous)

    def _advance(self, state: State) -> None:
        loc = state.cur_loc
        state.cur_loc = Location(loc.function, loc.block, loc.index + 1, loc.previous_block)

    def _step(self, state: State, instr: ir.Instruction) -> None:
        opname = instr.opname

        if opname in BINARY_OPS:
            lhs, rhs = (state.operand_to_bv(op) for op in instr.operands)
            state.bind(instr, BINARY_OPS[opname](lhs, rhs))
        elif opname == "icmp":
            lhs, rhs = (state.operand_to_bv(op) for op in instr.operands)
            state.bind(instr, bool_to_bv(ICMP_OPS[instr.op](lhs, rhs)))
        elif opname in CAST_OPS:
            self._cast(state, instr)
        elif opname == "alloca":
            self._alloca(state, instr)
        elif opname == "load":
            bits = self._sized(instr.type)
            state.bind(instr, state.read(state.operand_to_bv(instr.operands[0]), bits))
        elif opname == "store":
            value, pointer = instr.operands
            state.write(state.operand_to_bv(pointer), state.operand_to_bv(value))
        elif opname == "getelementptr":
            state.bind(instr, gep_address(state, instr))
        elif opname == "select":
            cond, lhs, rhs = (state.operand_to_bv(op) for op in instr.operands)
            state.bind(instr, claripy.If(cond == 1, lhs, rhs))
        elif opname == "phi":
            self._phi(state, instr)
        elif opname == "call":
            self._call(state, instr)
            return
        elif opname == "br":
            self._branch(state, instr)
            return
        elif opname == "switch":
            self._switch(state, instr)
            return
        elif opname in ("ret", "ret void"):
            self._return(state, instr)
            return
        elif opname == "unreachable":
            raise UnreachableInstruction(f"reached unreachable at {state.cur_loc}")
        else:
            raise UnsupportedInstruction(f"unsupported instruction {opname!r}: {instr}")
        self._advance(state)

    def _sized(self, ty: ir.Type) -> int:
        bits = self.project.size_in_bits(ty)
        if not bits:
            raise OtherError(f"type {ty} has no size")
        return bits

    def _cast(self, state: State, instr: ir.Instruction) -> None:
        value = state.operand_to_bv(instr.operands[0])
        bits = self._sized(instr.type)
        state.bind(instr, resize(value, bits, signed=instr.opname == "sext"))

    def _alloca(self, state: State, instr: ir.Instruction) -> None:
        bits = self._sized(instr.allocated_type)
        if instr.operands:
            count = state.operand_to_bv(instr.operands[0])
            if count.symbolic:
                raise OtherError(f"alloca with symbolic count: {instr}")
            bits *= state.eval_int(count)
        state.bind(instr, state.allocate(bits))

    def _phi(self, state: State, instr: ir.Instruction) -> None:
        previous = state.cur_loc.previous_block
        for value, block in instr.incomings:
            if block is previous:
                state.bind(instr, state.operand_to_bv(value))
                return
        raise OtherError(f"phi has no incoming value for {previous.name if previous else 'entry'}: {instr}")

    def _follow(self, state: State, successors: list[tuple[object, ir.Block]]) -> None:
        """Continue along the feasible successors of the current block.

        The first feasible successor continues on ``state``; every other one
        is forked off and scheduled as a separate path.
        """
        current = state.cur_loc.block
        feasible = [(constraint, block) for constraint, block in successors if state.sat([constraint])]
        if not feasible:
            raise OtherError(f"no feasible successor at {state.cur_loc}")
        for constraint, block in reversed(feasible[1:]):
            alternative = state.fork()
            alternative.assume(constraint)
            self._pending.append((alternative, block, current))
        constraint, block = feasible[0]
        if len(feasible) > 1:
            state.assume(constraint)
        self._enter_block(state, block, current)

    def _branch(self, state: State, instr: ir.Instruction) -> None:
        if len(instr.operands) == 1:
            self._enter_block(state, instr.operands[0], state.cur_loc.block)
            return
        cond, true_block, false_block = instr.operands
        cond_bv = state.operand_to_bv(cond)
        self._follow(state, [(cond_bv == 1, true_block), (cond_bv == 0, false_block)])

    def _switch(self, state: State, instr: ir.Instruction) -> None:
        value = state.operand_to_bv(instr.value)
        successors = []
        not_taken = []
        for case_value, block in instr.cases:
            case_bv = resize(state.operand_to_bv(case_value), value.size())
            successors.append((value == case_bv, block))
            not_taken.append(value != case_bv)
        if not not_taken:
            default_constraint = claripy.BoolV(True)
        elif len(not_taken) == 1:
            default_constraint = not_taken[0]
        else:
            default_constraint = claripy.And(*not_taken)
        successors.append((default_constraint, instr.default))
        self._follow(state, successors)

    def _return(self, state: State, instr: ir.Instruction) -> None:
        value = state.operand_to_bv(instr.operands[0]) if instr.operands else None
        frame = state.frames.pop()
        if not state.frames:
            state.frames.append(frame)
            raise _PathEnded(ReturnVoid() if value is None else Return(value))
        state.cur_loc = frame.return_loc
        if value is not None:
            state.bind(frame.call_site, value)
        self._advance(state)

    # -- calls ------------------------------------------------------------

    def _call(self, state: State, instr: ir.Instruction) -> None:
        callee = called_function(instr)
        name = callee.name if callee is not None else None

        if name is not None and self._builtin_call(state, instr, name):
            self._advance(state)
            return

        hook = self.config.function_hooks.get(name) if name is not None else None
        if hook is None and (callee is None or callee.is_declaration):
            hook = self.config.function_hooks.default
        if hook is not None:
            result = hook(state, instr)
            if isinstance(result, Return):
                state.bind(instr, result.value)
            elif not isinstance(result, ReturnVoid):
                raise _PathEnded(result)
            self._advance(state)
            return

        if callee is None:
            raise OtherError(f"indirect call without a hook: {instr}")
        if callee.is_declaration:
            raise OtherError(f"call to undefined function {name!r} without a hook")
        self._inline(state, instr, callee)

    def _inline(self, state: State, instr: ir.Instruction, callee: ir.Function) -> None:
        if len(state.frames) >= self.config.max_call_depth:
            raise OtherError(f"maximum call depth {self.config.max_call_depth} reached calling {callee.name}")
        args = [state.operand_to_bv(arg) for arg in instr.args]
        frame = Frame(callee, call_site=instr, return_loc=state.cur_loc)
        state.frames.append(frame)
        for param, arg in zip(callee.args, args):
            state.bind(param, arg)
        self._enter_block(state, callee.blocks[0], previous=None)

    def _builtin_call(self, state: State, instr: ir.Instruction, name: str) -> bool:
        """Model calls the engine knows natively. Returns True if handled."""
        if name in ABORTING_FUNCTIONS:
            raise _PathEnded(Abort())
        if name == "__cxa_throw":
            raise _PathEnded(Throw(state.operand_to_bv(instr.args[0])))
        if name.startswith(NOOP_INTRINSIC_PREFIXES):
            return True
        if name.startswith(MEMORY_INTRINSIC_PREFIXES):
            self._memory_intrinsic(state, instr, name)
            return True
        return False

    def _memory_intrinsic(self, state: State, instr: ir.Instruction, name: str) -> None:
        dest = state.operand_to_bv(instr.args[0])
        length = state.operand_to_bv(instr.args[2])
        if length.symbolic:
            raise OtherError(f"{name} with symbolic length")
        size = state.eval_int(length)
        if size == 0:
            return
        if name.startswith("llvm.memset."):
            byte = resize(state.operand_to_bv(instr.args[1]), 8)
            state.write(dest, claripy.Concat(*([byte] * size)) if size > 1 else byte)
        else:
            source = state.operand_to_bv(instr.args[1])
            state.write(dest, state.read(source, size * 8))


def gep_offset(state: State, source_type: ir.Type, indices: list[ir.Value], width: int):
    """Byte offset of a getelementptr's indices from its base pointer.

    ``source_type`` is the type the base pointer points to, as written on the
    instruction, so opaque pointers work as well as typed ones. The first
    index steps over whole ``source_type`` objects; later indices select
    struct fields (constant) or array/vector elements (scaled by element
    size).
    """
    offset = state.zero(width)
    ty = source_type
    for position, index in enumerate(indices):
        if position == 0:
            index_bv = resize(state.operand_to_bv(index), width, signed=True)
            offset = offset + index_bv * state.proj.size_in_bytes(ty)
        elif isinstance(ty, (ir.LiteralStructType, ir.IdentifiedStructType)):
            field = state.eval_int(state.operand_to_bv(index))
            preceding = sum(state.proj.size_in_bytes(t) for t in ty.elements[:field])
            offset = offset + preceding
            ty = ty.elements[field]
        elif isinstance(ty, (ir.ArrayType, ir.VectorType)):
            ty = ty.element
            index_bv = resize(state.operand_to_bv(index), width, signed=True)
            offset = offset + index_bv * state.proj.size_in_bytes(ty)
        else:
            raise OtherError(f"cannot index into {ty}")
    return offset


def gep_address(state: State, instr: ir.Instruction):
    """Address computed by a getelementptr instruction."""
    base = state.operand_to_bv(instr.pointer)
    return base + gep_offset(state, instr.source_etype, instr.indices, base.size())


def symex_function(func_name: str, project: Project, config: Config | None = None) -> ExecutionManager:
    """Start exploring ``func_name``; iterate the result to obtain path results."""
    return ExecutionManager(func_name, project, config)
