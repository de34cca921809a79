"""Shared LLVM IR fixtures, built with llvmlite's IRBuilder."""

import pytest
from llvmlite import ir

from sandverify.core.analysis_context import AnalysisConfig, AnalysisContext

I1 = ir.IntType(1)
I8 = ir.IntType(8)
I32 = ir.IntType(32)
I64 = ir.IntType(64)
INT_ARRAY = ir.ArrayType(I32, 4)

# Demangled RLBox API names, as clang emits them for an int32_t[4] sandbox array
MALLOC_IN_SANDBOX = (
    "rlbox::tainted<int (*) [4], TestSandbox> "
    "rlbox::rlbox_sandbox<TestSandbox>::malloc_in_sandbox<int [4]>()"
)
TAINTED_DEREF = "rlbox::tainted_base_impl<rlbox::tainted, int (*) [4], TestSandbox>::operator*() const"
TAINTED_INDEX = (
    "rlbox::tainted_volatile<int, TestSandbox>& "
    "rlbox::tainted_base_impl<rlbox::tainted_volatile, int [4], TestSandbox>::operator[]<int>(int&&) const"
)
TAINTED_ASSIGN = (
    "rlbox::tainted_volatile<int, TestSandbox>& "
    "rlbox::tainted_volatile<int, TestSandbox>::operator=<int>(int&&)"
)
UNSAFE_UNVERIFIED = "int rlbox::tainted_base_impl<rlbox::tainted_volatile, int, TestSandbox>::UNSAFE_unverified() const"
STD_ARRAY_INDEX = "std::__1::array<int, 4ul>::operator[][abi:un170006](unsigned long)"


def declare(module: ir.Module, name: str, return_type: ir.Type, arg_types: list[ir.Type]) -> ir.Function:
    """Declare a function, or return the existing declaration."""
    if name in module.globals:
        return module.globals[name]
    return ir.Function(module, ir.FunctionType(return_type, arg_types), name=name)


def define(module: ir.Module, name: str, return_type: ir.Type, arg_types: list[ir.Type]):
    """Define a function and return it with a builder at its entry block."""
    func = ir.Function(module, ir.FunctionType(return_type, arg_types), name=name)
    builder = ir.IRBuilder(func.append_basic_block(name="entry"))
    return func, builder


def _sandbox_element(module: ir.Module, builder: ir.IRBuilder, array: ir.Value, index: int) -> ir.Value:
    """Emit ``(*sandbox_array)[index]``, returning the element reference."""
    deref = declare(module, TAINTED_DEREF, INT_ARRAY.as_pointer(), [INT_ARRAY.as_pointer().as_pointer()])
    subscript = declare(module, TAINTED_INDEX, I32.as_pointer(), [INT_ARRAY.as_pointer(), I32.as_pointer()])
    index_slot = builder.alloca(I32)
    builder.store(ir.Constant(I32, index), index_slot)
    return builder.call(subscript, [builder.call(deref, [array]), index_slot])


def _sandbox_array_function(module: ir.Module, name: str, initial: list[int] | None, clamp: bool) -> None:
    """Emit one sandbox array scenario.

    Allocates ``int32_t[4]`` in the sandbox, optionally initializes it, reads
    element 0 with UNSAFE_unverified and uses it to index a host array.
    """
    malloc = declare(module, MALLOC_IN_SANDBOX, INT_ARRAY.as_pointer(), [I8.as_pointer()])
    assign = declare(module, TAINTED_ASSIGN, I32.as_pointer(), [I32.as_pointer(), I32])
    unsafe = declare(module, UNSAFE_UNVERIFIED, I32, [I32.as_pointer()])

    func, builder = define(module, name, I32, [])
    sandbox = builder.alloca(I8, name="sandbox")
    wrapper = builder.alloca(INT_ARRAY.as_pointer(), name="sandbox_array")
    builder.store(builder.call(malloc, [sandbox]), wrapper)

    for i, value in enumerate(initial or []):
        builder.call(assign, [_sandbox_element(module, builder, wrapper, i), ir.Constant(I32, value)])

    host = builder.alloca(INT_ARRAY, name="host_array")
    builder.store(ir.Constant(INT_ARRAY, [100, 200, 300, 400]), host)
    index = builder.call(unsafe, [_sandbox_element(module, builder, wrapper, 0)], name="index")

    if clamp:
        use_block = func.append_basic_block(name="in_range")
        reject_block = func.append_basic_block(name="out_of_range")
        builder.cbranch(builder.icmp_unsigned("<", index, ir.Constant(I32, 4)), use_block, reject_block)
        builder.position_at_end(reject_block)
        builder.ret(ir.Constant(I32, -1))
        builder.position_at_end(use_block)

    element = builder.gep(host, [ir.Constant(I64, 0), index], inbounds=True, name="element")
    builder.load(element)
    builder.ret(ir.Constant(I32, 0))


def build_rlbox_module() -> ir.Module:
    """Module with the sandbox array indexing scenarios."""
    module = ir.Module(name="rlbox_arrays")
    _sandbox_array_function(module, "sandbox_array_index_unchecked_unsafe", [10, 20, 30, 40], clamp=False)
    _sandbox_array_function(module, "sandbox_array_index_unchecked_safe", [2, 20, 30, 40], clamp=False)
    _sandbox_array_function(module, "sandbox_array_index_attacker_controlled", None, clamp=False)
    _sandbox_array_function(module, "sandbox_array_index_checked", None, clamp=True)
    return module


def build_null_module() -> ir.Module:
    """Module whose function dereferences its argument on both branches of a NULL test."""
    module = ir.Module(name="null_deref")
    func, builder = define(module, "load_maybe_null", I32, [I32.as_pointer()])
    pointer = func.args[0]
    pointer.name = "p"
    is_null = builder.icmp_unsigned("==", pointer, ir.Constant(I32.as_pointer(), None))
    null_block = func.append_basic_block(name="is_null")
    nonnull_block = func.append_basic_block(name="not_null")
    builder.cbranch(is_null, null_block, nonnull_block)
    for block in (null_block, nonnull_block):
        builder.position_at_end(block)
        builder.ret(builder.load(pointer))
    return module


def build_division_module() -> ir.Module:
    """Module with an unguarded and a guarded division."""
    module = ir.Module(name="division")

    func, builder = define(module, "divide", I32, [I32, I32])
    builder.ret(builder.udiv(func.args[0], func.args[1]))

    func, builder = define(module, "divide_checked", I32, [I32, I32])
    divisor = func.args[1]
    divide_block = func.append_basic_block(name="divide")
    zero_block = func.append_basic_block(name="zero")
    builder.cbranch(builder.icmp_unsigned("!=", divisor, ir.Constant(I32, 0)), divide_block, zero_block)
    builder.position_at_end(divide_block)
    builder.ret(builder.sdiv(func.args[0], divisor))
    builder.position_at_end(zero_block)
    builder.ret(ir.Constant(I32, 0))

    return module


def build_indirect_call_module() -> ir.Module:
    """Module calling through a function pointer argument."""
    module = ir.Module(name="indirect")

    callback = ir.FunctionType(I32, [])
    func, builder = define(module, "call_through", I32, [callback.as_pointer()])
    builder.ret(builder.call(func.args[0], []))

    return module


def build_globals_module() -> ir.Module:
    """Module reading an initialized global through constant expressions."""
    module = ir.Module(name="globals")
    table = ir.GlobalVariable(module, INT_ARRAY, name="table")
    table.initializer = ir.Constant(INT_ARRAY, [1, 2, 3, 4])
    table.global_constant = True

    _, builder = define(module, "read_second", I32, [])
    builder.ret(builder.load(table.gep([ir.Constant(I64, 0), ir.Constant(I64, 1)])))

    _, builder = define(module, "read_first_byte", I8, [])
    builder.ret(builder.load(table.bitcast(I8.as_pointer())))

    _, builder = define(module, "third_offset", I64, [])
    third = table.gep([ir.Constant(I64, 0), ir.Constant(I64, 2)]).ptrtoint(I64)
    builder.ret(builder.sub(third, table.ptrtoint(I64)))

    return module



@pytest.fixture
def rlbox_module():
    return build_rlbox_module()


@pytest.fixture
def null_module():
    return build_null_module()


@pytest.fixture
def division_module():
    return build_division_module()


@pytest.fixture
def make_context():
    """Factory building an analysis context for a module."""

    def factory(module, **config_kwargs):
        return AnalysisContext.create_for_module(module, AnalysisConfig(**config_kwargs))

    return factory
