"""Unit tests for the hook registry, dispatcher and hooks."""

import pytest
from llvmlite import ir

from conftest import I8, I32, I64, INT_ARRAY, STD_ARRAY_INDEX, declare, define
from sandverify.core.function_analyzer import symex_function_and_monitor
from sandverify.engine import NullPointerDereference, Return, ReturnVoid
from sandverify.errors import ArityMismatch, EngineRejected, Other, UnresolvableCallTarget
from sandverify.hooks import (
    DefaultHook,
    HookDispatcher,
    HookRegistry,
    TaintedDerefHook,
    register_all_hooks,
)


def returning(tag):
    """Hook returning a fixed tag, for precedence tests."""

    def hook(state, call):
        return Return(tag)

    return hook


def single_path(context, func_name):
    traces = symex_function_and_monitor(func_name, context)
    assert len(traces) == 1
    return traces[0]


class TestHookRegistry:
    """Test the hook registry."""

    def test_last_registration_wins(self):
        registry = HookRegistry()
        registry.register("ns::f", returning("first"))
        registry.register("ns::f", returning("second"))

        key, hook = registry.lookup("ns::f")
        assert key == "ns::f"
        assert hook(None, None) == Return("second")
        assert len(registry) == 1

    def test_lookup_order(self):
        registry = HookRegistry()
        registry.register("b", returning("b"))
        registry.register("c", returning("c"))

        assert registry.lookup("a", "c", "b")[0] == "c"
        assert registry.lookup("a") is None

    def test_frozen_registry_rejects_registration(self):
        registry = HookRegistry()
        registry.register("f", returning("f"))
        registry.freeze()

        assert registry.frozen
        with pytest.raises(RuntimeError):
            registry.register("g", returning("g"))
        with pytest.raises(RuntimeError):
            registry.register_default(returning("default"))

    def test_register_all_hooks(self):
        registry = HookRegistry()
        register_all_hooks(registry)

        assert "rlbox::tainted_base_impl::operator[]" in registry
        assert "std::array::operator[]" in registry
        assert "rlbox::rlbox_sandbox::malloc_in_sandbox" in registry
        assert isinstance(registry.default, DefaultHook)

    def test_hooks_keep_no_call_state(self, rlbox_module, make_context):
        context = make_context(rlbox_module)
        symex_function_and_monitor("sandbox_array_index_unchecked_safe", context)

        for signature in context.registry.signatures():
            _, hook = context.registry.lookup(signature)
            assert not hasattr(hook, "state")
            assert not hasattr(hook, "call")

    def test_shared_registry_across_analyses(self, rlbox_module, division_module):
        from sandverify.core.analysis_context import AnalysisContext

        registry = HookRegistry()
        register_all_hooks(registry)
        first = AnalysisContext.create_for_module(rlbox_module, registry=registry)
        second = AnalysisContext.create_for_module(division_module, registry=registry)

        safe = symex_function_and_monitor("sandbox_array_index_unchecked_safe", first)
        divide = symex_function_and_monitor("divide", second)

        assert isinstance(safe[0].result, Return)
        assert registry.frozen
        assert len(divide) == 1

    def test_arity_checked_before_run(self):
        module = ir.Module(name="arity_direct")
        deref = declare(module, "deref", I32, [I32.as_pointer(), I32])
        func, builder = define(module, "caller", I32, [I32.as_pointer()])
        call = builder.call(deref, [func.args[0], ir.Constant(I32, 1)])

        with pytest.raises(ArityMismatch) as exc_info:
            TaintedDerefHook()(None, call)

        assert exc_info.value.expected == 1
        assert exc_info.value.actual == 2


class TestHookDispatcher:
    """Test signature lookup precedence."""

    NAME = "rlbox::tainted_base_impl<rlbox::tainted, int, S>::UNSAFE_unverified() const"

    def test_canonical_match(self):
        registry = HookRegistry()
        registry.register("rlbox::tainted_base_impl::UNSAFE_unverified", returning("canonical"))

        key, _ = HookDispatcher(registry).find_hook(self.NAME)
        assert key == "rlbox::tainted_base_impl::UNSAFE_unverified"

    def test_exact_name_wins_over_canonical(self):
        registry = HookRegistry()
        registry.register("rlbox::tainted_base_impl::UNSAFE_unverified", returning("canonical"))
        registry.register(self.NAME, returning("exact"))

        key, _ = HookDispatcher(registry).find_hook(self.NAME)
        assert key == self.NAME

    def test_qualified_name_wins_over_canonical(self):
        registry = HookRegistry()
        registry.register("rlbox::tainted_base_impl::UNSAFE_unverified", returning("canonical"))
        registry.register("rlbox::tainted_base_impl<rlbox::tainted, int, S>::UNSAFE_unverified", returning("qualified"))

        key, _ = HookDispatcher(registry).find_hook(self.NAME)
        assert key == "rlbox::tainted_base_impl<rlbox::tainted, int, S>::UNSAFE_unverified"

    def test_mangled_name_resolved(self):
        registry = HookRegistry()
        registry.register("space::foo", returning("foo"))

        key, _ = HookDispatcher(registry).find_hook("_ZN5space3fooEii")
        assert key == "space::foo"

    def test_balanced_tail_fallback(self):
        registry = HookRegistry()
        registry.register("helper", returning("tail"))

        key, _ = HookDispatcher(registry).find_hook("outer::inner<a::b>::helper<int>(int)")
        assert key == "helper"

    def test_no_match(self):
        registry = HookRegistry()
        registry.register("other", returning("other"))

        assert HookDispatcher(registry).find_hook("space::foo(int)") is None

    def test_indirect_call_unresolvable(self):
        module = ir.Module(name="indirect")
        fn_type = ir.FunctionType(I32, [])
        func, builder = define(module, "caller", I32, [fn_type.as_pointer()])
        call = builder.call(func.args[0], [])
        builder.ret(call)

        with pytest.raises(UnresolvableCallTarget):
            HookDispatcher(HookRegistry())(None, call)

    def test_no_default_hook(self):
        module = ir.Module(name="nodefault")
        external = declare(module, "external", I32, [])
        _, builder = define(module, "caller", I32, [])
        call = builder.call(external, [])
        builder.ret(call)

        with pytest.raises(Other):
            HookDispatcher(HookRegistry())(None, call)

    def test_install_hooks_defined_functions(self, rlbox_module):
        from sandverify.engine import FunctionHooks, Project

        registry = HookRegistry()
        register_all_hooks(registry)
        dispatcher = HookDispatcher(registry)
        function_hooks = FunctionHooks()
        dispatcher.install(function_hooks, Project.from_module(rlbox_module))

        assert function_hooks.default is dispatcher
        assert function_hooks.get("sandbox_array_index_checked") is None


class TestDefaultHook:
    """Test placeholder values for unmodeled calls."""

    def _call_external(self, make_context, return_type, name="external"):
        module = ir.Module(name="default_hook")
        external = declare(module, name, return_type, [])
        _, builder = define(module, "caller", return_type, [])
        value = builder.call(external, [])
        if isinstance(return_type, ir.VoidType):
            builder.ret_void()
        else:
            builder.ret(value)
        return single_path(make_context(module), "caller")

    def _variables(self, value):
        return list(value.variables)

    def test_integer(self, make_context):
        trace = self._call_external(make_context, I32)

        assert isinstance(trace.result, Return)
        assert trace.result.value.size() == 32
        assert any(v.startswith("int_external") for v in self._variables(trace.result.value))

    def test_float(self, make_context):
        trace = self._call_external(make_context, ir.DoubleType())

        assert trace.result.value.size() == 64
        assert any(v.startswith("fp_external") for v in self._variables(trace.result.value))

    def test_struct(self, make_context):
        trace = self._call_external(make_context, ir.LiteralStructType([I32, I64]))

        assert trace.result.value.size() == 96
        assert any(v.startswith("struct_external") for v in self._variables(trace.result.value))

    def test_array(self, make_context):
        trace = self._call_external(make_context, INT_ARRAY)

        assert trace.result.value.size() == 128
        assert any(v.startswith("arr_external") for v in self._variables(trace.result.value))

    def test_vector(self, make_context):
        trace = self._call_external(make_context, ir.VectorType(I32, 2))

        assert trace.result.value.size() == 64
        assert any(v.startswith("vec_external") for v in self._variables(trace.result.value))

    def test_pointer_allocates_storage(self, make_context):
        trace = self._call_external(make_context, I32.as_pointer())

        assert not trace.result.value.symbolic

    def test_pointer_to_zero_sized_type(self, make_context):
        trace = self._call_external(make_context, ir.LiteralStructType([]).as_pointer())

        assert trace.result.value.symbolic
        assert any(v.startswith("ptr_external") for v in self._variables(trace.result.value))

    def test_void(self, make_context):
        trace = self._call_external(make_context, ir.VoidType())

        assert isinstance(trace.result, ReturnVoid)

    def test_opaque_struct(self, make_context):
        opaque = ir.Context().get_identified_type("struct.Opaque")
        trace = self._call_external(make_context, opaque)

        assert isinstance(trace.result, Other)


class TestRLBoxHooks:
    """Test the RLBox hook semantics through the engine."""

    def test_std_array_index(self, make_context):
        module = ir.Module(name="std_array")
        subscript = declare(module, STD_ARRAY_INDEX, I32.as_pointer(), [INT_ARRAY.as_pointer(), I64])
        _, builder = define(module, "third", I64, [])
        array = builder.alloca(INT_ARRAY)
        element = builder.call(subscript, [array, ir.Constant(I64, 3)])
        distance = builder.sub(builder.ptrtoint(element, I64), builder.ptrtoint(array, I64))
        builder.ret(distance)

        trace = single_path(make_context(module), "third")
        assert trace.state.eval_int(trace.result.value) == 12

    def test_tainted_index_by_reference(self, make_context):
        module = ir.Module(name="tainted_index")
        name = "rlbox::tainted_base_impl<rlbox::tainted_volatile, long [8], S>::operator[]<int>(int&&) const"
        subscript = declare(module, name, I64.as_pointer(), [ir.ArrayType(I64, 8).as_pointer(), I32.as_pointer()])
        _, builder = define(module, "fifth", I64, [])
        array = builder.alloca(ir.ArrayType(I64, 8))
        index = builder.alloca(I32)
        builder.store(ir.Constant(I32, 5), index)
        element = builder.call(subscript, [array, index])
        builder.ret(builder.sub(builder.ptrtoint(element, I64), builder.ptrtoint(array, I64)))

        trace = single_path(make_context(module), "fifth")
        assert trace.state.eval_int(trace.result.value) == 40

    def test_assign_then_unsafe_unverified(self, make_context):
        module = ir.Module(name="assign")
        assign = declare(
            module, "rlbox::tainted<int, S>::operator=(int)", I32.as_pointer(), [I32.as_pointer(), I32]
        )
        unsafe = declare(module, "rlbox::tainted_base_impl<rlbox::tainted, int, S>::UNSAFE_unverified()", I32, [I32.as_pointer()])
        _, builder = define(module, "roundtrip", I32, [])
        wrapper = builder.alloca(I32)
        destination = builder.call(assign, [wrapper, ir.Constant(I32, 42)])
        builder.ret(builder.call(unsafe, [destination]))

        trace = single_path(make_context(module), "roundtrip")
        assert trace.state.eval_int(trace.result.value) == 42

    def test_assign_from_wrapper(self, make_context):
        module = ir.Module(name="assign_wrapper")
        assign = declare(
            module,
            "rlbox::tainted_volatile<int, S>::operator=(rlbox::tainted<int, S> const&)",
            ir.VoidType(),
            [I32.as_pointer(), I32.as_pointer()],
        )
        _, builder = define(module, "copy", I32, [])
        source = builder.alloca(I32)
        builder.store(ir.Constant(I32, 7), source)
        destination = builder.alloca(I32)
        builder.call(assign, [destination, source])
        builder.ret(builder.load(destination))

        trace = single_path(make_context(module), "copy")
        assert trace.state.eval_int(trace.result.value) == 7

    def test_deref_reads_stored_pointer(self, make_context):
        module = ir.Module(name="deref")
        name = "rlbox::tainted_base_impl<rlbox::tainted, int*, S>::operator*() const"
        deref = declare(module, name, I32.as_pointer(), [I32.as_pointer().as_pointer()])
        _, builder = define(module, "unwrap", I64, [])
        target = builder.alloca(I32)
        wrapper = builder.alloca(I32.as_pointer())
        builder.store(target, wrapper)
        pointer = builder.call(deref, [wrapper])
        builder.ret(builder.sub(builder.ptrtoint(pointer, I64), builder.ptrtoint(target, I64)))

        trace = single_path(make_context(module), "unwrap")
        assert trace.state.eval_int(trace.result.value) == 0

    def test_malloc_in_sandbox_with_count(self, make_context):
        module = ir.Module(name="malloc")
        name = "rlbox::tainted<int*, S> rlbox::rlbox_sandbox<S>::malloc_in_sandbox<int>(unsigned int)"
        malloc = declare(module, name, I32.as_pointer(), [I8.as_pointer(), I32])
        _, builder = define(module, "allocate_two", I64, [])
        sandbox = builder.alloca(I8)
        first = builder.call(malloc, [sandbox, ir.Constant(I32, 100)])
        second = builder.call(malloc, [sandbox, ir.Constant(I32, 1)])
        builder.ret(builder.sub(builder.ptrtoint(second, I64), builder.ptrtoint(first, I64)))

        trace = single_path(make_context(module), "allocate_two")
        # 400 bytes rounded up to the allocation alignment
        assert trace.state.eval_int(trace.result.value) >= 400

    def test_malloc_in_sandbox_symbolic_count(self, make_context):
        module = ir.Module(name="malloc_symbolic")
        name = "rlbox::tainted<int*, S> rlbox::rlbox_sandbox<S>::malloc_in_sandbox<int>(unsigned int)"
        malloc = declare(module, name, I32.as_pointer(), [I8.as_pointer(), I32])
        func, builder = define(module, "allocate_n", I32.as_pointer(), [I32])
        sandbox = builder.alloca(I8)
        builder.ret(builder.call(malloc, [sandbox, func.args[0]]))

        trace = single_path(make_context(module), "allocate_n")
        assert isinstance(trace.result, Other)

    def test_arity_mismatch(self, make_context):
        module = ir.Module(name="arity")
        name = "rlbox::tainted_base_impl<rlbox::tainted, int*, S>::operator*() const"
        deref = declare(module, name, I32.as_pointer(), [I32.as_pointer().as_pointer(), I32])
        _, builder = define(module, "bad_call", I32.as_pointer(), [])
        wrapper = builder.alloca(I32.as_pointer())
        builder.ret(builder.call(deref, [wrapper, ir.Constant(I32, 0)]))

        trace = single_path(make_context(module), "bad_call")
        assert isinstance(trace.result, ArityMismatch)

    def test_engine_error_wrapped(self, make_context):
        module = ir.Module(name="rejected")
        unsafe = declare(module, "rlbox::tainted_base_impl<rlbox::tainted, int, S>::UNSAFE_unverified()", I32, [I32.as_pointer()])
        _, builder = define(module, "read_null", I32, [])
        builder.ret(builder.call(unsafe, [ir.Constant(I32.as_pointer(), None)]))

        trace = single_path(make_context(module), "read_null")
        assert isinstance(trace.result, EngineRejected)
        assert isinstance(trace.result.cause, NullPointerDereference)

    def test_defined_function_with_hook_is_not_inlined(self, make_context):
        module = ir.Module(name="defined")
        name = "rlbox::tainted_base_impl<rlbox::tainted, int, S>::UNSAFE_unverified()"
        func, builder = define(module, name, I32, [I32.as_pointer()])
        builder.ret(ir.Constant(I32, -1))
        _, builder = define(module, "caller", I32, [])
        slot = builder.alloca(I32)
        builder.store(ir.Constant(I32, 9), slot)
        builder.ret(builder.call(func, [slot]))

        trace = single_path(make_context(module), "caller")
        assert trace.state.eval_int(trace.result.value) == 9
