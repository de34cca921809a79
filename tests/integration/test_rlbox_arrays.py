"""Integration tests verifying RLBox sandbox array indexing."""

import pytest

from sandverify.core.function_analyzer import FunctionAnalyzer, symex_and_check, symex_function_and_monitor
from sandverify.engine import Return
from sandverify.errors import OutOfBounds
from sandverify.models import CheckKind


class TestSandboxArrayIndexing:
    """Host array indexed by a value read back from sandbox memory."""

    def test_unchecked_unsafe(self, rlbox_module, make_context):
        """Sandbox value 10 indexes a four-element host array."""
        traces = symex_function_and_monitor("sandbox_array_index_unchecked_unsafe", make_context(rlbox_module))

        assert len(traces) == 1
        assert isinstance(traces[0].result, OutOfBounds)

    def test_unchecked_safe(self, rlbox_module, make_context):
        """Sandbox value 2 stays inside the host array."""
        results = symex_and_check("sandbox_array_index_unchecked_safe", make_context(rlbox_module))

        assert len(results) == 1
        assert results[0].passed

    def test_attacker_controlled(self, rlbox_module, make_context):
        """Uninitialized sandbox memory can hold any index."""
        results = symex_and_check("sandbox_array_index_attacker_controlled", make_context(rlbox_module))

        assert len(results) == 1
        assert results[0].kind == CheckKind.OUT_OF_BOUNDS

    def test_checked(self, rlbox_module, make_context):
        """An explicit range check before indexing makes every path safe."""
        context = make_context(rlbox_module)
        traces = symex_function_and_monitor("sandbox_array_index_checked", context)

        assert len(traces) == 2
        assert all(isinstance(trace.result, Return) for trace in traces)
        assert traces[0].state.path[-1] == "sandbox_array_index_checked:in_range"
        assert traces[1].state.path[-1] == "sandbox_array_index_checked:out_of_range"

    def test_out_of_range_path_returns_sentinel(self, rlbox_module, make_context):
        traces = symex_function_and_monitor("sandbox_array_index_checked", make_context(rlbox_module))
        rejected = traces[1]

        assert rejected.state.eval_int(rejected.result.value) == 0xFFFFFFFF

    @pytest.mark.parametrize(
        "func_name, unsafe",
        [
            ("sandbox_array_index_unchecked_unsafe", True),
            ("sandbox_array_index_unchecked_safe", False),
            ("sandbox_array_index_attacker_controlled", True),
            ("sandbox_array_index_checked", False),
        ],
    )
    def test_analyzer_report(self, rlbox_module, make_context, func_name, unsafe):
        result = FunctionAnalyzer(make_context(rlbox_module)).analyze(func_name)

        assert not result.error
        assert result.has_violations == unsafe
        if unsafe:
            assert result.violations[0].check.kind == CheckKind.OUT_OF_BOUNDS

    def test_bounds_checks_disabled(self, rlbox_module, make_context):
        context = make_context(rlbox_module, checkers=("null_dereference", "division_by_zero"))
        results = symex_and_check("sandbox_array_index_unchecked_unsafe", context)

        assert all(result.passed for result in results)

    def test_hook_calls_visible_in_trace(self, rlbox_module, make_context):
        traces = symex_function_and_monitor("sandbox_array_index_unchecked_safe", make_context(rlbox_module))

        # Hooked calls are not inlined, so only the analyzed function's block is visited
        assert traces[0].state.path == ["sandbox_array_index_unchecked_safe:entry"]
