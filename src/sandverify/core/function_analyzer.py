"""Bounded symbolic exploration and checking of individual functions."""

import logging
import time

from ..checkers import ExecutionTrace, check_trace
from ..engine import EngineError, describe_result, symex_function
from ..models import AnalysisResult, CheckResult, PathReport
from .analysis_context import AnalysisContext

logger = logging.getLogger(__name__)


def symex_function_and_monitor(func_name: str, context: AnalysisContext) -> list[ExecutionTrace]:
    """Explore every path of a function with hooks and monitors installed.

    Args:
        func_name: Symbol name of the function
        context: Analysis context

    Returns:
        One trace per explored path, in exploration order

    Raises:
        FunctionNotFound: if the project has no such function
    """
    manager = symex_function(func_name, context.project, context.engine_config)
    traces = []
    for result in manager:
        traces.append(ExecutionTrace(result, manager.state))
    return traces


def symex_and_check(func_name: str, context: AnalysisContext) -> list[CheckResult]:
    """Explore a function and run the trace checkers on every path.

    Returns:
        One check result per explored path
    """
    traces = symex_function_and_monitor(func_name, context)
    return [check_trace(trace, context.checkers) for trace in traces]


class FunctionAnalyzer:
    """Verifies functions of one module and builds result models."""

    def __init__(self, context: AnalysisContext) -> None:
        """Initialize the function analyzer.

        Args:
            context: Analysis context
        """
        self.context = context

    def analyze(self, func_name: str) -> AnalysisResult:
        """Explore and check every path of a function.

        Args:
            func_name: Symbol name of the function

        Returns:
            Analysis result with one report per path
        """
        logger.info(f"Analyzing {func_name} (loop bound {self.context.config.loop_bound})")
        start = time.time()
        result = AnalysisResult(function=func_name, loop_bound=self.context.config.loop_bound)

        try:
            traces = symex_function_and_monitor(func_name, self.context)
        except EngineError as e:
            self.context.print_error(f"Failed to explore {func_name}: {e}")
            result.error.append(str(e))
            result.analysis_time = round(time.time() - start, 3)
            return result

        for index, trace in enumerate(traces):
            check = check_trace(trace, self.context.checkers)
            aborted = check.passed and isinstance(trace.result, EngineError)
            result.paths.append(
                PathReport(
                    index=index,
                    result=describe_result(trace.result),
                    blocks=list(trace.state.path),
                    check=check,
                    aborted=aborted,
                )
            )
            if not check.passed:
                logger.warning(f"{func_name} path {index}: {check.kind.value}: {check.message}")
            elif aborted:
                logger.warning(f"{func_name} path {index} aborted: {describe_result(trace.result)}")
            elif self.context.config.verbose:
                logger.info(f"{func_name} path {index}: {describe_result(trace.result)}")

        result.analysis_time = round(time.time() - start, 3)
        logger.info(
            f"{func_name}: {result.path_count} path(s), {len(result.violations)} violation(s), "
            f"{len(result.aborted)} aborted in {result.analysis_time}s"
        )
        return result
