"""Command-line interface for the sandverify safety checker."""

import argparse
import importlib
import json
import logging
import sys
from pathlib import Path

from llvmlite import ir

from . import __version__

# Configure logging
logging.basicConfig(format="[%(levelname)s] %(message)s", level=logging.INFO)

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for sandverify.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="sandverify",
        description="sandverify - bounded safety verification of RLBox sandboxed code in LLVM IR",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    # Required arguments
    parser.add_argument(
        "target",
        type=str,
        help="Import reference package.module:factory to a callable returning an llvmlite.ir.Module",
    )
    parser.add_argument("functions", nargs="+", help="Symbol names of the functions to verify")

    # Optional arguments
    parser.add_argument("-o", "--output", type=str, help="Output file for results (JSON format)")

    parser.add_argument("--bound", type=int, default=1000, help="Maximum visits of one basic block per path")

    parser.add_argument("--no-null-checks", action="store_true", help="Do not end paths on possible NULL loads/stores")

    parser.add_argument(
        "--checkers",
        type=str,
        default="null_dereference,division_by_zero,out_of_bounds",
        help="Comma-separated checkers to run",
    )

    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")

    parser.add_argument("--debug", action="store_true", help="Enable debug output, including every executed instruction")

    parser.add_argument("--json", action="store_true", help="Output results as JSON to stdout")

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    return parser


def load_module(target: str) -> ir.Module:
    """Import ``package.module:factory`` and call the factory.

    Args:
        target: Import reference to a module factory

    Returns:
        The IR module built by the factory

    Raises:
        ValueError: if the reference is malformed or the factory returns something else
    """
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"expected package.module:factory, got {target!r}")
    factory = getattr(importlib.import_module(module_name), attr)
    module = factory() if callable(factory) else factory
    if not isinstance(module, ir.Module):
        raise ValueError(f"{target} produced {type(module).__name__}, not an llvmlite.ir.Module")
    return module


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the sandverify CLI.

    Args:
        argv: Command-line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 if every path passed, 1 on violations, 2 on errors or aborted paths)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    # Set logging level
    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)
    elif args.verbose:
        logging.getLogger().setLevel(logging.INFO)
    elif args.json:
        # In JSON mode, suppress most logs but keep ERROR and WARNING
        logging.getLogger().setLevel(logging.WARNING)
    else:
        logging.getLogger().setLevel(logging.INFO)

    from sandverify.core.analysis_context import AnalysisConfig, AnalysisContext
    from sandverify.core.function_analyzer import FunctionAnalyzer

    try:
        module = load_module(args.target)
        config = AnalysisConfig(
            loop_bound=args.bound,
            null_pointer_checking=not args.no_null_checks,
            checkers=tuple(name.strip() for name in args.checkers.split(",") if name.strip()),
            verbose=args.verbose,
            trace_instructions=args.debug,
        )
        context = AnalysisContext.create_for_module(module, config)
    except (ImportError, AttributeError, ValueError) as e:
        logger.error(f"Cannot set up analysis of {args.target}: {e}")
        return 2

    analyzer = FunctionAnalyzer(context)
    all_results = []
    failed_functions = []
    violations = 0

    for func_name in args.functions:
        try:
            result = analyzer.analyze(func_name)
        except KeyboardInterrupt:
            logger.error("\nAnalysis interrupted by user")
            return 130

        if result.error or result.aborted:
            failed_functions.append(func_name)

        if not args.json:
            if result.has_violations:
                logger.warning(f"{func_name}: {len(result.violations)} of {result.path_count} path(s) unsafe")
                for report in result.violations:
                    logger.warning(f"  path {report.index}: {report.check.kind.value}: {report.check.message}")
            if result.aborted:
                logger.warning(f"{func_name}: {len(result.aborted)} of {result.path_count} path(s) aborted")
                for report in result.aborted:
                    logger.warning(f"  path {report.index}: {report.result}")
            if not (result.error or result.aborted or result.has_violations):
                logger.info(f"{func_name}: all {result.path_count} path(s) safe")

        violations += len(result.violations)
        all_results.append(result.to_json_compatible())

    # Output results
    if args.json or args.output:
        output_data = all_results[0] if len(all_results) == 1 else {"results": all_results}

        if args.output:
            output_path = Path(args.output)
            with open(output_path, "w") as f:
                json.dump(output_data, f, indent=2)
            if not args.json:
                logger.info(f"Results saved to: {output_path}")

        if args.json:
            print(json.dumps(output_data, indent=2))

    if failed_functions:
        logger.warning(f"Failed functions: {', '.join(failed_functions)}")
        return 2
    return 1 if violations else 0


def run() -> None:
    """Entry point for console script."""
    sys.exit(main())


if __name__ == "__main__":
    run()
