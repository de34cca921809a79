"""Analysis context for verifying functions of an LLVM IR module."""

import logging
from dataclasses import dataclass, field

from llvmlite import ir

from ..checkers import TraceChecker, checker_registry
from ..engine import Config, Project
from ..engine.state import State
from ..hooks import HookDispatcher, HookRegistry, register_all_hooks

logger = logging.getLogger(__name__)

DEFAULT_CHECKERS = ("null_dereference", "division_by_zero", "out_of_bounds")


@dataclass
class AnalysisConfig:
    """Configuration for function analysis."""

    loop_bound: int = 1000  # Maximum visits of one basic block per path
    null_pointer_checking: bool = True
    max_call_depth: int = 64  # Maximum depth of inlined calls
    checkers: tuple[str, ...] = DEFAULT_CHECKERS
    verbose: bool = False  # Verbose output mode

    # Log every executed instruction at DEBUG level
    trace_instructions: bool = False


def log_instruction(instr: ir.Instruction, state: State) -> None:
    """Instruction callback logging each executed instruction."""
    logger.debug(f"insn {state.cur_loc}: {str(instr).strip()}")


@dataclass
class AnalysisContext:
    """Everything one analysis needs, built once before exploration."""

    project: Project
    config: AnalysisConfig

    # Frozen hook table shared by every path
    registry: HookRegistry

    # Engine configuration with hooks and monitors installed
    engine_config: Config

    checkers: list[TraceChecker] = field(default_factory=list)
    error_messages: list[str] = field(default_factory=list)

    @classmethod
    def create_for_module(
        cls,
        module: ir.Module | Project,
        config: AnalysisConfig | None = None,
        registry: HookRegistry | None = None,
    ) -> "AnalysisContext":
        """Create analysis context for an IR module.

        Args:
            module: Module to analyze, or a project of several modules
            config: Analysis configuration (uses defaults if None)
            registry: Hook registry (all built-in hooks if None); frozen here

        Returns:
            Configured analysis context
        """
        project = module if isinstance(module, Project) else Project.from_module(module)
        config = config or AnalysisConfig()

        if registry is None:
            registry = HookRegistry()
            register_all_hooks(registry)
        registry.freeze()

        checkers = checker_registry.create_instances(config.checkers)

        engine_config = Config(
            loop_bound=config.loop_bound,
            null_pointer_checking=config.null_pointer_checking,
            max_call_depth=config.max_call_depth,
        )
        HookDispatcher(registry).install(engine_config.function_hooks, project)

        if config.trace_instructions:
            engine_config.callbacks.add_instruction_callback(log_instruction)
        for checker in checkers:
            if checker.monitors:
                engine_config.callbacks.add_instruction_callback(checker.monitor)

        logger.debug(f"{len(registry)} hook signatures, checkers: {[c.name for c in checkers]}")

        return cls(
            project=project,
            config=config,
            registry=registry,
            engine_config=engine_config,
            checkers=checkers,
        )

    def add_error(self, error_msg: str) -> None:
        """Add an error message.

        Args:
            error_msg: Error message to record
        """
        self.error_messages.append(error_msg)

    def print_error(self, msg: str) -> None:
        """Log an error message and record it.

        Args:
            msg: Error message to log and record
        """
        logger.error(msg)
        self.add_error(msg)
