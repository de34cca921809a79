"""Routes hooked calls to the hook registered for their signature."""

import logging

from llvmlite import ir

from ..demangle import demangle, erase_templates, find_last_balanced_namespace, resolve
from ..engine.config import FunctionHooks
from ..engine.project import Project
from ..engine.results import ReturnValue
from ..engine.state import State
from ..errors import Other, UnparseableName, UnresolvableCallTarget
from ..utils.helpers import get_function_name
from .registry import Hook, HookRegistry

logger = logging.getLogger(__name__)


class HookDispatcher:
    """Engine hook that looks up the handler for each call it receives.

    Candidate keys are tried most specific first: the raw symbol name, the
    demangled name, the qualified name with templates kept, the canonical
    signature and finally the balanced tail of the demangled name. Calls
    matching nothing go to the registry's default hook.
    """

    def __init__(self, registry: HookRegistry) -> None:
        """Initialize the dispatcher.

        Args:
            registry: Hook table to dispatch through
        """
        self.registry = registry

    def candidates(self, name: str) -> list[str]:
        """Lookup keys for a symbol name, most specific first.

        Raises:
            UnparseableName: if the name cannot be demangled
        """
        demangled = demangle(name)
        descriptor = resolve(demangled)
        keys = [name, demangled, descriptor.qualified_name, descriptor.canonical_signature]
        tail = find_last_balanced_namespace(demangled)
        if tail is not None:
            keys.extend([tail, erase_templates(tail)])
        return list(dict.fromkeys(keys))

    def find_hook(self, name: str) -> tuple[str, Hook] | None:
        """Find the registered hook for a symbol name.

        Returns:
            ``(matched key, hook)`` or None if only the default hook applies
        """
        if name in self.registry:
            return self.registry.lookup(name)
        candidates = self.candidates(name)
        logger.debug(f"dispatch {name}: trying {candidates[1:]}")
        return self.registry.lookup(*candidates)

    def __call__(self, state: State, call: ir.CallInstr) -> ReturnValue:
        name = get_function_name(call)
        if name is None:
            raise UnresolvableCallTarget(f"call target is not a known function: {call}")
        found = self.find_hook(name)
        if found is not None:
            key, hook = found
            logger.debug(f"{name} -> hook registered for {key}")
            return hook(state, call)
        if self.registry.default is None:
            raise Other(f"no hook for {name} and no default hook")
        return self.registry.default(state, call)

    def install(self, function_hooks: FunctionHooks, project: Project) -> None:
        """Install the dispatcher into an engine hook table.

        The dispatcher becomes the engine's default hook, handling every call
        to a function without a body. Functions with a body whose signature
        has a registered hook are hooked by name as well, so that their
        modeled semantics replace inlining.
        """
        function_hooks.add_default_hook(self)
        for func, _ in project.functions():
            if func.is_declaration:
                continue
            try:
                found = self.find_hook(func.name)
            except UnparseableName as e:
                logger.debug(f"not hooking {func.name}: {e}")
                continue
            if found is not None:
                logger.debug(f"hooking defined function {func.name} ({found[0]})")
                function_hooks.add(func.name, self)
