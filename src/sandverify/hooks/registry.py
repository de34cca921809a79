"""Registry mapping function signatures to hooks."""

import logging
from collections.abc import Callable, Iterable

from llvmlite import ir

from ..engine.results import ReturnValue
from ..engine.state import State

logger = logging.getLogger(__name__)

Hook = Callable[[State, ir.CallInstr], ReturnValue]


class HookRegistry:
    """Signature-keyed hook table plus one default hook.

    Keys are raw symbol names, demangled names or canonical signatures. The
    registry is built once and frozen before exploration starts.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._hooks: dict[str, Hook] = {}
        self._default: Hook | None = None
        self._frozen = False

    def register(self, signature: str, hook: Hook) -> None:
        """Register a hook, replacing any hook already registered for ``signature``.

        Args:
            signature: Symbol name or canonical signature
            hook: Hook to invoke for matching calls

        Raises:
            RuntimeError: if the registry is frozen
        """
        self._check_mutable()
        if signature in self._hooks:
            logger.debug(f"Replacing hook for {signature}")
        self._hooks[signature] = hook

    def register_default(self, hook: Hook) -> None:
        """Set the hook used for calls matching no registered signature."""
        self._check_mutable()
        self._default = hook

    @property
    def default(self) -> Hook | None:
        return self._default

    def lookup(self, *candidates: str) -> tuple[str, Hook] | None:
        """Find the first candidate key with a registered hook.

        Args:
            *candidates: Keys to try, most specific first

        Returns:
            ``(key, hook)`` for the first match, or None
        """
        for candidate in candidates:
            hook = self._hooks.get(candidate)
            if hook is not None:
                return candidate, hook
        return None

    def freeze(self) -> "HookRegistry":
        """Make the registry read-only. Returns the registry itself."""
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def signatures(self) -> Iterable[str]:
        return self._hooks.keys()

    def __contains__(self, signature: object) -> bool:
        return signature in self._hooks

    def __len__(self) -> int:
        return len(self._hooks)

    def _check_mutable(self) -> None:
        if self._frozen:
            raise RuntimeError("hook registry is frozen")
