"""Call hooks modeling the RLBox sandbox API during symbolic execution."""

from .base import BaseHook
from .default import DefaultHook
from .dispatcher import HookDispatcher
from .registry import HookRegistry
from .rlbox import (
    MallocInSandboxHook,
    StdArrayIndexHook,
    TaintedAssignHook,
    TaintedDerefHook,
    TaintedIndexHook,
    UnsafeUnverifiedHook,
)

__all__ = [
    "BaseHook",
    "DefaultHook",
    "HookDispatcher",
    "HookRegistry",
    "MallocInSandboxHook",
    "StdArrayIndexHook",
    "TaintedAssignHook",
    "TaintedDerefHook",
    "TaintedIndexHook",
    "UnsafeUnverifiedHook",
    "register_all_hooks",
]


def register_all_hooks(registry: HookRegistry) -> None:
    """Register all hooks, and the default hook, with a registry.

    Args:
        registry: Hook registry to register with
    """
    from . import rlbox

    modules = [rlbox]

    for module in modules:
        if hasattr(module, "register_hooks"):
            module.register_hooks(registry)

    registry.register_default(DefaultHook())
