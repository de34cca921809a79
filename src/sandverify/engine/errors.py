"""Errors reported by the symbolic execution engine.

Any ``EngineError`` raised while a path is being executed (by the engine
itself, by a function hook or by an instruction callback) ends that path, and
the error instance becomes the path's result.
"""


class EngineError(Exception):
    """Base class for errors that abort the current path."""


class NullPointerDereference(EngineError):
    """A load or store through an address that can be NULL."""

    def __init__(self, address: str = "") -> None:
        self.address = address
        super().__init__(f"null pointer dereference (address {address})" if address else "null pointer dereference")


class LoopBoundExceeded(EngineError):
    """A basic block was visited more often than the configured loop bound."""

    def __init__(self, location: str, bound: int) -> None:
        self.location = location
        self.bound = bound
        super().__init__(f"loop bound {bound} exceeded at {location}")


class UnreachableInstruction(EngineError):
    """Execution reached an ``unreachable`` terminator."""


class UnsupportedInstruction(EngineError):
    """The engine has no semantics for an instruction."""


class FunctionNotFound(EngineError):
    """No function with the requested name exists in the project."""


class OtherError(EngineError):
    """Catch-all error carrying a message."""
