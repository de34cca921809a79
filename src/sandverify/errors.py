"""Error taxonomy for the verification layer.

Every error derives from ``EngineError`` so that raising one from a hook or an
instruction monitor ends the current path with the error as its result.
"""

from .engine.errors import EngineError


class VerificationError(EngineError):
    """Base class for errors raised by hooks, the dispatcher and monitors."""


class UnparseableName(VerificationError):
    """A symbol name could not be demangled or parsed."""


class UnresolvableCallTarget(VerificationError):
    """A call has no statically known callee (indirect call or inline asm)."""


class ArityMismatch(VerificationError):
    """A hooked call was made with an unexpected number of arguments."""

    def __init__(self, callee: str, expected: int | tuple[int, ...], actual: int) -> None:
        self.callee = callee
        self.expected = expected
        self.actual = actual
        super().__init__(f"{callee}: expected {expected} argument(s), got {actual}")


class EngineRejected(VerificationError):
    """A state operation failed inside a hook; ``cause`` is the engine error."""

    def __init__(self, cause: EngineError) -> None:
        self.cause = cause
        super().__init__(f"engine rejected hook operation: {cause}")


class SafetyViolation(VerificationError):
    """A safety property can be violated on the current path."""


class DivisionByZero(SafetyViolation):
    """The divisor of an integer division or remainder can be zero."""


class OutOfBounds(SafetyViolation):
    """An in-bounds pointer computation can leave its object."""


class NullDereference(SafetyViolation):
    """A pointer that can be NULL is dereferenced."""


class Other(VerificationError):
    """Any other failure, with a message."""
