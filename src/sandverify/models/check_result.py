"""Per-path check result models."""

from enum import Enum

from pydantic import BaseModel, Field


class CheckKind(str, Enum):
    """Kinds of safety violation reported by the trace checkers."""

    NULL_DEREFERENCE = "null_dereference"
    DIVISION_BY_ZERO = "division_by_zero"
    OUT_OF_BOUNDS = "out_of_bounds"


class CheckResult(BaseModel):
    """Outcome of checking one execution path."""

    kind: CheckKind | None = Field(None, description="Violation found on the path, None if it passed")
    message: str = Field("", description="Offending instruction or call target")

    @property
    def passed(self) -> bool:
        """Check whether the path is free of violations."""
        return self.kind is None

    @classmethod
    def ok(cls) -> "CheckResult":
        return cls(kind=None, message="no violation")

    @classmethod
    def violation(cls, kind: CheckKind, message: str) -> "CheckResult":
        return cls(kind=kind, message=message)
