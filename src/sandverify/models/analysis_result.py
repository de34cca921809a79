"""Analysis result data models for sandverify."""

import json
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from .check_result import CheckResult


class PathReport(BaseModel):
    """Outcome of one explored path."""

    index: int = Field(..., description="Order in which the path was explored")
    result: str = Field(..., description="How the path ended")
    blocks: list[str] = Field(default_factory=list, description="Visited basic blocks as function:block")
    check: CheckResult = Field(..., description="Trace checker verdict")
    aborted: bool = Field(False, description="Path ended in an error that is not a safety violation")


class AnalysisResult(BaseModel):
    """Complete analysis result for one function."""

    function: str = Field(..., description="Symbol name of the analyzed function")
    paths: list[PathReport] = Field(default_factory=list, description="Per-path reports")
    error: list[str] = Field(default_factory=list, description="Errors during analysis")

    loop_bound: int = Field(..., description="Loop bound used for exploration")
    analysis_time: float | None = Field(None, description="Total analysis time in seconds")
    analysis_date: datetime = Field(default_factory=datetime.now, description="Analysis timestamp")
    sandverify_version: str = Field(default="0.1.0", description="sandverify version used")

    @property
    def path_count(self) -> int:
        """Get number of explored paths."""
        return len(self.paths)

    @property
    def violations(self) -> list[PathReport]:
        """Get reports of paths that failed a check."""
        return [p for p in self.paths if not p.check.passed]

    @property
    def aborted(self) -> list[PathReport]:
        """Get reports of paths that ended without a verdict."""
        return [p for p in self.paths if p.aborted]

    @property
    def has_violations(self) -> bool:
        """Check if any path failed a check."""
        return len(self.violations) > 0

    def to_json_compatible(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return {
            "function": self.function,
            "loop_bound": self.loop_bound,
            "paths": [p.model_dump(mode="json") for p in self.paths],
            "error": self.error,
        }

    def save_to_file(self, output_path: Path | str) -> None:
        """Save analysis result to JSON file."""
        path = Path(output_path) if isinstance(output_path, str) else output_path
        with open(path, "w") as f:
            json.dump(self.to_json_compatible(), f, indent=4)

    @classmethod
    def load_from_file(cls, file_path: Path | str) -> "AnalysisResult":
        """Load analysis result from JSON file."""
        path = Path(file_path) if isinstance(file_path, str) else file_path
        with open(path) as f:
            data = json.load(f)
        return cls(**data)
