"""sandverify data models."""

from .analysis_result import AnalysisResult, PathReport
from .check_result import CheckKind, CheckResult

__all__ = [
    "AnalysisResult",
    "CheckKind",
    "CheckResult",
    "PathReport",
]
