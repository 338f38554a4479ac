"""Comparison module - verdicts, performance deltas and output diffs."""

from llrt_check.comparison.diff_reporter import DiffReporter, OutputMismatch, compare_results
from llrt_check.comparison.engine import ComparisonEngine, Verdict
from llrt_check.comparison.performance import PerformanceComparison, compare_performance

__all__ = [
    "ComparisonEngine",
    "Verdict",
    "DiffReporter",
    "OutputMismatch",
    "compare_results",
    "PerformanceComparison",
    "compare_performance",
]
