"""Performance comparison between the baseline and target runs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from llrt_check.runtime.executor import ExecutionResult

FASTER_THRESHOLD = 1.1
SLOWER_THRESHOLD = 0.9
MIN_ELAPSED_MS = 0.001


@dataclass(frozen=True)
class PerformanceComparison:
    """Advisory timing delta; never affects the compatibility verdict."""

    baseline_ms: float
    target_ms: float
    speedup: float
    baseline_name: str = "Node.js"
    target_name: str = "LLRT"

    @property
    def summary(self) -> str:
        if self.speedup > FASTER_THRESHOLD:
            return f"{self.target_name} is {self.speedup:.2f}x faster"
        if self.speedup < SLOWER_THRESHOLD:
            return f"{self.baseline_name} is {1 / self.speedup:.2f}x faster"
        return "Similar performance"

    @property
    def target_faster(self) -> bool:
        return self.speedup > FASTER_THRESHOLD

    def to_dict(self) -> Dict[str, Any]:
        return {
            "baseline_ms": round(self.baseline_ms, 2),
            "target_ms": round(self.target_ms, 2),
            "speedup": round(self.speedup, 4),
            "summary": self.summary,
        }


def compare_performance(
    baseline: ExecutionResult, target: ExecutionResult
) -> Optional[PerformanceComparison]:
    """
    Compare elapsed times as ``baseline / target``.

    Only meaningful when both runs succeeded; returns None otherwise.
    """
    if not (baseline.success and target.success):
        return None

    # Timer readings can be zero on very fast runs
    baseline_ms = max(baseline.elapsed_ms, MIN_ELAPSED_MS)
    target_ms = max(target.elapsed_ms, MIN_ELAPSED_MS)
    return PerformanceComparison(
        baseline_ms=baseline.elapsed_ms,
        target_ms=target.elapsed_ms,
        speedup=baseline_ms / target_ms,
        baseline_name=baseline.display_name,
        target_name=target.display_name,
    )
