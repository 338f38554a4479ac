"""
Comparison engine.

Drives one end-to-end check of a handler: static analysis, a baseline run
under Node.js, a target run under LLRT through the Runtime API emulator, and
the resulting verdict.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from llrt_check.analysis.static_analyzer import AnalysisResult, StaticAnalyzer
from llrt_check.compat.matrix import CompatibilityMatrix, load_matrix
from llrt_check.comparison.diff_reporter import (
    OutputMismatch,
    compare_results,
    mismatches_to_dicts,
)
from llrt_check.comparison.performance import PerformanceComparison, compare_performance
from llrt_check.config.settings import Settings
from llrt_check.exceptions import HandlerNotFoundError
from llrt_check.runtime.emulator import InvocationEmulator
from llrt_check.runtime.executor import (
    ExecutionResult,
    RuntimeExecutor,
    RuntimeTag,
    build_test_event,
)
from llrt_check.utils.logger import get_logger, log_operation

logger = get_logger(__name__)

MATRIX_UNAVAILABLE_NOTICE = (
    "Compatibility data unavailable; static analysis ran heuristics only"
)


@dataclass
class Verdict:
    """
    Outcome of one comparison.

    Only ``compatible`` is the pass/fail answer. Performance, output
    mismatches and notices are advisory.
    """

    handler_path: str
    analysis: AnalysisResult
    baseline: ExecutionResult
    target: ExecutionResult
    performance: Optional[PerformanceComparison] = None
    output_mismatches: List[OutputMismatch] = field(default_factory=list)
    notices: List[str] = field(default_factory=list)

    @property
    def compatible(self) -> bool:
        return self.target.success and not self.analysis.issues

    def to_dict(self) -> Dict[str, Any]:
        return {
            "handler": self.handler_path,
            "compatible": self.compatible,
            "analysis": self.analysis.to_dict(),
            "baseline": self.baseline.to_dict(),
            "target": self.target.to_dict(),
            "performance": self.performance.to_dict() if self.performance else None,
            "output_mismatches": mismatches_to_dicts(self.output_mismatches),
            "notices": list(self.notices),
        }


class ComparisonEngine:
    """
    Orchestrates StaticAnalyzer, RuntimeExecutor and InvocationEmulator.

    The compatibility matrix is loaded once per engine and shared by every
    ``run``; each run gets its own emulator.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        matrix: Optional[CompatibilityMatrix] = None,
    ):
        self.settings = settings or Settings()
        self._matrix = matrix
        self._matrix_loaded = matrix is not None

    @property
    def matrix(self) -> Optional[CompatibilityMatrix]:
        if not self._matrix_loaded:
            self._matrix = load_matrix(self.settings.matrix_path)
            self._matrix_loaded = True
        return self._matrix

    @log_operation("compare_runtimes")
    def run(self, handler_path: str) -> Verdict:
        """
        Compare a handler under Node.js and LLRT.

        Args:
            handler_path: Path to the handler module

        Returns:
            Verdict for the handler

        Raises:
            HandlerNotFoundError: If the handler file does not exist
            RuntimeBinaryNotFoundError: If no usable LLRT binary is found
        """
        if not os.path.isfile(handler_path):
            raise HandlerNotFoundError(f"File not found: {handler_path}")

        notices: List[str] = []
        matrix = self.matrix
        if matrix is None:
            notices.append(MATRIX_UNAVAILABLE_NOTICE)

        # Fatal before any process is spawned
        self.settings.resolve_llrt_binary()

        analysis = StaticAnalyzer(matrix).analyze_file(handler_path)

        emulator = InvocationEmulator(
            host=self.settings.runtime_api_host,
            port=self.settings.runtime_api_port,
            deadline_window_ms=self.settings.invocation_deadline_ms,
        )
        executor = RuntimeExecutor(self.settings, emulator)
        event = build_test_event()
        try:
            baseline = executor.execute(handler_path, RuntimeTag.BASELINE, event)
            target = executor.execute(handler_path, RuntimeTag.TARGET, event)
        finally:
            emulator.stop()

        mismatches, stats = compare_results(baseline, target)
        verdict = Verdict(
            handler_path=handler_path,
            analysis=analysis,
            baseline=baseline,
            target=target,
            performance=compare_performance(baseline, target),
            output_mismatches=mismatches,
            notices=notices,
        )

        logger.info(
            "Comparison finished",
            operation="compare_runtimes",
            context={
                "handler": handler_path,
                "compatible": verdict.compatible,
                "issues": len(analysis.issues),
                "warnings": len(analysis.warnings),
                "parity_status": stats["parity_status"],
            },
        )
        return verdict
