"""Diff Reporter - Compare handler output across runtimes and write JSON/Markdown reports."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from llrt_check.runtime.executor import ExecutionResult

if TYPE_CHECKING:
    from llrt_check.comparison.engine import Verdict

logger = logging.getLogger(__name__)

SEVERITY_CRITICAL = "critical"
SEVERITY_WARNING = "warning"

CRITICAL_RESULT_FIELDS = ("statusCode",)


@dataclass
class OutputMismatch:
    """A single difference between the baseline and target output."""

    category: str
    field: str
    baseline_value: Any
    target_value: Any
    severity: str
    message: str


def extract_result(stdout: str) -> Any:
    """
    Parse the handler result from wrapper stdout.

    The wrapper prints the result as compact JSON on the last line; anything the
    handler logged comes before it. Returns ``None`` when the last line is
    missing or is not JSON.
    """
    lines = [line for line in stdout.splitlines() if line.strip()]
    if not lines:
        return None
    try:
        return json.loads(lines[-1])
    except ValueError:
        return None


def _has_result(stdout: str) -> bool:
    lines = [line for line in stdout.splitlines() if line.strip()]
    if not lines:
        return False
    try:
        json.loads(lines[-1])
    except ValueError:
        return False
    return True


def compare_results(
    baseline: ExecutionResult, target: ExecutionResult
) -> Tuple[List[OutputMismatch], Dict[str, Any]]:
    """Diff two runs; returns the mismatches and summary statistics."""
    mismatches: List[OutputMismatch] = []

    if baseline.exit_code != target.exit_code:
        mismatches.append(
            OutputMismatch(
                category="process",
                field="exit_code",
                baseline_value=baseline.exit_code,
                target_value=target.exit_code,
                severity=SEVERITY_CRITICAL,
                message=f"Exit code mismatch: {baseline.exit_code} vs {target.exit_code}",
            )
        )

    if baseline.success != target.success:
        mismatches.append(
            OutputMismatch(
                category="process",
                field="success",
                baseline_value=baseline.success,
                target_value=target.success,
                severity=SEVERITY_CRITICAL,
                message=f"Success mismatch: {baseline.success} vs {target.success}",
            )
        )

    if baseline.success and target.success:
        mismatches.extend(_compare_handler_results(baseline.stdout, target.stdout))

    stats = {
        "total_mismatches": len(mismatches),
        "critical_mismatches": len([m for m in mismatches if m.severity == SEVERITY_CRITICAL]),
        "warning_mismatches": len([m for m in mismatches if m.severity == SEVERITY_WARNING]),
        "parity_status": "PASS" if not mismatches else "FAIL",
        "timestamp": datetime.now().isoformat(),
    }
    return mismatches, stats


def _compare_handler_results(baseline_stdout: str, target_stdout: str) -> List[OutputMismatch]:
    baseline_present = _has_result(baseline_stdout)
    target_present = _has_result(target_stdout)

    if baseline_present != target_present:
        return [
            OutputMismatch(
                category="result",
                field="(result)",
                baseline_value=baseline_present,
                target_value=target_present,
                severity=SEVERITY_WARNING,
                message="Handler result printed by only one runtime",
            )
        ]
    if not baseline_present:
        return []

    baseline_result = extract_result(baseline_stdout)
    target_result = extract_result(target_stdout)

    if not (isinstance(baseline_result, dict) and isinstance(target_result, dict)):
        if baseline_result == target_result:
            return []
        return [
            OutputMismatch(
                category="result",
                field="(value)",
                baseline_value=baseline_result,
                target_value=target_result,
                severity=SEVERITY_WARNING,
                message=f"Result mismatch: {baseline_result!r} vs {target_result!r}",
            )
        ]

    mismatches: List[OutputMismatch] = []
    for key in sorted(set(baseline_result) | set(target_result)):
        baseline_value = baseline_result.get(key)
        target_value = target_result.get(key)
        if baseline_value == target_value:
            continue

        severity = SEVERITY_CRITICAL if key in CRITICAL_RESULT_FIELDS else SEVERITY_WARNING
        mismatches.append(
            OutputMismatch(
                category="result",
                field=key,
                baseline_value=baseline_value,
                target_value=target_value,
                severity=severity,
                message=f"Field mismatch: {key} = {baseline_value!r} vs {target_value!r}",
            )
        )
    return mismatches


class DiffReporter:
    """Generate comparison artifacts (JSON + Markdown) for a verdict."""

    def __init__(self, output_dir: Path | str) -> None:
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def generate_json_report(self, verdict: "Verdict") -> str:
        report = {
            "metadata": {
                "handler": verdict.handler_path,
                "generated_at": datetime.now().isoformat(),
            },
            "verdict": verdict.to_dict(),
        }
        return json.dumps(report, indent=2, default=str)

    def generate_markdown_summary(self, verdict: "Verdict") -> str:
        critical = [m for m in verdict.output_mismatches if m.severity == SEVERITY_CRITICAL]
        warnings = [m for m in verdict.output_mismatches if m.severity == SEVERITY_WARNING]

        md_lines = [
            f"# LLRT Compatibility Report: {Path(verdict.handler_path).name}",
            f"**Handler:** `{verdict.handler_path}`",
            f"**Generated:** {datetime.now().isoformat()}",
            "",
            "## Result",
            f"- **Compatible:** {'yes ✅' if verdict.compatible else 'no ❌'}",
            f"- **Static issues:** {len(verdict.analysis.issues)}",
            f"- **Static warnings:** {len(verdict.analysis.warnings)}",
            f"- **Output mismatches:** {len(critical)} critical, {len(warnings)} warning",
            "",
            "## Runtimes",
            "",
            "| Runtime | Exit code | Success | Time (ms) | Peak memory (MB) |",
            "|---|---|---|---|---|",
        ]
        for result in (verdict.baseline, verdict.target):
            md_lines.append(
                f"| {result.display_name} | {result.exit_code} | {result.success} "
                f"| {result.elapsed_ms:.2f} | {result.peak_memory_mb:.1f} |"
            )
        md_lines.append("")

        if verdict.performance is not None:
            md_lines.extend(["## Performance", f"{verdict.performance.summary}", ""])

        if verdict.analysis.issues or verdict.analysis.warnings:
            md_lines.append("## Static Analysis")
            md_lines.append("")
            md_lines.extend(f"- ❌ {issue}" for issue in verdict.analysis.issues)
            md_lines.extend(f"- ⚠️ {warning}" for warning in verdict.analysis.warnings)
            md_lines.append("")

        if verdict.output_mismatches:
            md_lines.append("## Output Mismatches")
            md_lines.append("")
            for mismatch in verdict.output_mismatches:
                md_lines.append(
                    f"- **{mismatch.severity.upper()}** {mismatch.category}.{mismatch.field}: "
                    f"{mismatch.message}"
                )
            md_lines.append("")

        if verdict.notices:
            md_lines.append("## Notices")
            md_lines.append("")
            md_lines.extend(f"- {notice}" for notice in verdict.notices)
            md_lines.append("")

        md_lines.extend(["---", "*Generated by llrt-check*"])
        return "\n".join(md_lines)

    def write_reports(self, verdict: "Verdict", name: Optional[str] = None) -> Tuple[Path, Path]:
        """Write ``<name>.json`` and ``<name>.md``; name defaults to the handler stem."""
        name = name or Path(verdict.handler_path).stem
        safe_name = name.replace("/", "_")
        json_path = self.output_dir / f"{safe_name}.json"
        md_path = self.output_dir / f"{safe_name}.md"

        json_path.write_text(self.generate_json_report(verdict), encoding="utf-8")
        md_path.write_text(self.generate_markdown_summary(verdict), encoding="utf-8")

        logger.info("Wrote comparison reports for %s", verdict.handler_path)
        logger.info("  JSON: %s", json_path)
        logger.info("  Markdown: %s", md_path)
        return json_path, md_path


def mismatches_to_dicts(mismatches: List[OutputMismatch]) -> List[Dict[str, Any]]:
    return [asdict(mismatch) for mismatch in mismatches]
