"""
Command-line entry point.

Usage examples:
    llrt-check ./src/hello.js
    llrt-check ./handler.mjs --verbose --report-dir reports/
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Optional, Sequence

from llrt_check.comparison.diff_reporter import DiffReporter
from llrt_check.comparison.engine import ComparisonEngine, Verdict
from llrt_check.config.settings import Settings
from llrt_check.exceptions import LLRTCheckError
from llrt_check.runtime.executor import ExecutionResult
from llrt_check.utils.logger import set_global_level

EPILOG = """\
examples:
  llrt-check ./src/hello.js
  llrt-check ./my-lambda-function.js

Checks whether a Lambda handler is compatible with the LLRT runtime by
analyzing the code statically and running it in both Node.js and LLRT.
"""


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="llrt-check",
        description="LLRT Compatibility Checker",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("file", help="Handler file to check")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose output (debug logs on stderr)"
    )
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--handler-export", help="Exported handler name (default: handler)")
    parser.add_argument("--report-dir", help="Write JSON and Markdown reports to this directory")
    parser.add_argument(
        "--json", action="store_true", help="Print the verdict as JSON instead of text"
    )
    return parser.parse_args(argv)


def _print_analysis(verdict: Verdict) -> None:
    print("\nStatic Analysis:")
    analysis = verdict.analysis
    if analysis.issues:
        print("Issues found:")
        for issue in analysis.issues:
            print(f"  ❌ {issue}")
    if analysis.warnings:
        print("Warnings:")
        for warning in analysis.warnings:
            print(f"  ⚠️  {warning}")
    if analysis.clean:
        print("  ✅ No obvious compatibility issues detected")


def _status(result: ExecutionResult) -> str:
    mark = "✅" if result.success else "❌"
    line = f"{result.display_name + ':':<8} {mark} ({result.elapsed_ms:.0f}ms)"
    if result.error:
        line += f" {result.error}"
    elif not result.success:
        line += f" exit code {result.exit_code}"
    return line


def _print_comparison(verdict: Verdict) -> None:
    print("\nComparison Results:")
    print(_status(verdict.baseline))
    print(_status(verdict.target))

    if verdict.performance is not None:
        print(verdict.performance.summary)

    if verdict.baseline.stdout != verdict.target.stdout:
        print("\nOutput Differences:")
        print(f"Node.js output: {verdict.baseline.stdout or '(empty)'}")
        print(f"LLRT output: {verdict.target.stdout or '(empty)'}")
        for mismatch in verdict.output_mismatches:
            print(f"  [{mismatch.severity}] {mismatch.message}")

    if verdict.target.stderr:
        print(f"\nLLRT stderr: {verdict.target.stderr}")


def print_verdict(verdict: Verdict) -> None:
    print(f"Running compatibility test for: {verdict.handler_path}")
    for notice in verdict.notices:
        print(f"⚠️  {notice}")
    _print_analysis(verdict)
    _print_comparison(verdict)

    print("\nFinal Result:")
    if verdict.compatible:
        print("✅ Your code appears to be compatible with LLRT!")
    else:
        print("❌ Your code may have compatibility issues with LLRT")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    if args.verbose:
        set_global_level("DEBUG")

    try:
        settings = Settings.load(args.config)
        if args.handler_export:
            settings.handler_export = args.handler_export

        verdict = ComparisonEngine(settings).run(os.path.abspath(args.file))
    except LLRTCheckError as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(verdict.to_dict(), indent=2, ensure_ascii=False, default=str))
    else:
        print_verdict(verdict)

    if args.report_dir:
        json_path, md_path = DiffReporter(args.report_dir).write_reports(verdict)
        print(f"\nReports written to {json_path} and {md_path}", file=sys.stderr)

    return 0 if verdict.compatible else 1


if __name__ == "__main__":
    sys.exit(main())
