"""
Compatibility matrix builder.

Scrapes the compatibility table from the LLRT README and writes it in the
JSON format that ``CompatibilityMatrix.load`` reads.

Usage:
    llrt-check-matrix --output llrt_check/data/llrt-compatibility.json
"""

from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from llrt_check.compat.matrix import CompatibilityMatrix
from llrt_check.config.settings import DEFAULT_MATRIX_PATH
from llrt_check.exceptions import MatrixBuildError, MatrixLoadError
from llrt_check.utils.logger import get_logger, log_operation

logger = get_logger(__name__)

LLRT_README_URL = "https://raw.githubusercontent.com/awslabs/llrt/main/README.md"
REQUEST_TIMEOUT_SECONDS = 15

LEGEND_HEADING = "## Legend"
MATRIX_HEADING = "## Compatibility matrix"

# Status markers used in the LLRT column
UNSUPPORTED_MARK = "✘"
PARTIAL_MARK = "⚠️"
PLANNED_MARK = "⏱"
NOT_NATIVE_MARK = "*"
USE_FETCH_MARK = "**"

LEGEND_SYMBOLS = ("✅", "❌", "⚠️", "⏱", "🔶", "🔷")

DEFAULT_LEGEND = {
    "⚠️": "partially supported in LLRT",
    "⏱": "planned partial support",
    "*": "Not native",
    "**": "Use fetch instead",
}


def fetch_readme(
    url: str = LLRT_README_URL,
    max_retries: int = 3,
    base_wait: float = 1.0,
    session: Optional[requests.Session] = None,
) -> str:
    """
    Fetch the README text with exponential backoff.

    Args:
        url: README location
        max_retries: Maximum number of attempts
        base_wait: Base wait time in seconds for exponential backoff
        session: Optional requests session (a new one is created otherwise)

    Returns:
        README markdown

    Raises:
        MatrixBuildError: If the README cannot be fetched after retries
    """
    http = session or requests.Session()

    for attempt in range(max_retries):
        try:
            response = http.get(url, timeout=REQUEST_TIMEOUT_SECONDS)
            if response.status_code == 404:
                raise MatrixBuildError(f"README not found at {url}")
            response.raise_for_status()
            return response.text
        except requests.RequestException as e:
            if attempt < max_retries - 1:
                wait_time = base_wait * (2**attempt)
                logger.warning(
                    f"Failed to fetch README: {e}. "
                    f"Retrying in {wait_time}s (attempt {attempt + 1}/{max_retries})",
                    operation="fetch_readme",
                    context={"url": url},
                )
                time.sleep(wait_time)
            else:
                raise MatrixBuildError(
                    f"Failed to fetch README from {url} after {max_retries} attempts: {e}"
                ) from e

    raise MatrixBuildError(f"Failed to fetch README from {url} - exhausted all retry attempts")


def _section(markdown: str, heading: str) -> Optional[str]:
    """Text from ``heading`` up to the next ``##`` heading, or None if absent."""
    start = markdown.find(heading)
    if start == -1:
        return None
    end = markdown.find("\n##", start + len(heading))
    return markdown[start:] if end == -1 else markdown[start:end]


def parse_legend(markdown: str) -> Dict[str, str]:
    """
    Parse the symbol legend.

    Each line containing a known symbol maps that symbol to the text after
    it. Falls back to ``DEFAULT_LEGEND`` when the section is absent or yields
    nothing.
    """
    section = _section(markdown, LEGEND_HEADING)
    if section is None:
        return dict(DEFAULT_LEGEND)

    legend: Dict[str, str] = {}
    for line in section.splitlines():
        for symbol in LEGEND_SYMBOLS:
            if symbol in line:
                meaning = line.split(symbol, 1)[1].strip().lstrip("=").strip()
                legend[symbol] = meaning
                break

    return legend or dict(DEFAULT_LEGEND)


def _row_cells(line: str) -> List[str]:
    return [cell.strip() for cell in line.split("|") if cell.strip()]


def feature_status(llrt_status: str) -> Dict[str, bool]:
    """
    Derive the support flags from an LLRT status cell.

    ``partiallySupported`` is true for every supported entry as well, which is
    how the published data has always been derived.
    """
    supported = UNSUPPORTED_MARK not in llrt_status
    return {
        "supported": supported,
        "partiallySupported": supported or PARTIAL_MARK in llrt_status,
        "plannedSupport": PLANNED_MARK in llrt_status,
        "notNative": NOT_NATIVE_MARK in llrt_status,
        "useFetchInstead": USE_FETCH_MARK in llrt_status,
    }


def extract_compatibility_matrix(markdown: str, legend: Dict[str, str]) -> Dict[str, Any]:
    """
    Parse the compatibility table.

    The first column is the module name and the third is the LLRT status;
    the header and separator rows are skipped.

    Raises:
        MatrixBuildError: If the section or its table is missing
    """
    start = markdown.find(MATRIX_HEADING)
    if start == -1:
        raise MatrixBuildError("Could not find compatibility matrix section")

    table_start = markdown.find("|", start)
    if table_start == -1:
        raise MatrixBuildError("Compatibility matrix section has no table")
    table_end = markdown.find("\n\n", table_start)
    table = markdown[table_start:] if table_end == -1 else markdown[table_start:table_end]

    lines = [line for line in table.splitlines() if line.strip()]
    features: Dict[str, Dict[str, bool]] = {}
    for line in lines[2:]:
        cells = _row_cells(line)
        if len(cells) < 3:
            logger.debug(f"Skipping malformed matrix row: {line!r}")
            continue
        features[cells[0]] = feature_status(cells[2])

    if not features:
        raise MatrixBuildError("Compatibility matrix table has no rows")

    return {"features": features, "legend": legend}


@log_operation("build_matrix")
def build_matrix(
    url: str = LLRT_README_URL, session: Optional[requests.Session] = None
) -> Dict[str, Any]:
    """Fetch the README and return validated matrix data."""
    readme = fetch_readme(url, session=session)
    data = extract_compatibility_matrix(readme, parse_legend(readme))

    try:
        CompatibilityMatrix.from_dict(data, source=url)
    except MatrixLoadError as e:
        raise MatrixBuildError(f"Scraped matrix is invalid: {e}") from e
    return data


def write_matrix(data: Dict[str, Any], output_path: Path) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    return output_path


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="llrt-check-matrix",
        description="Rebuild the LLRT compatibility matrix from the LLRT README",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=DEFAULT_MATRIX_PATH,
        help="Where to write the matrix JSON (default: packaged data file)",
    )
    parser.add_argument("--url", default=LLRT_README_URL, help="README URL to scrape")
    args = parser.parse_args(argv)

    try:
        print("Fetching LLRT README...")
        data = build_matrix(args.url)
    except MatrixBuildError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    path = write_matrix(data, args.output)
    print(f"Compatibility matrix saved to {path} ({len(data['features'])} features)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
