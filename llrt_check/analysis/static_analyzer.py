"""
Static compatibility analysis of handler source code.

Pattern-based, not a parser: module specifiers are pulled out of
``require(...)``, ``import ... from`` and side-effect ``import`` statements
and checked against the compatibility matrix. Dynamic imports are missed.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from llrt_check.compat.matrix import CompatibilityMatrix

logger = logging.getLogger(__name__)

REQUIRE_PATTERN = re.compile(r"""require\(\s*['"`]([^'"`]+)['"`]\s*\)""")
IMPORT_FROM_PATTERN = re.compile(r"""from\s+['"`]([^'"`]+)['"`]""")
SIDE_EFFECT_IMPORT_PATTERN = re.compile(r"""\bimport\s+['"`]([^'"`]+)['"`]""")

MODULE_PATTERNS = (REQUIRE_PATTERN, IMPORT_FROM_PATTERN, SIDE_EFFECT_IMPORT_PATTERN)

PATH_GLOBALS = ("__dirname", "__filename")
PROCESS_EXIT = "process.exit"

PATH_GLOBALS_WARNING = "__dirname and __filename may behave differently in LLRT"
PROCESS_EXIT_WARNING = "process.exit() should be avoided in Lambda environments"


@dataclass
class AnalysisResult:
    """Issues block compatibility; warnings are advisory."""

    issues: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.issues and not self.warnings

    def to_dict(self):
        return {"issues": list(self.issues), "warnings": list(self.warnings)}


def extract_modules(source: str) -> List[str]:
    """
    Return module specifiers referenced by the source, without duplicates.

    ``require`` matches come first, then ``import`` matches, each in source order.

    Example:
        >>> extract_modules("import fs from 'fs'\\nconst net = require('net')")
        ['net', 'fs']
    """
    found = []
    for pattern in MODULE_PATTERNS:
        found.extend(match.group(1) for match in pattern.finditer(source))

    # dict preserves insertion order; one entry per module
    return list(dict.fromkeys(found))


class StaticAnalyzer:
    """Cross-references handler imports with the matrix and runs text heuristics."""

    def __init__(self, matrix: Optional[CompatibilityMatrix] = None):
        """
        Args:
            matrix: Compatibility data. ``None`` means heuristics only.
        """
        self.matrix = matrix

    def analyze(self, source: str) -> AnalysisResult:
        issues: List[str] = []
        warnings: List[str] = []

        if self.matrix is not None:
            for module in extract_modules(source):
                support = self.matrix.lookup(module)
                if support is None:
                    continue

                if not support.supported:
                    issues.append(f"Module '{module}' is not supported in LLRT")
                elif support.partially_supported and not support.supported:
                    # Unreachable while the builder derives partiallySupported
                    # as `supported or <warning symbol>`; see DESIGN.md.
                    warnings.append(f"Module '{module}' is only partially supported in LLRT")

                if support.use_fetch_instead:
                    warnings.append(
                        f"Consider using fetch instead of '{module}' for better LLRT compatibility"
                    )

        if any(name in source for name in PATH_GLOBALS):
            warnings.append(PATH_GLOBALS_WARNING)

        if PROCESS_EXIT in source:
            warnings.append(PROCESS_EXIT_WARNING)

        return AnalysisResult(issues=issues, warnings=warnings)

    def analyze_file(self, path: str) -> AnalysisResult:
        """
        Analyze a source file. Never raises.

        Read or decode failures are reported as a single issue.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                source = f.read()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read {path} for analysis: {e}")
            return AnalysisResult(issues=[f"Failed to analyze code: {e}"])

        result = self.analyze(source)
        logger.debug(
            f"Analyzed {path}: {len(result.issues)} issue(s), {len(result.warnings)} warning(s)"
        )
        return result
