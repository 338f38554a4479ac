"""
LLRT compatibility matrix.

In-memory lookup of per-module support status, loaded once from the JSON
file produced by the matrix builder and read-only afterwards.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

import jsonschema

from llrt_check.exceptions import MatrixLoadError
from llrt_check.utils.logger import get_logger

logger = get_logger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parents[1] / "data" / "compatibility.schema.json"

NODE_PREFIX = "node:"


@dataclass(frozen=True)
class FeatureSupport:
    """Support status of one module or API in LLRT."""

    supported: bool
    partially_supported: bool = False
    planned_support: bool = False
    not_native: bool = False
    use_fetch_instead: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeatureSupport":
        return cls(
            supported=bool(data["supported"]),
            partially_supported=bool(data.get("partiallySupported", False)),
            planned_support=bool(data.get("plannedSupport", False)),
            not_native=bool(data.get("notNative", False)),
            use_fetch_instead=bool(data.get("useFetchInstead", False)),
        )

    def to_dict(self) -> Dict[str, bool]:
        """Serialise using the camelCase keys of the matrix file format."""
        return {
            "supported": self.supported,
            "partiallySupported": self.partially_supported,
            "plannedSupport": self.planned_support,
            "notNative": self.not_native,
            "useFetchInstead": self.use_fetch_instead,
        }


def load_schema() -> Dict[str, Any]:
    """Load the JSON schema that matrix files are validated against."""
    with SCHEMA_PATH.open("r", encoding="utf-8") as f:
        return json.load(f)


class CompatibilityMatrix:
    """Read-only module name -> FeatureSupport table with its legend."""

    def __init__(
        self,
        features: Mapping[str, FeatureSupport],
        legend: Optional[Mapping[str, str]] = None,
        source: Optional[str] = None,
    ):
        self._features = MappingProxyType(dict(features))
        self._legend = MappingProxyType(dict(legend or {}))
        self.source = source

    @property
    def features(self) -> Mapping[str, FeatureSupport]:
        return self._features

    @property
    def legend(self) -> Mapping[str, str]:
        return self._legend

    def __len__(self) -> int:
        return len(self._features)

    def __contains__(self, module_name: object) -> bool:
        return isinstance(module_name, str) and self.lookup(module_name) is not None

    def lookup(self, module_name: str) -> Optional[FeatureSupport]:
        """
        Find support data for a module.

        ``node:``-prefixed specifiers fall back to the bare module name, so
        ``node:fs`` resolves to the ``fs`` entry.
        """
        support = self._features.get(module_name)
        if support is None and module_name.startswith(NODE_PREFIX):
            support = self._features.get(module_name[len(NODE_PREFIX):])
        return support

    @classmethod
    def from_dict(cls, data: Dict[str, Any], source: Optional[str] = None) -> "CompatibilityMatrix":
        """
        Build a matrix from parsed file content.

        Raises:
            MatrixLoadError: If the content does not match the matrix schema
        """
        try:
            jsonschema.validate(instance=data, schema=load_schema())
        except jsonschema.ValidationError as e:
            raise MatrixLoadError(f"Compatibility data failed validation: {e.message}") from e

        features = {
            name: FeatureSupport.from_dict(entry) for name, entry in data["features"].items()
        }
        return cls(features, data.get("legend", {}), source=source)

    @classmethod
    def load(cls, path: str) -> "CompatibilityMatrix":
        """
        Load and validate a matrix file.

        Args:
            path: Path to the JSON matrix file

        Raises:
            MatrixLoadError: If the file is missing, unreadable, not JSON, or invalid
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise MatrixLoadError(f"Compatibility data not found: {path}") from e
        except json.JSONDecodeError as e:
            raise MatrixLoadError(f"Compatibility data is not valid JSON ({path}): {e}") from e
        except UnicodeDecodeError as e:
            raise MatrixLoadError(f"Compatibility data is not valid UTF-8 ({path}): {e}") from e
        except OSError as e:
            raise MatrixLoadError(f"Could not read compatibility data {path}: {e}") from e

        matrix = cls.from_dict(data, source=str(path))
        logger.debug(
            "Loaded compatibility matrix",
            operation="load_matrix",
            context={"path": str(path), "features": len(matrix)},
        )
        return matrix

    def to_dict(self) -> Dict[str, Any]:
        return {
            "features": {name: s.to_dict() for name, s in self._features.items()},
            "legend": dict(self._legend),
        }


def load_matrix(path: str) -> Optional[CompatibilityMatrix]:
    """
    Load a matrix, degrading to ``None`` on failure.

    A missing or corrupt file must not abort the harness: the analyzer falls
    back to heuristics only and the failure is surfaced as a warning.
    """
    try:
        return CompatibilityMatrix.load(path)
    except MatrixLoadError as e:
        logger.warning(
            "Could not load compatibility data; module checks disabled",
            operation="load_matrix",
            context={"path": str(path)},
            error=str(e),
        )
        return None
