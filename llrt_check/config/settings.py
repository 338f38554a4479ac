"""
Configuration loader for the LLRT compatibility checker.

Defaults come from environment variables; an optional YAML file
(``llrt-check.yaml`` or ``LLRT_CHECK_CONFIG``) overrides them after being
validated against a JSON schema.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional

import jsonschema
import yaml

from llrt_check.exceptions import ConfigurationError, RuntimeBinaryNotFoundError

logger = logging.getLogger(__name__)

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_WRAPPER_PATH = PACKAGE_ROOT / "wrapper" / "lambda_wrapper.js"
DEFAULT_MATRIX_PATH = PACKAGE_ROOT / "data" / "llrt-compatibility.json"
DEFAULT_CONFIG_FILE = "llrt-check.yaml"

# Runtime binaries
NODE_BINARY = os.getenv("LLRT_CHECK_NODE_BINARY", "node")
LLRT_BINARY = os.getenv("LLRT_CHECK_LLRT_BINARY")

# Lambda Runtime API emulator
RUNTIME_API_HOST = os.getenv("LLRT_CHECK_RUNTIME_API_HOST", "127.0.0.1")
RUNTIME_API_PORT = int(os.getenv("LLRT_CHECK_RUNTIME_API_PORT", "9001"))
INVOCATION_DEADLINE_MS = 30000

# Execution
EXECUTION_TIMEOUT_SECONDS = float(os.getenv("LLRT_CHECK_TIMEOUT_SECONDS", "30"))
HANDLER_EXPORT = os.getenv("LLRT_CHECK_HANDLER_EXPORT", "handler")

# Synthetic Lambda function identity exposed to the target runtime
FUNCTION_NAME = os.getenv("LLRT_CHECK_FUNCTION_NAME", "test-function")
MEMORY_SIZE_MB = int(os.getenv("LLRT_CHECK_MEMORY_SIZE", "128"))
FUNCTION_VERSION = "$LATEST"
LOG_STREAM_NAME = "test-stream"

# Search order when no explicit LLRT binary is configured (relative to cwd)
LLRT_SEARCH_PATHS = (
    Path("llrt-upstream") / "target" / "release" / "llrt",
    Path(".llrt") / "llrt",
    Path("bootstrap"),
)

CONFIG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "node_binary": {"type": "string", "minLength": 1},
        "llrt_binary": {"type": ["string", "null"]},
        "wrapper_path": {"type": "string", "minLength": 1},
        "matrix_path": {"type": "string", "minLength": 1},
        "runtime_api_host": {"type": "string", "minLength": 1},
        "runtime_api_port": {"type": "integer", "minimum": 0, "maximum": 65535},
        "execution_timeout_seconds": {"type": "number", "exclusiveMinimum": 0},
        "invocation_deadline_ms": {"type": "integer", "minimum": 1},
        "handler_export": {"type": "string", "minLength": 1},
        "function_name": {"type": "string", "minLength": 1},
        "memory_size_mb": {"type": "integer", "minimum": 1},
        "function_version": {"type": "string", "minLength": 1},
        "log_stream_name": {"type": "string", "minLength": 1},
    },
}


class Settings:
    """
    Runtime configuration for a comparison run.

    Holds binary locations, emulator address, timeouts and the synthetic
    Lambda identity handed to the target runtime.
    """

    def __init__(self, **overrides: Any):
        """
        Initialize settings from module defaults, then apply overrides.

        Args:
            **overrides: Any field name from CONFIG_SCHEMA

        Raises:
            ConfigurationError: If an override names an unknown field
        """
        self.node_binary: str = NODE_BINARY
        self.llrt_binary: Optional[str] = LLRT_BINARY
        self.wrapper_path: str = os.getenv("LLRT_CHECK_WRAPPER", str(DEFAULT_WRAPPER_PATH))
        self.matrix_path: str = os.getenv("LLRT_CHECK_MATRIX", str(DEFAULT_MATRIX_PATH))
        self.runtime_api_host: str = RUNTIME_API_HOST
        self.runtime_api_port: int = RUNTIME_API_PORT
        self.execution_timeout_seconds: float = EXECUTION_TIMEOUT_SECONDS
        self.invocation_deadline_ms: int = INVOCATION_DEADLINE_MS
        self.handler_export: str = HANDLER_EXPORT
        self.function_name: str = FUNCTION_NAME
        self.memory_size_mb: int = MEMORY_SIZE_MB
        self.function_version: str = FUNCTION_VERSION
        self.log_stream_name: str = LOG_STREAM_NAME

        for key, value in overrides.items():
            if key not in CONFIG_SCHEMA["properties"]:
                raise ConfigurationError(f"Unknown setting: {key}")
            setattr(self, key, value)

    @property
    def log_group_name(self) -> str:
        return f"/aws/lambda/{self.function_name}"

    @property
    def runtime_api_address(self) -> str:
        return f"{self.runtime_api_host}:{self.runtime_api_port}"

    @classmethod
    def from_file(cls, config_path: str) -> "Settings":
        """
        Load settings from a YAML configuration file.

        Args:
            config_path: Path to the YAML file

        Returns:
            Settings with file values applied over environment defaults

        Raises:
            ConfigurationError: If the file is missing, unreadable, unparsable
                or fails schema validation
        """
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                content = yaml.safe_load(f)
        except FileNotFoundError as e:
            raise ConfigurationError(f"Configuration file not found: {config_path}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e
        except UnicodeDecodeError as e:
            raise ConfigurationError(f"Configuration file {config_path} is not valid UTF-8: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Could not read configuration file {config_path}: {e}") from e

        if not content:
            logger.warning(f"Empty configuration file: {config_path}")
            return cls()

        try:
            jsonschema.validate(instance=content, schema=CONFIG_SCHEMA)
        except jsonschema.ValidationError as e:
            raise ConfigurationError(
                f"Configuration file {config_path} failed validation: {e.message}"
            ) from e

        logger.debug(f"Loaded configuration from {config_path}")
        return cls(**content)

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Settings":
        """
        Load settings using the standard lookup order.

        Priority:
        1. Explicit ``config_path`` argument
        2. LLRT_CHECK_CONFIG environment variable
        3. ``llrt-check.yaml`` in the current directory, if present
        4. Environment defaults only
        """
        path = config_path or os.getenv("LLRT_CHECK_CONFIG")
        if path:
            return cls.from_file(path)

        if os.path.exists(DEFAULT_CONFIG_FILE):
            return cls.from_file(DEFAULT_CONFIG_FILE)

        return cls()

    def llrt_candidates(self) -> List[str]:
        """Return candidate LLRT binary locations in search order."""
        if self.llrt_binary:
            return [self.llrt_binary]

        candidates = [str(Path.cwd() / p) for p in LLRT_SEARCH_PATHS]
        on_path = shutil.which("llrt")
        if on_path:
            candidates.append(on_path)
        return candidates

    def resolve_llrt_binary(self) -> str:
        """
        Locate an executable LLRT binary.

        Returns:
            Path to the binary

        Raises:
            RuntimeBinaryNotFoundError: If no candidate exists and is executable
        """
        candidates = self.llrt_candidates()
        not_executable = []

        for candidate in candidates:
            if not os.path.isfile(candidate):
                continue
            if not os.access(candidate, os.X_OK):
                not_executable.append(candidate)
                continue
            logger.debug(f"Resolved LLRT binary: {candidate}")
            return candidate

        if not_executable:
            raise RuntimeBinaryNotFoundError(
                f"LLRT binary exists but is not executable: {not_executable[0]}. "
                f"Run `chmod +x {not_executable[0]}` to fix it."
            )

        raise RuntimeBinaryNotFoundError(
            "LLRT binary not found. Searched: "
            + (", ".join(candidates) or "(no candidates)")
            + ". Build LLRT first with `cargo build --release` or set LLRT_CHECK_LLRT_BINARY."
        )

    def lambda_environment(self, runtime_api_address: str) -> Dict[str, str]:
        """Environment variables identifying the synthetic Lambda function."""
        return {
            "AWS_LAMBDA_FUNCTION_NAME": self.function_name,
            "AWS_LAMBDA_FUNCTION_MEMORY_SIZE": str(self.memory_size_mb),
            "AWS_LAMBDA_FUNCTION_VERSION": self.function_version,
            "AWS_LAMBDA_LOG_GROUP_NAME": self.log_group_name,
            "AWS_LAMBDA_LOG_STREAM_NAME": self.log_stream_name,
            "AWS_LAMBDA_RUNTIME_API": runtime_api_address,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Return the current values of every configurable field."""
        return {key: getattr(self, key) for key in CONFIG_SCHEMA["properties"]}
