"""
Exception hierarchy for the LLRT compatibility checker.

Configuration-class errors are the only ones allowed to abort a comparison
before a verdict is produced. Execution failures (spawn errors, non-zero exits,
timeouts) are never raised; they are folded into ExecutionResult instances.
"""


class LLRTCheckError(Exception):
    """Base exception for all checker errors."""

    pass


class ConfigurationError(LLRTCheckError):
    """
    Raised for configuration problems.

    Some are recoverable (a missing compatibility matrix degrades the analyzer
    to heuristics-only) and some are fatal (no runtime binary to test against).
    """

    pass


class HandlerNotFoundError(ConfigurationError):
    """Raised when the handler file under test does not exist."""

    pass


class RuntimeBinaryNotFoundError(ConfigurationError):
    """
    Raised when the LLRT binary cannot be resolved.

    Fatal: the comparison cannot run without a target runtime, and resolution
    is never retried.
    """

    pass


class MatrixLoadError(ConfigurationError):
    """Raised when the compatibility matrix file is missing, unparsable or invalid."""

    pass


class EmulatorError(LLRTCheckError):
    """Raised on invalid Runtime API emulator lifecycle use (e.g. double start)."""

    pass


class MatrixBuildError(LLRTCheckError):
    """Raised when the compatibility matrix cannot be built from the LLRT README."""

    pass
