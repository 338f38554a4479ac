"""Runtime module - process execution and the Lambda Runtime API emulator."""

from .emulator import CompletionRecord, InvocationEmulator, InvocationRecord
from .executor import (
    ExecutionResult,
    PayloadDelivery,
    RuntimeExecutor,
    RuntimeStrategy,
    RuntimeTag,
    RUNTIME_STRATEGIES,
    build_test_event,
)

__all__ = [
    "CompletionRecord",
    "InvocationEmulator",
    "InvocationRecord",
    "ExecutionResult",
    "PayloadDelivery",
    "RuntimeExecutor",
    "RuntimeStrategy",
    "RuntimeTag",
    "RUNTIME_STRATEGIES",
    "build_test_event",
]
