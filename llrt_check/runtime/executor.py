"""
Runtime executor.

Runs the wrapper entry point plus a handler under Node.js (baseline) or
LLRT (target) and captures what the process observably did: stdout, stderr,
exit code, wall-clock time and peak memory.
"""

from __future__ import annotations

import json
import os
import subprocess
import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import psutil

from llrt_check.config.settings import Settings
from llrt_check.runtime.emulator import InvocationEmulator
from llrt_check.utils.logger import get_logger

logger = get_logger(__name__)

MEMORY_SAMPLE_INTERVAL_SECONDS = 0.05
KILL_WAIT_SECONDS = 5


class RuntimeTag(Enum):
    BASELINE = "node"
    TARGET = "llrt"


class PayloadDelivery(Enum):
    """How the invocation event reaches the wrapper."""

    STDIN = "stdin"
    RUNTIME_API = "runtime_api"


@dataclass(frozen=True)
class RuntimeStrategy:
    tag: RuntimeTag
    display_name: str
    delivery: PayloadDelivery
    binary: Callable[[Settings], str]
    lambda_environment: bool


RUNTIME_STRATEGIES: Dict[RuntimeTag, RuntimeStrategy] = {
    RuntimeTag.BASELINE: RuntimeStrategy(
        tag=RuntimeTag.BASELINE,
        display_name="Node.js",
        delivery=PayloadDelivery.STDIN,
        binary=lambda settings: settings.node_binary,
        lambda_environment=False,
    ),
    RuntimeTag.TARGET: RuntimeStrategy(
        tag=RuntimeTag.TARGET,
        display_name="LLRT",
        delivery=PayloadDelivery.RUNTIME_API,
        binary=lambda settings: settings.resolve_llrt_binary(),
        lambda_environment=True,
    ),
}


@dataclass
class ExecutionResult:
    """Observable outcome of one runtime pass."""

    runtime: RuntimeTag
    exit_code: Optional[int]
    stdout: str
    stderr: str
    elapsed_ms: float
    timed_out: bool = False
    error: Optional[str] = None
    peak_memory_mb: float = 0.0

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def display_name(self) -> str:
        return RUNTIME_STRATEGIES[self.runtime].display_name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "runtime": self.runtime.value,
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "elapsed_ms": round(self.elapsed_ms, 2),
            "success": self.success,
            "timed_out": self.timed_out,
            "error": self.error,
            "peak_memory_mb": round(self.peak_memory_mb, 2),
        }


def build_test_event() -> Dict[str, Any]:
    """
    Build the synthetic API Gateway (HTTP API v2) event used for both runs.

    Built once per comparison so Node.js and LLRT see identical input.
    """
    now = time.time()
    return {
        "version": "2.0",
        "routeKey": "GET /hello",
        "rawPath": "/hello",
        "rawQueryString": "name=Test",
        "queryStringParameters": {"name": "Test"},
        "requestContext": {
            "accountId": "123456789012",
            "apiId": "api-id",
            "domainName": "id.execute-api.us-east-1.amazonaws.com",
            "domainPrefix": "id",
            "http": {
                "method": "GET",
                "path": "/hello",
                "protocol": "HTTP/1.1",
                "sourceIp": "127.0.0.1",
                "userAgent": "llrt-check",
            },
            "requestId": "id",
            "routeKey": "GET /hello",
            "stage": "$default",
            "time": time.strftime("%d/%b/%Y:%H:%M:%S +0000", time.gmtime(now)),
            "timeEpoch": int(now * 1000),
        },
        "isBase64Encoded": False,
    }


class _MemorySampler:
    """Polls a child's resident memory until stopped."""

    def __init__(self, pid: int):
        self.peak_bytes = 0
        self._stop = threading.Event()
        try:
            self._process: Optional[psutil.Process] = psutil.Process(pid)
        except psutil.Error:
            self._process = None
        self._thread = threading.Thread(target=self._run, daemon=True)

    def __enter__(self) -> "_MemorySampler":
        if self._process is not None:
            self._thread.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._stop.set()
        if self._thread.is_alive():
            self._thread.join()

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.peak_bytes = max(self.peak_bytes, self._process.memory_info().rss)
            except psutil.Error:
                return
            self._stop.wait(MEMORY_SAMPLE_INTERVAL_SECONDS)

    @property
    def peak_mb(self) -> float:
        return self.peak_bytes / 1024 / 1024


def terminate_process_tree(pid: int) -> None:
    """Kill a process and all its descendants."""
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return

    processes = parent.children(recursive=True) + [parent]
    for process in processes:
        try:
            process.kill()
        except psutil.NoSuchProcess:
            pass
    psutil.wait_procs(processes, timeout=KILL_WAIT_SECONDS)


class RuntimeExecutor:
    """
    Spawns one runtime pass at a time.

    The target strategy needs the Runtime API emulator: it is started and
    loaded with the event before the process is spawned, and stopped before
    ``execute`` returns on every path.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        emulator: Optional[InvocationEmulator] = None,
    ):
        self.settings = settings or Settings()
        self.emulator = emulator or InvocationEmulator(
            host=self.settings.runtime_api_host,
            port=self.settings.runtime_api_port,
            deadline_window_ms=self.settings.invocation_deadline_ms,
        )

    def execute(
        self,
        handler_path: str,
        tag: RuntimeTag,
        event: Optional[Dict[str, Any]] = None,
    ) -> ExecutionResult:
        """
        Run the handler under one runtime.

        Execution failures (spawn errors, timeouts, non-zero exits) are
        returned as data, never raised.
        """
        strategy = RUNTIME_STRATEGIES[tag]
        event = event if event is not None else build_test_event()
        handler_arg = str(Path(handler_path).resolve())
        start_time = time.monotonic()

        uses_emulator = strategy.delivery is PayloadDelivery.RUNTIME_API
        try:
            command = [
                strategy.binary(self.settings),
                self.settings.wrapper_path,
                handler_arg,
                self.settings.handler_export,
            ]
            env = dict(os.environ, NODE_ENV="test")
            # The wrapper chooses its delivery mode from this variable
            env.pop("AWS_LAMBDA_RUNTIME_API", None)
            stdin_payload = None

            if uses_emulator:
                # Register before spawn so the first poll never sees 204
                self.emulator.start()
                self.emulator.set_invocation(event)
            else:
                stdin_payload = json.dumps(event)

            if strategy.lambda_environment:
                env.update(self.settings.lambda_environment(self.emulator.address))

            return self._run(strategy, command, env, stdin_payload)
        except OSError as e:
            logger.error(
                f"Failed to start {strategy.display_name}",
                operation="execute_runtime",
                context={"runtime": tag.value, "handler": handler_arg},
                error=str(e),
            )
            return ExecutionResult(
                runtime=tag,
                exit_code=None,
                stdout="",
                stderr="",
                elapsed_ms=(time.monotonic() - start_time) * 1000,
                error=f"Failed to start {strategy.display_name}: {e}",
            )
        finally:
            if uses_emulator:
                self.emulator.stop()

    def _run(
        self,
        strategy: RuntimeStrategy,
        command: list,
        env: Dict[str, str],
        stdin_payload: Optional[str],
    ) -> ExecutionResult:
        timeout = self.settings.execution_timeout_seconds
        logger.debug(
            f"Spawning {strategy.display_name}",
            operation="execute_runtime",
            context={"command": command, "delivery": strategy.delivery.value},
        )

        start_time = time.monotonic()
        process = subprocess.Popen(
            command,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=env,
            text=True,
            encoding="utf-8",
            errors="replace",
        )

        timed_out = False
        with _MemorySampler(process.pid) as sampler:
            try:
                # stdin is closed after the payload (or immediately) either way
                stdout, stderr = process.communicate(input=stdin_payload, timeout=timeout)
            except subprocess.TimeoutExpired:
                timed_out = True
                terminate_process_tree(process.pid)
                stdout, stderr = process.communicate()

        elapsed_ms = (time.monotonic() - start_time) * 1000

        if timed_out:
            logger.warning(
                f"{strategy.display_name} execution timed out",
                operation="execute_runtime",
                context={"timeout_seconds": timeout},
            )
            return ExecutionResult(
                runtime=strategy.tag,
                exit_code=None,
                stdout=(stdout or "").strip(),
                stderr=(stderr or "").strip(),
                elapsed_ms=elapsed_ms,
                timed_out=True,
                error=f"Execution timeout after {timeout:g}s",
                peak_memory_mb=sampler.peak_mb,
            )

        result = ExecutionResult(
            runtime=strategy.tag,
            exit_code=process.returncode,
            stdout=(stdout or "").strip(),
            stderr=(stderr or "").strip(),
            elapsed_ms=elapsed_ms,
            peak_memory_mb=sampler.peak_mb,
        )
        logger.info(
            f"{strategy.display_name} finished",
            operation="execute_runtime",
            context={"exit_code": result.exit_code, "success": result.success},
            duration_ms=elapsed_ms,
        )
        return result
