"""
Lambda Runtime API emulator.

Stands in for the invocation-management API that LLRT polls in production,
so a handler can be invoked exactly as in Lambda while running as a local
foreground process. Single-invocation test scenarios only: completion calls
are accepted for any request id.
"""

from __future__ import annotations

import json
import re
import threading
import time
import uuid
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, List, Optional
from urllib.parse import urlsplit

from llrt_check.exceptions import EmulatorError
from llrt_check.utils.logger import get_logger, truncate_body

logger = get_logger(__name__)

API_VERSION = "2018-06-01"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 9001
DEFAULT_DEADLINE_WINDOW_MS = 30000

FUNCTION_ARN = "arn:aws:lambda:us-east-1:123456789012:function:test-function"
TRACE_ID = "Root=1-5e6722a7-cc56xmpl46db7ae02d2fd7a8;Parent=91ed514f1e5c03a2;Sampled=1"

HEADER_REQUEST_ID = "Lambda-Runtime-Aws-Request-Id"
HEADER_DEADLINE_MS = "Lambda-Runtime-Deadline-Ms"
HEADER_FUNCTION_ARN = "Lambda-Runtime-Invoked-Function-Arn"
HEADER_TRACE_ID = "Lambda-Runtime-Trace-Id"

COMPLETION_RESPONSE = "response"
COMPLETION_ERROR = "error"
COMPLETION_INIT_ERROR = "init_error"


@dataclass(frozen=True)
class InvocationRecord:
    """One queued invocation, serialised once when it is set."""

    request_id: str
    payload: Any
    body: bytes
    deadline_ms: int


@dataclass(frozen=True)
class CompletionRecord:
    """A response or error posted back by the runtime."""

    kind: str
    request_id: Optional[str]
    body: str
    received_at: float = field(default_factory=time.time)


class _RuntimeAPIServer(ThreadingHTTPServer):
    daemon_threads = True
    allow_reuse_address = True

    def __init__(self, address, emulator: "InvocationEmulator"):
        self.emulator = emulator
        super().__init__(address, _RuntimeAPIRequestHandler)


class _RuntimeAPIRequestHandler(BaseHTTPRequestHandler):
    server: _RuntimeAPIServer
    protocol_version = "HTTP/1.1"

    def do_GET(self):
        emulator = self.server.emulator
        if self._path() != emulator.next_path:
            self._send_empty(404)
            return

        record = emulator.take_invocation()
        if record is None:
            self._send_empty(204)
            return

        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(record.body)))
        self.send_header(HEADER_REQUEST_ID, record.request_id)
        self.send_header(HEADER_DEADLINE_MS, str(record.deadline_ms))
        self.send_header(HEADER_FUNCTION_ARN, emulator.function_arn)
        self.send_header(HEADER_TRACE_ID, emulator.trace_id)
        self.end_headers()
        self.wfile.write(record.body)

    def do_POST(self):
        emulator = self.server.emulator
        path = self._path()

        match = emulator.completion_pattern.fullmatch(path)
        if match:
            kind = COMPLETION_RESPONSE if match.group("kind") == "response" else COMPLETION_ERROR
            request_id = match.group("request_id")
        elif path == emulator.init_error_path:
            kind = COMPLETION_INIT_ERROR
            request_id = None
        else:
            self._send_empty(404, close=True)
            return

        try:
            body = self._read_body()
        except ValueError as e:
            logger.warning(
                "Malformed completion request body",
                operation="runtime_api",
                context={"path": path},
                error=str(e),
            )
            self._send_empty(400, close=True)
            return

        emulator.record_completion(kind, request_id, body)
        self._send_empty(200)

    def _not_found(self):
        self._send_empty(404, close=True)

    do_PUT = _not_found
    do_PATCH = _not_found
    do_DELETE = _not_found
    do_HEAD = _not_found
    do_OPTIONS = _not_found

    def _path(self) -> str:
        return urlsplit(self.path).path

    def _send_empty(self, status: int, close: bool = False) -> None:
        self.send_response(status)
        self.send_header("Content-Length", "0")
        if close:
            # unread request bodies would corrupt a kept-alive connection
            self.send_header("Connection", "close")
            self.close_connection = True
        self.end_headers()

    def _read_body(self) -> str:
        if self.headers.get("Transfer-Encoding", "").lower() == "chunked":
            chunks = []
            while True:
                size_line = self.rfile.readline().strip()
                size = int(size_line.split(b";")[0] or b"0", 16)
                if size == 0:
                    # trailing CRLF (and any trailers) after the last chunk
                    while self.rfile.readline() not in (b"\r\n", b"\n", b""):
                        pass
                    break
                chunks.append(self.rfile.read(size))
                self.rfile.readline()
            raw = b"".join(chunks)
        else:
            length = int(self.headers.get("Content-Length") or 0)
            raw = self.rfile.read(length) if length > 0 else b""
        return raw.decode("utf-8", errors="replace")

    def log_message(self, format, *args):
        logger.debug(
            "Runtime API request",
            operation="runtime_api",
            context={"client": self.address_string(), "line": format % args},
        )


class InvocationEmulator:
    """
    Local Lambda Runtime API holding at most one pending invocation.

    The pending slot belongs to the instance, so several emulators (on
    different ports) never share state.
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        api_version: str = API_VERSION,
        deadline_window_ms: int = DEFAULT_DEADLINE_WINDOW_MS,
        function_arn: str = FUNCTION_ARN,
        trace_id: str = TRACE_ID,
    ):
        self.host = host
        self.port = port
        self.api_version = api_version
        self.deadline_window_ms = deadline_window_ms
        self.function_arn = function_arn
        self.trace_id = trace_id

        self.next_path = f"/{api_version}/runtime/invocation/next"
        self.init_error_path = f"/{api_version}/runtime/init/error"
        self.completion_pattern = re.compile(
            rf"/{re.escape(api_version)}/runtime/invocation/(?P<request_id>[^/]+)/(?P<kind>response|error)"
        )

        self._lock = threading.Lock()
        self._pending: Optional[InvocationRecord] = None
        self._completions: List[CompletionRecord] = []
        self._server: Optional[_RuntimeAPIServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._server is not None

    @property
    def bound_port(self) -> int:
        """Port actually listened on (differs from ``port`` when it was 0)."""
        if self._server is None:
            return self.port
        return self._server.server_address[1]

    @property
    def address(self) -> str:
        """``host:port`` suitable for AWS_LAMBDA_RUNTIME_API."""
        return f"{self.host}:{self.bound_port}"

    @property
    def completions(self) -> List[CompletionRecord]:
        with self._lock:
            return list(self._completions)

    def start(self) -> None:
        """
        Bind the listener and serve on a background thread.

        Returns once the socket is listening.

        Raises:
            EmulatorError: If already started
            OSError: If the port cannot be bound
        """
        if self._server is not None:
            raise EmulatorError(f"Runtime API emulator already listening on {self.address}")

        self._server = _RuntimeAPIServer((self.host, self.port), self)
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name=f"runtime-api-{self.bound_port}",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            f"Lambda Runtime API server listening on port {self.bound_port}",
            operation="emulator_start",
            context={"address": self.address},
        )

    def stop(self) -> None:
        """Shut down and close the socket. No-op if not running."""
        server, thread = self._server, self._thread
        if server is None:
            return

        server.shutdown()
        server.server_close()
        if thread is not None:
            thread.join()
        self._server = None
        self._thread = None
        logger.info("Lambda Runtime API server stopped", operation="emulator_stop")

    def set_invocation(self, payload: Any) -> InvocationRecord:
        """
        Queue ``payload`` as the next invocation, replacing any unserved one.

        The deadline is fixed now, not when the invocation is fetched.
        """
        record = InvocationRecord(
            request_id=f"test-{uuid.uuid4().hex}",
            payload=payload,
            body=json.dumps(payload).encode("utf-8"),
            deadline_ms=int(time.time() * 1000) + self.deadline_window_ms,
        )
        with self._lock:
            replaced = self._pending
            self._pending = record

        if replaced is not None:
            logger.debug(
                "Replaced unserved invocation",
                operation="set_invocation",
                context={"replaced": replaced.request_id, "request_id": record.request_id},
            )
        return record

    @property
    def pending(self) -> Optional[InvocationRecord]:
        with self._lock:
            return self._pending

    def take_invocation(self) -> Optional[InvocationRecord]:
        """Hand out the pending invocation and clear the slot."""
        with self._lock:
            record, self._pending = self._pending, None
        return record

    def record_completion(self, kind: str, request_id: Optional[str], body: str) -> None:
        with self._lock:
            self._completions.append(CompletionRecord(kind=kind, request_id=request_id, body=body))

        context = {"request_id": request_id, "body": truncate_body(body)}
        if kind == COMPLETION_RESPONSE:
            logger.info("Lambda response", operation="runtime_api_response", context=context)
        else:
            logger.warning(f"Lambda {kind.replace('_', ' ')}", operation="runtime_api_error", context=context)

    def __enter__(self) -> "InvocationEmulator":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
