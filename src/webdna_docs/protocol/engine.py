"""Request correlation over a supervised stdio worker process.

The engine owns one worker subprocess and multiplexes many concurrent
requests over its single stdin/stdout pipe pair. Each outbound request gets
a correlation id and a pending entry holding a future and a timeout handle.
Inbound lines are matched back to pending entries by id, never by order.

Pending entries leave the map in exactly one of four ways:
1. a response with the same id arrives (`_settle`);
2. the timeout handle fires first (`_expire` -> `_settle`);
3. the worker process exits (`_fail_all`);
4. the awaiting caller is cancelled (`_discard`).
Whichever happens first wins; later arrivals for the same id are discarded.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, assert_never

from webdna_docs.config import EngineConfig
from webdna_docs.obs.tracing import RequestStats
from webdna_docs.protocol.messages import (
    InitMessage,
    InvokeToolMessage,
    ListToolsMessage,
    PingMessage,
    ProtocolError,
    ReadyMessage,
    Request,
    Response,
    ToolErrorMessage,
    ToolResultMessage,
    ToolsMessage,
    decode_message,
    encode_message,
    error_message,
)
from webdna_docs.protocol.supervisor import RestartPolicy

logger = logging.getLogger(__name__)

TIMEOUT = "TIMEOUT"
WORKER_TERMINATED = "WORKER_TERMINATED"
WORKER_UNAVAILABLE = "WORKER_UNAVAILABLE"

DEFAULT_LINE_LIMIT = 16 * 1024 * 1024


class WorkerState(str, Enum):
    STARTING = "starting"
    READY = "ready"
    DEGRADED = "degraded"
    TERMINATED = "terminated"


class EngineClosedError(RuntimeError):
    """Raised when a request is sent after `shutdown()`."""


class DuplicateRequestError(ValueError):
    """Raised when a caller reuses a correlation id that is still pending."""


@dataclass(slots=True)
class PendingRequest:
    future: asyncio.Future[Response]
    issued_at: float
    timeout_handle: asyncio.TimerHandle
    kind: str
    tool: str | None


class ProtocolEngine:
    """Owns a worker subprocess and correlates its responses to callers."""

    def __init__(
        self,
        command: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
        config: EngineConfig | None = None,
        restart_policy: RestartPolicy | None = None,
        stats: RequestStats | None = None,
        line_limit: int = DEFAULT_LINE_LIMIT,
    ) -> None:
        if not command:
            raise ValueError("worker command must not be empty")
        self._command = list(command)
        self._env = dict(env) if env else None
        self._cwd = cwd
        self.config = config or EngineConfig()
        self.restart_policy = restart_policy or RestartPolicy.from_config(self.config)
        self.stats = stats or RequestStats()
        self._line_limit = line_limit

        self._state = WorkerState.STARTING
        self._closed = False
        self._process: asyncio.subprocess.Process | None = None
        self._pending: dict[str, PendingRequest] = {}
        self._supervisor_task: asyncio.Task[None] | None = None
        self._stderr_task: asyncio.Task[None] | None = None
        self._restart_task: asyncio.Task[None] | None = None
        self._consecutive_restarts = 0
        self.restart_count = 0

    # -- Introspection ----------------------------------------------------

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    def status(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "pid": self.pid,
            "pending": self.pending_count,
            "restarts": self.restart_count,
        }

    # -- Lifecycle --------------------------------------------------------

    async def start(self) -> None:
        """Spawn the worker and send `init`. Does not wait for `ready`."""
        if self._closed:
            raise EngineClosedError("Protocol engine has been shut down")
        await self._spawn(raise_errors=True)

    async def init(self) -> bool:
        """Send a fire-and-forget `init`; returns False if no worker is attached."""
        sent = await self._write(InitMessage())
        if not sent:
            logger.warning("Cannot send init: worker is not running")
        return sent

    async def shutdown(self) -> None:
        """Stop supervising and terminate the worker. No further spawns."""
        if self._closed:
            return
        self._closed = True
        self._state = WorkerState.TERMINATED
        logger.info("Shutting down protocol engine")

        if self._restart_task is not None:
            self._restart_task.cancel()

        process = self._process
        if process is not None and process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(process.wait(), self.config.terminate_grace_seconds)
            except TimeoutError:
                logger.warning("Worker did not exit in time, killing pid=%s", process.pid)
                process.kill()
                await process.wait()

        for task in (self._supervisor_task, self._stderr_task, self._restart_task):
            if task is None or task.done():
                continue
            try:
                await task
            except asyncio.CancelledError:
                pass

    # -- Requests ---------------------------------------------------------

    async def send(self, message: Request, timeout: float | None = None) -> Response:
        """Send a request and wait for its correlated response.

        Always returns a response message: the worker's own reply, or a
        synthetic `tool_error` with code TIMEOUT, WORKER_TERMINATED or
        WORKER_UNAVAILABLE.
        """
        if self._closed:
            raise EngineClosedError("Protocol engine has been shut down")

        request_id = message.id or str(uuid.uuid4())
        if request_id in self._pending:
            raise DuplicateRequestError(f"Correlation id already pending: {request_id}")
        message = message.model_copy(update={"id": request_id})
        tool = message.tool if isinstance(message, InvokeToolMessage) else None
        wait = timeout if timeout is not None else self.config.default_timeout_seconds

        if not self._worker_attached():
            self.stats.record(
                request_id=request_id,
                kind=message.type,
                tool=tool,
                outcome="unavailable",
                latency_ms=0.0,
            )
            return error_message(request_id, "Worker is not running", WORKER_UNAVAILABLE)

        future = self._register(request_id, message.type, tool, wait)
        logger.debug("Sending %s %s to worker", message.type, request_id)
        if not await self._write(message):
            self._settle(
                request_id,
                error_message(request_id, "Worker terminated unexpectedly", WORKER_TERMINATED),
                outcome="terminated",
            )
        try:
            return await future
        finally:
            self._discard(request_id, future)

    def _register(
        self, request_id: str, kind: str, tool: str | None, timeout: float
    ) -> asyncio.Future[Response]:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Response] = loop.create_future()
        handle = loop.call_later(timeout, self._expire, request_id, timeout)
        self._pending[request_id] = PendingRequest(
            future=future,
            issued_at=time.monotonic(),
            timeout_handle=handle,
            kind=kind,
            tool=tool,
        )
        return future

    def _expire(self, request_id: str, timeout: float) -> None:
        logger.warning("Request %s timed out after %.1fs", request_id, timeout)
        self._settle(
            request_id,
            error_message(request_id, "Timeout waiting for worker response", TIMEOUT),
            outcome="timeout",
        )

    def _settle(self, request_id: str, response: Response, *, outcome: str) -> bool:
        entry = self._pending.pop(request_id, None)
        if entry is None:
            return False
        entry.timeout_handle.cancel()
        latency_ms = (time.monotonic() - entry.issued_at) * 1000.0
        self.stats.record(
            request_id=request_id,
            kind=entry.kind,
            tool=entry.tool,
            outcome=outcome,
            latency_ms=latency_ms,
        )
        if outcome in ("ok", "error"):
            logger.info("Request %s completed in %.0fms", request_id, latency_ms)
        if not entry.future.done():
            entry.future.set_result(response)
        return True

    def _discard(self, request_id: str, future: asyncio.Future[Response]) -> None:
        entry = self._pending.get(request_id)
        if entry is not None and entry.future is future:
            del self._pending[request_id]
            entry.timeout_handle.cancel()
            logger.debug("Caller abandoned request %s", request_id)

    def _fail_all(self) -> int:
        pending, self._pending = self._pending, {}
        now = time.monotonic()
        for request_id, entry in pending.items():
            entry.timeout_handle.cancel()
            self.stats.record(
                request_id=request_id,
                kind=entry.kind,
                tool=entry.tool,
                outcome="terminated",
                latency_ms=(now - entry.issued_at) * 1000.0,
            )
            if not entry.future.done():
                entry.future.set_result(
                    error_message(request_id, "Worker terminated unexpectedly", WORKER_TERMINATED)
                )
        return len(pending)

    # -- Process plumbing -------------------------------------------------

    def _worker_attached(self) -> bool:
        process = self._process
        return (
            process is not None
            and process.returncode is None
            and self._state is not WorkerState.TERMINATED
        )

    async def _spawn(self, *, raise_errors: bool = False) -> None:
        if self._closed:
            return
        self._state = WorkerState.STARTING
        env = {**os.environ, **self._env} if self._env else None
        logger.info("Starting worker: %s", " ".join(self._command))
        try:
            process = await asyncio.create_subprocess_exec(
                *self._command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                cwd=self._cwd,
                limit=self._line_limit,
            )
        except OSError as exc:
            logger.error("Failed to spawn worker: %s", exc)
            if raise_errors:
                self._state = WorkerState.DEGRADED
                raise
            self._state = WorkerState.DEGRADED
            self._schedule_restart()
            return

        self._process = process
        logger.info("Worker started with pid=%s", process.pid)
        self._supervisor_task = asyncio.create_task(self._supervise(process))
        self._stderr_task = asyncio.create_task(self._drain_stderr(process))
        await self.init()

    async def _supervise(self, process: asyncio.subprocess.Process) -> None:
        # Drain stdout to EOF first so responses flushed before an exit are
        # still delivered, then reap the process.
        await self._read_stdout(process)
        returncode = await process.wait()
        if self._process is process:
            self._process = None
        self._on_exit(returncode)

    async def _read_stdout(self, process: asyncio.subprocess.Process) -> None:
        assert process.stdout is not None
        while True:
            try:
                line = await process.stdout.readline()
            except ValueError as exc:
                logger.error("Discarding oversized line from worker: %s", exc)
                continue
            if not line:
                return
            self._handle_line(line)

    async def _drain_stderr(self, process: asyncio.subprocess.Process) -> None:
        assert process.stderr is not None
        while True:
            try:
                line = await process.stderr.readline()
            except ValueError:
                continue
            if not line:
                return
            logger.debug("[worker stderr] %s", line.decode("utf-8", errors="replace").rstrip())

    async def _write(self, message: InitMessage | Request) -> bool:
        process = self._process
        if process is None or process.returncode is not None or process.stdin is None:
            return False
        if process.stdin.is_closing():
            return False
        try:
            process.stdin.write(encode_message(message).encode("utf-8"))
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            logger.warning("Failed to write to worker: %s", exc)
            return False
        return True

    def _handle_line(self, raw: bytes) -> None:
        text = raw.decode("utf-8", errors="replace").strip()
        if not text:
            return
        try:
            message = decode_message(text)
        except ProtocolError as exc:
            logger.error("Error processing worker output (%s): %s", exc, text)
            return

        match message:
            case ReadyMessage():
                self._state = WorkerState.READY
                self._consecutive_restarts = 0
                logger.info("Worker is ready")
            case PingMessage():
                logger.debug("Received ping from worker")
            case ToolsMessage() | ToolResultMessage() | ToolErrorMessage():
                outcome = "error" if isinstance(message, ToolErrorMessage) else "ok"
                if message.id is not None and self._settle(message.id, message, outcome=outcome):
                    return
                if message.id is not None:
                    logger.warning("Discarding late or unknown response %s", message.id)
                else:
                    logger.warning("Unhandled message from worker: %s", text)
            case InitMessage() | ListToolsMessage() | InvokeToolMessage():
                logger.warning("Unhandled message from worker: %s", text)
            case _:
                assert_never(message)

    def _on_exit(self, returncode: int) -> None:
        failed = self._fail_all()
        if returncode < 0:
            logger.warning("Worker exited on signal %d", -returncode)
        else:
            logger.warning("Worker exited with code %d", returncode)
        if failed:
            logger.warning("Failed %d pending request(s) after worker exit", failed)

        if self._closed:
            self._state = WorkerState.TERMINATED
            return
        self._state = WorkerState.DEGRADED
        self._schedule_restart()

    def _schedule_restart(self) -> None:
        attempt = self._consecutive_restarts + 1
        if not self.restart_policy.allows(attempt):
            logger.error(
                "Worker restart limit (%s) reached; engine terminated",
                self.restart_policy.max_restarts,
            )
            self._state = WorkerState.TERMINATED
            return
        delay = self.restart_policy.delay_for(attempt)
        logger.info("Restarting worker in %.1fs (attempt %d)", delay, attempt)
        self._restart_task = asyncio.create_task(self._restart_after(delay, attempt))

    async def _restart_after(self, delay: float, attempt: int) -> None:
        await asyncio.sleep(delay)
        if self._closed:
            return
        self._consecutive_restarts = attempt
        self.restart_count += 1
        logger.info("Attempting to restart worker...")
        await self._spawn()
