"""Stdio worker: answers protocol messages read from its own stdin.

Stdout carries protocol lines only; every log record goes to stderr and the
rotating log file.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import time
import uuid
from typing import TextIO, assert_never

from pydantic import ValidationError

from webdna_docs import __version__
from webdna_docs.agent.registry import ToolInvocationError, ToolRegistry
from webdna_docs.agent.tools import register_documentation_tools
from webdna_docs.config import Settings
from webdna_docs.obs.logging import setup_logging
from webdna_docs.obs.tracing import Timer
from webdna_docs.protocol.engine import DEFAULT_LINE_LIMIT
from webdna_docs.protocol.messages import (
    InitMessage,
    InvokeToolMessage,
    ListToolsMessage,
    PingMessage,
    ProtocolError,
    ReadyMessage,
    ToolErrorMessage,
    ToolResultMessage,
    ToolsMessage,
    decode_message,
    encode_message,
    error_message,
)
from webdna_docs.retrieval.client import DocumentationClient
from webdna_docs.store.cache import QueryCache
from webdna_docs.store.database import DocStore, StoreError

logger = logging.getLogger(__name__)


class StdioWorker:
    """Dispatches protocol messages to the tool registry.

    Lines are read one at a time; each `invoke_tool` runs as its own task so
    a slow store query does not hold up the next line. Replies are matched by
    the caller through the echoed correlation id, so they may be written out
    of request order.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        store: DocStore,
        *,
        output: TextIO | None = None,
        heartbeat_interval: float = 30.0,
        health_interval: float = 60.0,
    ) -> None:
        self.registry = registry
        self.store = store
        self._output = output or sys.stdout
        self.heartbeat_interval = heartbeat_interval
        self.health_interval = health_interval

        self.initialized = False
        self.message_count = 0
        self.started_at = time.monotonic()
        self.last_message_at = self.started_at
        self._inflight: set[asyncio.Task[None]] = set()

    @property
    def uptime(self) -> int:
        return int(time.monotonic() - self.started_at)

    async def initialize(self) -> None:
        logger.info("Initializing WebDNA docs worker...")
        try:
            await self.store.initialize()
        except StoreError as exc:
            logger.error("Error during initialization: %s", exc)
            return
        self.initialized = True
        logger.info("WebDNA docs worker initialization complete")

    async def run(self, reader: asyncio.StreamReader) -> None:
        """Serve until EOF on `reader`, then let in-flight invocations finish."""
        background = [
            asyncio.create_task(self._heartbeat()),
            asyncio.create_task(self._health_log()),
        ]
        try:
            await self.initialize()
            while True:
                try:
                    line = await reader.readline()
                except ValueError as exc:
                    logger.error("Discarding oversized input line: %s", exc)
                    continue
                if not line:
                    logger.info("Input closed, shutting down")
                    break
                await self.handle_line(line)
            if self._inflight:
                await asyncio.gather(*self._inflight, return_exceptions=True)
        finally:
            for task in background:
                task.cancel()
            await asyncio.gather(*background, return_exceptions=True)

    async def handle_line(self, raw: bytes | str) -> None:
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        text = text.strip()
        if not text:
            return
        self.message_count += 1
        self.last_message_at = time.monotonic()

        try:
            message = decode_message(text)
        except ProtocolError as exc:
            logger.error("Error processing message: %s", exc)
            logger.error("Problematic line: %s", text)
            if exc.request_id is not None:
                self.send(
                    error_message(
                        exc.request_id, f"Error processing request: {exc}", "INVALID_MESSAGE"
                    )
                )
            return

        logger.info("Received message: %s", message.type)
        match message:
            case InitMessage():
                await self.initialize()
                self.send(ReadyMessage())
            case ListToolsMessage():
                self.send(ToolsMessage(tools=self.registry.descriptors(), id=message.id))
            case InvokeToolMessage():
                task = asyncio.create_task(self.invoke(message))
                self._inflight.add(task)
                task.add_done_callback(self._inflight.discard)
            case ReadyMessage() | ToolsMessage() | ToolResultMessage() | ToolErrorMessage() | PingMessage():
                logger.warning("Unexpected message type: %s", message.type)
            case _:
                assert_never(message)

    async def invoke(self, message: InvokeToolMessage) -> None:
        request_id = message.id or str(uuid.uuid4())
        tool = message.tool
        logger.info("Invoking tool: %s with params: %s", tool, message.params)

        if tool not in self.registry:
            logger.warning("Unknown tool: %s", tool)
            self.send(error_message(request_id, f"Unknown tool: {tool}", "UNKNOWN_TOOL"))
            return

        try:
            with Timer() as timer:
                result = await self.registry.execute(tool, message.params)
        except ValidationError as exc:
            self.send(
                error_message(
                    request_id,
                    f"Invalid parameters for {tool}: {exc.error_count()} error(s)",
                    "INVALID_PARAMS",
                )
            )
        except ToolInvocationError as exc:
            self.send(error_message(request_id, exc.message, exc.code))
        except StoreError as exc:
            logger.error("Store error invoking tool %s: %s", tool, exc)
            self.send(error_message(request_id, f"Error invoking tool {tool}: {exc}", "STORE_ERROR"))
        except Exception as exc:
            logger.exception("Error invoking tool %s", tool)
            self.send(
                error_message(request_id, f"Error invoking tool {tool}: {exc}", "INTERNAL_ERROR")
            )
        else:
            logger.debug("Tool %s finished in %.1fms", tool, timer.elapsed_ms)
            self.send(ToolResultMessage(id=request_id, result=result))

    def send(self, message: ReadyMessage | ToolsMessage | ToolResultMessage | ToolErrorMessage | PingMessage) -> None:
        self._output.write(encode_message(message))
        self._output.flush()

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            if self.initialized:
                self.send(
                    PingMessage(
                        id=str(uuid.uuid4()),
                        timestamp=int(time.time() * 1000),
                        uptime=self.uptime,
                    )
                )

    async def _health_log(self) -> None:
        while True:
            await asyncio.sleep(self.health_interval)
            idle = int(time.monotonic() - self.last_message_at)
            logger.info(
                "Health check: initialized=%s, messages=%d, last message=%ds ago, uptime=%ds",
                self.initialized,
                self.message_count,
                idle,
                self.uptime,
            )


def build_worker(settings: Settings, *, output: TextIO | None = None) -> StdioWorker:
    store = DocStore(settings.database_path)
    client = DocumentationClient(store, cache=QueryCache(settings.cache_config()))
    registry = ToolRegistry()
    register_documentation_tools(registry, client, server_version=__version__)
    return StdioWorker(registry, store, output=output)


async def connect_stdin(limit: int = DEFAULT_LINE_LIMIT) -> asyncio.StreamReader:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=limit)
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    return reader


async def serve_stdio(settings: Settings) -> None:
    worker = build_worker(settings)
    reader = await connect_stdin()
    task = asyncio.create_task(worker.run(reader))

    loop = asyncio.get_running_loop()

    def _stop(signame: str) -> None:
        logger.info("Received %s, shutting down", signame)
        task.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _stop, sig.name)

    try:
        await task
    except asyncio.CancelledError:
        pass


def main(settings: Settings | None = None) -> int:
    settings = settings or Settings()
    setup_logging(
        "worker",
        level=settings.log_level,
        log_dir=settings.log_dir,
        stream=sys.stderr,
    )
    logger.info("WebDNA docs worker (stdin/stdout) starting...")
    asyncio.run(serve_stdio(settings))
    return 0
