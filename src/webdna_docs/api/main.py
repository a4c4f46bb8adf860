"""FastAPI bridge that forwards HTTP requests to the stdio worker."""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from webdna_docs import __version__
from webdna_docs.config import Settings
from webdna_docs.protocol.engine import (
    TIMEOUT,
    WORKER_TERMINATED,
    WORKER_UNAVAILABLE,
    ProtocolEngine,
)
from webdna_docs.protocol.messages import (
    InvokeToolMessage,
    ListToolsMessage,
    Response,
    ToolErrorMessage,
    message_payload,
)
from webdna_docs.protocol.supervisor import RestartPolicy

logger = logging.getLogger(__name__)

WORKER_COMMAND = (sys.executable, "-m", "webdna_docs", "worker")

_STATUS_BY_CODE = {
    TIMEOUT: 504,
    WORKER_TERMINATED: 500,
    WORKER_UNAVAILABLE: 503,
}


class InvokeToolRequest(BaseModel):
    tool: str | None = None
    params: dict[str, Any] | None = Field(default=None)


def status_for(response: Response) -> int:
    """HTTP status for a worker response; tool-level errors stay 200."""
    if isinstance(response, ToolErrorMessage) and response.error.code is not None:
        return _STATUS_BY_CODE.get(response.error.code, 200)
    return 200


def build_engine(settings: Settings) -> ProtocolEngine:
    config = settings.engine_config()
    return ProtocolEngine(
        WORKER_COMMAND,
        env=settings.worker_env(),
        config=config,
        restart_policy=RestartPolicy.from_config(config),
    )


def create_app(
    settings: Settings | None = None,
    engine: ProtocolEngine | None = None,
) -> FastAPI:
    settings = settings or Settings()
    engine = engine or build_engine(settings)
    started = time.monotonic()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "WebDNA docs HTTP server starting on port %d in %s mode",
            settings.port,
            settings.environment,
        )
        await engine.start()
        try:
            yield
        finally:
            logger.info("Shutting down, stopping worker")
            await engine.shutdown()

    app = FastAPI(title="WebDNA Docs Server", version=__version__, lifespan=lifespan)
    app.state.engine = engine
    app.state.settings = settings

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error: %s", exc, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={
                "type": "error",
                "error": {
                    "message": "An unexpected error occurred",
                    "code": "INTERNAL_SERVER_ERROR",
                },
            },
        )

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "message": "WebDNA docs HTTP server is running",
            "uptime": time.monotonic() - started,
            "environment": settings.environment,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "worker": engine.status(),
        }

    @app.get("/")
    def index() -> dict[str, Any]:
        return {
            "name": "WebDNA Docs Server",
            "description": "Tool server for WebDNA documentation",
            "version": __version__,
            "endpoints": {
                "/": "This documentation",
                "/health": "Health check endpoint",
                "/metrics": "Worker request statistics",
                "/mcp/init": "Initialize the worker connection",
                "/mcp/list_tools": "List available tools",
                "/mcp/invoke_tool": "Invoke a tool with parameters",
            },
        }

    @app.post("/mcp/init")
    async def init() -> dict[str, str]:
        logger.info("Received init request")
        await engine.init()
        return {"type": "ready"}

    @app.post("/mcp/list_tools")
    async def list_tools() -> JSONResponse:
        logger.info("Received list_tools request")
        response = await engine.send(
            ListToolsMessage(), timeout=engine.config.list_tools_timeout_seconds
        )
        return JSONResponse(status_code=status_for(response), content=message_payload(response))

    @app.post("/mcp/invoke_tool")
    async def invoke_tool(request: InvokeToolRequest | None = None) -> JSONResponse:
        tool = request.tool if request is not None else None
        params = (request.params if request is not None else None) or {}
        logger.info("Received invoke_tool request for %s", tool)

        if not tool:
            return JSONResponse(
                status_code=400,
                content={
                    "type": "tool_error",
                    "error": {"message": "Missing tool parameter", "code": "MISSING_PARAMETER"},
                },
            )

        response = await engine.send(
            InvokeToolMessage(tool=tool, params=params),
            timeout=engine.config.invoke_timeout_seconds,
        )
        return JSONResponse(status_code=status_for(response), content=message_payload(response))

    @app.get("/metrics")
    def metrics(limit: int = 20) -> dict[str, Any]:
        return {
            **engine.stats.summary(),
            "worker_restarts": engine.restart_count,
            "recent": [asdict(record) for record in engine.stats.list_recent(limit=limit)],
        }

    return app
