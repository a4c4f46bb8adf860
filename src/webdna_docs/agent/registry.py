"""Tool registry built on Pydantic v2 models."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from time import perf_counter
from typing import Any

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, ConfigDict, Field

from webdna_docs.types import ToolTrace


class ToolInvocationError(Exception):
    """A tool failure reported to the caller with a stable error code."""

    def __init__(self, message: str, code: str = "TOOL_ERROR") -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ToolSpec(BaseModel):
    """Declarative tool specification for registration and introspection."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    args_schema: type[BaseModel]
    handler: Callable[[BaseModel], Awaitable[Any]]
    tags: list[str] = Field(default_factory=list)

    async def invoke(self, payload: dict[str, Any]) -> Any:
        data = self.args_schema.model_validate(payload)
        return await self.handler(data)

    def descriptor(self) -> dict[str, Any]:
        """Name, description and JSON-Schema parameters as sent in `tools`."""
        schema = self.args_schema.model_json_schema()
        schema.pop("title", None)
        for prop in schema.get("properties", {}).values():
            prop.pop("title", None)
        schema.setdefault("properties", {})
        return {
            "name": self.name,
            "description": self.description,
            "parameters": schema,
        }


class ToolRegistry:
    """Stores tool specs and exports descriptors and LangChain tool objects."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}
        self._observer: Callable[[ToolTrace], None] | None = None

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    def set_observer(self, observer: Callable[[ToolTrace], None] | None) -> None:
        """Set an optional callback invoked after each tool execution."""
        self._observer = observer

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    async def execute(self, name: str, payload: dict[str, Any]) -> Any:
        spec = self._tools.get(name)
        if spec is None:
            raise KeyError(f"Unknown tool: {name}")
        return await self._execute_spec(spec, payload)

    def descriptors(self) -> list[dict[str, Any]]:
        return [spec.descriptor() for spec in self._tools.values()]

    def as_langchain_tools(self) -> list[StructuredTool]:
        tools: list[StructuredTool] = []
        for spec in self._tools.values():
            tools.append(
                StructuredTool.from_function(
                    name=spec.name,
                    description=spec.description,
                    args_schema=spec.args_schema,
                    coroutine=self._build_coroutine(spec),
                )
            )
        return tools

    def _build_coroutine(self, spec: ToolSpec) -> Callable[..., Awaitable[Any]]:
        async def _callable(**kwargs: Any) -> Any:
            return await self._execute_spec(spec, kwargs)

        return _callable

    async def _execute_spec(self, spec: ToolSpec, payload: dict[str, Any]) -> Any:
        start = perf_counter()
        output = await spec.invoke(payload)
        latency_ms = (perf_counter() - start) * 1000.0

        if self._observer is not None:
            self._observer(
                ToolTrace(
                    name=spec.name,
                    input_payload=payload,
                    output_preview=json.dumps(output, default=str)[:320],
                    latency_ms=latency_ms,
                )
            )
        return output
