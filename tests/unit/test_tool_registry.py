import pytest
from pydantic import BaseModel, Field, ValidationError

from webdna_docs.agent.registry import ToolRegistry, ToolSpec


class EchoInput(BaseModel):
    value: int = Field(ge=1)


async def _echo(data: EchoInput) -> str:
    return str(data.value)


def _spec() -> ToolSpec:
    return ToolSpec(
        name="echo",
        description="echo positive int",
        args_schema=EchoInput,
        handler=_echo,
    )


@pytest.mark.asyncio
async def test_tool_registry_validation() -> None:
    registry = ToolRegistry()
    registry.register(_spec())

    assert await registry.execute("echo", {"value": 3}) == "3"
    assert await registry.execute("echo", {"value": "4"}) == "4"

    with pytest.raises(ValidationError):
        await registry.execute("echo", {"value": 0})


def test_duplicate_tool_registration_rejected() -> None:
    registry = ToolRegistry()
    spec = _spec()

    registry.register(spec)
    with pytest.raises(ValueError):
        registry.register(spec)


@pytest.mark.asyncio
async def test_unknown_tool_raises_key_error() -> None:
    registry = ToolRegistry()

    assert "missing" not in registry
    with pytest.raises(KeyError):
        await registry.execute("missing", {})


def test_descriptor_exposes_json_schema_parameters() -> None:
    registry = ToolRegistry()
    registry.register(_spec())

    [descriptor] = registry.descriptors()

    assert descriptor["name"] == "echo"
    assert descriptor["description"] == "echo positive int"
    params = descriptor["parameters"]
    assert params["type"] == "object"
    assert params["properties"]["value"] == {"type": "integer", "minimum": 1}
    assert params["required"] == ["value"]
    assert "title" not in params


@pytest.mark.asyncio
async def test_langchain_export_runs_through_registry() -> None:
    registry = ToolRegistry()
    registry.register(_spec())

    [tool] = registry.as_langchain_tools()

    assert tool.name == "echo"
    assert await tool.ainvoke({"value": 7}) == "7"
