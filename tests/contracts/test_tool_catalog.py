from webdna_docs.agent.registry import ToolRegistry
from webdna_docs.agent.tools import register_documentation_tools
from webdna_docs.retrieval.client import DocumentationClient
from webdna_docs.store.database import DocStore


def _descriptors(tmp_path) -> dict[str, dict]:
    registry = ToolRegistry()
    client = DocumentationClient(DocStore(tmp_path / "docs.db"))
    register_documentation_tools(registry, client, server_version="0.0.0")
    return {descriptor["name"]: descriptor for descriptor in registry.descriptors()}


def test_catalog_names_and_required_parameters(tmp_path) -> None:
    tools = _descriptors(tmp_path)

    assert list(tools) == [
        "search-webdna-docs",
        "get-webdna-doc",
        "get-webdna-categories",
        "get-random-webdna-docs",
        "get-webdna-stats",
    ]
    assert tools["search-webdna-docs"]["parameters"]["required"] == ["query"]
    assert tools["get-webdna-doc"]["parameters"]["required"] == ["id"]
    assert "required" not in tools["get-webdna-categories"]["parameters"]
    assert "required" not in tools["get-webdna-stats"]["parameters"]


def test_catalog_parameter_defaults(tmp_path) -> None:
    tools = _descriptors(tmp_path)

    search = tools["search-webdna-docs"]["parameters"]["properties"]
    assert set(search) == {"query", "category", "limit", "offset"}
    assert search["query"]["type"] == "string"
    assert search["limit"]["default"] == 20
    assert search["offset"]["default"] == 0

    random_docs = tools["get-random-webdna-docs"]["parameters"]["properties"]
    assert random_docs["limit"]["default"] == 5

    assert tools["get-webdna-doc"]["parameters"]["properties"]["id"]["type"] == "string"
    assert tools["get-webdna-categories"]["parameters"]["properties"] == {}


def test_every_tool_is_described(tmp_path) -> None:
    for descriptor in _descriptors(tmp_path).values():
        assert descriptor["description"]
        assert descriptor["parameters"]["type"] == "object"
