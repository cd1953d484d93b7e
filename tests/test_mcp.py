from __future__ import annotations

from typing import Any

from fastapi.testclient import TestClient

from promptpilot_api.app.config import Settings
from promptpilot_api.app.mcp import (
    GENERATION_FAILED,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    PROTOCOL_VERSION,
    USER_INPUT_ERROR,
)
from promptpilot_api.main import create_app

from fakes import ScriptedGenerator
from memory_storage import InMemoryPromptStorage


def _rpc(client: TestClient, method: str, params: Any = None, request_id: int = 1) -> dict:
    payload: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        payload["params"] = params
    response = client.post("/mcp", json=payload)
    assert response.status_code == 200
    return response.json()


def _call(client: TestClient, name: str, arguments: dict | None = None) -> dict:
    return _rpc(client, "tools/call", {"name": name, "arguments": arguments or {}})


def test_initialize_reports_protocol_and_server(client: TestClient) -> None:
    body = _rpc(client, "initialize", {})

    assert body["id"] == 1
    assert body["result"]["protocolVersion"] == PROTOCOL_VERSION
    assert body["result"]["serverInfo"]["name"] == "promptpilot-mcp"


def test_tools_list_describes_every_tool(client: TestClient) -> None:
    tools = _rpc(client, "tools/list")["result"]["tools"]

    by_name = {tool["name"]: tool for tool in tools}
    assert set(by_name) == {
        "list_prompts",
        "get_prompt",
        "search_prompts",
        "create_execution_plan",
        "execute_prompt_chain",
    }
    assert by_name["create_execution_plan"]["inputSchema"]["required"] == ["task"]
    assert by_name["get_prompt"]["inputSchema"]["required"] == ["id"]


def test_list_get_and_search_prompts(client: TestClient, seed_prompt) -> None:
    created = seed_prompt("Deep Research Assistant", "Investigate the topic.", tags=["research"])

    listed = _call(client, "list_prompts", {"category": "research"})["result"]["prompts"]
    assert [item["id"] for item in listed] == [created["id"]]

    fetched = _call(client, "get_prompt", {"id": created["id"]})["result"]["prompt"]
    assert fetched["title"] == "Deep Research Assistant"

    found = _call(client, "search_prompts", {"query": "research"})["result"]["prompts"]
    assert found[0]["id"] == created["id"]
    assert found[0]["score"] == 1.0


def test_missing_prompt_is_a_user_error(client: TestClient) -> None:
    error = _call(client, "get_prompt", {"id": 404})["error"]

    assert error["code"] == USER_INPUT_ERROR
    assert error["data"]["code"] == "prompt_not_found"


def test_invalid_arguments_are_invalid_params(client: TestClient) -> None:
    error = _call(client, "get_prompt", {"id": "not-a-number"})["error"]

    assert error["code"] == INVALID_PARAMS
    assert error["data"][0]["loc"] == ["id"]

    missing = _call(client, "create_execution_plan", {})["error"]
    assert missing["code"] == INVALID_PARAMS


def test_unknown_tool_and_method(client: TestClient) -> None:
    assert _call(client, "delete_everything")["error"]["code"] == METHOD_NOT_FOUND
    assert _rpc(client, "resources/list")["error"]["code"] == METHOD_NOT_FOUND
    assert _rpc(client, "tools/call", {"arguments": {}})["error"]["code"] == INVALID_PARAMS


def test_malformed_requests(client: TestClient) -> None:
    parse_error = client.post(
        "/mcp", content=b"{not json", headers={"Content-Type": "application/json"}
    )
    assert parse_error.status_code == 200
    assert parse_error.json()["error"]["code"] == PARSE_ERROR
    assert parse_error.json()["id"] is None

    wrong_version = client.post("/mcp", json={"jsonrpc": "1.0", "id": 7, "method": "initialize"})
    assert wrong_version.json()["error"]["code"] == INVALID_REQUEST
    assert wrong_version.json()["id"] == 7


def test_notifications_get_no_body(client: TestClient) -> None:
    response = client.post(
        "/mcp", json={"jsonrpc": "2.0", "method": "notifications/initialized"}
    )

    assert response.status_code == 204
    assert response.content == b""


def test_requests_without_id_are_never_answered(client: TestClient, caplog) -> None:
    listed = client.post("/mcp", json={"jsonrpc": "2.0", "method": "tools/list"})
    assert listed.status_code == 204
    assert listed.content == b""

    caplog.set_level("WARNING", logger="promptpilot_api.app.mcp")
    failed = client.post(
        "/mcp",
        json={
            "jsonrpc": "2.0",
            "method": "tools/call",
            "params": {"name": "create_execution_plan", "arguments": {"task": "write"}},
        },
    )
    assert failed.status_code == 204
    assert "mcp event=notification_failed method=tools/call" in caplog.text


def test_malformed_request_without_id_still_gets_an_error(client: TestClient) -> None:
    response = client.post("/mcp", json={"jsonrpc": "1.0", "method": "tools/list"})

    assert response.status_code == 200
    assert response.json()["id"] is None
    assert response.json()["error"]["code"] == INVALID_REQUEST


def test_plan_tool_reports_empty_vault(client: TestClient) -> None:
    error = _call(client, "create_execution_plan", {"task": "write a poem"})["error"]

    assert error["code"] == USER_INPUT_ERROR
    assert error["message"] == "Your prompt vault is empty. Please add prompts to use the MCP."


def test_plan_then_execute_without_generator(client: TestClient, seed_prompt) -> None:
    seed_prompt("Deep Research Assistant", "Investigate the topic thoroughly.")
    seed_prompt("Executive Summary Writer", "Condense the material into a brief.")

    plan = _call(client, "create_execution_plan", {"task": "research AI safety and make a summary"})
    prompts = plan["result"]["prompts"]
    assert [item["order"] for item in prompts] == [1, 2]

    # The plan's prompt objects are accepted as chain steps as-is.
    result = _call(client, "execute_prompt_chain", {"prompts": prompts})["result"]
    assert result["status"] == "degraded"
    assert result["trace"] == []
    assert result["finalAnswer"] == ""
    assert [step["title"] for step in result["plan"]] == [
        "Deep Research Assistant",
        "Executive Summary Writer",
    ]


def test_execute_chain_with_generator() -> None:
    app = create_app(
        storage=InMemoryPromptStorage(),
        settings_override=Settings(_env_file=None),
        generator=ScriptedGenerator(["notes", "summary"]),
    )
    steps = [
        {"id": 1, "title": "Research", "content": "Research."},
        {"id": 2, "title": "Summary", "content": "Summarize."},
    ]

    with TestClient(app) as client:
        result = _call(client, "execute_prompt_chain", {"prompts": steps})["result"]

    assert result["status"] == "executed"
    assert result["finalAnswer"] == "summary"
    assert [entry["input_context"] for entry in result["trace"]] == ["", "notes"]


def test_execute_chain_failure_carries_partial_trace() -> None:
    app = create_app(
        storage=InMemoryPromptStorage(),
        settings_override=Settings(_env_file=None),
        generator=ScriptedGenerator(["notes"], fail_on_call=2),
    )
    steps = [
        {"id": 1, "title": "Research", "content": "Research."},
        {"id": 2, "title": "Summary", "content": "Summarize."},
    ]

    with TestClient(app) as client:
        error = _call(client, "execute_prompt_chain", {"prompts": steps})["error"]

    assert error["code"] == GENERATION_FAILED
    assert [entry["output"] for entry in error["data"]["partial_trace"]] == ["notes"]
