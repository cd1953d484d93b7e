from __future__ import annotations

from fastapi.testclient import TestClient


def test_health_endpoints(client: TestClient) -> None:
    for route in ("/health", "/healthz", "/live"):
        response = client.get(route)
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


def test_tools_endpoint_lists_mcp_tools(client: TestClient) -> None:
    response = client.get("/tools")
    assert response.status_code == 200
    assert response.json()["tools"] == [
        "create_execution_plan",
        "execute_prompt_chain",
        "get_prompt",
        "list_prompts",
        "search_prompts",
    ]
