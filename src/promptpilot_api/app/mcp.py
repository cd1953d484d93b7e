"""JSON-RPC 2.0 "MCP" endpoint logic for AI agents.

Beginner terms:
- JSON-RPC: request/response protocol where each request names a `method` and
  the response echoes the request `id` with either `result` or `error`.
- Tool: a named operation an agent can call through `tools/call`.
- Notification: a request without `id`; it gets no response.

Tool arguments are validated with Pydantic models before anything runs, so a
malformed call is reported as "invalid params" instead of an internal error.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .chain import ChainExecutor
from .config import Settings
from .errors import GenerationError, GenerationUnavailableError, UserInputError
from .models import ChainStep
from .planner import PromptPlanner
from .search import PromptIndex
from .storage import PromptStorage, get_visible_prompt

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2024-11-05"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
USER_INPUT_ERROR = -32001
GENERATION_FAILED = -32002


class JsonRpcError(Exception):
    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


class ToolArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ListPromptsArgs(ToolArgs):
    category: str | None = Field(default=None, description="Optional category (tag) filter")
    search: str | None = Field(default=None, description="Optional search term")


class GetPromptArgs(ToolArgs):
    id: int = Field(description="The ID of the prompt to retrieve")


class SearchPromptsArgs(ToolArgs):
    query: str = Field(min_length=1, description="Search query")
    limit: int = Field(default=10, ge=1, le=100, description="Maximum number of results")


class CreateExecutionPlanArgs(ToolArgs):
    task: str = Field(description="The task to create an execution plan for")


class ExecutePromptChainArgs(ToolArgs):
    prompts: list[ChainStep] = Field(description="Prompts to execute in order")


@dataclass(frozen=True)
class McpToolSpec:
    description: str
    input_model: type[ToolArgs]
    fn: Callable[[Any, str], dict[str, Any]]


class McpDispatcher:
    """Route one decoded JSON-RPC request to the matching handler."""

    def __init__(
        self,
        *,
        storage: PromptStorage,
        planner: PromptPlanner,
        chain_executor: ChainExecutor,
        settings: Settings,
    ) -> None:
        self.storage = storage
        self.planner = planner
        self.chain_executor = chain_executor
        self.settings = settings
        self.tools: dict[str, McpToolSpec] = {
            "list_prompts": McpToolSpec(
                description="List all available prompts in the PromptPilot vault",
                input_model=ListPromptsArgs,
                fn=self._list_prompts,
            ),
            "get_prompt": McpToolSpec(
                description="Get a specific prompt by ID",
                input_model=GetPromptArgs,
                fn=self._get_prompt,
            ),
            "search_prompts": McpToolSpec(
                description="Search prompts by content, tags, or description",
                input_model=SearchPromptsArgs,
                fn=self._search_prompts,
            ),
            "create_execution_plan": McpToolSpec(
                description=(
                    "Analyzes a user's task and creates a sequential plan of prompts "
                    "from the user's vault."
                ),
                input_model=CreateExecutionPlanArgs,
                fn=self._create_execution_plan,
            ),
            "execute_prompt_chain": McpToolSpec(
                description=(
                    "Executes an ordered chain of prompts, feeding the output of each step "
                    "as context to the next."
                ),
                input_model=ExecutePromptChainArgs,
                fn=self._execute_prompt_chain,
            ),
        }

    def handle_raw(self, body: bytes, *, owner_id: str) -> dict[str, Any] | None:
        try:
            payload = json.loads(body)
        except (UnicodeDecodeError, json.JSONDecodeError):
            return _error_response(None, PARSE_ERROR, "Parse error")
        return self.handle(payload, owner_id=owner_id)

    def handle(self, payload: Any, *, owner_id: str) -> dict[str, Any] | None:
        request_id = payload.get("id") if isinstance(payload, dict) else None
        if not isinstance(request_id, (str, int)) or isinstance(request_id, bool):
            request_id = None
        try:
            method = _validated_method(payload)
            if "id" not in payload:
                self._notify(method, payload.get("params"), owner_id=owner_id)
                return None
            result = self._dispatch(method, payload.get("params"), owner_id=owner_id)
        except JsonRpcError as exc:
            return _error_response(request_id, exc.code, exc.message, exc.data)
        except UserInputError as exc:
            logger.info("mcp event=user_error code=%s", exc.code)
            return _error_response(request_id, USER_INPUT_ERROR, exc.message, exc.to_dict())
        except (GenerationError, GenerationUnavailableError) as exc:
            data = None
            if isinstance(exc, GenerationError) and exc.partial_trace:
                data = {"partial_trace": [entry.model_dump() for entry in exc.partial_trace]}
            return _error_response(request_id, GENERATION_FAILED, str(exc), data)
        except Exception:  # noqa: BLE001
            logger.exception("mcp event=internal_error id=%s", request_id)
            return _error_response(request_id, INTERNAL_ERROR, "Internal error")
        return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}

    def _notify(self, method: str, params: Any, *, owner_id: str) -> None:
        """Run an id-less request; JSON-RPC never answers a notification."""
        logger.info("mcp event=notification method=%s", method)
        if method.startswith("notifications/"):
            return
        response = self.handle(
            {"jsonrpc": JSONRPC_VERSION, "id": None, "method": method, "params": params},
            owner_id=owner_id,
        )
        if response is not None and "error" in response:
            logger.warning(
                "mcp event=notification_failed method=%s code=%s",
                method,
                response["error"]["code"],
            )

    def list_tools(self) -> list[dict[str, Any]]:
        return [
            {
                "name": name,
                "description": tool.description,
                "inputSchema": tool.input_model.model_json_schema(),
            }
            for name, tool in self.tools.items()
        ]

    def _dispatch(self, method: str, params: Any, *, owner_id: str) -> dict[str, Any]:
        logger.info("mcp event=request method=%s owner_id=%s", method, owner_id)
        if method == "initialize":
            return {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {"tools": {}},
                "serverInfo": {
                    "name": self.settings.app_name,
                    "version": self.settings.app_version,
                },
            }
        if method == "tools/list":
            return {"tools": self.list_tools()}
        if method == "tools/call":
            if not isinstance(params, dict) or not isinstance(params.get("name"), str):
                raise JsonRpcError(INVALID_PARAMS, "tools/call requires params.name")
            return self._call_tool(params["name"], params.get("arguments"), owner_id=owner_id)
        raise JsonRpcError(METHOD_NOT_FOUND, f"Method '{method}' not found")

    def _call_tool(self, name: str, arguments: Any, *, owner_id: str) -> dict[str, Any]:
        tool = self.tools.get(name)
        if tool is None:
            raise JsonRpcError(METHOD_NOT_FOUND, f"Tool '{name}' not found")
        try:
            args = tool.input_model.model_validate(arguments or {})
        except ValidationError as exc:
            raise JsonRpcError(
                INVALID_PARAMS,
                f"Invalid arguments for tool '{name}'",
                json.loads(exc.json(include_url=False)),
            ) from exc
        logger.info("mcp event=tool_call tool=%s owner_id=%s", name, owner_id)
        return tool.fn(args, owner_id)

    def _list_prompts(self, args: ListPromptsArgs, owner_id: str) -> dict[str, Any]:
        prompts = self.storage.list_prompts(
            owner_id=owner_id, tag=args.category, search=args.search
        )
        return {"prompts": [prompt.model_dump(mode="json") for prompt in prompts]}

    def _get_prompt(self, args: GetPromptArgs, owner_id: str) -> dict[str, Any]:
        prompt = get_visible_prompt(self.storage, args.id, owner_id=owner_id)
        return {"prompt": prompt.model_dump(mode="json")}

    def _search_prompts(self, args: SearchPromptsArgs, owner_id: str) -> dict[str, Any]:
        index = PromptIndex.build(self.storage.list_prompts(owner_id=owner_id))
        hits = index.search(args.query, limit=args.limit, min_score=self.settings.search_min_score)
        return {
            "prompts": [{**hit.prompt.model_dump(mode="json"), "score": hit.score} for hit in hits]
        }

    def _create_execution_plan(
        self, args: CreateExecutionPlanArgs, owner_id: str
    ) -> dict[str, Any]:
        plan = self.planner.create_execution_plan(args.task, owner_id=owner_id)
        return plan.model_dump(mode="json")

    def _execute_prompt_chain(
        self, args: ExecutePromptChainArgs, owner_id: str
    ) -> dict[str, Any]:
        result = self.chain_executor.execute(args.prompts)
        return {
            "status": result.status,
            "reason": result.reason,
            "trace": [entry.model_dump() for entry in result.trace],
            "finalAnswer": result.final_answer,
            "plan": [step.model_dump() for step in result.plan],
        }


def _validated_method(payload: Any) -> str:
    if (
        not isinstance(payload, dict)
        or payload.get("jsonrpc") != JSONRPC_VERSION
        or not isinstance(payload.get("method"), str)
    ):
        raise JsonRpcError(INVALID_REQUEST, "Invalid Request")
    return payload["method"]


def _error_response(
    request_id: str | int | None, code: int, message: str, data: Any = None
) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error}
