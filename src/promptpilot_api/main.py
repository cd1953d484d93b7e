"""FastAPI application wiring for the PromptPilot service.

Beginner terms used in this file:
- Owner: whose vault a request reads; taken from the X-Owner-Id header.
- Plan route: POST /plans, the REST twin of the create_execution_plan tool.
- MCP endpoint: POST /mcp, JSON-RPC for agents; handled in a worker thread.
- Runtime state: storage, planner, executor, optimizer, judge and dispatcher
  kept on app.state and built once at startup.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response

from .app.chain import ChainExecutor
from .app.config import Settings, get_settings
from .app.errors import GenerationError, GenerationUnavailableError, UserInputError
from .app.judge import PromptJudge
from .app.llm import build_text_generator
from .app.mcp import McpDispatcher
from .app.models import (
    ChainResult,
    CreatePlanRequest,
    ExecuteChainRequest,
    ExecutionPlan,
    OptimizePromptRequest,
    PlaygroundCompareRequest,
    PlaygroundComparison,
    Prompt,
    PromptCreate,
    PromptOptimization,
    PromptUpdate,
    SearchHit,
)
from .app.optimizer import PromptOptimizer
from .app.planner import PromptPlanner
from .app.reranker import PromptReranker
from .app.search import PromptIndex
from .app.selector import ScoringWeights
from .app.storage import PostgresPromptStorage, PromptStorage, get_visible_prompt

logger = logging.getLogger(__name__)


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    storage_override: PromptStorage | None,
    generator: Any,
) -> None:
    if not hasattr(app.state, "storage"):
        database_url = settings.resolved_database_url()
        if storage_override is None and not database_url:
            raise RuntimeError(
                "Missing database URL. Set PROMPTPILOT_DATABASE_URL "
                "or DATABASE_URL before starting the app."
            )
        if storage_override is not None:
            storage_override.migrate()
            app.state.storage = storage_override
        else:
            # Migrates on construction.
            app.state.storage = PostgresPromptStorage(database_url)

    if hasattr(app.state, "planner"):
        return

    if generator is None:
        logger.warning("Text generation is not configured; reranking and chains will degrade.")
    app.state.settings = settings
    app.state.planner = PromptPlanner(
        storage=app.state.storage,
        reranker=PromptReranker(
            generator=generator, preview_chars=settings.rerank_preview_chars
        ),
        weights=ScoringWeights.from_settings(settings),
        rerank_enabled=settings.rerank_enabled,
    )
    app.state.chain_executor = ChainExecutor(generator=generator)
    app.state.optimizer = PromptOptimizer(generator=generator, timeout_s=settings.llm_timeout_s)
    app.state.judge = PromptJudge(generator=generator)
    app.state.mcp = McpDispatcher(
        storage=app.state.storage,
        planner=app.state.planner,
        chain_executor=app.state.chain_executor,
        settings=settings,
    )


def create_app(
    *,
    storage: PromptStorage | None = None,
    settings_override: Settings | None = None,
    generator: Any = None,
) -> FastAPI:
    """Application factory.

    `storage` and `generator` let tests inject doubles; by default the
    Postgres backend and the configured OpenAI adapter are used.
    """
    settings = settings_override or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    text_generator = generator if generator is not None else build_text_generator(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _ensure_runtime_state(
            app,
            settings=settings,
            storage_override=storage,
            generator=text_generator,
        )
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan if storage is None else None,
    )

    # Injected storage needs no startup I/O, so wire everything right away.
    if storage is not None:
        _ensure_runtime_state(
            app,
            settings=settings,
            storage_override=storage,
            generator=text_generator,
        )

    def _state(request: Request) -> Any:
        if not hasattr(request.app.state, "planner"):
            _ensure_runtime_state(
                request.app,
                settings=settings,
                storage_override=storage,
                generator=text_generator,
            )
        return request.app.state

    def _owner_id(x_owner_id: str | None = Header(default=None)) -> str:
        return (x_owner_id or "").strip() or settings.default_owner_id

    @app.exception_handler(UserInputError)
    async def user_input_error_handler(_: Request, exc: UserInputError) -> JSONResponse:
        status_code = 404 if exc.code == "prompt_not_found" else 400
        return JSONResponse(status_code=status_code, content={"detail": exc.to_dict()})

    @app.exception_handler(GenerationUnavailableError)
    async def generation_unavailable_handler(
        _: Request, exc: GenerationUnavailableError
    ) -> JSONResponse:
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.exception_handler(GenerationError)
    async def generation_error_handler(_: Request, exc: GenerationError) -> JSONResponse:
        return JSONResponse(
            status_code=502,
            content={
                "detail": str(exc),
                "partial_trace": [entry.model_dump() for entry in exc.partial_trace],
            },
        )

    # Liveness aliases; none of them touch storage or the model.
    @app.get("/health")
    @app.get("/healthz")
    @app.get("/live")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/tools")
    def list_tools(request: Request) -> dict[str, list[str]]:
        return {"tools": sorted(_state(request).mcp.tools.keys())}

    @app.post("/prompts", response_model=Prompt, status_code=201)
    def create_prompt(
        payload: PromptCreate,
        request: Request,
        owner_id: str = Depends(_owner_id),
    ) -> Prompt:
        prompt = _state(request).storage.create_prompt(owner_id, payload)
        logger.info("prompt event=created prompt_id=%s owner_id=%s", prompt.id, owner_id)
        return prompt

    @app.get("/prompts", response_model=list[Prompt])
    def list_prompts(
        request: Request,
        tag: str | None = None,
        search: str | None = None,
        owner_id: str = Depends(_owner_id),
    ) -> list[Prompt]:
        return _state(request).storage.list_prompts(owner_id=owner_id, tag=tag, search=search)

    # Declared before /prompts/{prompt_id} so "search" is not parsed as an id.
    @app.get("/prompts/search", response_model=list[SearchHit])
    def search_prompts(
        request: Request,
        q: str = Query(min_length=1),
        limit: int = Query(default=10, ge=1, le=100),
        owner_id: str = Depends(_owner_id),
    ) -> list[SearchHit]:
        state = _state(request)
        index = PromptIndex.build(state.storage.list_prompts(owner_id=owner_id))
        return index.search(q, limit=limit, min_score=settings.search_min_score)

    @app.get("/prompts/{prompt_id}", response_model=Prompt)
    def get_prompt(
        prompt_id: int,
        request: Request,
        owner_id: str = Depends(_owner_id),
    ) -> Prompt:
        return get_visible_prompt(_state(request).storage, prompt_id, owner_id=owner_id)

    @app.patch("/prompts/{prompt_id}", response_model=Prompt)
    def update_prompt(
        prompt_id: int,
        payload: PromptUpdate,
        request: Request,
        owner_id: str = Depends(_owner_id),
    ) -> Prompt:
        storage = _state(request).storage
        prompt = storage.update_prompt(prompt_id, owner_id=owner_id, payload=payload)
        if prompt is None:
            raise HTTPException(status_code=404, detail="Prompt not found")
        logger.info(
            "prompt event=updated prompt_id=%s owner_id=%s fields=%s",
            prompt_id,
            owner_id,
            ",".join(sorted(payload.changes())) or "none",
        )
        return prompt

    @app.delete("/prompts/{prompt_id}", status_code=204)
    def delete_prompt(
        prompt_id: int,
        request: Request,
        owner_id: str = Depends(_owner_id),
    ) -> Response:
        if not _state(request).storage.delete_prompt(prompt_id, owner_id=owner_id):
            raise HTTPException(status_code=404, detail="Prompt not found")
        logger.info("prompt event=deleted prompt_id=%s owner_id=%s", prompt_id, owner_id)
        return Response(status_code=204)

    @app.post("/prompts/optimize", response_model=PromptOptimization)
    def optimize_prompt(payload: OptimizePromptRequest, request: Request) -> PromptOptimization:
        return _state(request).optimizer.optimize(
            title=payload.title,
            content=payload.content,
            tags=payload.tags,
            model=payload.model,
        )

    @app.post("/plans", response_model=ExecutionPlan)
    def create_execution_plan(
        payload: CreatePlanRequest,
        request: Request,
        owner_id: str = Depends(_owner_id),
    ) -> ExecutionPlan:
        return _state(request).planner.create_execution_plan(payload.task, owner_id=owner_id)

    @app.post("/chains/run", response_model=ChainResult)
    def execute_prompt_chain(payload: ExecuteChainRequest, request: Request) -> ChainResult:
        return _state(request).chain_executor.execute(payload.prompts)

    @app.post("/playground/compare", response_model=PlaygroundComparison)
    def compare_prompts(
        payload: PlaygroundCompareRequest, request: Request
    ) -> PlaygroundComparison:
        return _state(request).judge.compare(payload.prompt_a, payload.prompt_b)

    @app.post("/mcp")
    async def mcp_endpoint(request: Request, owner_id: str = Depends(_owner_id)) -> Response:
        body = await request.body()
        # Tool handlers block on storage and model calls; keep them off the event loop.
        response = await run_in_threadpool(
            _state(request).mcp.handle_raw, body, owner_id=owner_id
        )
        if response is None:
            return Response(status_code=204)
        return JSONResponse(content=response)

    return app


# Module-level app for `uvicorn promptpilot_api.main:app`.
app = create_app()
