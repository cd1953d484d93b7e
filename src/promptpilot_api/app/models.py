"""Pydantic models shared across API, planner, chain executor, and storage.

Beginner terms used in this file:
- Prompt: a stored, reusable instruction for a text-generation model.
- Action: an intent class detected in a task ("research", "summarize", ...).
- Plan: ordered prompts picked for a task; the chain executor runs them in order.
- Degraded: a stage skipped its external model call and returned a safe fallback.
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Action(str, Enum):
    """Task intent classes, in tie-break priority order."""

    RESEARCH = "research"
    WRITE = "write"
    SUMMARIZE = "summarize"
    REVIEW = "review"
    CODE = "code"
    GENERAL = "general"

    @property
    def pattern(self) -> re.Pattern[str] | None:
        # GENERAL is the "nothing detected" sentinel and has no matcher.
        return ACTION_PATTERNS.get(self)


ACTION_PATTERNS: dict[Action, re.Pattern[str]] = {
    Action.RESEARCH: re.compile(r"research|analyze|investigate|study|explore|find", re.IGNORECASE),
    Action.WRITE: re.compile(r"write|compose|create|draft|author|generate", re.IGNORECASE),
    Action.SUMMARIZE: re.compile(
        r"summarize|summarise|condense|brief|recap|summary", re.IGNORECASE
    ),
    Action.REVIEW: re.compile(r"review|evaluate|assess|critique|check", re.IGNORECASE),
    Action.CODE: re.compile(r"code|program|develop|build|implement|debug", re.IGNORECASE),
}


class Prompt(BaseModel):
    """Canonical prompt record shape returned by API/storage."""

    id: int
    owner_id: str
    title: str
    content: str
    description: str = ""
    # Discovery labels; order carries no meaning.
    tags: list[str] = Field(default_factory=list)
    # Target model name, informational only.
    model: str = "gpt-4o-mini"
    is_public: bool = False
    created_at: datetime


class PromptCreate(BaseModel):
    """Request body for POST /prompts."""

    title: str
    content: str
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    model: str = "gpt-4o-mini"
    is_public: bool = False

    @field_validator("title", "content")
    @classmethod
    def _require_text(cls, value: str) -> str:
        return _non_blank(value)

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, value: list[str]) -> list[str]:
        return _unique_tags(value)


class PromptUpdate(BaseModel):
    """Request body for PATCH /prompts/{id}; only the fields sent are changed."""

    title: str | None = None
    content: str | None = None
    description: str | None = None
    tags: list[str] | None = None
    model: str | None = None
    is_public: bool | None = None

    @field_validator("title", "content")
    @classmethod
    def _require_text(cls, value: str | None) -> str | None:
        return None if value is None else _non_blank(value)

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, value: list[str] | None) -> list[str] | None:
        return None if value is None else _unique_tags(value)

    def changes(self) -> dict[str, Any]:
        """Fields the caller actually sent; an explicit null counts as "leave as is"."""
        return {
            name: value
            for name, value in self.model_dump(exclude_unset=True).items()
            if value is not None
        }


def _non_blank(value: str) -> str:
    stripped = value.strip()
    if not stripped:
        raise ValueError("must not be blank")
    return stripped


def _unique_tags(value: list[str]) -> list[str]:
    seen: set[str] = set()
    tags: list[str] = []
    for raw in value:
        tag = raw.strip()
        if not tag or tag.lower() in seen:
            continue
        seen.add(tag.lower())
        tags.append(tag)
    return tags


class TaskAnalysis(BaseModel):
    """Structured intent parsed from free task text."""

    # Earliest-mentioned action first; never empty.
    actions: list[Action] = Field(min_length=1)
    keywords: list[str] = Field(default_factory=list)


RerankStatus = Literal["ok", "degraded"]


class RerankOutcome(BaseModel):
    """Reranker result; `degraded` means the candidates came back untouched."""

    prompts: list[Prompt] = Field(default_factory=list)
    status: RerankStatus = "ok"
    reason: str | None = None


class PlannedPrompt(Prompt):
    """A prompt placed in a plan at a 1-based position."""

    order: int = Field(ge=1)


class ExecutionPlan(BaseModel):
    """Ordered prompts selected for one task."""

    task: str
    analysis: TaskAnalysis
    prompts: list[PlannedPrompt] = Field(default_factory=list)
    rerank_status: RerankStatus = "ok"
    rerank_reason: str | None = None
    instructions: str = "The MCP will execute these prompts in order to complete your task."


class ChainStep(BaseModel):
    """One prompt to run in a chain; extra plan fields are ignored."""

    model_config = ConfigDict(extra="ignore")

    id: int
    title: str = ""
    content: str = Field(min_length=1)


class TraceEntry(BaseModel):
    """What one executed chain step received and produced."""

    step: int = Field(ge=1)
    prompt_id: int
    title: str
    input_context: str
    output: str


class PlanPreviewStep(BaseModel):
    """A chain step reported back without being executed."""

    step: int = Field(ge=1)
    prompt_id: int
    title: str
    content: str


ChainStatus = Literal["executed", "degraded"]


class ChainResult(BaseModel):
    """Chain executor outcome: trace + final answer, or an unexecuted plan."""

    status: ChainStatus = "executed"
    reason: str | None = None
    trace: list[TraceEntry] = Field(default_factory=list)
    final_answer: str = ""
    plan: list[PlanPreviewStep] = Field(default_factory=list)


class CreatePlanRequest(BaseModel):
    """Request body for POST /plans."""

    task: str


class ExecuteChainRequest(BaseModel):
    """Request body for POST /chains/run."""

    prompts: list[ChainStep]


class OptimizePromptRequest(BaseModel):
    """Request body for POST /prompts/optimize."""

    title: str = ""
    content: str = ""
    tags: list[str] = Field(default_factory=list)
    model: str = "gpt-4o-mini"


class PromptOptimization(BaseModel):
    """Rewritten title, tags and content suggested by the model."""

    title: str = Field(min_length=1)
    tags: list[str] = Field(default_factory=list)
    content: str = Field(min_length=1)


class PromptScores(BaseModel):
    """Judge scores for one prompt's response, each 0..100."""

    clarity: int = Field(default=0, ge=0, le=100)
    engagement: int = Field(default=0, ge=0, le=100)
    creativity: int = Field(default=0, ge=0, le=100)
    effectiveness: int = Field(default=0, ge=0, le=100)
    specificity: int = Field(default=0, ge=0, le=100)


class PlaygroundCompareRequest(BaseModel):
    """Request body for POST /playground/compare."""

    prompt_a: str = Field(min_length=1)
    prompt_b: str = Field(min_length=1)


JudgeWinner = Literal["prompt_a", "prompt_b"]


class PlaygroundComparison(BaseModel):
    """Both generated responses plus the judge verdict."""

    response_a: str
    response_b: str
    feedback: str
    scores_a: PromptScores
    scores_b: PromptScores
    winner: JudgeWinner
    reasoning: str
    recommendations_a: list[str] = Field(default_factory=list)
    recommendations_b: list[str] = Field(default_factory=list)
    overall_assessment: str = ""
    judge_status: RerankStatus = "ok"
    judge_reason: str | None = None


class SearchHit(BaseModel):
    """One prompt search match."""

    prompt: Prompt
    score: float
