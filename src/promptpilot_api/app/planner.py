"""Planning layer: task text in, ordered prompt plan out.

Pipeline:
1) Analyzer: detect actions (in mention order) and keywords.
2) Selector: pick the best unused prompt from the owner's vault per action.
3) Reranker: optionally let a model reorder/filter the candidates.

The planner does not run prompts itself; it only decides what should run.
Think of its output as a "to-do list" for the chain executor.
"""

from __future__ import annotations

import logging

from .analyzer import analyze_task
from .errors import UserInputError
from .models import ExecutionPlan, PlannedPrompt
from .reranker import PromptReranker
from .selector import ScoringWeights, select_candidates
from .storage import PromptStorage

logger = logging.getLogger(__name__)


class PromptPlanner:
    """Public planner entrypoint used by the REST routes and the MCP endpoint."""

    def __init__(
        self,
        *,
        storage: PromptStorage,
        reranker: PromptReranker,
        weights: ScoringWeights | None = None,
        rerank_enabled: bool = True,
    ) -> None:
        self.storage = storage
        self.reranker = reranker
        self.weights = weights or ScoringWeights()
        self.rerank_enabled = rerank_enabled

    def create_execution_plan(self, task: str, *, owner_id: str) -> ExecutionPlan:
        analysis = analyze_task(task)

        vault = self.storage.list_by_owner(owner_id)
        if not vault:
            logger.warning("plan event=empty_vault owner_id=%s", owner_id)
            raise UserInputError(
                "empty_vault",
                "Your prompt vault is empty. Please add prompts to use the MCP.",
            )
        logger.info("plan event=vault_loaded owner_id=%s prompts=%d", owner_id, len(vault))

        candidates = select_candidates(analysis, vault, weights=self.weights)
        if not candidates:
            logger.warning("plan event=no_candidates owner_id=%s", owner_id)
            raise UserInputError(
                "no_suitable_prompts",
                "Could not find any suitable prompts in your vault for this task. "
                "Try adding more relevant prompts.",
            )

        if self.rerank_enabled:
            outcome = self.reranker.rerank(task, candidates)
            ordered, rerank_status, rerank_reason = outcome.prompts, outcome.status, outcome.reason
        else:
            ordered, rerank_status, rerank_reason = candidates, "degraded", "reranking disabled"

        logger.info(
            "plan event=built owner_id=%s prompts=%d rerank_status=%s",
            owner_id,
            len(ordered),
            rerank_status,
        )
        return ExecutionPlan(
            task=task,
            analysis=analysis,
            prompts=[
                PlannedPrompt(**prompt.model_dump(), order=index + 1)
                for index, prompt in enumerate(ordered)
            ],
            rerank_status=rerank_status,
            rerank_reason=rerank_reason,
        )
