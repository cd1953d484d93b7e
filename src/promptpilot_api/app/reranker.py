"""Best-effort reranking of candidate prompts by a text-generation model.

Reranking is an enhancement, never a dependency: whenever the model is
missing or its answer is unusable, the candidates come back unchanged with
`status="degraded"` and the reason attached.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence

from .llm import TextGenerator
from .models import Prompt, RerankOutcome

logger = logging.getLogger(__name__)

ID_ARRAY_PATTERN = re.compile(r"\[.*?\]", re.DOTALL)


class RerankError(ValueError):
    """The model answer could not be turned into an ordered id list."""


class PromptReranker:
    def __init__(self, *, generator: TextGenerator | None, preview_chars: int = 100) -> None:
        self.generator = generator
        self.preview_chars = preview_chars

    def rerank(self, task: str, candidates: Sequence[Prompt]) -> RerankOutcome:
        original = list(candidates)
        if self.generator is None:
            return self._degraded(original, "text generation is not configured")
        try:
            raw = self.generator.generate(self.build_instruction(task, original))
            ordered_ids = parse_id_array(raw)
        except Exception as exc:  # noqa: BLE001
            # Reliability rule: never fail planning just because reranking failed.
            return self._degraded(original, str(exc))

        by_id = {prompt.id: prompt for prompt in original}
        reranked: list[Prompt] = []
        seen: set[int] = set()
        for prompt_id in ordered_ids:
            # Unknown or repeated ids from the model are dropped.
            if prompt_id in seen or prompt_id not in by_id:
                continue
            seen.add(prompt_id)
            reranked.append(by_id[prompt_id])

        logger.info(
            "plan event=reranked candidates=%d kept=%d order=%s",
            len(original),
            len(reranked),
            ",".join(str(prompt.id) for prompt in reranked),
        )
        return RerankOutcome(prompts=reranked, status="ok")

    def build_instruction(self, task: str, candidates: Sequence[Prompt]) -> str:
        tools = [
            {
                "id": prompt.id,
                "title": prompt.title,
                "content": prompt.content[: self.preview_chars] + "...",
            }
            for prompt in candidates
        ]
        return (
            "You are an expert task dispatcher. Your job is to analyze a user's request and "
            "a list of available tools (prompts) and determine the best sequence of tools to "
            "use to accomplish the request.\n\n"
            f'User\'s Request:\n"{task}"\n\n'
            "Available Tools (Prompts):\n---\n"
            f"{json.dumps(tools, indent=2)}\n---\n\n"
            "Based on the user's request, please provide the ideal sequence of tool IDs to "
            "execute. The output must be a single, valid JSON array of numbers, representing "
            "the ordered list of prompt IDs. For example: [3, 1].\n\n"
            "If none of the tools are suitable for the task, return an empty array []. "
            "Do not include any other text, markdown, or explanation in your response."
        )

    @staticmethod
    def _degraded(candidates: list[Prompt], reason: str) -> RerankOutcome:
        logger.warning("plan event=rerank_fallback reason=%s", reason)
        return RerankOutcome(prompts=candidates, status="degraded", reason=reason)


def parse_id_array(raw: str) -> list[int]:
    """Extract the first bracketed JSON array of integer ids from model output."""
    match = ID_ARRAY_PATTERN.search(raw or "")
    if match is None:
        raise RerankError("reranker response did not contain a JSON array")
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise RerankError(f"reranker array is not valid JSON: {exc}") from exc
    if not isinstance(parsed, list) or not all(
        isinstance(item, int) and not isinstance(item, bool) for item in parsed
    ):
        raise RerankError("reranker array must contain only integer prompt ids")
    return parsed
