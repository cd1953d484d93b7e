"""Model-backed prompt rewriting.

The model suggests a new title, tag set and content for one prompt. The
result is advisory: nothing is saved, and the title and tag limits below are
enforced here even when the model ignores them.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from .errors import GenerationError, GenerationUnavailableError, UserInputError
from .llm import StructuredGenerator
from .models import PromptOptimization

logger = logging.getLogger(__name__)

MAX_TITLE_CHARS = 60
MAX_TAGS = 6


class PromptOptimizer:
    """Ask the model for a clearer title, a fresh tag set and improved content."""

    def __init__(self, *, generator: StructuredGenerator | None, timeout_s: float = 8.0) -> None:
        self.generator = generator
        self.timeout_s = timeout_s

    def optimize(
        self,
        *,
        title: str,
        content: str,
        tags: Sequence[str],
        model: str,
    ) -> PromptOptimization:
        if not title.strip() and not content.strip():
            raise UserInputError(
                "invalid_prompt",
                "Either title or prompt content is required for optimization",
            )
        if self.generator is None:
            raise GenerationUnavailableError("Text generation API key is not configured.")

        system_prompt = (
            "You are an expert prompt engineer and AI workflow optimizer. Optimize a prompt's "
            "title, tags, and content to make it more effective, clear, and engaging. "
            f"TITLE: concise, descriptive, action-oriented, at most {MAX_TITLE_CHARS} characters. "
            f"TAGS: a completely new set of at most {MAX_TAGS} tags, each 1-3 words; keep an "
            "existing tag only when it is truly optimal. "
            "CONTENT: improve clarity and structure for the target model while keeping the "
            "original intent. Return JSON only."
        )
        user_prompt = (
            f'Title: "{title}"\n'
            f'Content: "{content}"\n'
            f"Current Tags: [{', '.join(tags)}]\n"
            f"Target Model: {model}\n\n"
            "Return an object that conforms to the provided schema."
        )
        try:
            result = self.generator.generate_structured(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                response_model=PromptOptimization,
                timeout_s=self.timeout_s,
            )
        except GenerationError as exc:
            logger.warning("optimize event=failed model=%s reason=%s", model, exc)
            raise GenerationError(
                "The AI optimizer returned an invalid response. Please try again."
            ) from exc

        # Enforce limits even if the model ignored them.
        result.title = result.title.strip()[:MAX_TITLE_CHARS]
        result.tags = _dedupe(result.tags)[:MAX_TAGS]
        logger.info("optimize event=completed model=%s tags=%d", model, len(result.tags))
        return result


def _dedupe(values: Sequence[str]) -> list[str]:
    seen: set[str] = set()
    output: list[str] = []
    for value in values:
        normalized = " ".join(value.split()).strip()
        key = normalized.lower()
        if not normalized or key in seen:
            continue
        seen.add(key)
        output.append(normalized)
    return output
