"""Candidate selection: score the owner's prompts against each detected action.

For every action (in analysis order) the best-scoring prompt that has not
been picked yet is selected, so one prompt is used at most once per plan.
Candidates keep action order; they are never re-sorted by score.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass

from .config import Settings
from .models import Action, Prompt, TaskAnalysis

logger = logging.getLogger(__name__)

SUMMARY_PATTERN = re.compile(r"summary|summarize|condense|recap", re.IGNORECASE)


@dataclass(frozen=True)
class ScoringWeights:
    """Relevance points; tuning values, not invariants."""

    title_action: int = 5
    content_action: int = 2
    title_keyword: int = 3
    content_keyword: int = 1

    @classmethod
    def from_settings(cls, settings: Settings) -> ScoringWeights:
        return cls(
            title_action=settings.score_title_action,
            content_action=settings.score_content_action,
            title_keyword=settings.score_title_keyword,
            content_keyword=settings.score_content_keyword,
        )


def relevance(
    prompt: Prompt,
    pattern: re.Pattern[str],
    keywords: Sequence[str],
    *,
    weights: ScoringWeights = ScoringWeights(),
) -> int:
    title = prompt.title.lower()
    content = prompt.content.lower()

    score = 0
    if pattern.search(title):
        score += weights.title_action
    if pattern.search(content):
        score += weights.content_action
    for keyword in keywords:
        if keyword in title:
            score += weights.title_keyword
        if keyword in content:
            score += weights.content_keyword
    return score


def select_candidates(
    analysis: TaskAnalysis,
    prompts: Sequence[Prompt],
    *,
    weights: ScoringWeights = ScoringWeights(),
) -> list[Prompt]:
    """Pick at most one unused prompt per action, plus the summary fallback."""
    selected: list[Prompt] = []
    used_ids: set[int] = set()

    for action in analysis.actions:
        pattern = action.pattern
        if pattern is None:
            continue
        best = _best_unused(prompts, pattern, analysis.keywords, used_ids, weights=weights)
        if best is None:
            logger.info("plan event=no_candidate action=%s", action.value)
            continue
        selected.append(best)
        used_ids.add(best.id)
        logger.info("plan event=candidate_selected action=%s prompt_id=%s", action.value, best.id)

    if Action.SUMMARIZE in analysis.actions and not any(
        SUMMARY_PATTERN.search(prompt.title + prompt.content) for prompt in selected
    ):
        summary_pool = [
            prompt for prompt in prompts if SUMMARY_PATTERN.search(prompt.title + prompt.content)
        ]
        best = _best_unused(
            summary_pool, SUMMARY_PATTERN, analysis.keywords, used_ids, weights=weights
        )
        if best is not None:
            selected.append(best)
            used_ids.add(best.id)
            logger.info("plan event=summary_fallback prompt_id=%s", best.id)

    return selected


def _best_unused(
    prompts: Sequence[Prompt],
    pattern: re.Pattern[str],
    keywords: Sequence[str],
    used_ids: set[int],
    *,
    weights: ScoringWeights,
) -> Prompt | None:
    # Strictly-greater comparison keeps the earliest prompt on equal scores.
    best: Prompt | None = None
    best_score = 0
    for prompt in prompts:
        if prompt.id in used_ids:
            continue
        score = relevance(prompt, pattern, keywords, weights=weights)
        if score > best_score:
            best = prompt
            best_score = score
    return best
