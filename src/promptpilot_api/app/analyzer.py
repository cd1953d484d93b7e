"""Task analysis: turn free task text into ordered actions + keywords.

Heuristic means simple keyword/regex rules, not an ML classifier. The order
of detected actions drives execution order later: "do what is asked in the
order it was asked".
"""

from __future__ import annotations

import logging
import re

from .errors import UserInputError
from .models import ACTION_PATTERNS, Action, TaskAnalysis

logger = logging.getLogger(__name__)

FILLER_WORDS = re.compile(r"\b(and|make|the|a|an|for|to|in|on|with|is|are)\b", re.IGNORECASE)
MIN_KEYWORD_CHARS = 4


def analyze_task(task: str) -> TaskAnalysis:
    """Detect actions in first-mention order and extract filtered keywords."""
    if not task or not task.strip():
        raise UserInputError("empty_task", "Task description must not be empty.")

    lowered = task.lower()

    # (first match index, declaration rank) makes ties break by declaration order.
    first_hits: list[tuple[int, int, Action]] = []
    for rank, (action, pattern) in enumerate(ACTION_PATTERNS.items()):
        match = pattern.search(lowered)
        if match is not None:
            first_hits.append((match.start(), rank, action))
    first_hits.sort()
    actions = [action for _, _, action in first_hits] or [Action.GENERAL]

    keywords: list[str] = []
    for token in lowered.split():
        if len(token) < MIN_KEYWORD_CHARS or token in keywords:
            continue
        if _is_action_token(token) or FILLER_WORDS.search(token):
            continue
        keywords.append(token)

    logger.info(
        "plan event=analyzed actions=%s keywords=%s",
        ",".join(action.value for action in actions),
        ",".join(keywords),
    )
    return TaskAnalysis(actions=actions, keywords=keywords)


def _is_action_token(token: str) -> bool:
    return any(pattern.search(token) for pattern in ACTION_PATTERNS.values())
