"""Lexical prompt search.

Beginner terms:
- Token: a lowercased word of two or more characters from a prompt's title,
  content, description or tags.
- Coverage: the share of query tokens found in a prompt.
- Density: overlap divided by the geometric mean of both token set sizes.
- Title boost: added when the whole query appears inside the prompt title.

Scores are clamped to 0..1; hits below the minimum score are dropped.
"""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from dataclasses import dataclass

from .models import Prompt, SearchHit

TITLE_SUBSTRING_BOOST = 0.5
# Share of the score given to "how much of the query was found".
QUERY_COVERAGE_WEIGHT = 0.6


@dataclass(frozen=True)
class IndexedPrompt:
    prompt: Prompt
    title: str
    tokens: frozenset[str]


class PromptIndex:
    """Lexical search index over a fixed prompt collection.

    Built explicitly per request from the prompts the caller may see; there is
    no module-level cache to invalidate.
    """

    def __init__(self, entries: Sequence[IndexedPrompt]) -> None:
        self._entries = list(entries)

    @classmethod
    def build(cls, prompts: Sequence[Prompt]) -> PromptIndex:
        entries = [
            IndexedPrompt(
                prompt=prompt,
                title=prompt.title.lower(),
                tokens=frozenset(
                    _tokenize(
                        " ".join(
                            [prompt.title, prompt.content, prompt.description, *prompt.tags]
                        )
                    )
                ),
            )
            for prompt in prompts
        ]
        return cls(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def search(self, query: str, *, limit: int = 10, min_score: float = 0.4) -> list[SearchHit]:
        query_tokens = _tokenize(query)
        if not query_tokens:
            return []
        lowered_query = query.lower().strip()

        hits: list[SearchHit] = []
        for entry in self._entries:
            score = _lexical_overlap_score(query_tokens, entry.tokens)
            if lowered_query and lowered_query in entry.title:
                score = min(score + TITLE_SUBSTRING_BOOST, 1.0)
            if score < min_score:
                continue
            hits.append(SearchHit(prompt=entry.prompt, score=round(score, 4)))

        hits.sort(key=lambda hit: (-hit.score, hit.prompt.id))
        return hits[: max(limit, 1)]


def _lexical_overlap_score(query_tokens: set[str], doc_tokens: frozenset[str]) -> float:
    if not doc_tokens:
        return 0.0
    overlap = len(query_tokens & doc_tokens)
    if overlap == 0:
        return 0.0
    coverage = overlap / len(query_tokens)
    density = overlap / math.sqrt(len(query_tokens) * len(doc_tokens))
    return min(QUERY_COVERAGE_WEIGHT * coverage + (1 - QUERY_COVERAGE_WEIGHT) * density, 1.0)


def _tokenize(text: str) -> set[str]:
    words = re.findall(r"[a-z0-9_-]+", text.lower())
    return {word for word in words if len(word) > 1}
