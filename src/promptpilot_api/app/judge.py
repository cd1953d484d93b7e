"""Playground: run two prompts side by side and let a model judge the results.

The two generations are independent, so they run concurrently. The verdict
itself is best-effort: when the judge answer is missing or malformed, a
simple heuristic verdict is returned with `judge_status="degraded"`.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from .errors import GenerationError, GenerationUnavailableError
from .llm import TextGenerator
from .models import PlaygroundComparison, PromptScores

logger = logging.getLogger(__name__)

SCORE_FIELDS = ("clarity", "engagement", "creativity", "effectiveness", "specificity")


class PromptJudge:
    def __init__(self, *, generator: TextGenerator | None) -> None:
        self.generator = generator

    def compare(self, prompt_a: str, prompt_b: str) -> PlaygroundComparison:
        if self.generator is None:
            raise GenerationUnavailableError("Text generation API key is not configured.")

        with ThreadPoolExecutor(max_workers=2) as pool:
            future_a = pool.submit(self.generator.generate, prompt_a)
            future_b = pool.submit(self.generator.generate, prompt_b)
            try:
                response_a = future_a.result()
                response_b = future_b.result()
            except Exception as exc:  # noqa: BLE001
                raise GenerationError(f"Prompt generation failed: {exc}") from exc

        try:
            raw = self.generator.generate(
                build_judge_prompt(prompt_a, prompt_b, response_a, response_b)
            )
            verdict = parse_verdict(raw)
        except Exception as exc:  # noqa: BLE001
            logger.warning("playground event=judge_fallback reason=%s", exc)
            return fallback_verdict(response_a, response_b, reason=str(exc))

        logger.info("playground event=judged winner=%s", verdict["winner"])
        return PlaygroundComparison(response_a=response_a, response_b=response_b, **verdict)


def build_judge_prompt(prompt_a: str, prompt_b: str, response_a: str, response_b: str) -> str:
    return (
        "You are an expert AI Prompt Engineering Judge. Analyze two competing prompts and "
        "the responses they produced.\n\n"
        "Score each response 0-100 on: clarity, engagement, creativity, effectiveness, "
        "specificity.\n\n"
        f'PROMPT A: "{prompt_a}"\nRESPONSE A: "{response_a}"\n\n'
        f'PROMPT B: "{prompt_b}"\nRESPONSE B: "{response_b}"\n\n'
        "Return ONLY a JSON object with this exact structure:\n"
        "{\n"
        '  "feedback": "detailed analysis",\n'
        '  "scores": {"promptA": {"clarity": 0, "engagement": 0, "creativity": 0, '
        '"effectiveness": 0, "specificity": 0}, "promptB": {...}},\n'
        '  "winner": "promptA" or "promptB",\n'
        '  "reasoning": "why the winner won",\n'
        '  "recommendations": {"promptA": ["..."], "promptB": ["..."]},\n'
        '  "overallAssessment": "overall assessment"\n'
        "}"
    )


def parse_verdict(raw: str) -> dict[str, Any]:
    """Parse the judge's JSON object (first `{` to last `}`) into comparison fields."""
    start = raw.find("{")
    end = raw.rfind("}") + 1
    if start < 0 or end <= start:
        raise ValueError("judge response did not contain a JSON object")
    parsed = json.loads(raw[start:end])
    if not isinstance(parsed, dict):
        raise ValueError("judge response is not a JSON object")

    scores = parsed.get("scores")
    winner = parsed.get("winner")
    if (
        not parsed.get("feedback")
        or not isinstance(scores, dict)
        or not isinstance(scores.get("promptA"), dict)
        or not isinstance(scores.get("promptB"), dict)
        or winner not in {"promptA", "promptB"}
        or not parsed.get("reasoning")
    ):
        raise ValueError("judge response is missing required fields")

    recommendations = parsed.get("recommendations")
    if not isinstance(recommendations, dict):
        recommendations = {}
    return {
        "feedback": str(parsed["feedback"]),
        "scores_a": _clamp_scores(scores["promptA"]),
        "scores_b": _clamp_scores(scores["promptB"]),
        "winner": "prompt_a" if winner == "promptA" else "prompt_b",
        "reasoning": str(parsed["reasoning"]),
        "recommendations_a": _string_list(recommendations.get("promptA")),
        "recommendations_b": _string_list(recommendations.get("promptB")),
        "overall_assessment": str(
            parsed.get("overallAssessment")
            or "Both prompts show potential with room for improvement"
        ),
    }


def fallback_verdict(response_a: str, response_b: str, *, reason: str) -> PlaygroundComparison:
    score_a = heuristic_score(response_a)
    score_b = heuristic_score(response_b)
    b_wins = score_b > score_a
    return PlaygroundComparison(
        response_a=response_a,
        response_b=response_b,
        feedback=(
            "The AI judge could not complete a detailed analysis. Both prompts generated "
            "responses; compare them directly or try again."
        ),
        scores_a=PromptScores(
            clarity=75, engagement=70, creativity=65, effectiveness=70, specificity=75
        ),
        scores_b=PromptScores(
            clarity=70, engagement=75, creativity=70, effectiveness=75, specificity=70
        ),
        winner="prompt_b" if b_wins else "prompt_a",
        reasoning=(
            "Response B scored higher on length and structure signals."
            if b_wins
            else "Response A scored at least as high on length and structure signals."
        ),
        recommendations_a=["Consider adding more specific instructions"],
        recommendations_b=["Consider being more explicit about the desired output format"],
        overall_assessment="Winner chosen by a heuristic because the judge was unavailable.",
        judge_status="degraded",
        judge_reason=reason,
    )


def heuristic_score(response: str) -> int:
    score = 50
    if len(response) > 200:
        score += 10
    if len(response) > 500:
        score += 10
    if '"' in response:
        score += 5
    if "!" in response or "?" in response:
        score += 5
    if len(response.split(".")) > 3:
        score += 5
    return min(score, 100)


def _clamp_scores(raw: dict[str, Any]) -> PromptScores:
    values: dict[str, int] = {}
    for field in SCORE_FIELDS:
        try:
            value = int(float(raw.get(field, 0)))
        except (TypeError, ValueError):
            value = 0
        values[field] = min(100, max(0, value))
    return PromptScores(**values)


def _string_list(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        return []
    return [str(item) for item in raw]
