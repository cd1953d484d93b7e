"""Sequential prompt-chain execution.

Each step's output becomes the next step's context, so steps run strictly in
order. Without a text generator the chain is not run at all: the caller gets
the unexecuted plan back with `status="degraded"`.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence

from .errors import GenerationError
from .llm import TextGenerator
from .models import ChainResult, ChainStep, PlanPreviewStep, TraceEntry

logger = logging.getLogger(__name__)

NO_GENERATOR_REASON = "Text generation API key not configured; returning the execution plan."


def build_step_prompt(context: str, instructions: str) -> str:
    return f"previous context:\n{context}\nthis step's instructions:\n{instructions}"


class ChainExecutor:
    def __init__(self, *, generator: TextGenerator | None) -> None:
        self.generator = generator

    def execute(self, steps: Sequence[ChainStep]) -> ChainResult:
        if self.generator is None:
            logger.warning("chain event=degraded steps=%d reason=no_generator", len(steps))
            return ChainResult(
                status="degraded",
                reason=NO_GENERATOR_REASON,
                plan=[
                    PlanPreviewStep(
                        step=index + 1,
                        prompt_id=step.id,
                        title=step.title,
                        content=step.content,
                    )
                    for index, step in enumerate(steps)
                ],
            )

        logger.info("chain event=start steps=%d", len(steps))
        started = time.perf_counter()
        context = ""
        trace: list[TraceEntry] = []
        for index, step in enumerate(steps):
            try:
                output = self.generator.generate(build_step_prompt(context, step.content))
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "chain event=step_failed step=%d prompt_id=%s reason=%s",
                    index + 1,
                    step.id,
                    exc,
                )
                raise GenerationError(
                    f"Step {index + 1} ({step.title or step.id}) failed: {exc}",
                    partial_trace=trace,
                ) from exc
            trace.append(
                TraceEntry(
                    step=index + 1,
                    prompt_id=step.id,
                    title=step.title,
                    input_context=context,
                    output=output,
                )
            )
            context = output
            logger.info("chain event=step_completed step=%d prompt_id=%s", index + 1, step.id)

        logger.info(
            "chain event=completed steps=%d duration_ms=%.2f",
            len(trace),
            (time.perf_counter() - started) * 1000.0,
        )
        return ChainResult(status="executed", trace=trace, final_answer=context)
