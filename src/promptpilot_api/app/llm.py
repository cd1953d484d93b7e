"""Text-generation boundary.

Everything that talks to the model goes through one of two small protocols,
so the planner, chain executor, optimizer and judge can be tested with fakes
and run without credentials (the factory then returns None).
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Protocol, TypeVar
from urllib import error, request

from pydantic import BaseModel, ValidationError

from .config import Settings
from .errors import GenerationError

TModel = TypeVar("TModel", bound=BaseModel)
logger = logging.getLogger(__name__)

# Rate limits and upstream hiccups; other 4xx answers will not improve on retry.
RETRYABLE_STATUS = frozenset({408, 409, 429, 500, 502, 503, 504})


class TextGenerator(Protocol):
    """Plain completion: one prompt in, the model's text out."""

    def generate(self, prompt_text: str) -> str: ...


class StructuredGenerator(Protocol):
    """Completion constrained to a pydantic model's JSON schema."""

    def generate_structured(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        response_model: type[TModel],
        timeout_s: float,
    ) -> TModel: ...


class _RetryableFailure(Exception):
    pass


class OpenAIChatCompletionsAdapter:
    """Both generator protocols on top of the OpenAI chat completions endpoint."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        timeout_s: float = 8.0,
        max_retries: int = 1,
        backoff_s: float = 0.2,
        trace: bool = False,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.endpoint = base_url.rstrip("/") + "/chat/completions"
        self.timeout_s = timeout_s
        self.max_retries = max(0, max_retries)
        self.backoff_s = max(0.0, backoff_s)
        self.trace = trace

    def generate(self, prompt_text: str) -> str:
        return self._chat([{"role": "user", "content": prompt_text}], timeout_s=self.timeout_s)

    def generate_structured(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        response_model: type[TModel],
        timeout_s: float,
    ) -> TModel:
        text = self._chat(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            timeout_s=timeout_s,
            response_format={
                "type": "json_schema",
                "json_schema": {
                    "name": response_model.__name__.lower(),
                    # Strict mode would demand additionalProperties=false everywhere.
                    "strict": False,
                    "schema": response_model.model_json_schema(),
                },
            },
        )
        try:
            return response_model.model_validate_json(text)
        except ValidationError as exc:
            raise GenerationError(f"Model returned an invalid structured response: {exc}") from exc

    def _chat(
        self,
        messages: list[dict[str, str]],
        *,
        timeout_s: float,
        response_format: dict[str, Any] | None = None,
    ) -> str:
        payload: dict[str, Any] = {"model": self.model, "messages": messages}
        if response_format is not None:
            payload["response_format"] = response_format

        attempts = self.max_retries + 1
        last_failure: _RetryableFailure | None = None
        for attempt in range(attempts):
            if attempt and self.backoff_s:
                time.sleep(self.backoff_s * attempt)
            try:
                return message_text(self._post(payload, timeout_s=timeout_s))
            except _RetryableFailure as exc:
                last_failure = exc
                logger.warning(
                    "llm event=request_failed attempt=%d/%d model=%s reason=%s",
                    attempt + 1,
                    attempts,
                    self.model,
                    exc,
                )
        raise GenerationError(f"Text generation request failed: {last_failure}") from last_failure

    def _post(self, payload: dict[str, Any], *, timeout_s: float) -> dict[str, Any]:
        if self.trace:
            logger.warning(
                "llm event=trace_request model=%s url=%s timeout_s=%s messages=%d",
                self.model,
                self.endpoint,
                timeout_s,
                len(payload["messages"]),
            )
        req = request.Request(
            url=self.endpoint,
            data=json.dumps(payload).encode("utf-8"),
            method="POST",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        try:
            with request.urlopen(req, timeout=timeout_s) as response:
                body = response.read().decode("utf-8")
        except error.HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace")
            message = f"chat completions returned HTTP {exc.code}: {detail}"
            if exc.code in RETRYABLE_STATUS:
                raise _RetryableFailure(message) from exc
            raise GenerationError(message) from exc
        except (error.URLError, TimeoutError) as exc:
            raise _RetryableFailure(str(exc)) from exc

        if self.trace:
            logger.warning("llm event=trace_response model=%s body=%s", self.model, body)
        try:
            return json.loads(body)
        except json.JSONDecodeError as exc:
            raise GenerationError(f"chat completions returned non-JSON body: {exc}") from exc


def message_text(response_json: dict[str, Any]) -> str:
    """Text of the first choice; segment lists are joined."""
    choices = response_json.get("choices") or []
    if not choices:
        raise GenerationError("OpenAI response did not contain choices")

    content = (choices[0].get("message") or {}).get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        joined = "".join(
            part["text"]
            for part in content
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        ).strip()
        if joined:
            return joined
    raise GenerationError("OpenAI response content could not be parsed as text")


def build_text_generator(settings: Settings) -> OpenAIChatCompletionsAdapter | None:
    """Configured adapter, or None when generation is unavailable."""
    provider = settings.llm_provider.lower()
    if provider != "openai":
        logger.warning("llm event=disabled reason=unsupported_provider provider=%s", provider)
        return None

    api_key = settings.resolved_openai_api_key()
    if not api_key:
        logger.info("llm event=disabled reason=missing_api_key")
        return None

    return OpenAIChatCompletionsAdapter(
        api_key=api_key,
        model=settings.llm_model,
        base_url=settings.llm_base_url,
        timeout_s=settings.llm_timeout_s,
        max_retries=settings.llm_max_retries,
        backoff_s=settings.llm_backoff_s,
        trace=settings.llm_trace,
    )
