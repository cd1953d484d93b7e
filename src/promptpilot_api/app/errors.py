"""Exception types shared by the planning pipeline and the API layers.

User input errors are recoverable and shown to the caller as-is. Generation
errors come from the external text-generation model. Anything else escaping a
request is a programming/contract error.
"""

from __future__ import annotations

from typing import Any, Literal

UserInputCode = Literal[
    "empty_task",
    "empty_vault",
    "no_suitable_prompts",
    "prompt_not_found",
    "invalid_prompt",
]


class PromptPilotError(Exception):
    """Base class for errors raised deliberately by this service."""


class UserInputError(PromptPilotError):
    """The request cannot be served as asked (empty task, empty vault, ...)."""

    def __init__(self, code: UserInputCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class GenerationUnavailableError(PromptPilotError):
    """No text-generation backend is configured (for example a missing API key)."""


class GenerationError(PromptPilotError):
    """A text-generation call failed or returned unusable output."""

    def __init__(self, message: str, *, partial_trace: list[Any] | None = None) -> None:
        super().__init__(message)
        self.partial_trace = list(partial_trace or [])
