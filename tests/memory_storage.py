"""In-memory PromptStorage double; keeps the API and planner tests off Postgres."""

from __future__ import annotations

from datetime import UTC, datetime

from promptpilot_api.app.models import Prompt, PromptCreate, PromptUpdate


class InMemoryPromptStorage:
    """Simple in-memory implementation matching PostgresPromptStorage behavior."""

    def __init__(self) -> None:
        self._prompts: dict[int, Prompt] = {}
        self._next_id = 1

    def migrate(self) -> None:
        return None

    def create_prompt(self, owner_id: str, payload: PromptCreate) -> Prompt:
        prompt = Prompt(
            id=self._next_id,
            owner_id=owner_id,
            created_at=datetime.now(UTC),
            **payload.model_dump(),
        )
        self._next_id += 1
        self._prompts[prompt.id] = prompt
        return prompt.model_copy(deep=True)

    def get_prompt(self, prompt_id: int) -> Prompt | None:
        prompt = self._prompts.get(prompt_id)
        return prompt.model_copy(deep=True) if prompt else None

    def list_by_owner(self, owner_id: str) -> list[Prompt]:
        return [
            prompt.model_copy(deep=True)
            for prompt in sorted(self._prompts.values(), key=lambda item: item.id)
            if prompt.owner_id == owner_id
        ]

    def list_prompts(
        self,
        *,
        owner_id: str,
        tag: str | None = None,
        search: str | None = None,
    ) -> list[Prompt]:
        visible = [
            prompt
            for prompt in self._prompts.values()
            if prompt.owner_id == owner_id or prompt.is_public
        ]
        if tag:
            visible = [
                prompt
                for prompt in visible
                if tag.lower() in {value.lower() for value in prompt.tags}
            ]
        if search:
            needle = search.lower()
            visible = [
                prompt
                for prompt in visible
                if needle in prompt.title.lower() or needle in prompt.content.lower()
            ]
        visible.sort(key=lambda item: (item.created_at, item.id), reverse=True)
        return [prompt.model_copy(deep=True) for prompt in visible]

    def update_prompt(
        self, prompt_id: int, *, owner_id: str, payload: PromptUpdate
    ) -> Prompt | None:
        prompt = self._prompts.get(prompt_id)
        if prompt is None or prompt.owner_id != owner_id:
            return None
        updated = prompt.model_copy(update=payload.changes(), deep=True)
        self._prompts[prompt_id] = updated
        return updated.model_copy(deep=True)

    def delete_prompt(self, prompt_id: int, *, owner_id: str) -> bool:
        prompt = self._prompts.get(prompt_id)
        if prompt is None or prompt.owner_id != owner_id:
            return False
        del self._prompts[prompt_id]
        return True
