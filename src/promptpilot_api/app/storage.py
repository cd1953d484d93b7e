"""PostgreSQL storage backend for prompts.

Beginner terms:
- Vault: every prompt one owner created; planning reads only this set.
- Visible prompts: the owner's vault plus prompts other owners made public.
- JSONB tags: the tag list lives in one column and is filtered in SQL with
  jsonb_array_elements_text.
"""

from __future__ import annotations

import json
import threading
from datetime import UTC, datetime
from typing import Any, Protocol

from .errors import UserInputError
from .models import Prompt, PromptCreate, PromptUpdate


class PromptStorage(Protocol):
    def migrate(self) -> None: ...

    def create_prompt(self, owner_id: str, payload: PromptCreate) -> Prompt: ...

    def get_prompt(self, prompt_id: int) -> Prompt | None: ...

    def list_by_owner(self, owner_id: str) -> list[Prompt]: ...

    def list_prompts(
        self,
        *,
        owner_id: str,
        tag: str | None = None,
        search: str | None = None,
    ) -> list[Prompt]: ...

    def update_prompt(
        self, prompt_id: int, *, owner_id: str, payload: PromptUpdate
    ) -> Prompt | None: ...

    def delete_prompt(self, prompt_id: int, *, owner_id: str) -> bool: ...


class PostgresPromptStorage:
    """Thread-safe PostgreSQL-backed storage for Prompt records."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("database_url is required")
        self.database_url = database_url
        # One connection per call; the lock serializes calls from worker threads.
        self._lock = threading.Lock()
        self._psycopg, self._dict_row, self._json_wrapper = self._load_psycopg()
        self.migrate()

    def migrate(self) -> None:
        """Create the prompts table and its lookup indexes (idempotent)."""
        with self._lock, self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS prompts (
                    id BIGSERIAL PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    content TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    tags JSONB NOT NULL DEFAULT '[]'::jsonb,
                    model TEXT NOT NULL,
                    is_public BOOLEAN NOT NULL DEFAULT FALSE,
                    created_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_prompts_owner_id
                ON prompts(owner_id)
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_prompts_created_at
                ON prompts(created_at DESC)
                """)
            conn.commit()

    def create_prompt(self, owner_id: str, payload: PromptCreate) -> Prompt:
        """Insert a prompt row and return it with its assigned id."""
        now = datetime.now(tz=UTC)
        with self._lock, self._connect() as conn:
            row = conn.execute(
                """
                INSERT INTO prompts (
                    owner_id,
                    title,
                    content,
                    description,
                    tags,
                    model,
                    is_public,
                    created_at
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING *
                """,
                (
                    owner_id,
                    payload.title,
                    payload.content,
                    payload.description,
                    self._json_wrapper(payload.tags),
                    payload.model,
                    payload.is_public,
                    now,
                ),
            ).fetchone()
            conn.commit()
        return self._row_to_prompt(row)

    def get_prompt(self, prompt_id: int) -> Prompt | None:
        with self._lock, self._connect() as conn:
            row = conn.execute("SELECT * FROM prompts WHERE id = %s", (prompt_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_prompt(row)

    def list_by_owner(self, owner_id: str) -> list[Prompt]:
        """All prompts created by one owner, oldest first (stable scoring order)."""
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM prompts WHERE owner_id = %s ORDER BY id ASC",
                (owner_id,),
            ).fetchall()
        return [self._row_to_prompt(row) for row in rows]

    def list_prompts(
        self,
        *,
        owner_id: str,
        tag: str | None = None,
        search: str | None = None,
    ) -> list[Prompt]:
        """Owner's prompts plus public ones, newest first, optionally filtered."""
        clauses = ["(owner_id = %s OR is_public)"]
        params: list[Any] = [owner_id]
        if tag:
            clauses.append(
                "EXISTS (SELECT 1 FROM jsonb_array_elements_text(tags) AS t(value) "
                "WHERE lower(t.value) = lower(%s))"
            )
            params.append(tag)
        if search:
            clauses.append("(title ILIKE %s OR content ILIKE %s)")
            like = f"%{search}%"
            params.extend([like, like])
        query = (
            "SELECT * FROM prompts WHERE "
            + " AND ".join(clauses)
            + " ORDER BY created_at DESC, id DESC"
        )
        with self._lock, self._connect() as conn:
            rows = conn.execute(query, tuple(params)).fetchall()
        return [self._row_to_prompt(row) for row in rows]

    def update_prompt(
        self, prompt_id: int, *, owner_id: str, payload: PromptUpdate
    ) -> Prompt | None:
        """Apply the sent fields to an owned prompt; None when it is missing or not owned."""
        changes = payload.changes()
        if "tags" in changes:
            changes["tags"] = self._json_wrapper(changes["tags"])
        if not changes:
            current = self.get_prompt(prompt_id)
            return current if current is not None and current.owner_id == owner_id else None

        # Column names come from the PromptUpdate fields, never from the request body.
        assignments = ", ".join(f"{column} = %s" for column in changes)
        with self._lock, self._connect() as conn:
            row = conn.execute(
                f"UPDATE prompts SET {assignments} "
                "WHERE id = %s AND owner_id = %s RETURNING *",
                (*changes.values(), prompt_id, owner_id),
            ).fetchone()
            conn.commit()
        if row is None:
            return None
        return self._row_to_prompt(row)

    def delete_prompt(self, prompt_id: int, *, owner_id: str) -> bool:
        with self._lock, self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM prompts WHERE id = %s AND owner_id = %s",
                (prompt_id, owner_id),
            )
            deleted = cursor.rowcount > 0
            conn.commit()
        return deleted

    def _connect(self) -> Any:
        """Short-lived connection whose rows come back as dicts."""
        return self._psycopg.connect(self.database_url, row_factory=self._dict_row)

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any, Any]:
        """Deferred import so the package loads without a database driver."""
        try:
            import psycopg
            from psycopg.rows import dict_row
            from psycopg.types.json import Json
        except ImportError as exc:  # pragma: no cover - psycopg is a declared dependency
            raise RuntimeError(
                "Prompt storage needs psycopg 3; install the project with its "
                "dependencies (pip install -e .)."
            ) from exc
        return psycopg, dict_row, Json

    @staticmethod
    def _parse_tags(raw: Any) -> list[str]:
        """Parse JSON-like tag value into a list of strings; fall back to empty list."""
        parsed = json.loads(raw) if isinstance(raw, str) else raw
        if isinstance(parsed, list):
            return [str(item) for item in parsed]
        return []

    @staticmethod
    def _parse_datetime(raw: Any) -> datetime:
        if isinstance(raw, datetime):
            return raw
        if isinstance(raw, str):
            return datetime.fromisoformat(raw)
        raise TypeError(f"created_at has unexpected type {type(raw).__name__}")

    @classmethod
    def _row_to_prompt(cls, row: Any) -> Prompt:
        """Map one DB row to the canonical Prompt model."""
        return Prompt(
            id=int(row["id"]),
            owner_id=row["owner_id"],
            title=row["title"],
            content=row["content"],
            description=row["description"] or "",
            tags=cls._parse_tags(row["tags"]),
            model=row["model"],
            is_public=bool(row["is_public"]),
            created_at=cls._parse_datetime(row["created_at"]),
        )


def get_visible_prompt(storage: PromptStorage, prompt_id: int, *, owner_id: str) -> Prompt:
    """Fetch a prompt the owner may read (their own or a public one)."""
    prompt = storage.get_prompt(prompt_id)
    if prompt is None or (prompt.owner_id != owner_id and not prompt.is_public):
        raise UserInputError("prompt_not_found", f"Prompt {prompt_id} was not found.")
    return prompt
