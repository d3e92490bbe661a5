"""Keyed repositories for patch lifecycle entities.

Managers never hold state themselves; they read and write frozen models
through a ``Repository``.  Two implementations ship:

- ``InMemoryRepository``: insertion-ordered dict, the default.
- ``SqliteRepository``: one ``documents`` table shared by every entity kind,
  bodies stored as pydantic JSON, insertion order preserved across updates.
  WAL journal mode for concurrent readers.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import Generic, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from patchforge.core.errors import SerializationError

ModelT = TypeVar("ModelT", bound=BaseModel)


class Repository(Protocol[ModelT]):
    """Durable (or not) storage of one entity kind keyed by a string id."""

    def get(self, key: str) -> ModelT | None:
        ...

    def put(self, key: str, item: ModelT) -> None:
        ...

    def values(self) -> list[ModelT]:
        """All items in first-insertion order."""
        ...

    def __contains__(self, key: object) -> bool:
        ...

    def __len__(self) -> int:
        ...


class InMemoryRepository(Generic[ModelT]):
    """Process-local repository. Updating a key keeps its original position."""

    def __init__(self) -> None:
        self._items: dict[str, ModelT] = {}

    def get(self, key: str) -> ModelT | None:
        return self._items.get(key)

    def put(self, key: str, item: ModelT) -> None:
        self._items[key] = item

    def values(self) -> list[ModelT]:
        return list(self._items.values())

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._items))


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

_CREATE_DOCUMENTS = """
CREATE TABLE IF NOT EXISTS documents (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    kind        TEXT NOT NULL,
    doc_key     TEXT NOT NULL,
    body        TEXT NOT NULL,
    updated_at  TEXT NOT NULL,
    UNIQUE (kind, doc_key)
);
"""

_CREATE_IDX_KIND = """
CREATE INDEX IF NOT EXISTS idx_documents_kind ON documents(kind, id);
"""


class SqliteRepository(Generic[ModelT]):
    """Repository backed by a SQLite file.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file. Created if it does not exist.
    kind:
        Namespace for this entity kind (``"patches"``, ``"rollouts"`` ...).
    model:
        The pydantic model class used to decode stored bodies.
    """

    def __init__(self, db_path: Path, kind: str, model: type[ModelT]) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._kind = kind
        self._model = model
        self._init_schema()

    @property
    def kind(self) -> str:
        return self._kind

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _init_schema(self) -> None:
        with closing(self._connect()) as conn, conn:
            conn.execute(_CREATE_DOCUMENTS)
            conn.execute(_CREATE_IDX_KIND)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, key: str) -> ModelT | None:
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT body FROM documents WHERE kind = ? AND doc_key = ?",
                (self._kind, key),
            ).fetchone()
        return self._decode(row[0]) if row else None

    def values(self) -> list[ModelT]:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT body FROM documents WHERE kind = ? ORDER BY id ASC",
                (self._kind,),
            ).fetchall()
        return [self._decode(row[0]) for row in rows]

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT 1 FROM documents WHERE kind = ? AND doc_key = ?",
                (self._kind, key),
            ).fetchone()
        return row is not None

    def __len__(self) -> int:
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM documents WHERE kind = ?", (self._kind,)
            ).fetchone()
        return int(row[0])

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def put(self, key: str, item: ModelT) -> None:
        body = item.model_dump_json()
        with closing(self._connect()) as conn, conn:
            conn.execute(
                """
                INSERT INTO documents (kind, doc_key, body, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (kind, doc_key)
                DO UPDATE SET body = excluded.body, updated_at = excluded.updated_at
                """,
                (
                    self._kind,
                    key,
                    body,
                    datetime.now(timezone.utc).isoformat(),
                ),
            )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _decode(self, body: str) -> ModelT:
        try:
            return self._model.model_validate_json(body)
        except ValidationError as exc:
            raise SerializationError(
                f"Stored {self._kind} document does not decode as "
                f"{self._model.__name__}: {exc}"
            ) from exc
