"""Whole-document persistence for the planner state."""
from __future__ import annotations

import copy
import json
import logging
import os
import sqlite3
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol

from .models import Document

logger = logging.getLogger("rehearsal_planner.database")

_DOCUMENT_KEY = "planner"


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the planner document."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "planner.sqlite3").resolve(strict=False)


class DocumentStore(Protocol):
    """Load and save the complete planner document."""

    def initialize(self) -> None:
        ...

    def load(self) -> Document:
        ...

    def save(self, document: Document) -> None:
        ...


class SQLiteDocumentStore:
    """Keeps the document as a single JSON row inside SQLite."""

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def initialize(self) -> None:
        """Create the document table if it does not already exist."""

        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    key TEXT PRIMARY KEY,
                    body TEXT NOT NULL,
                    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                );
                """
            )

    def load(self) -> Document:
        self.initialize()
        with self._connect() as conn:
            row = conn.execute(
                "SELECT body FROM documents WHERE key = ?",
                (_DOCUMENT_KEY,),
            ).fetchone()
        if row is None:
            logger.debug("No stored document in %s; starting empty", self._path)
            return Document()
        return Document.from_dict(json.loads(row["body"]))

    def save(self, document: Document) -> None:
        body = json.dumps(document.to_dict())
        self.initialize()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO documents (key, body, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET body = excluded.body, updated_at = excluded.updated_at
                """,
                (_DOCUMENT_KEY, body),
            )
        logger.debug("Saved document to %s", self._path)


class JSONFileDocumentStore:
    """Stores the document as an indented JSON file (the legacy ``data.json`` layout)."""

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def initialize(self) -> None:
        if not self._path.exists():
            self.save(Document())

    def load(self) -> Document:
        if not self._path.exists():
            logger.debug("Document file %s does not exist; starting empty", self._path)
            return Document()
        with self._path.open("r", encoding="utf-8") as handle:
            raw = json.load(handle)
        return Document.from_dict(raw or {})

    def save(self, document: Document) -> None:
        payload = json.dumps(document.to_dict(), indent=2)
        # Replace atomically via a sibling temp file.
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=self._path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Saved document to %s", self._path)


class MemoryDocumentStore:
    """Holds a serialised copy of the document in memory."""

    def __init__(self, document: Document | None = None) -> None:
        self._payload: Dict[str, object] = (document or Document()).to_dict()
        self.saves = 0

    def initialize(self) -> None:
        return None

    def load(self) -> Document:
        return Document.from_dict(copy.deepcopy(self._payload))

    def save(self, document: Document) -> None:
        self._payload = document.to_dict()
        self.saves += 1


def open_store(path: Path) -> SQLiteDocumentStore | JSONFileDocumentStore:
    """Return the store matching ``path``: ``.json`` files use the JSON layout, anything else SQLite."""

    if path.suffix.lower() == ".json":
        return JSONFileDocumentStore(path)
    return SQLiteDocumentStore(path)


__all__ = [
    "DocumentStore",
    "JSONFileDocumentStore",
    "MemoryDocumentStore",
    "SQLiteDocumentStore",
    "open_store",
    "resolve_database_path",
]
