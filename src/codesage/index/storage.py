"""SQLite vector store for code and knowledge items."""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Sequence

import numpy as np

from codesage.errors import IndexIntegrityError, IndexNotFound
from codesage.models import CODE_PARTITION, KNOWLEDGE_PARTITION, PARTITIONS, RetrievedContext

LOGGER = logging.getLogger(__name__)

REQUIRED_KEYS: Dict[str, tuple[str, ...]] = {
    CODE_PARTITION: ("text", "filePath", "language", "startLine", "endLine", "chunkKind"),
    KNOWLEDGE_PARTITION: ("text", "source", "section"),
}


def validate_metadata(metadata: Any) -> Dict[str, Any]:
    """Check that ``metadata`` has the shape of a code or knowledge item."""
    if not isinstance(metadata, dict):
        raise IndexIntegrityError(f"Item metadata is not an object: {metadata!r}")
    partition = metadata.get("type")
    if partition not in REQUIRED_KEYS:
        raise IndexIntegrityError(f"Unknown item partition: {partition!r}")
    missing = [key for key in REQUIRED_KEYS[partition] if key not in metadata]
    if missing:
        raise IndexIntegrityError(f"{partition} item is missing {', '.join(missing)}")
    return metadata


class SQLiteVectorStore:
    """Persistence layer for item embeddings.

    A store owns one SQLite connection for its lifetime. Open it with the
    constructor (or :func:`open_store`) and release it with :meth:`close`.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._conn = sqlite3.connect(self.db_path, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._in_update = False
        self._ensure_schema()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "SQLiteVectorStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def begin_update(self) -> None:
        if self._in_update:
            raise RuntimeError("An update is already in progress")
        self._conn.execute("BEGIN")
        self._in_update = True

    def end_update(self) -> None:
        if not self._in_update:
            raise RuntimeError("No update in progress")
        self._conn.execute("COMMIT")
        self._in_update = False

    def cancel_update(self) -> None:
        if self._in_update:
            self._conn.execute("ROLLBACK")
            self._in_update = False

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        self.begin_update()
        try:
            yield self._conn
        except Exception:
            self.cancel_update()
            raise
        self.end_update()

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS items (
                    id INTEGER PRIMARY KEY,
                    partition TEXT NOT NULL,
                    metadata TEXT NOT NULL,
                    embedding BLOB NOT NULL,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            conn.execute(
                """CREATE INDEX IF NOT EXISTS idx_items_partition
                    ON items(partition)
                """
            )

    def insert(self, vector: np.ndarray, metadata: Mapping[str, Any]) -> int:
        """Insert one item. Call inside :meth:`transaction` for batches."""
        validate_metadata(dict(metadata))
        return self._conn.execute(
            "INSERT INTO items(partition, metadata, embedding) VALUES (?, ?, ?)",
            (
                metadata["type"],
                json.dumps(dict(metadata), ensure_ascii=True),
                sqlite3.Binary(np.asarray(vector, dtype="float32").tobytes()),
            ),
        ).lastrowid

    def insert_many(
        self, vectors: np.ndarray, metadatas: Sequence[Mapping[str, Any]]
    ) -> int:
        """Insert a batch of items inside a single update."""
        if len(vectors) != len(metadatas):
            raise ValueError("Vectors and metadata length mismatch")
        with self.transaction():
            for vector, metadata in zip(vectors, metadatas):
                self.insert(vector, metadata)
        return len(metadatas)

    def clear(self) -> None:
        """Drop every stored item."""
        with self.transaction() as conn:
            conn.execute("DELETE FROM items")

    def count(self, partition: str | None = None) -> int:
        if partition is None:
            row = self._conn.execute("SELECT COUNT(*) AS n FROM items").fetchone()
        else:
            row = self._conn.execute(
                "SELECT COUNT(*) AS n FROM items WHERE partition = ?", (partition,)
            ).fetchone()
        return int(row["n"])

    def query(
        self, embedding: np.ndarray, k: int = 8, partition: str | None = None
    ) -> List[RetrievedContext]:
        """Return the ``k`` items scoring highest against ``embedding``."""
        if partition is not None and partition not in PARTITIONS:
            raise ValueError(f"Unknown partition: {partition}")
        if k <= 0:
            return []

        sql = "SELECT metadata, embedding FROM items"
        params: tuple[Any, ...] = ()
        if partition is not None:
            sql += " WHERE partition = ?"
            params = (partition,)
        rows = self._conn.execute(sql + " ORDER BY id", params).fetchall()
        if not rows:
            return []

        query = np.asarray(embedding, dtype="float32")
        try:
            embeddings = np.vstack([np.frombuffer(row["embedding"], dtype="float32") for row in rows])
            scores = embeddings @ query
        except ValueError as exc:
            raise IndexIntegrityError(f"Stored embeddings do not match the query: {exc}") from exc

        # stable sort keeps insertion order among equal scores
        order = np.argsort(-scores, kind="stable")[:k]

        results: List[RetrievedContext] = []
        for idx in order:
            try:
                metadata = json.loads(rows[idx]["metadata"])
            except json.JSONDecodeError as exc:
                raise IndexIntegrityError(f"Corrupt item metadata: {exc}") from exc
            metadata = validate_metadata(metadata)
            results.append(
                RetrievedContext(text=metadata["text"], metadata=metadata, score=float(scores[idx]))
            )
        return results


def index_exists(db_path: Path) -> bool:
    return Path(db_path).is_file()


def open_store(db_path: Path) -> SQLiteVectorStore:
    """Open an existing index, failing if training has never run."""
    if not index_exists(db_path):
        raise IndexNotFound(f'Index not found at {db_path}. Run "codesage train <path>" first.')
    return SQLiteVectorStore(db_path)


def create_store(db_path: Path) -> SQLiteVectorStore:
    """Open the index at ``db_path``, creating it and its directory if needed."""
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return SQLiteVectorStore(db_path)


def delete_index(db_path: Path) -> bool:
    """Remove the index files. Returns whether an index existed."""
    existed = index_exists(db_path)
    for suffix in ("", "-wal", "-shm"):
        Path(str(db_path) + suffix).unlink(missing_ok=True)
    if existed:
        LOGGER.info("Deleted index at %s", db_path)
    return existed
