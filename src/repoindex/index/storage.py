"""SQLite vector store scoped by project."""

from __future__ import annotations

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Mapping, Sequence

import numpy as np

from repoindex.errors import PersistenceError, QueryError
from repoindex.models import Chunk, EmbeddedChunk, SourceFileRecord

LOGGER = logging.getLogger(__name__)


def chunk_from_row(row: Mapping) -> Chunk:
    """Map a stored chunk row to a :class:`Chunk` (the embedding is not carried)."""
    return Chunk(
        project_id=row["project_id"],
        file_path=row["file_path"],
        start_line=int(row["start_line"]),
        end_line=int(row["end_line"]),
        content=row["content"],
        file_checksum=row["file_checksum"],
    )


def record_from_row(row: Mapping) -> SourceFileRecord:
    return SourceFileRecord(
        project_id=row["project_id"],
        relative_path=row["relative_path"],
        checksum=row["checksum"],
        size_bytes=int(row["size_bytes"]),
        last_modified=float(row["last_modified"]),
    )


def cosine_distances(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Cosine distance (1 - cosine similarity) of every row to ``query``.

    Zero vectors are treated as orthogonal to everything.
    """
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    similarity = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)
    return 1.0 - similarity


class SQLiteVectorStore:
    """Persistence layer for chunk embeddings and per-file checksums."""

    def __init__(self, db_path: Path, *, dimension: int | None = None) -> None:
        self.db_path = Path(db_path)
        self.dimension = dimension
        self._conn = sqlite3.connect(self.db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._depth = 0
        try:
            self._ensure_schema()
        except ValueError:
            self._conn.close()
            raise

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Commit on success, roll back on error; nested blocks join the outer one."""
        self._depth += 1
        try:
            yield self._conn
        except Exception:
            self._depth -= 1
            if self._depth == 0:
                self._conn.rollback()
            raise
        self._depth -= 1
        if self._depth == 0:
            self._conn.commit()

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS store_info (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS source_files (
                    id INTEGER PRIMARY KEY,
                    project_id TEXT NOT NULL,
                    relative_path TEXT NOT NULL,
                    checksum TEXT NOT NULL,
                    size_bytes INTEGER NOT NULL,
                    last_modified REAL NOT NULL,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE(project_id, relative_path)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chunks (
                    id TEXT PRIMARY KEY,
                    project_id TEXT NOT NULL,
                    file_path TEXT NOT NULL,
                    start_line INTEGER NOT NULL,
                    end_line INTEGER NOT NULL,
                    content TEXT NOT NULL,
                    file_checksum TEXT NOT NULL,
                    embedding BLOB NOT NULL,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            conn.execute(
                """CREATE INDEX IF NOT EXISTS idx_chunks_project_file
                    ON chunks(project_id, file_path)
                """
            )

            stored = conn.execute(
                "SELECT value FROM store_info WHERE key = 'dimension'"
            ).fetchone()
            if stored is None:
                if self.dimension is None:
                    raise ValueError(f"{self.db_path} is new; an embedding dimension is required")
                conn.execute(
                    "INSERT INTO store_info(key, value) VALUES ('dimension', ?)",
                    (str(self.dimension),),
                )
            elif self.dimension is None:
                self.dimension = int(stored["value"])
            elif int(stored["value"]) != self.dimension:
                raise ValueError(
                    f"{self.db_path} holds {stored['value']}-dimensional embeddings, "
                    f"but the embedding model produces {self.dimension}"
                )

    # -- chunks -----------------------------------------------------------

    def upsert_chunks(self, project_id: str, chunks: Sequence[EmbeddedChunk]) -> int:
        """Insert chunk rows. Stale rows for the same files must be deleted first."""
        if not chunks:
            LOGGER.warning("No chunks provided to save.")
            return 0

        rows = []
        for item in chunks:
            vector = np.asarray(item.embedding, dtype="float32").reshape(-1)
            if vector.shape[0] != self.dimension:
                raise PersistenceError(
                    project_id,
                    f"save chunk {item.chunk.file_path}:{item.chunk.start_line} "
                    f"with {vector.shape[0]}-dimensional embedding",
                )
            if item.chunk.project_id != project_id:
                raise PersistenceError(
                    project_id, f"save chunk belonging to project {item.chunk.project_id}"
                )
            rows.append(
                (
                    uuid.uuid4().hex,
                    project_id,
                    item.chunk.file_path,
                    item.chunk.start_line,
                    item.chunk.end_line,
                    item.chunk.content,
                    item.chunk.file_checksum,
                    sqlite3.Binary(vector.tobytes()),
                )
            )

        try:
            with self.transaction() as conn:
                conn.executemany(
                    """
                    INSERT INTO chunks(id, project_id, file_path, start_line, end_line,
                                       content, file_checksum, embedding)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    rows,
                )
        except sqlite3.Error as exc:
            LOGGER.error("Error saving chunks to database: %s", exc)
            raise PersistenceError(project_id, "save chunks") from exc

        LOGGER.info("Saved %d chunks for project %s", len(rows), project_id)
        return len(rows)

    def delete_chunks(self, project_id: str, file_path: str) -> int:
        try:
            with self.transaction() as conn:
                deleted = conn.execute(
                    "DELETE FROM chunks WHERE project_id = ? AND file_path = ?",
                    (project_id, file_path),
                ).rowcount
        except sqlite3.Error as exc:
            LOGGER.error("Error deleting chunks for %s in %s: %s", file_path, project_id, exc)
            raise PersistenceError(project_id, f"delete chunks of {file_path}") from exc
        LOGGER.debug("Deleted %d chunks for %s in project %s", deleted, file_path, project_id)
        return deleted

    def delete_project(self, project_id: str) -> int:
        """Remove every chunk and file record of a project."""
        LOGGER.info("Deleting all chunks for project: %s", project_id)
        try:
            with self.transaction() as conn:
                deleted = conn.execute(
                    "DELETE FROM chunks WHERE project_id = ?", (project_id,)
                ).rowcount
                conn.execute("DELETE FROM source_files WHERE project_id = ?", (project_id,))
        except sqlite3.Error as exc:
            LOGGER.error("Error deleting chunks for project %s: %s", project_id, exc)
            raise PersistenceError(project_id, "delete project") from exc
        LOGGER.info("Deleted %d chunks for project: %s", deleted, project_id)
        return deleted

    def chunks_for_file(self, project_id: str, file_path: str) -> List[Chunk]:
        rows = self._conn.execute(
            """
            SELECT project_id, file_path, start_line, end_line, content, file_checksum
            FROM chunks WHERE project_id = ? AND file_path = ?
            ORDER BY start_line
            """,
            (project_id, file_path),
        ).fetchall()
        return [chunk_from_row(row) for row in rows]

    def count_chunks(self, project_id: str | None = None) -> int:
        if project_id is None:
            return self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]
        return self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE project_id = ?", (project_id,)
        ).fetchone()[0]

    # -- similarity -------------------------------------------------------

    def query_nearest_with_distance(
        self,
        project_id: str,
        query_vector: np.ndarray,
        *,
        similarity_threshold: float,
        limit: int,
    ) -> List[tuple[Chunk, float]]:
        """Chunks of ``project_id`` within ``similarity_threshold`` cosine distance.

        Ordered most similar first and capped at ``limit``. Failures are
        logged and yield an empty list.
        """
        if limit <= 0:
            return []
        try:
            return self._nearest(project_id, query_vector, similarity_threshold, limit)
        except (sqlite3.Error, ValueError, QueryError) as exc:
            error = exc if isinstance(exc, QueryError) else QueryError(project_id, str(exc))
            LOGGER.error("Error finding similar chunks: %s", error)
            return []

    def query_nearest(
        self,
        project_id: str,
        query_vector: np.ndarray,
        *,
        similarity_threshold: float,
        limit: int,
    ) -> List[Chunk]:
        return [
            chunk
            for chunk, _ in self.query_nearest_with_distance(
                project_id,
                query_vector,
                similarity_threshold=similarity_threshold,
                limit=limit,
            )
        ]

    def _nearest(
        self, project_id: str, query_vector: np.ndarray, threshold: float, limit: int
    ) -> List[tuple[Chunk, float]]:
        query = np.asarray(query_vector, dtype="float32").reshape(-1)
        if query.shape[0] != self.dimension:
            raise QueryError(
                project_id,
                f"query has {query.shape[0]} dimensions, index has {self.dimension}",
            )

        rows = self._conn.execute(
            """
            SELECT project_id, file_path, start_line, end_line, content,
                   file_checksum, embedding
            FROM chunks
            WHERE project_id = ?
            """,
            (project_id,),
        ).fetchall()
        if not rows:
            return []

        embeddings = np.vstack([np.frombuffer(row["embedding"], dtype="float32") for row in rows])
        distances = cosine_distances(embeddings, query)

        candidates = np.flatnonzero(distances <= threshold)
        ordered = candidates[np.argsort(distances[candidates], kind="stable")][:limit]

        results = [(chunk_from_row(rows[idx]), float(distances[idx])) for idx in ordered]
        LOGGER.info("Found %d similar chunks in project %s", len(results), project_id)
        return results

    # -- file metadata ----------------------------------------------------

    def get_file_record(self, project_id: str, relative_path: str) -> SourceFileRecord | None:
        row = self._conn.execute(
            """
            SELECT project_id, relative_path, checksum, size_bytes, last_modified
            FROM source_files WHERE project_id = ? AND relative_path = ?
            """,
            (project_id, relative_path),
        ).fetchone()
        return record_from_row(row) if row else None

    def save_file_record(self, record: SourceFileRecord) -> None:
        try:
            with self.transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO source_files(project_id, relative_path, checksum,
                                             size_bytes, last_modified)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(project_id, relative_path) DO UPDATE SET
                        checksum = excluded.checksum,
                        size_bytes = excluded.size_bytes,
                        last_modified = excluded.last_modified,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (
                        record.project_id,
                        record.relative_path,
                        record.checksum,
                        record.size_bytes,
                        record.last_modified,
                    ),
                )
        except sqlite3.Error as exc:
            LOGGER.error("Error saving metadata for %s: %s", record.relative_path, exc)
            raise PersistenceError(
                record.project_id, f"save metadata of {record.relative_path}"
            ) from exc

    def delete_file_record(self, project_id: str, relative_path: str) -> int:
        try:
            with self.transaction() as conn:
                return conn.execute(
                    "DELETE FROM source_files WHERE project_id = ? AND relative_path = ?",
                    (project_id, relative_path),
                ).rowcount
        except sqlite3.Error as exc:
            raise PersistenceError(project_id, f"delete metadata of {relative_path}") from exc

    def delete_file_records(self, project_id: str) -> int:
        try:
            with self.transaction() as conn:
                return conn.execute(
                    "DELETE FROM source_files WHERE project_id = ?", (project_id,)
                ).rowcount
        except sqlite3.Error as exc:
            raise PersistenceError(project_id, "delete metadata") from exc

    def list_files(self, project_id: str) -> List[SourceFileRecord]:
        rows = self._conn.execute(
            """
            SELECT project_id, relative_path, checksum, size_bytes, last_modified
            FROM source_files WHERE project_id = ?
            ORDER BY relative_path
            """,
            (project_id,),
        ).fetchall()
        return [record_from_row(row) for row in rows]
