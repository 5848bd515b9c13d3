"""Error kinds raised by the indexing pipeline.

Every component raises only its own subclass of :class:`RepoIndexError`, with
the underlying exception chained as ``__cause__``.
"""

from __future__ import annotations

from pathlib import Path


class RepoIndexError(Exception):
    """Base class for all repoindex failures."""


class DiscoveryError(RepoIndexError):
    """A directory or file could not be listed during discovery."""

    def __init__(self, path: Path | str, reason: str = "") -> None:
        self.path = Path(path)
        message = f"Cannot read {self.path}"
        super().__init__(f"{message}: {reason}" if reason else message)


class ChecksumError(RepoIndexError):
    """File bytes could not be read, hashed or decoded."""

    def __init__(self, path: Path | str, reason: str = "") -> None:
        self.path = Path(path)
        message = f"Cannot checksum {self.path}"
        super().__init__(f"{message}: {reason}" if reason else message)


class EmbeddingError(RepoIndexError):
    """An embedding call failed; the whole batch is discarded."""


class PersistenceError(RepoIndexError):
    """An insert, delete or metadata write failed and was rolled back."""

    def __init__(self, project_id: str, operation: str) -> None:
        self.project_id = project_id
        self.operation = operation
        super().__init__(f"Failed to {operation} for project {project_id}")


class QueryError(RepoIndexError):
    """A nearest-neighbour query failed."""

    def __init__(self, project_id: str, reason: str = "") -> None:
        self.project_id = project_id
        message = f"Query failed for project {project_id}"
        super().__init__(f"{message}: {reason}" if reason else message)


class IndexingRunError(RepoIndexError):
    """Aggregate failure of an indexing run."""

    def __init__(self, root: Path | str, project_id: str, reason: str = "") -> None:
        self.root = Path(root)
        self.project_id = project_id
        message = f"Failed to index {self.root} for project {project_id}"
        super().__init__(f"{message}: {reason}" if reason else message)
