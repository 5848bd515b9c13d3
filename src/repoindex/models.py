"""Core repoindex data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import numpy as np


class FileStatus(str, Enum):
    """Classification of a file against its last indexed checksum."""

    NEW = "new"
    UNCHANGED = "unchanged"
    MODIFIED = "modified"


@dataclass(slots=True)
class SourceFileRecord:
    """Metadata recorded for a file once its chunks are persisted."""

    project_id: str
    relative_path: str
    checksum: str
    size_bytes: int
    last_modified: float


@dataclass(slots=True, frozen=True)
class Chunk:
    """Line-addressed slice of a source file; lines are 1-based and inclusive."""

    project_id: str
    file_path: str
    start_line: int
    end_line: int
    content: str
    file_checksum: str


@dataclass(slots=True)
class EmbeddedChunk:
    chunk: Chunk
    embedding: np.ndarray


@dataclass(slots=True)
class ProcessingResult:
    """Outcome of one indexing run."""

    new_chunks: list[Chunk] = field(default_factory=list)
    new_files: list[str] = field(default_factory=list)
    modified_files: list[str] = field(default_factory=list)
    unchanged_files: list[str] = field(default_factory=list)
    removed_files: list[str] = field(default_factory=list)
    failed_files: list[str] = field(default_factory=list)
    project_id: str | None = None

    def has_changes(self) -> bool:
        return bool(self.new_files or self.modified_files)

    @property
    def total_processed_files(self) -> int:
        return len(self.new_files) + len(self.modified_files) + len(self.unchanged_files)
