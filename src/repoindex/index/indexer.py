"""Source tree indexing pipeline."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Sequence

from repoindex.config import DEFAULT_EXTENSIONS, DEFAULT_IGNORE_PATTERNS
from repoindex.embedding.generator import EmbeddingGenerator
from repoindex.errors import ChecksumError, EmbeddingError, IndexingRunError, PersistenceError
from repoindex.index.checksums import FileClassifier
from repoindex.index.storage import SQLiteVectorStore
from repoindex.ingestion.source_loader import SourceFile, build_chunks, read_source_file
from repoindex.models import Chunk, EmbeddedChunk, FileStatus, ProcessingResult
from repoindex.utils.files import SourceTree

LOGGER = logging.getLogger(__name__)


class Indexer:
    """Coordinates discovery, chunking, embedding and persistence of a source tree.

    Each file is read once per run; the checksum computed from those bytes is
    both stamped on its chunks and recorded as its metadata. All writes of a
    run (stale chunk deletion, inserts, metadata) happen in one transaction
    after the whole embedding batch has succeeded.
    """

    def __init__(
        self,
        generator: EmbeddingGenerator,
        store: SQLiteVectorStore,
        *,
        chunk_lines: int = 50,
        overlap_percent: int = 10,
        extensions: Sequence[str] = DEFAULT_EXTENSIONS,
        ignore_patterns: Sequence[str] = DEFAULT_IGNORE_PATTERNS,
    ) -> None:
        self.generator = generator
        self.store = store
        self.classifier = FileClassifier(store)
        self.chunk_lines = chunk_lines
        self.overlap_percent = overlap_percent
        self.extensions = tuple(extensions)
        self.ignore_patterns = tuple(ignore_patterns)

    def index(
        self, root: Path, project_id: str | None = None, *, incremental: bool = True
    ) -> ProcessingResult:
        if incremental:
            if not project_id:
                raise ValueError("Incremental indexing needs an existing project id")
            return self.index_incremental(root, project_id)
        return self.index_full(root, project_id)

    def index_full(self, root: Path, project_id: str | None = None) -> ProcessingResult:
        """Chunk and embed every file, replacing whatever the project held before."""
        root = Path(root)
        project_id = project_id or uuid.uuid4().hex
        tree = self._tree(root, project_id)

        result = ProcessingResult(project_id=project_id)
        sources: list[SourceFile] = []
        paths = list(tree)
        LOGGER.info("Found %d files to process", len(paths))

        for path in paths:
            loaded = self._load(root, path, project_id, result)
            if loaded is None:
                continue
            source, chunks = loaded
            sources.append(source)
            result.new_files.append(source.relative_path)
            result.new_chunks.extend(chunks)

        embedded = self._embed(root, project_id, result.new_chunks)
        try:
            with self.store.transaction():
                self.store.delete_project(project_id)
                if embedded:
                    self.store.upsert_chunks(project_id, embedded)
                self._save_metadata(project_id, sources)
        except PersistenceError as exc:
            raise IndexingRunError(root, project_id, str(exc)) from exc

        LOGGER.info(
            "Indexed %d files (%d chunks) into project %s",
            len(result.new_files),
            len(result.new_chunks),
            project_id,
        )
        return result

    def index_incremental(self, root: Path, project_id: str) -> ProcessingResult:
        """Re-index only files whose checksum differs from the last run."""
        root = Path(root)
        tree = self._tree(root, project_id)

        result = ProcessingResult(project_id=project_id)
        pending: list[SourceFile] = []
        seen: set[str] = set()
        paths = list(tree)
        LOGGER.info("Found %d files to process with checksum check", len(paths))

        for path in paths:
            relative = tree.relative(path)
            seen.add(relative)
            loaded = self._load(root, path, project_id, result, classify=True)
            if loaded is None:
                continue
            source, chunks = loaded
            pending.append(source)
            result.new_chunks.extend(chunks)

        # Deleted or newly excluded files; unreadable directories keep their records.
        result.removed_files = [
            record.relative_path
            for record in self.store.list_files(project_id)
            if record.relative_path not in seen and not tree.was_skipped(record.relative_path)
        ]

        if not result.has_changes() and not result.removed_files:
            LOGGER.info("No changes in %s for project %s", root, project_id)
            return result

        embedded = self._embed(root, project_id, result.new_chunks)
        try:
            with self.store.transaction():
                for relative in result.modified_files + result.removed_files:
                    self.store.delete_chunks(project_id, relative)
                for relative in result.removed_files:
                    self.classifier.delete_metadata(project_id, relative)
                if embedded:
                    self.store.upsert_chunks(project_id, embedded)
                self._save_metadata(project_id, pending)
        except PersistenceError as exc:
            raise IndexingRunError(root, project_id, str(exc)) from exc

        LOGGER.info(
            "Project %s: %d new, %d modified, %d unchanged, %d removed, %d failed",
            project_id,
            len(result.new_files),
            len(result.modified_files),
            len(result.unchanged_files),
            len(result.removed_files),
            len(result.failed_files),
        )
        return result

    def _tree(self, root: Path, project_id: str | None) -> SourceTree:
        if not root.is_dir():
            raise IndexingRunError(root, project_id or "<new>", "not a directory")
        return SourceTree(root, extensions=self.extensions, ignore_patterns=self.ignore_patterns)

    def _load(
        self,
        root: Path,
        path: Path,
        project_id: str,
        result: ProcessingResult,
        *,
        classify: bool = False,
    ) -> tuple[SourceFile, list[Chunk]] | None:
        """Read and chunk one file, recording its outcome on ``result``.

        Returns None for unchanged or failed files.
        """
        relative = path.relative_to(root).as_posix()
        try:
            source = read_source_file(root, path)
            status = FileStatus.NEW
            if classify:
                status = self.classifier.status(project_id, relative, source.data)
                if status is FileStatus.UNCHANGED:
                    LOGGER.debug("File unchanged, skipping: %s", relative)
                    result.unchanged_files.append(relative)
                    return None
                LOGGER.info("Processing %s file: %s", status.value, relative)
            chunks = build_chunks(
                source,
                project_id,
                chunk_size=self.chunk_lines,
                overlap_percent=self.overlap_percent,
            )
        except ChecksumError as exc:
            LOGGER.error("Error processing file %s: %s", path, exc)
            result.failed_files.append(relative)
            return None

        if classify:
            target = result.modified_files if status is FileStatus.MODIFIED else result.new_files
            target.append(relative)
        return source, chunks

    def _embed(self, root: Path, project_id: str, chunks: list[Chunk]) -> list[EmbeddedChunk]:
        try:
            return self.generator.embed_batch(chunks)
        except EmbeddingError as exc:
            LOGGER.error("Embedding phase failed for project %s: %s", project_id, exc)
            raise IndexingRunError(root, project_id, str(exc)) from exc

    def _save_metadata(self, project_id: str, sources: Sequence[SourceFile]) -> None:
        for source in sources:
            self.classifier.save_metadata(
                project_id,
                source.relative_path,
                source.data,
                last_modified=source.last_modified,
            )
