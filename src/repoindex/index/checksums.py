"""Checksum-based change detection for source files."""

from __future__ import annotations

import logging
import time

from repoindex.index.storage import SQLiteVectorStore
from repoindex.models import FileStatus, SourceFileRecord
from repoindex.utils.files import sha256_bytes

LOGGER = logging.getLogger(__name__)


class FileClassifier:
    """Classifies files as NEW, UNCHANGED or MODIFIED against stored checksums.

    ``save_metadata`` must only be called once the file's chunks are
    persisted, otherwise a failed insert would leave the file looking indexed.
    """

    def __init__(self, store: SQLiteVectorStore) -> None:
        self.store = store

    def status(self, project_id: str, relative_path: str, data: bytes) -> FileStatus:
        existing = self.store.get_file_record(project_id, relative_path)
        if existing is None:
            return FileStatus.NEW
        if existing.checksum == sha256_bytes(data):
            return FileStatus.UNCHANGED
        return FileStatus.MODIFIED

    def save_metadata(
        self,
        project_id: str,
        relative_path: str,
        data: bytes,
        *,
        last_modified: float | None = None,
    ) -> SourceFileRecord:
        """Record checksum, size and mtime for a file (insert or update)."""
        record = SourceFileRecord(
            project_id=project_id,
            relative_path=relative_path,
            checksum=sha256_bytes(data),
            size_bytes=len(data),
            last_modified=time.time() if last_modified is None else last_modified,
        )
        self.store.save_file_record(record)
        LOGGER.debug("Saved metadata for %s (%s)", relative_path, record.checksum)
        return record

    def checksum_of(self, project_id: str, relative_path: str) -> str | None:
        record = self.store.get_file_record(project_id, relative_path)
        return record.checksum if record else None

    def delete_metadata(self, project_id: str, relative_path: str) -> None:
        self.store.delete_file_record(project_id, relative_path)

    def delete_all_metadata(self, project_id: str) -> None:
        self.store.delete_file_records(project_id)
