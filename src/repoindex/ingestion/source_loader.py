"""Source file loading and chunking utilities."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List

from repoindex.errors import ChecksumError
from repoindex.models import Chunk
from repoindex.utils.files import sha256_bytes
from repoindex.utils.text import chunk_lines

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class SourceFile:
    """Raw bytes of one discovered file, read once per run."""

    path: Path
    relative_path: str
    data: bytes
    last_modified: float

    @property
    def checksum(self) -> str:
        return sha256_bytes(self.data)


def read_source_file(root: Path, path: Path) -> SourceFile:
    """Read a file's bytes and mtime, raising ChecksumError if it is unreadable."""
    try:
        data = path.read_bytes()
        mtime = path.stat().st_mtime
    except OSError as exc:
        raise ChecksumError(path, exc.strerror or str(exc)) from exc
    return SourceFile(
        path=path,
        relative_path=path.relative_to(root).as_posix(),
        data=data,
        last_modified=mtime,
    )


def build_chunks(
    source: SourceFile,
    project_id: str,
    *,
    chunk_size: int = 50,
    overlap_percent: int = 10,
) -> List[Chunk]:
    """Split a source file into chunks stamped with its checksum."""
    try:
        text = source.data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ChecksumError(source.path, "not valid UTF-8 text") from exc

    checksum = source.checksum
    LOGGER.info("Processing file: %s with checksum: %s", source.relative_path, checksum)
    chunks = [
        Chunk(
            project_id=project_id,
            file_path=source.relative_path,
            start_line=start,
            end_line=end,
            content=body,
            file_checksum=checksum,
        )
        for start, end, body in chunk_lines(
            text, chunk_lines=chunk_size, overlap_percent=overlap_percent
        )
    ]
    if chunks:
        LOGGER.info("Created %d chunks from file %s", len(chunks), source.relative_path)
    else:
        LOGGER.warning("No text in %s, nothing to embed", source.relative_path)
    return chunks
