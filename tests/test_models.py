"""Tests for core data models."""

from __future__ import annotations

import dataclasses

import numpy as np
import pytest

from repoindex.models import Chunk, EmbeddedChunk, FileStatus, ProcessingResult


def _chunk(**overrides) -> Chunk:
    values = dict(
        project_id="p",
        file_path="a.py",
        start_line=1,
        end_line=3,
        content="x\ny\nz",
        file_checksum="abc",
    )
    values.update(overrides)
    return Chunk(**values)


class TestChunk:
    """Test Chunk dataclass."""

    def test_equality_by_value(self):
        """Chunks compare by their fields."""
        assert _chunk() == _chunk()
        assert _chunk() != _chunk(end_line=4)

    def test_is_immutable(self):
        """Chunks cannot be changed after creation."""
        chunk = _chunk()
        with pytest.raises(dataclasses.FrozenInstanceError):
            chunk.content = "changed"

    def test_embedded_chunk_wraps_chunk(self):
        """EmbeddedChunk pairs a chunk with its vector."""
        embedded = EmbeddedChunk(chunk=_chunk(), embedding=np.ones(4, dtype="float32"))
        assert embedded.chunk.file_path == "a.py"
        assert embedded.embedding.shape == (4,)


class TestProcessingResult:
    """Test ProcessingResult helpers."""

    def test_defaults(self):
        """A fresh result is empty and has no changes."""
        result = ProcessingResult()
        assert result.new_chunks == []
        assert result.new_files == []
        assert result.modified_files == []
        assert result.unchanged_files == []
        assert result.removed_files == []
        assert result.failed_files == []
        assert result.project_id is None
        assert not result.has_changes()

    def test_new_files_are_changes(self):
        """New files count as changes."""
        assert ProcessingResult(new_files=["a.py"]).has_changes()

    def test_modified_files_are_changes(self):
        """Modified files count as changes."""
        assert ProcessingResult(modified_files=["a.py"]).has_changes()

    def test_unchanged_removed_and_failed_are_not_changes(self):
        """Only new or modified files make a change."""
        result = ProcessingResult(
            unchanged_files=["a.py"], removed_files=["b.py"], failed_files=["c.py"]
        )
        assert not result.has_changes()

    def test_total_processed_files(self):
        """Failed files are not part of the processed total."""
        result = ProcessingResult(
            new_files=["a"], modified_files=["b", "c"], unchanged_files=["d"], failed_files=["e"]
        )
        assert result.total_processed_files == 4


class TestFileStatus:
    """Test FileStatus enum."""

    def test_values(self):
        """Statuses have lowercase string values."""
        assert {s.value for s in FileStatus} == {"new", "unchanged", "modified"}
