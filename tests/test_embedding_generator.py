"""Tests for the concurrent EmbeddingGenerator."""

from __future__ import annotations

import os
import threading
import time

import numpy as np
import pytest

from repoindex.embedding.generator import EmbeddingGenerator, available_cpus, default_pool_size
from repoindex.errors import EmbeddingError
from repoindex.models import Chunk


def _chunks(count: int) -> list[Chunk]:
    return [
        Chunk(
            project_id="p",
            file_path=f"file{i}.py",
            start_line=1,
            end_line=1,
            content=f"chunk number {i}",
            file_checksum="sum",
        )
        for i in range(count)
    ]


def _fail_on(bad: str):
    def before(text: str) -> None:
        if text == bad:
            raise RuntimeError("provider unavailable")

    return before


def _slow_first(text: str) -> None:
    """Earlier chunks take longer, so completion order is reversed."""
    index = int(text.rsplit(" ", 1)[-1])
    time.sleep(max(0.0, 0.05 - index * 0.005))


class _ConcurrencyCounter:
    """Tracks the peak number of embedding calls running at once."""

    def __init__(self) -> None:
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def __call__(self, text: str) -> None:
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        time.sleep(0.01)
        with self._lock:
            self.active -= 1


class TestPoolSize:
    """Test worker pool sizing."""

    def test_at_least_two(self):
        """The default pool always has two or more workers."""
        assert default_pool_size() >= 2

    def test_honours_cpu_affinity(self, monkeypatch):
        """CPUs outside the affinity mask are not counted."""
        monkeypatch.setattr(os, "sched_getaffinity", lambda pid: {0, 1, 2, 3}, raising=False)
        monkeypatch.setattr(os, "cpu_count", lambda: 64)

        assert available_cpus() == 4
        assert default_pool_size() == 3

    def test_single_cpu_still_gets_two_workers(self, monkeypatch):
        """A one-CPU affinity mask still yields two workers."""
        monkeypatch.setattr(os, "sched_getaffinity", lambda pid: {0}, raising=False)

        assert default_pool_size() == 2

    def test_falls_back_to_cpu_count(self, monkeypatch):
        """Without affinity support the CPU count is used."""
        monkeypatch.delattr(os, "sched_getaffinity", raising=False)
        monkeypatch.setattr(os, "cpu_count", lambda: 6)

        assert available_cpus() == 6
        assert default_pool_size() == 5


class TestEmbed:
    """Test single-text embedding."""

    def test_embed_returns_vector(self, generator, dimension):
        """A query embeds to a float32 vector of the model dimension."""
        vector = generator.embed("find the parser")

        assert vector.dtype == np.float32
        assert vector.shape == (dimension,)

    def test_embed_failure_raises_embedding_error(self, make_embedder):
        """Provider errors are wrapped in EmbeddingError."""
        with EmbeddingGenerator(make_embedder(before=_fail_on("boom")), workers=2) as gen:
            with pytest.raises(EmbeddingError) as excinfo:
                gen.embed("boom")

        assert isinstance(excinfo.value.__cause__, RuntimeError)

    def test_wrong_dimension_rejected(self, make_embedder):
        """Vectors that do not match the declared dimension are refused."""
        embedder = make_embedder()
        embedder.dimension += 1
        with EmbeddingGenerator(embedder, workers=2) as gen:
            with pytest.raises(EmbeddingError):
                gen.embed("text")


class TestEmbedBatch:
    """Test batch embedding."""

    def test_empty_batch(self, generator, embedder):
        """An empty batch makes no calls."""
        assert generator.embed_batch([]) == []
        assert embedder.calls == []

    def test_preserves_input_order(self, make_embedder):
        """Results follow input order even when calls finish out of order."""
        chunks = _chunks(10)
        with EmbeddingGenerator(make_embedder(before=_slow_first), workers=4) as gen:
            results = gen.embed_batch(chunks)

        assert [r.chunk for r in results] == chunks
        reference = make_embedder()
        for result in results:
            np.testing.assert_allclose(result.embedding, reference.embed_query(result.chunk.content))

    def test_pool_bounds_concurrency(self, make_embedder):
        """No more calls run at once than there are workers."""
        counter = _ConcurrencyCounter()
        with EmbeddingGenerator(make_embedder(before=counter), workers=3) as gen:
            gen.embed_batch(_chunks(20))

        assert 1 <= counter.peak <= 3

    def test_one_failure_aborts_batch(self, make_embedder):
        """A single failing chunk fails the batch and names the chunk."""
        chunks = _chunks(8)
        with EmbeddingGenerator(make_embedder(before=_fail_on("chunk number 5")), workers=2) as gen:
            with pytest.raises(EmbeddingError) as excinfo:
                gen.embed_batch(chunks)

        assert "file5.py" in str(excinfo.value)

    def test_timeout_aborts_batch(self, make_embedder):
        """A call slower than the timeout fails the batch."""
        stuck = make_embedder(before=lambda text: time.sleep(0.5))
        with EmbeddingGenerator(stuck, workers=2, timeout=0.05) as gen:
            with pytest.raises(EmbeddingError):
                gen.embed_batch(_chunks(2))

    def test_default_workers(self, embedder, dimension):
        """Without a worker count the default pool size is used."""
        with EmbeddingGenerator(embedder) as gen:
            assert gen.workers == default_pool_size()
            assert gen.dimension == dimension
