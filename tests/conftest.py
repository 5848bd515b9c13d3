"""Shared fixtures: a deterministic embedder and a temporary vector store."""

from __future__ import annotations

import re
import threading
import zlib
from typing import Callable

import numpy as np
import pytest

from repoindex.embedding.generator import EmbeddingGenerator
from repoindex.index.storage import SQLiteVectorStore

DIMENSION = 32


class HashingEmbedder:
    """Bag-of-words embedder hashing tokens into a small, L2-normalised vector.

    ``before`` is called with each text ahead of embedding, which lets tests
    add latency or make chosen texts fail.
    """

    def __init__(
        self, dimension: int = DIMENSION, before: Callable[[str], None] | None = None
    ) -> None:
        self.dimension = dimension
        self.before = before
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def embed_query(self, text: str) -> np.ndarray:
        with self._lock:
            self.calls.append(text)
        if self.before is not None:
            self.before(text)
        vector = np.zeros(self.dimension, dtype="float32")
        for token in re.findall(r"\w+", text.lower()):
            vector[zlib.crc32(token.encode("utf-8")) % self.dimension] += 1.0
        norm = np.linalg.norm(vector)
        if norm == 0:
            vector[0] = 1.0
            return vector
        return vector / norm


@pytest.fixture
def dimension():
    return DIMENSION


@pytest.fixture
def make_embedder():
    """Factory for hashing embedders with an optional per-text hook."""
    return HashingEmbedder


@pytest.fixture
def embedder(make_embedder):
    return make_embedder()


@pytest.fixture
def generator(embedder):
    gen = EmbeddingGenerator(embedder, workers=4)
    yield gen
    gen.close()


@pytest.fixture
def store(tmp_path, dimension):
    db = SQLiteVectorStore(tmp_path / "index.db", dimension=dimension)
    yield db
    db.close()
