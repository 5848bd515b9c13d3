"""Semantic search interface."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from repoindex.embedding.generator import EmbeddingGenerator
from repoindex.errors import EmbeddingError
from repoindex.index.storage import SQLiteVectorStore
from repoindex.models import Chunk

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class SearchResult:
    file_path: str
    start_line: int
    end_line: int
    distance: float
    content: str


def result_from_chunk(chunk: Chunk, distance: float) -> SearchResult:
    return SearchResult(
        file_path=chunk.file_path,
        start_line=chunk.start_line,
        end_line=chunk.end_line,
        distance=distance,
        content=chunk.content,
    )


class Searcher:
    """High-level API to query one project's chunks by text or vector.

    Retrieval never raises for embedding or store failures; they are logged
    and an empty list is returned.
    """

    def __init__(
        self,
        generator: EmbeddingGenerator,
        store: SQLiteVectorStore,
        *,
        similarity_threshold: float = 0.7,
    ) -> None:
        self.generator = generator
        self.store = store
        self.similarity_threshold = similarity_threshold

    def search(
        self,
        project_id: str,
        query: str | Sequence[float] | np.ndarray,
        *,
        limit: int = 10,
        similarity_threshold: float | None = None,
    ) -> List[Chunk]:
        return [
            chunk
            for chunk, _ in self._nearest(project_id, query, limit, similarity_threshold)
        ]

    def search_with_scores(
        self,
        project_id: str,
        query: str | Sequence[float] | np.ndarray,
        *,
        limit: int = 10,
        similarity_threshold: float | None = None,
    ) -> List[SearchResult]:
        return [
            result_from_chunk(chunk, distance)
            for chunk, distance in self._nearest(project_id, query, limit, similarity_threshold)
        ]

    def _nearest(
        self,
        project_id: str,
        query: str | Sequence[float] | np.ndarray,
        limit: int,
        similarity_threshold: float | None,
    ) -> List[tuple[Chunk, float]]:
        if isinstance(query, str):
            try:
                vector = self.generator.embed(query)
            except EmbeddingError as exc:
                LOGGER.error("Search in project %s degraded to no results: %s", project_id, exc)
                return []
        else:
            vector = np.asarray(query, dtype="float32")

        threshold = (
            self.similarity_threshold if similarity_threshold is None else similarity_threshold
        )
        return self.store.query_nearest_with_distance(
            project_id, vector, similarity_threshold=threshold, limit=limit
        )
