"""Concurrent, order-preserving embedding of chunks."""

from __future__ import annotations

import logging
import os
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Protocol, Sequence

import numpy as np

from repoindex.errors import EmbeddingError
from repoindex.models import Chunk, EmbeddedChunk

LOGGER = logging.getLogger(__name__)


class Embedder(Protocol):
    dimension: int

    def embed_query(self, text: str) -> np.ndarray: ...


def available_cpus() -> int:
    """CPUs this process may run on, honouring affinity where the OS exposes it."""
    if hasattr(os, "sched_getaffinity"):
        return len(os.sched_getaffinity(0))
    return os.cpu_count() or 1


def default_pool_size() -> int:
    return max(2, available_cpus() - 1)


class EmbeddingGenerator:
    """Turns chunk text into vectors using a bounded pool of worker threads.

    ``embed_batch`` is fail-fast: the first failing chunk cancels the work
    still queued and raises :class:`EmbeddingError`; no partial batch is ever
    returned.
    """

    def __init__(
        self,
        embedder: Embedder,
        *,
        workers: int | None = None,
        timeout: float | None = None,
    ) -> None:
        self.embedder = embedder
        self.workers = workers or default_pool_size()
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(
            max_workers=self.workers, thread_name_prefix="repoindex-embed"
        )

    @property
    def dimension(self) -> int:
        return int(self.embedder.dimension)

    def close(self) -> None:
        self._executor.shutdown(wait=True, cancel_futures=True)

    def __enter__(self) -> "EmbeddingGenerator":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def embed(self, text: str) -> np.ndarray:
        """Embed a single text, e.g. a search query."""
        try:
            vector = self.embedder.embed_query(text)
        except Exception as exc:
            LOGGER.error("Error generating embedding for query: %s", exc)
            raise EmbeddingError(f"Failed to generate embedding for query: {text!r}") from exc
        return self._checked(vector)

    def embed_batch(self, chunks: Sequence[Chunk]) -> list[EmbeddedChunk]:
        """Embed every chunk, returning results in input order."""
        if not chunks:
            return []
        LOGGER.info("Generating embeddings for %d chunks using %d workers", len(chunks), self.workers)

        futures: list[Future[EmbeddedChunk]] = [
            self._executor.submit(self._embed_chunk, chunk) for chunk in chunks
        ]
        results: list[EmbeddedChunk] = []
        try:
            for future in futures:
                results.append(future.result(timeout=self.timeout))
        except FutureTimeout as exc:
            self._cancel(futures)
            raise EmbeddingError(
                f"Embedding batch timed out after {self.timeout}s"
            ) from exc
        except EmbeddingError:
            self._cancel(futures)
            raise

        LOGGER.info("Successfully generated embeddings for %d chunks.", len(results))
        return results

    def _embed_chunk(self, chunk: Chunk) -> EmbeddedChunk:
        try:
            vector = self._checked(self.embedder.embed_query(chunk.content))
        except EmbeddingError:
            raise
        except Exception as exc:
            LOGGER.error(
                "Error generating embedding for chunk: %s (lines %d-%d): %s",
                chunk.file_path,
                chunk.start_line,
                chunk.end_line,
                exc,
            )
            raise EmbeddingError(
                f"Failed to generate embedding for chunk: {chunk.file_path} "
                f"(lines {chunk.start_line}-{chunk.end_line})"
            ) from exc
        LOGGER.debug(
            "Generated embedding for chunk: %s (lines %d-%d)",
            chunk.file_path,
            chunk.start_line,
            chunk.end_line,
        )
        return EmbeddedChunk(chunk=chunk, embedding=vector)

    def _checked(self, vector: np.ndarray) -> np.ndarray:
        array = np.asarray(vector, dtype="float32").reshape(-1)
        if array.shape[0] != self.dimension:
            raise EmbeddingError(
                f"Embedding dimension {array.shape[0]} does not match configured {self.dimension}"
            )
        return array

    @staticmethod
    def _cancel(futures: Sequence[Future]) -> None:
        cancelled = sum(1 for future in futures if future.cancel())
        if cancelled:
            LOGGER.debug("Cancelled %d pending embedding calls", cancelled)
