"""Order-preserving batched, concurrent embedding."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence

import numpy as np

from codesage.errors import EmbeddingServiceError

LOGGER = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50
DEFAULT_CONCURRENCY = 3

EmbedFn = Callable[[Sequence[str]], np.ndarray]
ProgressCallback = Callable[[int, int], None]

# Failures that mean the embedding collaborator could not be reached
TRANSPORT_ERRORS = (ConnectionError, TimeoutError, OSError)


class BatchEmbedder:
    """Split texts into fixed-size batches and embed a bounded number at once.

    Each batch's vectors are written back at the batch's starting offset, so
    ``embed_many(texts)[i]`` is always the embedding of ``texts[i]``.
    """

    def __init__(
        self,
        embed_fn: EmbedFn,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.embed_fn = embed_fn
        self.batch_size = batch_size
        self.concurrency = concurrency

    def _embed_batch(self, texts: Sequence[str]) -> np.ndarray:
        try:
            vectors = np.asarray(self.embed_fn(list(texts)), dtype="float32")
        except TRANSPORT_ERRORS as exc:
            raise EmbeddingServiceError(f"Embedding service unreachable: {exc}") from exc
        if vectors.ndim != 2 or vectors.shape[0] != len(texts):
            raise EmbeddingServiceError(
                f"Embedding batch returned {vectors.shape[0] if vectors.ndim else 0} "
                f"vectors for {len(texts)} texts"
            )
        return vectors

    def embed_many(
        self,
        texts: Sequence[str],
        *,
        on_progress: Optional[ProgressCallback] = None,
    ) -> np.ndarray:
        total = len(texts)
        if total == 0:
            return np.zeros((0, 0), dtype="float32")

        offsets = list(range(0, total, self.batch_size))
        results: List[np.ndarray | None] = [None] * total
        done = 0

        with ThreadPoolExecutor(max_workers=self.concurrency) as pool:
            # submit in waves so at most `concurrency` batches are in flight
            for wave in range(0, len(offsets), self.concurrency):
                futures = {
                    offset: pool.submit(
                        self._embed_batch, texts[offset : offset + self.batch_size]
                    )
                    for offset in offsets[wave : wave + self.concurrency]
                }
                for offset, future in futures.items():
                    vectors = future.result()
                    for position, vector in enumerate(vectors):
                        results[offset + position] = vector
                    done += len(vectors)
                    if on_progress is not None:
                        on_progress(done, total)

        LOGGER.debug("Embedded %d texts in %d batches", total, len(offsets))
        return np.vstack(results)
