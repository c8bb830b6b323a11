"""Shared fixtures."""

from __future__ import annotations

import hashlib
from typing import Sequence

import numpy as np
import pytest


class FakeEmbedder:
    """Deterministic stand-in for EmbeddingModel."""

    dimension = 16

    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    def _vector(self, text: str) -> np.ndarray:
        digest = hashlib.sha256(text.encode("utf-8")).digest()[: self.dimension]
        vector = np.frombuffer(digest, dtype=np.uint8).astype("float32") + 1.0
        return vector / np.linalg.norm(vector)

    def embed(self, texts: Sequence[str]) -> np.ndarray:
        batch = list(texts)
        self.calls.append(batch)
        return np.vstack([self._vector(text) for text in batch])

    def embed_query(self, text: str) -> np.ndarray:
        return self._vector(text)


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()
