"""Partition-aware retrieval and context assembly."""

from __future__ import annotations

import math
from typing import Dict, List, Literal, Sequence

from codesage.embedding.batching import TRANSPORT_ERRORS
from codesage.embedding.encoder import EmbeddingModel
from codesage.errors import EmbeddingServiceError
from codesage.index.storage import SQLiteVectorStore
from codesage.models import CODE_PARTITION, KNOWLEDGE_PARTITION, RetrievedContext

PartitionMode = Literal["code", "knowledge", "both"]
PARTITION_MODES = ("code", "knowledge", "both")

DEFAULT_TOP_K = 8


def merge_results(
    code: Sequence[RetrievedContext],
    knowledge: Sequence[RetrievedContext],
    top_k: int,
) -> List[RetrievedContext]:
    """Concatenate both partitions, rank by score and keep the best ``top_k``.

    The sort is stable, so on equal scores code results stay ahead.
    """
    combined = [*code, *knowledge]
    combined.sort(key=lambda result: result.score, reverse=True)
    return combined[:top_k]


def _group_key(result: RetrievedContext) -> str:
    if result.partition == CODE_PARTITION:
        return f"code:{result.metadata['filePath']}"
    return f"knowledge:{result.metadata['source']}"


def group_by_file(results: Sequence[RetrievedContext]) -> List[RetrievedContext]:
    """Group hits by source file, in reading order within each file.

    Groups appear in the order their best-ranked hit appears in ``results``.
    """
    groups: Dict[str, List[RetrievedContext]] = {}
    for result in results:
        groups.setdefault(_group_key(result), []).append(result)

    ordered: List[RetrievedContext] = []
    for group in groups.values():
        if group[0].partition == CODE_PARTITION:
            group = sorted(group, key=lambda result: result.metadata["startLine"])
        ordered.extend(group)
    return ordered


def format_context(results: Sequence[RetrievedContext]) -> str:
    """Render hits as prompt-ready sections."""
    sections: List[str] = []
    for result in results:
        meta = result.metadata
        if result.partition == CODE_PARTITION:
            sections.append(
                f"[CODE: {meta['filePath']} L{meta['startLine']}-{meta['endLine']}"
                f" ({meta['chunkKind']})]\n{result.text}"
            )
        else:
            sections.append(f"[BEST PRACTICE: {meta['source']} - {meta['section']}]\n{result.text}")
    return "\n\n---\n\n".join(sections)


class Retriever:
    """High-level API to query the vector store."""

    def __init__(self, embedder: EmbeddingModel, store: SQLiteVectorStore) -> None:
        self.embedder = embedder
        self.store = store

    def retrieve(
        self,
        query: str,
        *,
        top_k: int = DEFAULT_TOP_K,
        partition: PartitionMode = "both",
    ) -> List[RetrievedContext]:
        """Return hits ranked by score.

        In ``both`` mode the code partition is asked for ``top_k`` results
        and the knowledge partition for half as many, biasing toward code.
        """
        if partition not in PARTITION_MODES:
            raise ValueError(f"Unknown partition mode: {partition}")
        if top_k < 1:
            raise ValueError("top_k must be at least 1")

        try:
            embedding = self.embedder.embed_query(query)
        except TRANSPORT_ERRORS as exc:
            raise EmbeddingServiceError(f"Embedding service unreachable: {exc}") from exc
        if partition != "both":
            return self.store.query(embedding, top_k, partition)

        code = self.store.query(embedding, top_k, CODE_PARTITION)
        knowledge = self.store.query(embedding, math.ceil(top_k / 2), KNOWLEDGE_PARTITION)
        return merge_results(code, knowledge, top_k)

    def retrieve_grouped(
        self,
        query: str,
        *,
        top_k: int = DEFAULT_TOP_K,
        partition: PartitionMode = "both",
    ) -> List[RetrievedContext]:
        return group_by_file(self.retrieve(query, top_k=top_k, partition=partition))
