"""Incremental code indexing pipeline."""

from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Sequence

from codesage.embedding.batching import DEFAULT_BATCH_SIZE, DEFAULT_CONCURRENCY, BatchEmbedder
from codesage.embedding.encoder import EmbeddingModel
from codesage.index.manifest import diff_files, load_manifest, merge_manifest, save_manifest
from codesage.index.storage import SQLiteVectorStore
from codesage.ingestion.chunker import ChunkerConfig, chunk_files
from codesage.ingestion.knowledge import load_knowledge
from codesage.models import ChunkKind, CodeChunk
from codesage.utils.files import discover_files

LOGGER = logging.getLogger(__name__)

# Chunks embedded and written per index transaction
WRITE_BATCH_SIZE = 100

ProgressCallback = Callable[[str, int, int], None]


@dataclass(slots=True)
class TrainStats:
    discovered: int = 0
    unchanged: int = 0
    code_chunks: int = 0
    incremental: bool = False
    elapsed: float = 0.0
    processed_files: list[Path] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.processed_files)

    @property
    def up_to_date(self) -> bool:
        return self.discovered > 0 and not self.processed_files


def build_embedding_text(chunk: CodeChunk, root: Path) -> str:
    """Prefix chunk content with its location so the vector carries file context."""
    try:
        rel_path = chunk.file_path.relative_to(root)
    except ValueError:
        rel_path = chunk.file_path
    kind = f" ({chunk.chunk_kind.value})" if chunk.chunk_kind is not ChunkKind.GENERAL else ""
    return f"File: {rel_path.as_posix()}{kind}\n\n{chunk.content}"


class Indexer:
    """Coordinates discovery, chunking, embedding and persistence."""

    def __init__(
        self,
        embedder: EmbeddingModel,
        store: SQLiteVectorStore,
        manifest_path: Path,
        *,
        chunker_config: ChunkerConfig | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.manifest_path = Path(manifest_path)
        self.chunker_config = chunker_config or ChunkerConfig()
        self.batcher = BatchEmbedder(embedder.embed, batch_size=batch_size, concurrency=concurrency)

    def train(
        self,
        target: Path,
        *,
        force: bool = False,
        files: Optional[Sequence[Path]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TrainStats:
        """Index new or modified files under ``target``.

        With ``force`` the index and manifest are discarded first and every
        file is processed. ``files`` skips discovery when the caller has
        already run :func:`discover_files` on ``target``.
        """
        started = time.perf_counter()
        files = list(files) if files is not None else discover_files(target)
        root = files[0].parent if Path(target).is_file() else Path(target).expanduser().resolve()

        manifest = None
        if force:
            LOGGER.info("Forced re-index: clearing existing items")
            self.store.clear()
        else:
            manifest = load_manifest(self.manifest_path)

        diff = diff_files(files, manifest)
        stats = TrainStats(
            discovered=len(files),
            unchanged=len(diff.unchanged),
            incremental=manifest is not None,
        )

        if diff.is_empty:
            LOGGER.info("No changes detected. Index is up to date.")
            stats.elapsed = time.perf_counter() - started
            return stats

        LOGGER.info(
            "%d new/changed files (%d unchanged)", len(diff.to_process), len(diff.unchanged)
        )
        to_process = [Path(path) for path in diff.to_process]
        chunks = chunk_files(
            to_process,
            self.chunker_config,
            on_progress=_stage(on_progress, "Scanning"),
        )
        LOGGER.info("%d code chunks created", len(chunks))

        self._embed_and_store(chunks, root, on_progress)

        counts = Counter(str(chunk.file_path) for chunk in chunks)
        save_manifest(merge_manifest(manifest, diff, counts), self.manifest_path)

        stats.processed_files = to_process
        stats.code_chunks = len(chunks)
        stats.elapsed = time.perf_counter() - started
        return stats

    def _embed_and_store(
        self,
        chunks: Sequence[CodeChunk],
        root: Path,
        on_progress: Optional[ProgressCallback],
    ) -> None:
        total = len(chunks)
        for offset in range(0, total, WRITE_BATCH_SIZE):
            batch = chunks[offset : offset + WRITE_BATCH_SIZE]
            vectors = self.batcher.embed_many([build_embedding_text(c, root) for c in batch])
            self.store.insert_many(vectors, [chunk.to_metadata() for chunk in batch])
            if on_progress is not None:
                on_progress("Embedding", offset + len(batch), total)

    def learn(self, path: Path) -> int:
        """Embed markdown knowledge documents into the knowledge partition."""
        items = load_knowledge(path)
        if not items:
            LOGGER.warning("No knowledge paragraphs found in %s", path)
            return 0
        vectors = self.batcher.embed_many([item.text for item in items])
        return self.store.insert_many(vectors, [item.to_metadata() for item in items])


def _stage(
    on_progress: Optional[ProgressCallback], label: str
) -> Optional[Callable[[int, int], None]]:
    if on_progress is None:
        return None
    return lambda current, total: on_progress(label, current, total)

