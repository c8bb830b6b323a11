"""Boundary-aware line chunking of source files."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

from codesage.ingestion.languages import (
    Language,
    boundary_pattern,
    class_pattern,
    detect_language,
    import_pattern,
)
from codesage.models import ChunkKind, CodeChunk

LOGGER = logging.getLogger(__name__)

MIN_CHUNK_LINES = 5
TARGET_CHUNK_LINES = 40
MAX_CHUNK_LINES = 80
OVERLAP_LINES = 5

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True, slots=True)
class ChunkerConfig:
    min_lines: int = MIN_CHUNK_LINES
    target_lines: int = TARGET_CHUNK_LINES
    max_lines: int = MAX_CHUNK_LINES
    overlap_lines: int = OVERLAP_LINES

    def __post_init__(self) -> None:
        if self.min_lines < 1:
            raise ValueError("min_lines must be at least 1")
        if self.target_lines < self.min_lines:
            raise ValueError("target_lines must be >= min_lines")
        if self.max_lines < self.target_lines:
            raise ValueError("max_lines must be >= target_lines")
        if not 0 <= self.overlap_lines < self.target_lines:
            raise ValueError("overlap_lines must be in [0, target_lines)")


def classify_chunk(lines: Sequence[str], language: Language) -> ChunkKind:
    """Classify a chunk from its first non-blank line.

    Import lines win over class declarations, which win over any other
    boundary line.
    """
    first = next((line for line in lines if line.strip()), "")
    if import_pattern(language).search(first):
        return ChunkKind.IMPORTS
    if class_pattern(language).search(first):
        return ChunkKind.CLASS
    if boundary_pattern(language).search(first):
        return ChunkKind.FUNCTION
    return ChunkKind.GENERAL


def _find_split(
    lines: Sequence[str], start: int, config: ChunkerConfig, language: Language
) -> int:
    """Return the end index (exclusive) for the chunk starting at ``start``."""
    total = len(lines)
    end = min(start + config.target_lines, total)
    if end >= total:
        return end

    pattern = boundary_pattern(language)
    for index in range(start + config.target_lines, min(start + config.max_lines, total)):
        if pattern.search(lines[index]):
            return index
    return end


def chunk_lines(
    lines: Sequence[str],
    file_path: Path,
    language: Language,
    config: ChunkerConfig | None = None,
) -> List[CodeChunk]:
    """Split a file's lines into overlapping chunks aligned to code boundaries."""
    config = config or ChunkerConfig()
    total = len(lines)

    if total <= config.target_lines:
        if total < config.min_lines:
            return []
        return [
            CodeChunk(
                file_path=file_path,
                language=language,
                start_line=1,
                end_line=total,
                content="\n".join(lines),
                chunk_kind=classify_chunk(lines, language),
            )
        ]

    chunks: List[CodeChunk] = []
    start = 0
    while start < total:
        end = _find_split(lines, start, config, language)
        window = lines[start:end]
        if len(window) >= config.min_lines:
            chunks.append(
                CodeChunk(
                    file_path=file_path,
                    language=language,
                    start_line=start + 1,
                    end_line=end,
                    content="\n".join(window),
                    chunk_kind=classify_chunk(window, language),
                )
            )
        if end >= total:
            break

        next_start = end - config.overlap_lines
        # overlap larger than the chunk would loop forever
        if next_start <= start:
            next_start = end
        start = next_start

    return chunks


def chunk_text(
    text: str,
    file_path: Path,
    language: Language | None = None,
    config: ChunkerConfig | None = None,
) -> List[CodeChunk]:
    if language is None:
        language = detect_language(file_path)
    return chunk_lines(text.splitlines(), file_path, language, config)


def chunk_file(path: Path, config: ChunkerConfig | None = None) -> List[CodeChunk]:
    """Read and chunk a single file. Raises on unreadable or non UTF-8 content."""
    text = Path(path).read_text(encoding="utf-8")
    return chunk_text(text, Path(path), detect_language(path), config)


def chunk_files(
    paths: Iterable[Path],
    config: ChunkerConfig | None = None,
    *,
    on_progress: Optional[ProgressCallback] = None,
) -> List[CodeChunk]:
    """Chunk files one at a time, skipping any that cannot be read."""
    files = list(paths)
    chunks: List[CodeChunk] = []
    for position, path in enumerate(files, start=1):
        if on_progress is not None:
            on_progress(position, len(files))
        try:
            chunks.extend(chunk_file(path, config))
        except (OSError, UnicodeDecodeError) as exc:
            LOGGER.debug("Skipping unreadable file %s: %s", path, exc)
    return chunks
