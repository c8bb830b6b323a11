"""Core CodeSage data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict

from codesage.ingestion.languages import Language

CODE_PARTITION = "code"
KNOWLEDGE_PARTITION = "knowledge"
PARTITIONS = (CODE_PARTITION, KNOWLEDGE_PARTITION)


class ChunkKind(str, Enum):
    IMPORTS = "imports"
    CLASS = "class"
    FUNCTION = "function"
    BLOCK = "block"
    GENERAL = "general"


@dataclass(frozen=True, slots=True)
class CodeChunk:
    """Contiguous line range of a single source file."""

    file_path: Path
    language: Language
    start_line: int
    end_line: int
    content: str
    chunk_kind: ChunkKind

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1

    def to_metadata(self) -> Dict[str, Any]:
        """Denormalized form stored alongside the vector."""
        return {
            "type": CODE_PARTITION,
            "text": self.content,
            "filePath": str(self.file_path),
            "language": self.language.value,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "chunkKind": self.chunk_kind.value,
        }


@dataclass(frozen=True, slots=True)
class KnowledgeItem:
    """Paragraph of a best-practice document."""

    text: str
    source: str
    section: str

    def to_metadata(self) -> Dict[str, Any]:
        return {
            "type": KNOWLEDGE_PARTITION,
            "text": self.text,
            "source": self.source,
            "section": self.section,
        }


@dataclass(slots=True)
class FileEntry:
    mtime: float
    chunk_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"mtime": self.mtime, "chunkCount": self.chunk_count}


@dataclass(slots=True)
class TrainManifest:
    """Record of which files were embedded and at which modification time."""

    version: int
    trained_at: str
    files: Dict[str, FileEntry] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "trainedAt": self.trained_at,
            "files": {path: entry.to_dict() for path, entry in self.files.items()},
        }


@dataclass(slots=True)
class RetrievedContext:
    """One ranked hit returned by the vector index."""

    text: str
    metadata: Dict[str, Any]
    score: float

    @property
    def partition(self) -> str:
        return self.metadata["type"]

    @property
    def file_path(self) -> str | None:
        return self.metadata.get("filePath")

    @property
    def start_line(self) -> int | None:
        return self.metadata.get("startLine")
