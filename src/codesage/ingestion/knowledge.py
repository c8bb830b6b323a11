"""Markdown knowledge-document loading and paragraph chunking."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterator, List

from codesage.errors import InvalidPath
from codesage.models import KnowledgeItem

LOGGER = logging.getLogger(__name__)

MIN_PARAGRAPH_CHARS = 30
SOFT_PARAGRAPH_CHARS = 200

_TITLE_RE = re.compile(r"^#{1,3}\s+(.+)$", re.MULTILINE)


def extract_title(section: str) -> str:
    match = _TITLE_RE.search(section)
    return match.group(1).strip() if match else "General"


def split_paragraphs(section: str) -> List[str]:
    """Split a section at ``###`` headings and at blank lines once the buffer is large."""
    paragraphs: List[str] = []
    current = ""
    for line in section.split("\n"):
        if line.startswith("### ") and len(current.strip()) > MIN_PARAGRAPH_CHARS:
            paragraphs.append(current.strip())
            current = line + "\n"
        elif not line.strip() and len(current.strip()) > SOFT_PARAGRAPH_CHARS:
            paragraphs.append(current.strip())
            current = ""
        else:
            current += line + "\n"

    if len(current.strip()) > MIN_PARAGRAPH_CHARS:
        paragraphs.append(current.strip())
    return paragraphs


def chunk_markdown(content: str, source: str) -> List[KnowledgeItem]:
    items: List[KnowledgeItem] = []
    for position, section in enumerate(content.split("\n## ")):
        if position > 0:
            section = "## " + section
        title = extract_title(section)
        for paragraph in split_paragraphs(section):
            if len(paragraph) < MIN_PARAGRAPH_CHARS:
                continue
            items.append(KnowledgeItem(text=paragraph, source=source, section=title))
    return items


def iter_markdown_paths(path: Path) -> Iterator[Path]:
    if path.is_dir():
        yield from sorted(child for child in path.iterdir() if child.suffix.lower() == ".md")
    elif path.is_file():
        yield path
    else:
        raise InvalidPath(f"Invalid path: {path}")


def load_knowledge(path: Path) -> List[KnowledgeItem]:
    """Load every markdown document under ``path`` into knowledge items."""
    items: List[KnowledgeItem] = []
    for doc in iter_markdown_paths(Path(path)):
        try:
            content = doc.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            LOGGER.warning("Failed to read %s: %s", doc, exc)
            continue
        items.extend(chunk_markdown(content, doc.name))
    return items
