"""Source file discovery with built-in and ``.gitignore`` exclusions."""

from __future__ import annotations

import fnmatch
import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import pathspec

from codesage.errors import InvalidPath, NoSourceFilesFound, UnsupportedFileType
from codesage.ingestion.languages import (
    Language,
    detect_language,
    supported_extensions,
    supported_filenames,
)

LOGGER = logging.getLogger(__name__)

IGNORE_FILE = ".gitignore"

IGNORED_DIRS = frozenset(
    {
        "node_modules",
        "dist",
        "build",
        ".git",
        "vendor",
        "__pycache__",
        "target",
        ".next",
        "coverage",
        "bin",
        "obj",
        ".codesage",
        ".stack-work",
        ".cabal-sandbox",
        "_build",
        "venv",
        ".venv",
        "deps",
        "_deps",
        ".dart_tool",
        ".pub-cache",
        "zig-cache",
        "zig-out",
        "nimcache",
        ".terraform",
    }
)

IGNORED_FILES = (
    "*.min.js",
    "*.d.ts",
    "*.lock",
    "package-lock.json",
    ".env",
    ".env.*",
)


def translate_ignore_rule(line: str) -> Optional[str]:
    """Rewrite one ignore-file line as a gitignore pattern.

    Returns ``None`` for blanks and comments. A trailing-slash rule is
    anchored at the tree root; any other rule, including one with a leading
    or inner slash, matches at any depth.
    """
    rule = line.strip()
    if not rule or rule.startswith("#"):
        return None
    negated = rule.startswith("!")
    body = rule[1:] if negated else rule
    if not body.strip("/"):
        return None
    if body.endswith("/"):
        body = "/" + body.lstrip("/")
    else:
        body = "**/" + body.lstrip("/")
    return f"!{body}" if negated else body


def parse_ignore_rules(lines: Iterable[str]) -> pathspec.GitIgnoreSpec:
    patterns = [rule for rule in map(translate_ignore_rule, lines) if rule is not None]
    return pathspec.GitIgnoreSpec.from_lines(patterns)


def load_ignore_rules(root: Path) -> Optional[pathspec.GitIgnoreSpec]:
    ignore_path = root / IGNORE_FILE
    try:
        text = ignore_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as exc:
        LOGGER.warning("Failed to read %s: %s", ignore_path, exc)
        return None
    return parse_ignore_rules(text.splitlines())


def is_ignored(
    spec: Optional[pathspec.GitIgnoreSpec], parts: Sequence[str], is_dir: bool = False
) -> bool:
    """Check a root-relative path, given as its components, against ``spec``."""
    if spec is None:
        return False
    rel_path = "/".join(parts) + ("/" if is_dir else "")
    return spec.match_file(rel_path)


def _is_candidate(name: str) -> bool:
    if name in supported_filenames():
        return True
    if any(fnmatch.fnmatchcase(name, pattern) for pattern in IGNORED_FILES):
        return False
    return Path(name).suffix.lower() in supported_extensions()


def iter_source_paths(
    root: Path, spec: Optional[pathspec.GitIgnoreSpec] = None
) -> Iterable[Path]:
    """Yield candidate source files under ``root`` in no particular order."""
    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = Path(dirpath).relative_to(root).parts
        dirnames[:] = [
            name
            for name in dirnames
            if name not in IGNORED_DIRS and not is_ignored(spec, (*rel_dir, name), is_dir=True)
        ]
        for name in filenames:
            if _is_candidate(name) and not is_ignored(spec, (*rel_dir, name)):
                yield Path(dirpath) / name


def discover_files(target: Path | str) -> List[Path]:
    """Return the sorted absolute paths of every indexable file under ``target``."""
    path = Path(target).expanduser().resolve()

    if path.is_file():
        if detect_language(path) is Language.UNKNOWN:
            raise UnsupportedFileType(f"Unsupported file type: {path.suffix or path.name}")
        return [path]

    if path.is_dir():
        spec = load_ignore_rules(path)
        files = sorted(iter_source_paths(path, spec))
        if not files:
            raise NoSourceFilesFound(f"No supported source files found in {target}")
        LOGGER.debug("Discovered %d files under %s", len(files), path)
        return files

    raise InvalidPath(f"Invalid path: {target}")
