"""Train manifest persistence and incremental file diffing."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from numbers import Real
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence

from codesage.models import FileEntry, TrainManifest

LOGGER = logging.getLogger(__name__)

MANIFEST_VERSION = 1


def _parse_manifest(data: Any) -> TrainManifest:
    if not isinstance(data, dict):
        raise ValueError("manifest is not an object")
    files = data.get("files")
    if not isinstance(files, dict):
        raise ValueError("manifest has no files map")

    entries: Dict[str, FileEntry] = {}
    for path, entry in files.items():
        if not isinstance(entry, dict):
            raise ValueError(f"entry for {path} is not an object")
        mtime = entry.get("mtime")
        chunk_count = entry.get("chunkCount")
        if not isinstance(mtime, Real) or isinstance(mtime, bool):
            raise ValueError(f"entry for {path} has no numeric mtime")
        if not isinstance(chunk_count, int) or isinstance(chunk_count, bool):
            raise ValueError(f"entry for {path} has no integer chunkCount")
        entries[path] = FileEntry(mtime=mtime, chunk_count=chunk_count)

    return TrainManifest(
        version=int(data.get("version", MANIFEST_VERSION)),
        trained_at=str(data.get("trainedAt", "")),
        files=entries,
    )


def load_manifest(path: Path) -> TrainManifest | None:
    """Load the manifest, treating anything unreadable as absent."""
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as exc:
        LOGGER.warning("Ignoring unreadable manifest %s: %s", path, exc)
        return None

    try:
        return _parse_manifest(json.loads(raw))
    except (json.JSONDecodeError, ValueError, TypeError) as exc:
        LOGGER.warning("Ignoring invalid manifest %s: %s", path, exc)
        return None


def save_manifest(manifest: TrainManifest, path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(manifest.to_dict(), indent=2), encoding="utf-8")


@dataclass(slots=True)
class FileDiff:
    """Partition of discovered files into unchanged and to-process sets."""

    unchanged: List[str] = field(default_factory=list)
    to_process: List[str] = field(default_factory=list)
    mtimes: Dict[str, float] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.to_process


def diff_files(
    files: Sequence[Path | str],
    manifest: TrainManifest | None,
    *,
    mtimes: Mapping[str, float] | None = None,
) -> FileDiff:
    """Select the files that are new or whose mtime differs from the manifest.

    ``mtimes`` may be supplied to avoid touching the filesystem; otherwise
    each file is stat'ed. Files that vanish before they can be stat'ed are
    dropped.
    """
    diff = FileDiff()
    for file in files:
        key = str(file)
        if mtimes is not None and key in mtimes:
            mtime = mtimes[key]
        else:
            try:
                mtime = Path(file).stat().st_mtime
            except OSError as exc:
                LOGGER.debug("Cannot stat %s: %s", key, exc)
                continue
        diff.mtimes[key] = mtime

        entry = manifest.files.get(key) if manifest is not None else None
        if entry is not None and entry.mtime == mtime:
            diff.unchanged.append(key)
        else:
            diff.to_process.append(key)
    return diff


def merge_manifest(
    previous: TrainManifest | None,
    diff: FileDiff,
    chunk_counts: Mapping[str, int],
    *,
    trained_at: str | None = None,
) -> TrainManifest:
    """Build the manifest after a run: unchanged entries plus fresh ones."""
    files: Dict[str, FileEntry] = {}
    if previous is not None:
        for path in diff.unchanged:
            files[path] = previous.files[path]
    for path in diff.to_process:
        files[path] = FileEntry(mtime=diff.mtimes[path], chunk_count=chunk_counts.get(path, 0))

    return TrainManifest(
        version=MANIFEST_VERSION,
        trained_at=trained_at or datetime.now(timezone.utc).isoformat(),
        files=files,
    )
