"""Application configuration defaults and overrides."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping

from codesage.errors import InvalidConfig

from codesage.embedding.batching import DEFAULT_BATCH_SIZE, DEFAULT_CONCURRENCY
from codesage.embedding.encoder import DEFAULT_MODEL
from codesage.ingestion.chunker import (
    MAX_CHUNK_LINES,
    MIN_CHUNK_LINES,
    OVERLAP_LINES,
    TARGET_CHUNK_LINES,
    ChunkerConfig,
)

LOGGER = logging.getLogger(__name__)

HOME_ENV = "CODESAGE_HOME"
ENV_PREFIX = "CODESAGE_"
CONFIG_FILE = "config.json"


def _get_default_data_dir() -> Path:
    """Per-user application directory, overridable through ``CODESAGE_HOME``."""
    override = os.environ.get(HOME_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".codesage"


@dataclass(slots=True)
class AppConfig:
    data_dir: Path | None = None
    model_name: str = DEFAULT_MODEL
    top_k: int = 8
    embed_batch_size: int = DEFAULT_BATCH_SIZE
    embed_concurrency: int = DEFAULT_CONCURRENCY
    min_chunk_lines: int = MIN_CHUNK_LINES
    target_chunk_lines: int = TARGET_CHUNK_LINES
    max_chunk_lines: int = MAX_CHUNK_LINES
    chunk_overlap: int = OVERLAP_LINES

    def __post_init__(self) -> None:
        if self.data_dir is None:
            self.data_dir = _get_default_data_dir()
        self.data_dir = Path(self.data_dir)

    @property
    def index_path(self) -> Path:
        return self.data_dir / "index.db"

    @property
    def manifest_path(self) -> Path:
        return self.data_dir / "manifest.json"

    @property
    def config_path(self) -> Path:
        return self.data_dir / CONFIG_FILE

    def chunker_config(self) -> ChunkerConfig:
        return ChunkerConfig(
            min_lines=self.min_chunk_lines,
            target_lines=self.target_chunk_lines,
            max_lines=self.max_chunk_lines,
            overlap_lines=self.chunk_overlap,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["data_dir"] = str(self.data_dir)
        return data


_FIELD_TYPES = {f.name: f.type for f in fields(AppConfig) if f.name != "data_dir"}
CONFIG_KEYS = tuple(_FIELD_TYPES)

# Settings that must be at least 1
POSITIVE_FIELDS = ("top_k", "embed_batch_size", "embed_concurrency")


def _coerce(name: str, value: Any) -> Any:
    kind = _FIELD_TYPES[name]
    if kind == "int":
        if isinstance(value, bool):
            raise ValueError(f"{name} must be an integer")
        return int(value)
    return str(value)


def _apply(overrides: Dict[str, Any], source: Mapping[str, Any], origin: str) -> None:
    for key, value in source.items():
        if key not in _FIELD_TYPES:
            LOGGER.warning("Ignoring unknown setting %r from %s", key, origin)
            continue
        try:
            overrides[key] = _coerce(key, value)
        except (TypeError, ValueError):
            LOGGER.warning("Ignoring invalid value %r for %s from %s", value, key, origin)


def validate_config(config: AppConfig) -> AppConfig:
    """Reject settings the indexer or retriever cannot run with."""
    for name in POSITIVE_FIELDS:
        value = getattr(config, name)
        if value < 1:
            raise InvalidConfig(f"{name} must be at least 1, got {value}")
    try:
        config.chunker_config()
    except ValueError as exc:
        raise InvalidConfig(f"Invalid chunk settings: {exc}") from exc
    return config


def read_config_file(path: Path) -> Dict[str, Any]:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as exc:
        LOGGER.warning("Ignoring unreadable config %s: %s", path, exc)
        return {}
    if not isinstance(data, dict):
        LOGGER.warning("Ignoring config %s: not a JSON object", path)
        return {}
    return data


def load_config(data_dir: Path | None = None, env: Mapping[str, str] | None = None) -> AppConfig:
    """Merge defaults, the user's ``config.json`` and ``CODESAGE_*`` variables.

    Later sources win. Raises :class:`InvalidConfig` when the merged
    settings are out of range.
    """
    env = os.environ if env is None else env
    base = AppConfig(data_dir=data_dir)

    overrides: Dict[str, Any] = {}
    _apply(overrides, read_config_file(base.config_path), str(base.config_path))
    env_values = {
        name: env[ENV_PREFIX + name.upper()]
        for name in _FIELD_TYPES
        if ENV_PREFIX + name.upper() in env
    }
    _apply(overrides, env_values, "environment")

    return validate_config(AppConfig(data_dir=base.data_dir, **overrides))


def save_config(values: Mapping[str, Any], data_dir: Path | None = None) -> Path:
    """Persist ``values`` on top of the existing config file."""
    path = AppConfig(data_dir=data_dir).config_path
    merged: Dict[str, Any] = {}
    _apply(merged, read_config_file(path), str(path))
    _apply(merged, values, "arguments")
    validate_config(AppConfig(data_dir=path.parent, **merged))
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(merged, indent=2), encoding="utf-8")
    return path
