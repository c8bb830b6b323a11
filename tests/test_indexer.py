"""Tests for the incremental training pipeline."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from codesage.errors import EmbeddingServiceError, NoSourceFilesFound
from codesage.index.indexer import Indexer, TrainStats, build_embedding_text
from codesage.index.storage import SQLiteVectorStore
from codesage.ingestion.languages import Language
from codesage.models import ChunkKind, CodeChunk

from conftest import FakeEmbedder


def python_source(functions: int) -> str:
    lines = ["import os", ""]
    for index in range(functions):
        lines += [f"def func_{index}(value):", f"    total = value + {index}", "    return total", ""]
    return "\n".join(lines) + "\n"


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    (root / "pkg").mkdir(parents=True)
    (root / "pkg" / "core.py").write_text(python_source(25), encoding="utf-8")
    (root / "pkg" / "util.py").write_text(python_source(3), encoding="utf-8")
    (root / "tiny.py").write_text("x = 1\n", encoding="utf-8")
    return root


@pytest.fixture
def store(tmp_path: Path):
    db = SQLiteVectorStore(tmp_path / "index.db")
    yield db
    db.close()


@pytest.fixture
def manifest_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "manifest.json"


@pytest.fixture
def indexer(fake_embedder: FakeEmbedder, store: SQLiteVectorStore, manifest_path: Path) -> Indexer:
    return Indexer(fake_embedder, store, manifest_path, batch_size=4, concurrency=2)


def read_files(manifest_path: Path) -> dict:
    return json.loads(manifest_path.read_text(encoding="utf-8"))["files"]


class TestTrainStats:
    """Test TrainStats helpers."""

    def test_defaults(self) -> None:
        stats = TrainStats()
        assert stats.processed == 0
        assert stats.up_to_date is False

    def test_up_to_date(self) -> None:
        assert TrainStats(discovered=3, unchanged=3).up_to_date is True


class TestBuildEmbeddingText:
    """Embedding text carries location context."""

    def _chunk(self, kind: ChunkKind) -> CodeChunk:
        return CodeChunk(
            file_path=Path("/repo/src/app.py"),
            language=Language.PYTHON,
            start_line=1,
            end_line=5,
            content="def main():\n    pass",
            chunk_kind=kind,
        )

    def test_with_kind(self) -> None:
        text = build_embedding_text(self._chunk(ChunkKind.FUNCTION), Path("/repo"))
        assert text == "File: src/app.py (function)\n\ndef main():\n    pass"

    def test_general_has_no_kind(self) -> None:
        text = build_embedding_text(self._chunk(ChunkKind.GENERAL), Path("/repo"))
        assert text.startswith("File: src/app.py\n\n")

    def test_outside_root(self) -> None:
        text = build_embedding_text(self._chunk(ChunkKind.GENERAL), Path("/elsewhere"))
        assert text.startswith("File: /repo/src/app.py\n\n")


class TestTrain:
    """End-to-end training with a fake embedder and a real store."""

    def test_first_run_indexes_everything(
        self, indexer: Indexer, store: SQLiteVectorStore, repo: Path, manifest_path: Path
    ) -> None:
        stats = indexer.train(repo)

        assert stats.discovered == 3
        assert stats.processed == 3
        assert stats.unchanged == 0
        assert stats.incremental is False
        assert stats.code_chunks == store.count("code") > 0

        files = read_files(manifest_path)
        assert set(files) == {
            str((repo / "pkg" / "core.py").resolve()),
            str((repo / "pkg" / "util.py").resolve()),
            str((repo / "tiny.py").resolve()),
        }
        assert sum(entry["chunkCount"] for entry in files.values()) == stats.code_chunks
        assert files[str((repo / "tiny.py").resolve())]["chunkCount"] == 0

    def test_stored_metadata(self, indexer: Indexer, store: SQLiteVectorStore, repo: Path) -> None:
        indexer.train(repo / "pkg" / "util.py")

        results = store.query(indexer.embedder.embed_query("anything"), k=10, partition="code")

        assert len(results) == 1
        meta = results[0].metadata
        assert meta["filePath"] == str((repo / "pkg" / "util.py").resolve())
        assert meta["language"] == "python"
        assert meta["chunkKind"] == "imports"
        assert (meta["startLine"], meta["endLine"]) == (1, 14)

    def test_second_run_is_noop(
        self,
        indexer: Indexer,
        fake_embedder: FakeEmbedder,
        store: SQLiteVectorStore,
        repo: Path,
        manifest_path: Path,
    ) -> None:
        indexer.train(repo)
        before = json.loads(manifest_path.read_text(encoding="utf-8"))
        count = store.count()
        calls = len(fake_embedder.calls)

        stats = indexer.train(repo)

        assert stats.up_to_date is True
        assert stats.processed == 0
        assert stats.incremental is True
        assert len(fake_embedder.calls) == calls
        assert store.count() == count
        after = json.loads(manifest_path.read_text(encoding="utf-8"))
        assert after["files"] == before["files"]

    def test_only_changed_files_are_processed(
        self, indexer: Indexer, repo: Path, manifest_path: Path
    ) -> None:
        indexer.train(repo)
        core = str((repo / "pkg" / "core.py").resolve())
        before = read_files(manifest_path)

        util = repo / "pkg" / "util.py"
        util.write_text(python_source(5), encoding="utf-8")
        os.utime(util, (before[str(util.resolve())]["mtime"] + 10,) * 2)
        (repo / "new.py").write_text(python_source(2), encoding="utf-8")

        stats = indexer.train(repo)

        assert sorted(path.name for path in stats.processed_files) == ["new.py", "util.py"]
        after = read_files(manifest_path)
        assert after[core] == before[core]
        assert str((repo / "new.py").resolve()) in after

    def test_corrupt_manifest_triggers_full_run(
        self, indexer: Indexer, repo: Path, manifest_path: Path
    ) -> None:
        indexer.train(repo)
        manifest_path.write_text("not json", encoding="utf-8")

        stats = indexer.train(repo)

        assert stats.processed == 3
        assert stats.incremental is False
        assert len(read_files(manifest_path)) == 3

    def test_force_rebuilds(self, indexer: Indexer, store: SQLiteVectorStore, repo: Path) -> None:
        first = indexer.train(repo)

        stats = indexer.train(repo, force=True)

        assert stats.processed == 3
        assert store.count("code") == first.code_chunks

    def test_force_keeps_nothing_from_knowledge(
        self, indexer: Indexer, store: SQLiteVectorStore, repo: Path, tmp_path: Path
    ) -> None:
        doc = tmp_path / "practices.md"
        doc.write_text("# Practices\n\nAlways validate user input before using it anywhere.\n")
        indexer.learn(doc)

        indexer.train(repo, force=True)

        assert store.count("knowledge") == 0

    def test_unreadable_file_does_not_abort(
        self, indexer: Indexer, repo: Path, manifest_path: Path
    ) -> None:
        (repo / "blob.py").write_bytes(b"\xff\xfe\x00\x01" * 64)

        stats = indexer.train(repo)

        assert stats.processed == 4
        assert read_files(manifest_path)[str((repo / "blob.py").resolve())]["chunkCount"] == 0

    def test_progress_callback(self, indexer: Indexer, repo: Path) -> None:
        events = []

        indexer.train(repo, on_progress=lambda stage, cur, total: events.append((stage, cur, total)))

        stages = {stage for stage, _, _ in events}
        assert stages == {"Scanning", "Embedding"}
        assert ("Scanning", 3, 3) in events

    def test_prediscovered_files(self, indexer: Indexer, repo: Path) -> None:
        only = [(repo / "pkg" / "util.py").resolve()]

        stats = indexer.train(repo, files=only)

        assert stats.discovered == 1
        assert stats.processed_files == only

    def test_no_sources(self, indexer: Indexer, tmp_path: Path) -> None:
        empty = tmp_path / "empty"
        empty.mkdir()
        with pytest.raises(NoSourceFilesFound):
            indexer.train(empty)

    def test_embedding_failure_aborts(
        self, store: SQLiteVectorStore, repo: Path, manifest_path: Path
    ) -> None:
        class Unreachable(FakeEmbedder):
            def embed(self, texts):
                raise ConnectionError("connection refused")

        indexer = Indexer(Unreachable(), store, manifest_path)

        with pytest.raises(EmbeddingServiceError):
            indexer.train(repo)
        assert not manifest_path.exists()


class TestLearn:
    """Knowledge ingestion."""

    def test_learn_markdown(self, indexer: Indexer, store: SQLiteVectorStore, tmp_path: Path) -> None:
        docs = tmp_path / "docs"
        docs.mkdir()
        (docs / "errors.md").write_text(
            "# Error handling\n\nAlways handle promise rejections and log them with context.\n\n"
            "## Logging\n\nUse structured logging so messages can be searched later on.\n",
            encoding="utf-8",
        )
        (docs / "notes.txt").write_text("ignored", encoding="utf-8")

        added = indexer.learn(docs)

        assert added == 2
        assert store.count("knowledge") == 2
        results = store.query(indexer.embedder.embed_query("q"), k=5, partition="knowledge")
        assert {r.metadata["section"] for r in results} == {"Error handling", "Logging"}
        assert {r.metadata["source"] for r in results} == {"errors.md"}

    def test_learn_empty(self, indexer: Indexer, tmp_path: Path) -> None:
        doc = tmp_path / "short.md"
        doc.write_text("# Hi\n", encoding="utf-8")
        assert indexer.learn(doc) == 0
