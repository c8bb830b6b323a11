"""Tests for source file discovery."""

from __future__ import annotations

from pathlib import Path

import pytest

from codesage.errors import InvalidPath, NoSourceFilesFound, UnsupportedFileType
from codesage.utils.files import (
    discover_files,
    is_ignored,
    parse_ignore_rules,
    translate_ignore_rule,
)


def touch(root: Path, relative: str, content: str = "x = 1\n") -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def names(root: Path, paths: list[Path]) -> list[str]:
    base = root.resolve()
    return [path.relative_to(base).as_posix() for path in paths]


class TestIgnoreRules:
    """Test .gitignore line handling."""

    def test_skips_comments_and_blanks(self) -> None:
        assert [translate_ignore_rule(line) for line in ("# comment", "", "   ", "/")] == [
            None,
            None,
            None,
            None,
        ]

    def test_trailing_slash_is_anchored(self) -> None:
        assert translate_ignore_rule("generated/") == "/generated/"
        assert translate_ignore_rule("!generated/") == "!/generated/"

    def test_other_rules_match_at_any_depth(self) -> None:
        assert translate_ignore_rule("/out") == "**/out"
        assert translate_ignore_rule("gen/tmp") == "**/gen/tmp"
        assert translate_ignore_rule("*.log  ") == "**/*.log"
        assert translate_ignore_rule("!keep.py") == "!**/keep.py"

    def test_rule_matching(self) -> None:
        spec = parse_ignore_rules(["generated/", "secret"])

        assert is_ignored(spec, ("generated",), is_dir=True)
        assert is_ignored(spec, ("generated", "a.py"))
        assert not is_ignored(spec, ("src", "generated"), is_dir=True)
        assert is_ignored(spec, ("src", "secret", "a.py"))
        assert not is_ignored(spec, ("src", "secrets.py"))

    def test_without_ignore_file(self) -> None:
        assert not is_ignored(None, ("anything.py",))


class TestDiscoverFiles:
    """Test discover_files over directories and single files."""

    def test_single_supported_file(self, tmp_path: Path) -> None:
        source = touch(tmp_path, "main.py")
        assert discover_files(source) == [source.resolve()]

    def test_single_unsupported_file(self, tmp_path: Path) -> None:
        image = touch(tmp_path, "logo.png")
        with pytest.raises(UnsupportedFileType):
            discover_files(image)

    def test_missing_path(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidPath):
            discover_files(tmp_path / "missing")

    def test_empty_directory(self, tmp_path: Path) -> None:
        with pytest.raises(NoSourceFilesFound):
            discover_files(tmp_path)

    def test_directory_without_sources(self, tmp_path: Path) -> None:
        touch(tmp_path, "logo.png")
        with pytest.raises(NoSourceFilesFound):
            discover_files(tmp_path)

    def test_sorted_absolute_paths(self, tmp_path: Path) -> None:
        touch(tmp_path, "b.ts")
        touch(tmp_path, "a.py")
        touch(tmp_path, "src/z.go")
        touch(tmp_path, "Makefile", "all:\n")

        paths = discover_files(tmp_path)

        assert all(path.is_absolute() for path in paths)
        assert paths == sorted(paths)
        assert names(tmp_path, paths) == ["Makefile", "a.py", "b.ts", "src/z.go"]

    def test_builtin_ignores(self, tmp_path: Path) -> None:
        touch(tmp_path, "app.js")
        touch(tmp_path, "node_modules/lib/index.js")
        touch(tmp_path, "dist/app.js")
        touch(tmp_path, "pkg/__pycache__/mod.py")
        touch(tmp_path, ".venv/lib/site.py")
        touch(tmp_path, "vendor.min.js")
        touch(tmp_path, "types.d.ts")
        touch(tmp_path, "Cargo.lock")
        touch(tmp_path, ".env.local")

        assert names(tmp_path, discover_files(tmp_path)) == ["app.js"]

    def test_gitignore_rules(self, tmp_path: Path) -> None:
        touch(tmp_path, ".gitignore", "# generated code\n\ngenerated/\nsecret\n*.gen.py\n")
        touch(tmp_path, "keep.py")
        touch(tmp_path, "generated/out.py")
        touch(tmp_path, "src/generated/nested.py")
        touch(tmp_path, "src/secret/key.py")
        touch(tmp_path, "src/model.gen.py")

        assert names(tmp_path, discover_files(tmp_path)) == ["keep.py", "src/generated/nested.py"]

    def test_deterministic_order(self, tmp_path: Path) -> None:
        for name in ("c.py", "a/b.py", "a/a.rs", "d.sql"):
            touch(tmp_path, name)

        assert discover_files(tmp_path) == discover_files(tmp_path)

    def test_negated_gitignore_rule(self, tmp_path: Path) -> None:
        touch(tmp_path, ".gitignore", "*.sql\n!schema.sql\n")
        touch(tmp_path, "main.py")
        touch(tmp_path, "dump.sql")
        touch(tmp_path, "db/schema.sql")

        assert names(tmp_path, discover_files(tmp_path)) == ["db/schema.sql", "main.py"]

    def test_leading_and_inner_slash_rules_match_nested(self, tmp_path: Path) -> None:
        touch(tmp_path, ".gitignore", "/out\ngen/tmp\n")
        touch(tmp_path, "keep.py")
        touch(tmp_path, "out/top.py")
        touch(tmp_path, "src/out/a.py")
        touch(tmp_path, "pkg/gen/tmp/b.py")
        touch(tmp_path, "pkg/gen/other.py")

        assert names(tmp_path, discover_files(tmp_path)) == ["keep.py", "pkg/gen/other.py"]
