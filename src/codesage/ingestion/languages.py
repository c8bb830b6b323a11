"""Language detection and per-language line pattern tables.

Every table is keyed by :class:`Language` and paired with a generic
fallback, so a newly added language works before it has curated patterns.
"""

from __future__ import annotations

import re
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet


class Language(str, Enum):
    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"
    PYTHON = "python"
    GO = "go"
    RUST = "rust"
    JAVA = "java"
    C = "c"
    CPP = "cpp"
    RUBY = "ruby"
    PHP = "php"
    CSHARP = "csharp"
    SWIFT = "swift"
    KOTLIN = "kotlin"
    SCALA = "scala"
    HASKELL = "haskell"
    ELIXIR = "elixir"
    ERLANG = "erlang"
    SHELL = "shell"
    LUA = "lua"
    PERL = "perl"
    R = "r"
    DART = "dart"
    SQL = "sql"
    GROOVY = "groovy"
    CLOJURE = "clojure"
    FSHARP = "fsharp"
    OCAML = "ocaml"
    JULIA = "julia"
    ZIG = "zig"
    NIM = "nim"
    V = "v"
    CRYSTAL = "crystal"
    ELM = "elm"
    PURESCRIPT = "purescript"
    TERRAFORM = "terraform"
    DOCKERFILE = "dockerfile"
    MAKEFILE = "makefile"
    YAML = "yaml"
    TOML = "toml"
    MARKDOWN = "markdown"
    TEXT = "text"
    UNKNOWN = "unknown"


L = Language

EXTENSION_MAP: Dict[str, Language] = {
    # JavaScript / TypeScript
    ".js": L.JAVASCRIPT,
    ".jsx": L.JAVASCRIPT,
    ".mjs": L.JAVASCRIPT,
    ".cjs": L.JAVASCRIPT,
    ".ts": L.TYPESCRIPT,
    ".tsx": L.TYPESCRIPT,
    # Python
    ".py": L.PYTHON,
    ".pyw": L.PYTHON,
    ".pyi": L.PYTHON,
    ".go": L.GO,
    ".rs": L.RUST,
    # JVM
    ".java": L.JAVA,
    ".kt": L.KOTLIN,
    ".kts": L.KOTLIN,
    ".scala": L.SCALA,
    ".groovy": L.GROOVY,
    ".gvy": L.GROOVY,
    ".clj": L.CLOJURE,
    ".cljs": L.CLOJURE,
    ".cljc": L.CLOJURE,
    ".edn": L.CLOJURE,
    # C / C++
    ".c": L.C,
    ".h": L.C,
    ".cpp": L.CPP,
    ".cc": L.CPP,
    ".cxx": L.CPP,
    ".hpp": L.CPP,
    ".hh": L.CPP,
    ".hxx": L.CPP,
    # .NET
    ".cs": L.CSHARP,
    ".fs": L.FSHARP,
    ".fsx": L.FSHARP,
    ".swift": L.SWIFT,
    # Ruby / PHP
    ".rb": L.RUBY,
    ".rake": L.RUBY,
    ".gemspec": L.RUBY,
    ".php": L.PHP,
    # Shell
    ".sh": L.SHELL,
    ".bash": L.SHELL,
    ".zsh": L.SHELL,
    ".fish": L.SHELL,
    # Functional
    ".hs": L.HASKELL,
    ".lhs": L.HASKELL,
    ".ex": L.ELIXIR,
    ".exs": L.ELIXIR,
    ".erl": L.ERLANG,
    ".hrl": L.ERLANG,
    ".elm": L.ELM,
    ".purs": L.PURESCRIPT,
    ".ml": L.OCAML,
    ".mli": L.OCAML,
    # Scripting
    ".lua": L.LUA,
    ".pl": L.PERL,
    ".pm": L.PERL,
    ".r": L.R,
    ".jl": L.JULIA,
    ".dart": L.DART,
    # Systems
    ".zig": L.ZIG,
    ".nim": L.NIM,
    ".v": L.V,
    ".cr": L.CRYSTAL,
    ".sql": L.SQL,
    # Config / IaC
    ".tf": L.TERRAFORM,
    ".hcl": L.TERRAFORM,
    ".yml": L.YAML,
    ".yaml": L.YAML,
    ".toml": L.TOML,
    ".mk": L.MAKEFILE,
    # Docs
    ".md": L.MARKDOWN,
    ".mdx": L.MARKDOWN,
    ".txt": L.TEXT,
    ".rst": L.TEXT,
}

# Conventional build/config files without an extension
FILENAME_MAP: Dict[str, Language] = {
    "Dockerfile": L.DOCKERFILE,
    "Makefile": L.MAKEFILE,
    "GNUmakefile": L.MAKEFILE,
    "Rakefile": L.RUBY,
    "Gemfile": L.RUBY,
    "Vagrantfile": L.RUBY,
    "Procfile": L.TEXT,
}


def detect_language(path: Path | str) -> Language:
    """Map a file name to its language, checking whole file names first."""
    name = Path(path).name
    by_name = FILENAME_MAP.get(name)
    if by_name is not None:
        return by_name
    return EXTENSION_MAP.get(Path(name).suffix.lower(), L.UNKNOWN)


def supported_extensions() -> FrozenSet[str]:
    return frozenset(EXTENSION_MAP)


def supported_filenames() -> FrozenSet[str]:
    return frozenset(FILENAME_MAP)


def is_supported(path: Path | str) -> bool:
    return detect_language(path) is not L.UNKNOWN


def _rx(pattern: str, flags: int = 0) -> re.Pattern[str]:
    return re.compile(pattern, flags)


# Lines that start a logical unit (function, class, type)
BOUNDARY_PATTERNS: Dict[Language, re.Pattern[str]] = {
    L.JAVASCRIPT: _rx(
        r"^\s*(export\s+)?(async\s+)?function\s|^\s*(export\s+)?(default\s+)?class\s"
        r"|^\s*module\.exports"
    ),
    L.TYPESCRIPT: _rx(
        r"^\s*(export\s+)?(async\s+)?function\s"
        r"|^\s*(export\s+)?(default\s+)?(abstract\s+)?class\s"
        r"|^\s*(export\s+)?interface\s|^\s*(export\s+)?type\s+\w+\s*="
    ),
    L.PYTHON: _rx(r"^(def\s|class\s|async\s+def\s|@\w)"),
    L.GO: _rx(r"^func\s|^type\s+\w+\s+(struct|interface)\s"),
    L.RUST: _rx(r"^(pub\s+)?(fn\s|struct\s|enum\s|impl\s|trait\s|mod\s)"),
    L.JAVA: _rx(
        r"^\s*(public|private|protected|static|final|abstract)\s.*(class|interface|enum|void|static)\s"
    ),
    L.C: _rx(r"^[\w*]+\s+\w+\s*\(|^(struct|enum|typedef|union)\s"),
    L.CPP: _rx(r"^[\w*:]+\s+[\w:]+\s*\(|^(struct|class|enum|typedef|namespace|template)\s"),
    L.RUBY: _rx(r"^(def\s|class\s|module\s)"),
    L.PHP: _rx(r"^\s*(public|private|protected)?\s*(static\s+)?(function\s|class\s)"),
    L.CSHARP: _rx(
        r"^\s*(public|private|protected|internal|static|abstract)\s.*(class|interface|struct|enum|void)\s"
    ),
    L.SWIFT: _rx(r"^\s*(func\s|class\s|struct\s|enum\s|protocol\s|extension\s)"),
    L.KOTLIN: _rx(r"^\s*(fun\s|class\s|object\s|interface\s|data\s+class\s)"),
    L.SCALA: _rx(r"^\s*(def\s|class\s|object\s|trait\s|case\s+class\s)"),
    L.HASKELL: _rx(r"^\w+\s*::|\b(module|data|type|newtype|class|instance)\s"),
    L.ELIXIR: _rx(r"^\s*(def\s|defp\s|defmodule\s|defimpl\s|defprotocol\s)"),
    L.ERLANG: _rx(r"^-module\(|^\w+\s*\("),
    L.SHELL: _rx(r"^\w+\s*\(\s*\)\s*\{|^function\s+\w+"),
    L.LUA: _rx(r"^\s*(local\s+)?function\s"),
    L.PERL: _rx(r"^\s*sub\s+\w+|^\s*package\s"),
    L.R: _rx(r"^\s*\w+\s*<-\s*function\s*\("),
    L.DART: _rx(r"^\s*(class\s|void\s|Future|Stream|\w+\s+\w+\s*\()"),
    L.SQL: _rx(
        r"^\s*(CREATE|ALTER|DROP|SELECT|INSERT|UPDATE|DELETE|WITH|FUNCTION|PROCEDURE|TRIGGER)\s",
        re.IGNORECASE,
    ),
    L.GROOVY: _rx(r"^\s*(def\s|class\s|interface\s)"),
    L.CLOJURE: _rx(r"^\s*\(defn?\s|\(defmacro\s|\(ns\s"),
    L.FSHARP: _rx(r"^\s*(let\s|type\s|module\s|open\s)"),
    L.OCAML: _rx(r"^\s*(let\s|type\s|module\s|open\s|val\s)"),
    L.JULIA: _rx(r"^\s*(function\s|struct\s|mutable\s+struct\s|macro\s|module\s)"),
    L.ZIG: _rx(r"^\s*(pub\s+)?(fn\s|const\s+\w+\s*=\s*struct)"),
    L.NIM: _rx(r"^\s*(proc\s|func\s|method\s|type\s)"),
    L.V: _rx(r"^\s*(fn\s|struct\s|pub\s+fn\s)"),
    L.CRYSTAL: _rx(r"^\s*(def\s|class\s|module\s|struct\s)"),
    L.ELM: _rx(r"^\w+\s*:|^type\s|^module\s"),
    L.PURESCRIPT: _rx(r"^\w+\s*::|\b(module|data|type|class|instance)\s"),
    L.TERRAFORM: _rx(r"^\s*(resource|data|variable|output|module|provider|locals)\s"),
    L.DOCKERFILE: _rx(r"^(FROM|RUN|CMD|ENTRYPOINT|COPY|ADD|ENV|EXPOSE|WORKDIR)\s", re.IGNORECASE),
    L.MAKEFILE: _rx(r"^[\w.-]+\s*:"),
    L.YAML: _rx(r"^\w[\w.-]*:"),
    L.TOML: _rx(r"^\[[\w.-]+\]"),
    L.MARKDOWN: _rx(r"^#{1,3}\s"),
}

GENERIC_BOUNDARY = _rx(
    r"^(function|class|def|fn|pub|export|module|type|struct|enum|impl|trait|interface)\s"
)

# Lines that pull in other modules
IMPORT_PATTERNS: Dict[Language, re.Pattern[str]] = {
    L.JAVASCRIPT: _rx(r"^\s*(import\s|const\s+\w+\s*=\s*require|require\s*\()"),
    L.TYPESCRIPT: _rx(r"^\s*(import\s|const\s+\w+\s*=\s*require)"),
    L.PYTHON: _rx(r"^\s*(import\s|from\s+[\w.])"),
    L.GO: _rx(r"^\s*(import\s|package\s)"),
    L.RUST: _rx(r"^\s*(use\s|extern\s+crate)"),
    L.JAVA: _rx(r"^\s*(import\s|package\s)"),
    L.C: _rx(r"^\s*#\s*include\s"),
    L.CPP: _rx(r"^\s*#\s*include\s|^\s*using\s"),
    L.RUBY: _rx(r"^\s*(require\s|require_relative\s)"),
    L.PHP: _rx(r"^\s*(use\s|require\s|include\s)"),
    L.CSHARP: _rx(r"^\s*using\s"),
    L.SWIFT: _rx(r"^\s*import\s"),
    L.KOTLIN: _rx(r"^\s*(import\s|package\s)"),
    L.SCALA: _rx(r"^\s*(import\s|package\s)"),
    L.HASKELL: _rx(r"^\s*import\s"),
    L.ELIXIR: _rx(r"^\s*(import\s|alias\s|use\s|require\s)"),
    L.ERLANG: _rx(r"^-include"),
    L.SHELL: _rx(r"^\s*(source\s|\.\s)"),
    L.LUA: _rx(r"^\s*(require|local\s+\w+\s*=\s*require)"),
    L.PERL: _rx(r"^\s*(use\s|require\s)"),
    L.R: _rx(r"^\s*(library|require)\s*\("),
    L.DART: _rx(r"^\s*import\s"),
    L.GROOVY: _rx(r"^\s*import\s"),
    L.CLOJURE: _rx(r"^\s*\(:require|\(require\s"),
    L.FSHARP: _rx(r"^\s*open\s"),
    L.OCAML: _rx(r"^\s*open\s"),
    L.JULIA: _rx(r"^\s*(using\s|import\s)"),
    L.ZIG: _rx(r"^\s*const\s+\w+\s*=\s*@import"),
    L.NIM: _rx(r"^\s*import\s"),
    L.V: _rx(r"^\s*import\s"),
    L.CRYSTAL: _rx(r"^\s*require\s"),
    L.ELM: _rx(r"^\s*import\s"),
    L.PURESCRIPT: _rx(r"^\s*import\s"),
    L.TERRAFORM: _rx(r"^\s*(source|required_providers)\s"),
}

GENERIC_IMPORT = _rx(r"^\s*(import|require|include|use|from)\s")

# Class or type declarations, checked before the boundary pattern
CLASS_PATTERNS: Dict[Language, re.Pattern[str]] = {
    L.JAVASCRIPT: _rx(r"^\s*(export\s+)?(default\s+)?class\s"),
    L.TYPESCRIPT: _rx(r"^\s*(export\s+)?(default\s+)?(abstract\s+)?(class|interface)\s"),
    L.GO: _rx(r"^type\s+\w+\s+(struct|interface)\s"),
    L.RUST: _rx(r"^(pub\s+)?(struct|enum|trait)\s"),
    L.JAVA: _rx(
        r"^\s*((public|private|protected|static|final|abstract|sealed)\s+)*"
        r"(class|interface|enum|record)\s"
    ),
    L.CSHARP: _rx(
        r"^\s*((public|private|protected|internal|static|abstract|sealed|partial)\s+)*"
        r"(class|interface|struct|enum|record)\s"
    ),
    L.KOTLIN: _rx(r"^\s*((data|sealed|open|abstract|enum)\s+)?class\s|^\s*(object|interface)\s"),
    L.SCALA: _rx(r"^\s*(case\s+)?class\s|^\s*(object|trait)\s"),
    L.SWIFT: _rx(r"^\s*(class|struct|enum|protocol)\s"),
    L.CPP: _rx(r"^\s*(class|struct)\s"),
    L.RUBY: _rx(r"^\s*(class|module)\s"),
    L.PHP: _rx(r"^\s*((abstract|final)\s+)?class\s|^\s*(interface|trait)\s"),
    L.HASKELL: _rx(r"^(data|newtype|class)\s"),
    L.ELIXIR: _rx(r"^\s*defmodule\s"),
}

GENERIC_CLASS = _rx(r"^\s*(class\s|abstract\s+class\s|data\s+class\s)")


def boundary_pattern(language: Language) -> re.Pattern[str]:
    return BOUNDARY_PATTERNS.get(language, GENERIC_BOUNDARY)


def import_pattern(language: Language) -> re.Pattern[str]:
    return IMPORT_PATTERNS.get(language, GENERIC_IMPORT)


def class_pattern(language: Language) -> re.Pattern[str]:
    return CLASS_PATTERNS.get(language, GENERIC_CLASS)
