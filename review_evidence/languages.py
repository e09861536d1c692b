"""File-extension based language classification used by retrieval reranking."""

from __future__ import annotations

from typing import Dict, Iterable, List

UNKNOWN_LANGUAGE = "unknown"

# extension -> canonical lower-case language name
EXTENSION_LANGUAGE_MAP: Dict[str, str] = {
    "ts": "typescript",
    "tsx": "typescript",
    "mts": "typescript",
    "cts": "typescript",
    "js": "javascript",
    "jsx": "javascript",
    "mjs": "javascript",
    "cjs": "javascript",
    "py": "python",
    "pyw": "python",
    "go": "go",
    "rs": "rust",
    "java": "java",
    "kt": "kotlin",
    "kts": "kotlin",
    "swift": "swift",
    "cs": "csharp",
    "cpp": "cpp",
    "cc": "cpp",
    "cxx": "cpp",
    "hpp": "cpp",
    "hxx": "cpp",
    "c": "c",
    "h": "c",
    "rb": "ruby",
    "php": "php",
    "scala": "scala",
    "sh": "shell",
    "bash": "shell",
    "zsh": "shell",
    "sql": "sql",
    "dart": "dart",
    "lua": "lua",
    "ex": "elixir",
    "exs": "elixir",
    "zig": "zig",
    "r": "r",
    "m": "objectivec",
    "mm": "objectivecpp",
    "pl": "perl",
    "pm": "perl",
    "clj": "clojure",
    "cljs": "clojure",
    "cljc": "clojure",
    "erl": "erlang",
    "hrl": "erlang",
    "hs": "haskell",
    "ml": "ocaml",
    "mli": "ocaml",
    "fs": "fsharp",
    "fsx": "fsharp",
    "fsi": "fsharp",
    "jl": "julia",
    "groovy": "groovy",
    "gvy": "groovy",
    "v": "verilog",
    "sv": "verilog",
    "vhd": "vhdl",
    "vhdl": "vhdl",
    "cmake": "cmake",
}

# Partial-affinity table. Lookups go through are_related_languages(), which
# checks both directions, so one-sided entries are still symmetric in effect.
RELATED_LANGUAGES: Dict[str, List[str]] = {
    "c": ["cpp"],
    "cpp": ["c"],
    "typescript": ["javascript"],
    "javascript": ["typescript"],
    "objectivec": ["c", "cpp"],
    "objectivecpp": ["c", "cpp", "objectivec"],
    "kotlin": ["java"],
    "java": ["kotlin"],
}

_CPP_EXTENSIONS = frozenset({"cpp", "cc", "cxx", "hpp", "hxx"})

# Display names that do not survive plain lower-casing.
_LANGUAGE_ALIASES: Dict[str, str] = {
    "c++": "cpp",
    "c#": "csharp",
    "f#": "fsharp",
    "objective-c": "objectivec",
    "objective-c++": "objectivecpp",
    "js": "javascript",
    "ts": "typescript",
    "golang": "go",
}


def normalize_language(name: str | None) -> str:
    """Map a display or stored language name to its canonical lower-case form."""
    if not name:
        return UNKNOWN_LANGUAGE
    lowered = name.strip().lower()
    if not lowered:
        return UNKNOWN_LANGUAGE
    return _LANGUAGE_ALIASES.get(lowered, lowered)


def _extension(file_path: str) -> str | None:
    base = file_path.rsplit("/", 1)[-1]
    if "." not in base:
        return None
    ext = base.rsplit(".", 1)[-1]
    return ext or None


def classify_file_language(
    file_path: str | None, context_files: Iterable[str] | None = None
) -> str:
    """Infer a language from a file path extension.

    ``.h`` headers are C unless ``context_files`` contains C++ sources.
    Returns ``"unknown"`` when the extension is not recognised.
    """
    if not file_path:
        return UNKNOWN_LANGUAGE
    ext = _extension(file_path)
    if ext is None:
        return UNKNOWN_LANGUAGE

    if ext.lower() == "h" and context_files:
        for other in context_files:
            other_ext = _extension(other)
            if other_ext and other_ext.lower() in _CPP_EXTENSIONS:
                return "cpp"
        return "c"

    return EXTENSION_LANGUAGE_MAP.get(ext.lower(), UNKNOWN_LANGUAGE)


def are_related_languages(a: str, b: str) -> bool:
    a_norm = normalize_language(a)
    b_norm = normalize_language(b)
    if UNKNOWN_LANGUAGE in (a_norm, b_norm) or a_norm == b_norm:
        return False
    return b_norm in RELATED_LANGUAGES.get(a_norm, ()) or a_norm in RELATED_LANGUAGES.get(
        b_norm, ()
    )
