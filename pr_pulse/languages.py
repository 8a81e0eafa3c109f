"""
Language attribution for PR file changes.
"""

from typing import Any, Iterable

from .utils import round_half_up


EXTENSION_TO_LANGUAGE = {
    # JavaScript/TypeScript
    "js": "JavaScript", "jsx": "JavaScript", "mjs": "JavaScript", "cjs": "JavaScript",
    "ts": "TypeScript", "tsx": "TypeScript", "mts": "TypeScript", "cts": "TypeScript",
    # Python
    "py": "Python", "pyw": "Python", "pyi": "Python",
    # JVM
    "java": "Java", "kt": "Kotlin", "kts": "Kotlin", "scala": "Scala", "sc": "Scala",
    # C family
    "c": "C", "h": "C",
    "cpp": "C++", "cc": "C++", "cxx": "C++", "hpp": "C++", "hxx": "C++",
    "cs": "C#",
    "go": "Go",
    "rs": "Rust",
    "rb": "Ruby", "erb": "Ruby",
    "php": "PHP",
    "swift": "Swift",
    "sh": "Shell", "bash": "Shell", "zsh": "Shell",
    "sql": "SQL",
    # Markup and styles
    "html": "HTML", "htm": "HTML",
    "css": "CSS", "scss": "SCSS", "sass": "SCSS", "less": "LESS",
    "md": "Markdown", "mdx": "Markdown", "rst": "reStructuredText",
    # Config and data
    "json": "JSON", "yaml": "YAML", "yml": "YAML", "toml": "TOML", "xml": "XML",
    # Everything else
    "vue": "Vue", "svelte": "Svelte", "dart": "Dart", "r": "R",
    "lua": "Lua", "pl": "Perl", "pm": "Perl", "ex": "Elixir", "exs": "Elixir",
    "erl": "Erlang", "hrl": "Erlang", "clj": "Clojure", "cljs": "Clojure",
    "hs": "Haskell", "ml": "OCaml", "fs": "F#", "fsx": "F#",
}

OTHER_LANGUAGE = "Other"


def language_for_path(path: str) -> str:
    """Map a file path to a language name by its extension."""
    if "." not in path:
        return OTHER_LANGUAGE
    extension = path.rsplit(".", 1)[1].lower()
    return EXTENSION_TO_LANGUAGE.get(extension, OTHER_LANGUAGE)


def attribute_languages(files: Iterable[Any]) -> dict[str, int]:
    """
    Compute the language breakdown of a PR.

    Each language gets its share of ``additions + deletions`` as an integer
    percentage. Shares are rounded independently and may not sum to 100.

    Args:
        files: Objects with ``path``, ``additions`` and ``deletions``

    Returns:
        Language name to percentage, empty when no lines changed
    """
    language_lines: dict[str, int] = {}
    for file in files:
        language = language_for_path(file.path)
        language_lines[language] = language_lines.get(language, 0) + file.additions + file.deletions

    return lines_to_percentages(language_lines)


def lines_to_percentages(language_lines: dict[str, int]) -> dict[str, int]:
    """Convert absolute line counts per language into rounded percentages."""
    total_lines = sum(language_lines.values())
    if total_lines <= 0:
        return {}

    return {
        language: round_half_up(lines / total_lines * 100)
        for language, lines in language_lines.items()
    }
