"""Heuristic filter that keeps source files worth chunking."""

from __future__ import annotations

import re
from collections.abc import Iterable
from pathlib import PurePosixPath

VALUABLE_EXTENSIONS = frozenset(
    {
        ".js", ".jsx", ".ts", ".tsx", ".vue", ".svelte",
        ".css", ".scss", ".sass", ".less", ".styl",
        ".html", ".htm",
        ".py", ".pyi", ".rb", ".php", ".java", ".c", ".h", ".cpp", ".cc", ".cxx", ".hpp",
        ".cs", ".go", ".rs", ".kt", ".scala", ".clj", ".cljs",
        ".sh", ".bash", ".zsh", ".ps1",
        ".swift", ".m", ".mm", ".dart",
        ".sql", ".graphql", ".yaml", ".yml",
        ".lua", ".pl", ".r",
    }
)

CONDITIONAL_EXTENSIONS = frozenset({".json", ".xml", ".toml", ".ini", ".conf"})

VALUABLE_NAME_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"^Dockerfile$",
        r"^Makefile$",
        r"^CMakeLists\.txt$",
        r"^\.env\.example$",
        r"^\.gitignore$",
        r"^\.eslintrc$",
        r"^\.prettierrc$",
        r"^webpack\.config\.",
        r"^rollup\.config\.",
        r"^vite\.config\.",
    )
)

MANIFEST_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern)
    for pattern in (
        r"^package\.json$",
        r"^composer\.json$",
        r"^cargo\.toml$",
        r"^pyproject\.toml$",
        r"^setup\.cfg$",
        r"^pom\.xml$",
        r"^tsconfig\.json$",
        r"^jsconfig\.json$",
        r"^.*\.config\.(js|ts|json)$",
        r"^.*rc\.(js|ts|json|yaml|yml)$",
    )
)

EXCLUDED_DIRECTORIES = frozenset(
    {
        "node_modules", "bower_components", "vendor", "packages",
        ".git", ".svn", ".hg", "CVS",
        "dist", "build", "out", "output", "public", "bin", "obj",
        "coverage", ".nyc_output", "htmlcov",
        "__pycache__", ".pytest_cache", ".tox", "venv", "env", ".env",
        ".cache", "tmp", "temp", ".tmp",
        ".vscode", ".idea", ".vs",
    }
)

EXCLUDED_FILE_NAMES = frozenset(
    {
        ".ds_store", "thumbs.db", "desktop.ini",
        "license", "license.txt", "license.md",
        "changelog", "changelog.txt", "changelog.md",
        "readme", "readme.txt", "readme.md", "readme.rst",
        "contributing", "contributing.md",
        "code_of_conduct.md", "security.md",
        "authors", "contributors", "maintainers",
    }
)

CORE_LANGUAGE_EXTENSIONS = frozenset(
    {".js", ".jsx", ".ts", ".tsx", ".py", ".java", ".c", ".cpp", ".cs", ".go", ".rs"}
)
FRONTEND_EXTENSIONS = frozenset({".vue", ".svelte", ".css", ".scss", ".sass", ".less"})
SCRIPT_EXTENSIONS = frozenset({".sh", ".bash", ".ps1", ".sql"})


def _matches_valuable_name(name: str) -> bool:
    return any(pattern.search(name) for pattern in VALUABLE_NAME_PATTERNS)


def is_valuable_manifest(path: str) -> bool:
    """Return True for recognized project manifests and tool configs."""
    name = PurePosixPath(path).name.lower()
    return any(pattern.search(name) for pattern in MANIFEST_PATTERNS)


def is_valuable(path: str) -> bool:
    """Decide whether a file carries source value worth indexing."""
    pure = PurePosixPath(path)
    name = pure.name
    lowered = name.lower()
    suffix = pure.suffix.lower()
    stem = lowered[: -len(suffix)] if suffix else lowered
    if lowered in EXCLUDED_FILE_NAMES or stem in EXCLUDED_FILE_NAMES:
        return False
    if _matches_valuable_name(name):
        return True
    if suffix in VALUABLE_EXTENSIONS:
        return True
    if suffix in CONDITIONAL_EXTENSIONS:
        return is_valuable_manifest(path)
    return False


def contains_excluded_directory(path: str) -> bool:
    """Return True when any segment of the path is a dependency or build directory."""
    return any(segment in EXCLUDED_DIRECTORIES for segment in path.split("/"))


def value_score(path: str) -> int:
    """Score a file's value from 0 (skip) to 100 (core source)."""
    if contains_excluded_directory(path) or not is_valuable(path):
        return 0
    pure = PurePosixPath(path)
    suffix = pure.suffix.lower()
    if suffix in CORE_LANGUAGE_EXTENSIONS:
        return 100
    if suffix in FRONTEND_EXTENSIONS:
        return 90
    if suffix in SCRIPT_EXTENSIONS:
        return 80
    if _matches_valuable_name(pure.name):
        return 75
    if suffix in CONDITIONAL_EXTENSIONS:
        return 60
    return 50


def value_analysis(paths: Iterable[str]) -> dict[str, object]:
    """Summarize value scores for a set of paths, grouped by extension.

    A path with score 0 counts as excluded, every other path as valuable.
    """
    valuable = 0
    excluded = 0
    totals: dict[str, list[int]] = {}
    for path in paths:
        score = value_score(path)
        if score == 0:
            excluded += 1
        else:
            valuable += 1
        suffix = PurePosixPath(path).suffix.lower() or "no_extension"
        totals.setdefault(suffix, []).append(score)
    by_type = {
        suffix: {"count": len(scores), "average_score": round(sum(scores) / len(scores), 1)}
        for suffix, scores in sorted(totals.items())
    }
    return {
        "total": valuable + excluded,
        "valuable": valuable,
        "excluded": excluded,
        "by_type": by_type,
    }
