"""Core chunk parser protocol and shared types."""

from __future__ import annotations

from enum import StrEnum
from typing import Protocol

from repo_chunker.index.models import Chunk


class StructuralLanguage(StrEnum):
    """Languages with a grammar-backed structural parser."""

    PYTHON = "python"
    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"

    @classmethod
    def from_name(cls, name: str) -> StructuralLanguage | None:
        """Return the member for a language name, or None when unsupported."""
        try:
            return cls(name.strip().lower())
        except ValueError:
            return None


class ParseFailure(Exception):
    """Raised when a parser cannot handle content and another should be tried."""


class ChunkParser(Protocol):
    """Protocol implemented by chunk parsers."""

    name: str

    def supports_language(self, language: str) -> bool:
        """Return True when the parser handles a language."""

    def parse(self, path: str, content: str, language: str) -> list[Chunk]:
        """Split content into chunks ordered by start line."""
