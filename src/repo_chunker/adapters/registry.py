"""Parser registry with deterministic selection behavior."""

from __future__ import annotations

from dataclasses import dataclass, field

from repo_chunker.adapters.base import ChunkParser


@dataclass(slots=True)
class ParserRegistry:
    """Ordered parser registry with explicit fallback parser."""

    _parsers: list[ChunkParser] = field(default_factory=list)
    _fallback: ChunkParser | None = None

    def register(self, parser: ChunkParser, *, fallback: bool = False) -> None:
        """Register a parser in deterministic insertion order."""
        if fallback:
            self._fallback = parser
            return
        self._parsers.append(parser)

    def select(self, language: str) -> ChunkParser:
        """Select the first parser that supports the language, else fallback."""
        for parser in self._parsers:
            if parser.supports_language(language):
                return parser
        if self._fallback is not None:
            return self._fallback
        raise LookupError(f"No parser supports language: {language}")

    @property
    def fallback(self) -> ChunkParser | None:
        return self._fallback

    def names(self) -> tuple[str, ...]:
        """Return registered parser names in deterministic order."""
        ordered = [parser.name for parser in self._parsers]
        if self._fallback is not None:
            ordered.append(self._fallback.name)
        return tuple(ordered)
