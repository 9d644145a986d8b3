"""Chunking engine that routes file content to the right parser."""

from __future__ import annotations

import logging

from repo_chunker.adapters.base import ParseFailure
from repo_chunker.adapters.fallback import GenericSplitterParser
from repo_chunker.adapters.registry import ParserRegistry
from repo_chunker.adapters.runtime import build_parser_registry
from repo_chunker.adapters.whole_file import WholeFileParser
from repo_chunker.config import ChunkingConfig
from repo_chunker.index.models import Chunk

logger = logging.getLogger(__name__)


class ChunkingEngine:
    """Turns one file's content into ordered chunks and never raises."""

    def __init__(self, config: ChunkingConfig, registry: ParserRegistry | None = None) -> None:
        self.config = config
        self.registry = registry or build_parser_registry(config)
        self._generic = GenericSplitterParser(
            lines_per_chunk=config.lines_per_chunk,
            max_chunk_bytes=config.max_chunk_bytes,
        )
        self._whole_file = WholeFileParser()

    def chunk(
        self,
        path: str,
        content: str | None,
        language: str | None = None,
        *,
        is_binary: bool = False,
    ) -> list[Chunk]:
        """Chunk content, falling back to generic splitting on parser failure."""
        if not content or not content.strip():
            return []
        resolved_language = language or self.config.language_for(path)
        if is_binary:
            return self._whole_file.parse(path, content, resolved_language)

        try:
            parser = self.registry.select(resolved_language)
        except LookupError:
            parser = self._generic
        try:
            chunks = parser.parse(path, content, resolved_language)
        except ParseFailure as error:
            logger.warning("%s; splitting %s generically", error, path)
            chunks = self._split_generic(path, content, resolved_language)
        except Exception:
            logger.exception("Parser %s failed on %s; splitting generically", parser.name, path)
            chunks = self._split_generic(path, content, resolved_language)
        return sorted(chunks, key=lambda item: (item.start_line, item.end_line))

    def _split_generic(self, path: str, content: str, language: str) -> list[Chunk]:
        try:
            return self._generic.parse(path, content, language)
        except Exception:
            logger.exception("Generic splitting failed on %s", path)
            return []
