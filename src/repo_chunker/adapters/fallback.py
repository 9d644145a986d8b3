"""Generic line-window parser used when no structural parser applies."""

from __future__ import annotations

from repo_chunker.config import DEFAULT_LINES_PER_CHUNK, DEFAULT_MAX_CHUNK_BYTES
from repo_chunker.index.chunking import GENERIC_PARSER_NAME, split_generic
from repo_chunker.index.models import Chunk


class GenericSplitterParser:
    """Default parser that splits any text into bounded line windows."""

    name = GENERIC_PARSER_NAME

    def __init__(
        self,
        lines_per_chunk: int = DEFAULT_LINES_PER_CHUNK,
        max_chunk_bytes: int = DEFAULT_MAX_CHUNK_BYTES,
    ) -> None:
        self.lines_per_chunk = lines_per_chunk
        self.max_chunk_bytes = max_chunk_bytes

    def supports_language(self, language: str) -> bool:
        """Fallback supports any language."""
        _ = language
        return True

    def parse(self, path: str, content: str, language: str) -> list[Chunk]:
        return split_generic(
            path,
            content,
            language,
            lines_per_chunk=self.lines_per_chunk,
            max_chunk_bytes=self.max_chunk_bytes,
            parser=self.name,
        )
