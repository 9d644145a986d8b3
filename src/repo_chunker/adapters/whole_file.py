"""Parser that emits a file's content as one chunk."""

from __future__ import annotations

from repo_chunker.index.chunking import make_chunk, split_lines
from repo_chunker.index.models import Chunk, ChunkType


class WholeFileParser:
    """Emits a single ``file`` chunk; used for binary placeholders."""

    name = "whole_file"

    def supports_language(self, language: str) -> bool:
        _ = language
        return True

    def parse(self, path: str, content: str, language: str) -> list[Chunk]:
        if not content.strip():
            return []
        line_count = max(1, len(split_lines(content)))
        return [make_chunk(path, language, 1, line_count, content, ChunkType.FILE, self.name)]
