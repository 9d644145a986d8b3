"""Line-window chunking, size-ceiling enforcement and stable chunk IDs."""

from __future__ import annotations

import hashlib

from repo_chunker.config import DEFAULT_LINES_PER_CHUNK, DEFAULT_MAX_CHUNK_BYTES
from repo_chunker.index.models import Chunk, ChunkType

GENERIC_PARSER_NAME = "generic"


def build_chunk_id(path: str, start_line: int, end_line: int) -> str:
    """Build a stable chunk identifier from path and line range."""
    digest = hashlib.sha256()
    digest.update(path.encode("utf-8"))
    digest.update(b"|")
    digest.update(str(start_line).encode("ascii"))
    digest.update(b"|")
    digest.update(str(end_line).encode("ascii"))
    return digest.hexdigest()


def make_chunk(
    path: str,
    language: str,
    start_line: int,
    end_line: int,
    content: str,
    chunk_type: ChunkType,
    parser: str,
    name: str | None = None,
) -> Chunk:
    """Create a chunk whose id derives from its path and line range."""
    return Chunk(
        id=build_chunk_id(path, start_line, end_line),
        file_path=path,
        language=language,
        start_line=start_line,
        end_line=end_line,
        content=content,
        type=chunk_type,
        parser=parser,
        name=name,
    )


def split_lines(content: str) -> list[str]:
    """Split on newlines, ignoring the empty remainder after a final newline."""
    lines = content.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def utf8_size(text: str) -> int:
    return len(text.encode("utf-8"))


def bisect_lines(start_line: int, lines: list[str], max_bytes: int) -> list[tuple[int, list[str]]]:
    """Halve a line window until every part fits ``max_bytes`` or is one line."""
    if len(lines) <= 1 or utf8_size("\n".join(lines)) <= max_bytes:
        return [(start_line, lines)]
    middle = len(lines) // 2
    return bisect_lines(start_line, lines[:middle], max_bytes) + bisect_lines(
        start_line + middle, lines[middle:], max_bytes
    )


def split_generic(
    path: str,
    content: str,
    language: str,
    *,
    lines_per_chunk: int = DEFAULT_LINES_PER_CHUNK,
    max_chunk_bytes: int = DEFAULT_MAX_CHUNK_BYTES,
    parser: str = GENERIC_PARSER_NAME,
) -> list[Chunk]:
    """Split text into consecutive line windows bounded by count and bytes.

    Blank lines before the first non-blank line are dropped and windows made
    only of blank lines are not emitted. Every other line lands in exactly one
    chunk, in order.
    """
    if lines_per_chunk < 1:
        raise ValueError("lines_per_chunk must be >= 1")
    if max_chunk_bytes < 1:
        raise ValueError("max_chunk_bytes must be >= 1")
    if not content.strip():
        return []

    lines = split_lines(content)
    first = next(index for index, line in enumerate(lines) if line.strip())

    windows: list[tuple[int, list[str]]] = []
    window: list[str] = []
    window_start = first
    window_bytes = 0
    for index in range(first, len(lines)):
        line = lines[index]
        window.append(line)
        window_bytes += utf8_size(line) + 1
        if len(window) >= lines_per_chunk or window_bytes >= max_chunk_bytes:
            windows.append((window_start + 1, window))
            window = []
            window_start = index + 1
            window_bytes = 0
    if window:
        windows.append((window_start + 1, window))

    chunks: list[Chunk] = []
    for start_line, window_lines in windows:
        for part_start, part_lines in bisect_lines(start_line, window_lines, max_chunk_bytes):
            if not any(line.strip() for line in part_lines):
                continue
            chunks.append(
                make_chunk(
                    path,
                    language,
                    part_start,
                    part_start + len(part_lines) - 1,
                    "\n".join(part_lines),
                    ChunkType.DEFAULT,
                    parser,
                )
            )
    return chunks


def enforce_size_ceiling(chunks: list[Chunk], max_chunk_bytes: int) -> list[Chunk]:
    """Re-split any chunk above the byte ceiling, keeping type and parser.

    A part can only stay above the ceiling when it is a single line.
    """
    output: list[Chunk] = []
    for chunk in chunks:
        if utf8_size(chunk.content) <= max_chunk_bytes:
            output.append(chunk)
            continue
        lines = chunk.content.split("\n")
        parts = bisect_lines(chunk.start_line, lines, max_chunk_bytes)
        for position, (part_start, part_lines) in enumerate(parts):
            output.append(
                make_chunk(
                    chunk.file_path,
                    chunk.language,
                    part_start,
                    part_start + len(part_lines) - 1,
                    "\n".join(part_lines),
                    chunk.type,
                    chunk.parser,
                    name=chunk.name if position == 0 else None,
                )
            )
    return output
