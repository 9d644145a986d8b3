from __future__ import annotations

from dataclasses import dataclass

from repo_chunker.adapters import (
    ChunkingEngine,
    GenericSplitterParser,
    ParserRegistry,
    build_parser_registry,
)
from repo_chunker.config import ChunkingConfig
from repo_chunker.index.models import Chunk, ChunkType


@dataclass(slots=True)
class ExplodingParser:
    name: str = "exploding"

    def supports_language(self, language: str) -> bool:
        return language == "python"

    def parse(self, path: str, content: str, language: str) -> list[Chunk]:
        raise RuntimeError(f"cannot parse {path}")


def test_structural_languages_use_the_tree_sitter_parser() -> None:
    engine = ChunkingEngine(ChunkingConfig())

    chunks = engine.chunk("pkg/mod.py", "import os\n\n\ndef run():\n    return 1\n")

    assert [(str(chunk.type), chunk.parser) for chunk in chunks] == [
        ("import", "tree_sitter"),
        ("function", "tree_sitter"),
    ]
    assert all(chunk.language == "python" for chunk in chunks)


def test_other_languages_are_split_generically() -> None:
    engine = ChunkingEngine(ChunkingConfig())
    content = "".join(f"fn_{n}()\n" for n in range(20))

    chunks = engine.chunk("src/main.go", content)

    assert [(chunk.start_line, chunk.end_line) for chunk in chunks] == [(1, 15), (16, 20)]
    assert all(chunk.parser == "generic" for chunk in chunks)
    assert all(chunk.language == "go" for chunk in chunks)


def test_unmapped_extensions_are_unknown_language() -> None:
    engine = ChunkingEngine(ChunkingConfig())

    (chunk,) = engine.chunk("Dockerfile", "FROM python:3.12\n")

    assert chunk.language == "unknown"
    assert chunk.type is ChunkType.DEFAULT


def test_binary_placeholders_become_one_file_chunk() -> None:
    engine = ChunkingEngine(ChunkingConfig())
    placeholder = "[BINARY FILE: 12 bytes, type: image]"

    (chunk,) = engine.chunk("logo.png", placeholder, is_binary=True)

    assert chunk.type is ChunkType.FILE
    assert chunk.parser == "whole_file"
    assert (chunk.start_line, chunk.end_line) == (1, 1)
    assert chunk.content == placeholder


def test_empty_content_has_no_chunks() -> None:
    engine = ChunkingEngine(ChunkingConfig())

    assert engine.chunk("a.py", "") == []
    assert engine.chunk("a.py", None) == []
    assert engine.chunk("a.py", "\n\n  \n") == []


def test_parser_errors_fall_back_to_generic_splitting() -> None:
    registry = ParserRegistry()
    registry.register(ExplodingParser())
    registry.register(GenericSplitterParser(), fallback=True)
    engine = ChunkingEngine(ChunkingConfig(), registry=registry)

    chunks = engine.chunk("a.py", "x = 1\ny = 2\n")

    assert [(chunk.start_line, chunk.end_line, chunk.parser) for chunk in chunks] == [
        (1, 2, "generic")
    ]
    assert chunks[0].language == "python"


def test_missing_grammar_falls_back_to_generic_splitting() -> None:
    def broken_factory(grammar: str) -> object:
        raise OSError(f"no grammar {grammar}")

    config = ChunkingConfig(lines_per_chunk=2)
    engine = ChunkingEngine(config, registry=build_parser_registry(config, broken_factory))

    chunks = engine.chunk("a.py", "a = 1\nb = 2\nc = 3\n")

    assert [(chunk.start_line, chunk.end_line) for chunk in chunks] == [(1, 2), (3, 3)]
    assert all(chunk.parser == "generic" for chunk in chunks)


def test_explicit_language_overrides_extension_mapping() -> None:
    engine = ChunkingEngine(ChunkingConfig())

    chunks = engine.chunk("script", "def run():\n    return 1\n", "python")

    assert [chunk.name for chunk in chunks] == ["run"]


def test_registry_without_fallback_still_splits_generically() -> None:
    engine = ChunkingEngine(ChunkingConfig(), registry=ParserRegistry())

    chunks = engine.chunk("notes.txt", "hello\n", "unknown")

    assert [(chunk.start_line, chunk.end_line, str(chunk.type)) for chunk in chunks] == [
        (1, 1, "default")
    ]
    assert (chunks[0].content, chunks[0].parser) == ("hello", "generic")
