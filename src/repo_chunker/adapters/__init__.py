"""Chunk parsers, parser registry and chunking engine."""

from .base import ChunkParser, ParseFailure, StructuralLanguage
from .engine import ChunkingEngine
from .fallback import GenericSplitterParser
from .registry import ParserRegistry
from .runtime import build_parser_registry, structural_languages
from .structural import TreeSitterParser, classify_node, merge_adjacent_spans
from .whole_file import WholeFileParser

__all__ = [
    "ChunkParser",
    "ChunkingEngine",
    "GenericSplitterParser",
    "ParseFailure",
    "ParserRegistry",
    "StructuralLanguage",
    "TreeSitterParser",
    "WholeFileParser",
    "build_parser_registry",
    "classify_node",
    "merge_adjacent_spans",
    "structural_languages",
]
