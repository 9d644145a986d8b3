"""Runtime parser registry construction."""

from __future__ import annotations

import logging

from repo_chunker.adapters.base import StructuralLanguage
from repo_chunker.adapters.fallback import GenericSplitterParser
from repo_chunker.adapters.registry import ParserRegistry
from repo_chunker.adapters.structural import (
    ParserFactory,
    TreeSitterParser,
    load_tree_sitter_parser,
)
from repo_chunker.config import ChunkingConfig

logger = logging.getLogger(__name__)


def structural_languages(config: ChunkingConfig) -> tuple[StructuralLanguage, ...]:
    """Resolve configured structural language names, dropping unsupported ones."""
    resolved: list[StructuralLanguage] = []
    for name in config.structural_languages:
        member = StructuralLanguage.from_name(name)
        if member is None:
            logger.warning("No structural parser for language '%s'; using generic splitting", name)
            continue
        if member not in resolved:
            resolved.append(member)
    return tuple(resolved)


def build_parser_registry(
    config: ChunkingConfig,
    parser_factory: ParserFactory = load_tree_sitter_parser,
) -> ParserRegistry:
    """Build parser registry from effective chunking config."""
    registry = ParserRegistry()
    languages = structural_languages(config)
    if languages:
        registry.register(
            TreeSitterParser(
                languages,
                max_chunk_bytes=config.max_chunk_bytes,
                parse_retry_lines=config.parse_retry_lines,
                parser_factory=parser_factory,
            )
        )
    registry.register(
        GenericSplitterParser(
            lines_per_chunk=config.lines_per_chunk,
            max_chunk_bytes=config.max_chunk_bytes,
        ),
        fallback=True,
    )
    return registry
