"""Grammar-backed structural parser built on tree-sitter.

Top-level syntax nodes are classified into import/class/function/variable/other
spans, adjacent spans of the same kind are merged, and the result is bounded by
the chunk size ceiling. Parse failures walk a recovery ladder before giving up.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any

from tree_sitter import Parser
from tree_sitter_language_pack import get_language

from repo_chunker.adapters.base import ParseFailure, StructuralLanguage
from repo_chunker.config import DEFAULT_MAX_CHUNK_BYTES, DEFAULT_PARSE_RETRY_LINES
from repo_chunker.index.chunking import enforce_size_ceiling, make_chunk
from repo_chunker.index.models import Chunk, ChunkType

logger = logging.getLogger(__name__)

_CONTROL_CHARACTERS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

ParserFactory = Callable[[str], Any]


@dataclass(slots=True, frozen=True)
class NodeTable:
    """Top-level node type names for one grammar."""

    imports: frozenset[str]
    classes: frozenset[str]
    functions: frozenset[str]
    variables: frozenset[str]
    assignment_statements: frozenset[str] = frozenset()
    assignments: frozenset[str] = frozenset()
    wrappers: frozenset[str] = frozenset()


_JS_TABLE = NodeTable(
    imports=frozenset({"import_statement"}),
    classes=frozenset({"class_declaration"}),
    functions=frozenset({"function_declaration", "generator_function_declaration"}),
    variables=frozenset({"lexical_declaration", "variable_declaration"}),
    assignment_statements=frozenset({"expression_statement"}),
    assignments=frozenset({"assignment_expression"}),
    wrappers=frozenset({"export_statement"}),
)

NODE_TABLES: dict[StructuralLanguage, NodeTable] = {
    StructuralLanguage.PYTHON: NodeTable(
        imports=frozenset(
            {"import_statement", "import_from_statement", "future_import_statement"}
        ),
        classes=frozenset({"class_definition"}),
        functions=frozenset({"function_definition"}),
        variables=frozenset({"assignment"}),
        assignment_statements=frozenset({"expression_statement"}),
        assignments=frozenset({"assignment", "augmented_assignment"}),
        wrappers=frozenset({"decorated_definition"}),
    ),
    StructuralLanguage.JAVASCRIPT: _JS_TABLE,
    StructuralLanguage.TYPESCRIPT: NodeTable(
        imports=_JS_TABLE.imports | {"import_alias"},
        classes=_JS_TABLE.classes
        | {
            "abstract_class_declaration",
            "interface_declaration",
            "type_alias_declaration",
            "enum_declaration",
        },
        functions=_JS_TABLE.functions | {"function_signature"},
        variables=_JS_TABLE.variables,
        assignment_statements=_JS_TABLE.assignment_statements,
        assignments=_JS_TABLE.assignments,
        wrappers=_JS_TABLE.wrappers,
    ),
}


@dataclass(slots=True, frozen=True)
class _Span:
    """Byte and line range of one classified top-level node."""

    type: ChunkType
    start_byte: int
    end_byte: int
    start_line: int
    end_line: int
    name: str | None = None


def load_tree_sitter_parser(grammar: str) -> Parser:
    """Build a tree-sitter parser for a bundled grammar name."""
    return Parser(get_language(grammar))


def grammar_for(path: str, language: StructuralLanguage) -> str:
    """Return the grammar name, using the TSX dialect for .tsx files."""
    if language is StructuralLanguage.TYPESCRIPT and PurePosixPath(path).suffix.lower() == ".tsx":
        return "tsx"
    return language.value


def sanitize_source(content: str) -> str:
    """Drop control characters and lone carriage returns, and turn CRLF into LF.

    Line numbers of the result match the LF-delimited lines of ``content``.
    """
    cleaned = _CONTROL_CHARACTERS.sub("", content)
    return cleaned.replace("\r\n", "\n").replace("\r", "")


class TreeSitterParser:
    """Structural parser for the languages in ``StructuralLanguage``."""

    name = "tree_sitter"

    def __init__(
        self,
        languages: Iterable[StructuralLanguage] = tuple(StructuralLanguage),
        *,
        max_chunk_bytes: int = DEFAULT_MAX_CHUNK_BYTES,
        parse_retry_lines: int = DEFAULT_PARSE_RETRY_LINES,
        parser_factory: ParserFactory = load_tree_sitter_parser,
    ) -> None:
        self.languages = frozenset(languages)
        self.max_chunk_bytes = max_chunk_bytes
        self.parse_retry_lines = parse_retry_lines
        self._parser_factory = parser_factory
        self._parsers: dict[str, Any] = {}

    def supports_language(self, language: str) -> bool:
        member = StructuralLanguage.from_name(language)
        return member is not None and member in self.languages

    def parse(self, path: str, content: str, language: str) -> list[Chunk]:
        """Chunk content by top-level syntax nodes.

        Raises ``ParseFailure`` when the grammar cannot be loaded. Returns an
        empty list when every recovery stage fails to parse.
        """
        member = StructuralLanguage.from_name(language)
        if member is None or member not in self.languages:
            raise ParseFailure(f"No structural grammar for language '{language}'")
        parser = self._parser_for(grammar_for(path, member))
        parsed = self._parse_with_recovery(parser, path, content)
        if parsed is None:
            return []
        source, root = parsed
        table = NODE_TABLES[member]
        spans = [self._span(node, source, table) for node in root.children]
        chunks = [
            make_chunk(
                path,
                member.value,
                span.start_line,
                span.end_line,
                source[span.start_byte : span.end_byte].decode("utf-8", errors="replace"),
                span.type,
                self.name,
                name=span.name,
            )
            for span in merge_adjacent_spans(spans)
        ]
        return enforce_size_ceiling(chunks, self.max_chunk_bytes)

    def _parser_for(self, grammar: str) -> Any:
        parser = self._parsers.get(grammar)
        if parser is not None:
            return parser
        try:
            parser = self._parser_factory(grammar)
        except Exception as error:
            raise ParseFailure(f"Cannot load tree-sitter grammar '{grammar}': {error}") from error
        self._parsers[grammar] = parser
        return parser

    def _recovery_stages(self, content: str) -> Iterator[tuple[str, str]]:
        stripped = content.replace("\x00", "")
        yield "original", stripped
        sanitized = sanitize_source(stripped)
        yield "sanitized", sanitized
        yield "truncated", "\n".join(sanitized.split("\n")[: self.parse_retry_lines])

    def _parse_with_recovery(self, parser: Any, path: str, content: str) -> tuple[bytes, Any] | None:
        for stage, candidate in self._recovery_stages(content):
            try:
                source = candidate.encode("utf-8")
                tree = parser.parse(source)
            except Exception as error:
                logger.warning("Parsing %s failed at stage '%s': %s", path, stage, error)
                continue
            if tree is None or tree.root_node is None:
                logger.warning("Parsing %s produced no tree at stage '%s'", path, stage)
                continue
            if stage == "truncated":
                logger.warning(
                    "Parsed only the first %d lines of %s", self.parse_retry_lines, path
                )
            return source, tree.root_node
        logger.error("All parse attempts failed for %s", path)
        return None

    def _span(self, node: Any, source: bytes, table: NodeTable) -> _Span:
        start_row = node.start_point[0]
        end_row = node.end_point[0]
        end_byte = node.end_byte
        if node.end_point[1] == 0 and end_row > start_row:
            end_row -= 1
            end_byte -= 1
        return _Span(
            type=classify_node(node, table),
            start_byte=node.start_byte,
            end_byte=end_byte,
            start_line=start_row + 1,
            end_line=end_row + 1,
            name=declared_name(node, source, table),
        )


def _unwrap(node: Any, table: NodeTable) -> Any | None:
    if node.type not in table.wrappers:
        return node
    inner = node.child_by_field_name("definition")
    if inner is None:
        inner = node.child_by_field_name("declaration")
    return inner


def classify_node(node: Any, table: NodeTable) -> ChunkType:
    """Map a top-level syntax node to a chunk type."""
    target = _unwrap(node, table)
    if target is None:
        return ChunkType.OTHER
    kind = target.type
    if kind in table.imports:
        return ChunkType.IMPORT
    if kind in table.classes:
        return ChunkType.CLASS
    if kind in table.functions:
        return ChunkType.FUNCTION
    if kind in table.variables:
        return ChunkType.VARIABLE
    if kind in table.assignment_statements and target.named_child_count:
        if target.named_children[0].type in table.assignments:
            return ChunkType.VARIABLE
    return ChunkType.OTHER


def declared_name(node: Any, source: bytes, table: NodeTable) -> str | None:
    """Return the declared identifier of a class, function or variable node."""
    if classify_node(node, table) in (ChunkType.IMPORT, ChunkType.OTHER):
        return None
    target = _unwrap(node, table)
    if target is None:
        return None
    if target.type in table.assignment_statements and target.named_child_count:
        target = target.named_children[0]
    name_node = target.child_by_field_name("name")
    if name_node is None:
        name_node = target.child_by_field_name("left")
    if name_node is None:
        for child in target.named_children:
            if child.type == "variable_declarator":
                name_node = child.child_by_field_name("name")
                break
    if name_node is None:
        return None
    return source[name_node.start_byte : name_node.end_byte].decode("utf-8", errors="replace")


def merge_adjacent_spans(spans: list[_Span]) -> list[_Span]:
    """Merge same-type spans separated by at most one blank line.

    The earlier span's name wins; the merged span covers the exact source range
    from the first span's start to the last span's end.
    """
    if not spans:
        return []
    ordered = sorted(spans, key=lambda item: (item.start_line, item.start_byte))
    merged: list[_Span] = []
    current = ordered[0]
    for following in ordered[1:]:
        if following.type == current.type and following.start_line <= current.end_line + 2:
            current = _Span(
                type=current.type,
                start_byte=current.start_byte,
                end_byte=max(current.end_byte, following.end_byte),
                start_line=current.start_line,
                end_line=max(current.end_line, following.end_line),
                name=current.name or following.name,
            )
            continue
        merged.append(current)
        current = following
    merged.append(current)
    return merged
