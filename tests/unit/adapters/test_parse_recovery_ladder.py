from __future__ import annotations

from dataclasses import dataclass, field
from types import SimpleNamespace

import pytest

from repo_chunker.adapters import ParseFailure, StructuralLanguage, TreeSitterParser


@dataclass(slots=True)
class FakeNode:
    type: str
    start_byte: int
    end_byte: int
    start_point: tuple[int, int]
    end_point: tuple[int, int]
    children: list[FakeNode] = field(default_factory=list)

    @property
    def named_children(self) -> list[FakeNode]:
        return self.children

    @property
    def named_child_count(self) -> int:
        return len(self.children)

    def child_by_field_name(self, name: str) -> FakeNode | None:
        _ = name
        return None


def _tree_for(source: bytes) -> SimpleNamespace:
    lines = source.split(b"\n")
    node = FakeNode(
        type="block",
        start_byte=0,
        end_byte=len(source),
        start_point=(0, 0),
        end_point=(len(lines) - 1, len(lines[-1])),
    )
    return SimpleNamespace(root_node=FakeNode("module", 0, len(source), (0, 0), (0, 0), [node]))


@dataclass(slots=True)
class ScriptedParser:
    """Fails the first ``failures`` calls, then returns a one-node tree."""

    failures: int
    return_none: bool = False
    sources: list[bytes] = field(default_factory=list)

    def parse(self, source: bytes) -> SimpleNamespace | None:
        self.sources.append(source)
        if len(self.sources) <= self.failures:
            if self.return_none:
                return None
            raise ValueError("parser crashed")
        return _tree_for(source)


def _parser(scripted: ScriptedParser, retry_lines: int = 100) -> TreeSitterParser:
    return TreeSitterParser(
        [StructuralLanguage.PYTHON],
        parse_retry_lines=retry_lines,
        parser_factory=lambda grammar: scripted,
    )


def test_null_bytes_are_stripped_before_the_first_attempt() -> None:
    scripted = ScriptedParser(failures=0)

    chunks = _parser(scripted).parse("a.py", "x\x00 = 1\n", "python")

    assert scripted.sources == [b"x = 1\n"]
    assert [(chunk.start_line, chunk.end_line, chunk.content) for chunk in chunks] == [
        (1, 1, "x = 1")
    ]


def test_sanitized_source_is_tried_after_a_failure() -> None:
    scripted = ScriptedParser(failures=1)

    chunks = _parser(scripted).parse("a.py", "a = 1\x01\r\nb = 2\n", "python")

    assert scripted.sources[1] == b"a = 1\nb = 2\n"
    assert chunks[0].content == "a = 1\nb = 2"


def test_sanitized_source_keeps_line_numbers_of_the_scanned_content() -> None:
    scripted = ScriptedParser(failures=1)

    chunks = _parser(scripted).parse("a.py", "a = 1\rb = 2\n", "python")

    assert scripted.sources[1] == b"a = 1b = 2\n"
    assert [(chunk.start_line, chunk.end_line) for chunk in chunks] == [(1, 1)]


def test_truncated_source_is_the_last_resort() -> None:
    scripted = ScriptedParser(failures=2)
    content = "".join(f"line_{n} = {n}\n" for n in range(1, 11))

    chunks = _parser(scripted, retry_lines=3).parse("a.py", content, "python")

    assert len(scripted.sources) == 3
    assert scripted.sources[2] == b"line_1 = 1\nline_2 = 2\nline_3 = 3"
    assert [(chunk.start_line, chunk.end_line) for chunk in chunks] == [(1, 3)]


def test_missing_tree_moves_to_the_next_stage() -> None:
    scripted = ScriptedParser(failures=1, return_none=True)

    chunks = _parser(scripted).parse("a.py", "x = 1\n", "python")

    assert len(scripted.sources) == 2
    assert len(chunks) == 1


def test_exhausted_ladder_returns_no_chunks() -> None:
    scripted = ScriptedParser(failures=3)

    assert _parser(scripted).parse("a.py", "x = 1\n", "python") == []
    assert len(scripted.sources) == 3


def test_grammar_load_failure_raises_parse_failure() -> None:
    def broken_factory(grammar: str) -> object:
        raise OSError(f"no grammar {grammar}")

    parser = TreeSitterParser([StructuralLanguage.PYTHON], parser_factory=broken_factory)

    with pytest.raises(ParseFailure, match="python"):
        parser.parse("a.py", "x = 1\n", "python")
