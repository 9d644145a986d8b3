from __future__ import annotations

import hashlib
import json
from pathlib import Path

from repo_chunker.index.merkle import (
    build_merkle_tree,
    combine_child_hashes,
    load_tree_file,
)
from repo_chunker.index.models import FileRecord, MerkleTree


def _hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _record(path: str, content: str, size: int | None = None) -> FileRecord:
    return FileRecord(
        path=path,
        content_hash=_hash(content),
        size=size if size is not None else len(content),
        mtime_ns=1,
    )


def _sample() -> list[FileRecord]:
    return [
        _record("top.py", "top"),
        _record("src/a.py", "a"),
        _record("src/lib/b.py", "b"),
        _record("docs/c.py", "c"),
    ]


def test_tree_is_independent_of_record_order() -> None:
    records = _sample()

    forward = build_merkle_tree(records, workspace="/ws", now=1)
    backward = build_merkle_tree(list(reversed(records)), workspace="/ws", now=1)

    assert forward.to_dict() == backward.to_dict()
    assert list(forward.files) == sorted(forward.files)


def test_root_hash_covers_file_hashes_in_path_order() -> None:
    records = _sample()
    tree = build_merkle_tree(records, workspace="/ws", now=1)

    ordered = sorted(records, key=lambda item: item.path)
    expected = hashlib.sha256("".join(item.content_hash for item in ordered).encode()).hexdigest()
    assert tree.root_hash == expected
    assert tree.root.file_count == 4


def test_directory_nodes_combine_child_hashes() -> None:
    tree = build_merkle_tree(_sample(), workspace="/ws", now=1)

    assert "./" not in tree.directories
    assert list(tree.directories) == ["docs/", "src/", "src/lib/"]
    lib = tree.directories["src/lib/"]
    src = tree.directories["src/"]
    assert lib.hash == combine_child_hashes([_hash("b")])
    assert src.hash == combine_child_hashes([_hash("a"), lib.hash])
    assert src.children == ("src/a.py", "src/lib/")
    assert src.files == ("src/a.py",)
    assert src.subdirs == ("src/lib/",)
    assert src.file_count == 2
    assert tree.files["src/lib/b.py"].parent_path == "src/lib/"
    assert tree.metadata.tree_depth == 2


def test_change_propagates_to_ancestors_only() -> None:
    before = build_merkle_tree(_sample(), workspace="/ws", now=1)
    changed = [
        _record("src/lib/b.py", "b changed") if item.path == "src/lib/b.py" else item
        for item in _sample()
    ]
    after = build_merkle_tree(changed, workspace="/ws", now=1)

    assert after.directories["src/lib/"].hash != before.directories["src/lib/"].hash
    assert after.directories["src/"].hash != before.directories["src/"].hash
    assert after.root_hash != before.root_hash
    assert after.directories["docs/"].hash == before.directories["docs/"].hash


def test_empty_tree() -> None:
    tree = build_merkle_tree([], workspace="/ws", now=5)

    assert tree.root_hash == hashlib.sha256(b"").hexdigest()
    assert tree.root.file_count == 0
    assert tree.files == {}
    assert tree.directories == {}
    assert tree.metadata.tree_depth == 0
    assert tree.metadata.created_at == 5


def test_lookup_indexes_group_by_extension_and_size() -> None:
    records = [
        _record("Makefile", "all:", size=100),
        _record("a.py", "a", size=20_000),
        _record("b.py", "b", size=200_000),
    ]
    tree = build_merkle_tree(records, workspace="/ws", now=1)

    assert tree.index.by_extension == {"no_extension": ["Makefile"], ".py": ["a.py", "b.py"]}
    assert tree.index.by_size == {"small": ["Makefile"], "medium": ["a.py"], "large": ["b.py"]}
    assert tree.metadata.total_size == 220_100


def test_tree_survives_json_persistence(tmp_path: Path) -> None:
    tree = build_merkle_tree(_sample(), workspace="/ws", now=1)
    path = tmp_path / "merkle.json"
    path.write_text(json.dumps(tree.to_dict()), encoding="utf-8")

    loaded = load_tree_file(path)

    assert isinstance(loaded, MerkleTree)
    assert loaded.to_dict() == tree.to_dict()
    assert loaded.directories["src/"].children == ("src/a.py", "src/lib/")
