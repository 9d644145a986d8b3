from __future__ import annotations

from pathlib import Path


def test_required_package_paths_exist() -> None:
    root = Path(__file__).resolve().parents[1]
    required = [
        "src/repo_chunker/cli.py",
        "src/repo_chunker/config.py",
        "src/repo_chunker/pipeline.py",
        "src/repo_chunker/index/__init__.py",
        "src/repo_chunker/adapters/__init__.py",
        "src/repo_chunker/dispatch/__init__.py",
        "src/repo_chunker/security/__init__.py",
    ]
    for rel in required:
        assert (root / rel).exists(), rel
