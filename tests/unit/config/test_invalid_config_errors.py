from __future__ import annotations

from pathlib import Path

import pytest

from repo_chunker.config import (
    ConfigurationError,
    ScanConfig,
    load_effective_config,
    require_include_extensions,
)


def _write_config(root: Path, *lines: str) -> None:
    (root / "repo_chunker.toml").write_text("\n".join(lines), encoding="utf-8")


def test_invalid_int_type_names_the_field(tmp_path: Path) -> None:
    _write_config(tmp_path, "[chunking]", 'lines_per_chunk = "many"')

    with pytest.raises(ValueError, match="chunking.lines_per_chunk"):
        load_effective_config(tmp_path)


def test_invalid_section_type_raises_configuration_error(tmp_path: Path) -> None:
    _write_config(tmp_path, 'scan = "not-a-table"')

    with pytest.raises(ConfigurationError, match="section 'scan'"):
        load_effective_config(tmp_path)


def test_memory_threshold_must_be_a_ratio(tmp_path: Path) -> None:
    _write_config(tmp_path, "[dispatch]", "memory_threshold = 1.5")

    with pytest.raises(ConfigurationError, match="dispatch.memory_threshold"):
        load_effective_config(tmp_path)


def test_extension_list_must_contain_strings(tmp_path: Path) -> None:
    _write_config(tmp_path, "[scan]", "include_extensions = [1, 2]")

    with pytest.raises(ConfigurationError, match="scan.include_extensions"):
        load_effective_config(tmp_path)


def test_max_file_bytes_cap_is_enforced(tmp_path: Path) -> None:
    _write_config(tmp_path, "[scan]", "max_file_bytes = 999999999999")

    with pytest.raises(ConfigurationError, match="scan.max_file_bytes"):
        load_effective_config(tmp_path)


def test_malformed_toml_is_reported(tmp_path: Path) -> None:
    _write_config(tmp_path, "[scan", "x = ")

    with pytest.raises(ConfigurationError, match="not valid TOML"):
        load_effective_config(tmp_path)


def test_empty_extension_allow_list_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="scan.include_extensions"):
        require_include_extensions(ScanConfig(include_extensions=()))

    with pytest.raises(ConfigurationError, match="scan.include_extensions"):
        require_include_extensions(ScanConfig(include_extensions=("  ",)))


def test_extension_allow_list_is_normalized() -> None:
    extensions = require_include_extensions(ScanConfig(include_extensions=("PY", ".ts")))

    assert extensions == frozenset({".py", ".ts"})
