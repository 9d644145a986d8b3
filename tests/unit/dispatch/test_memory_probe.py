from __future__ import annotations

import psutil
import pytest

from repo_chunker.dispatch import process_memory_ratio


def test_memory_ratio_is_a_fraction() -> None:
    ratio = process_memory_ratio()

    assert 0.0 < ratio < 1.0


def test_memory_ratio_is_zero_when_sampling_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    def unavailable() -> object:
        raise psutil.AccessDenied()

    monkeypatch.setattr(psutil, "virtual_memory", unavailable)

    assert process_memory_ratio() == 0.0
