"""Pytest configuration and fixtures."""

from __future__ import annotations

import io
from typing import TYPE_CHECKING

import pytest
import structlog
from rich.console import Console

if TYPE_CHECKING:
    from collections.abc import Generator


@pytest.fixture
def console() -> Console:
    """Console writing plain text to an in-memory buffer."""
    return Console(file=io.StringIO(), width=200, highlight=False, color_system=None)


@pytest.fixture
def console_output(console: Console):
    """Callable returning everything printed to ``console`` so far."""
    return lambda: console.file.getvalue()


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> Generator[None, None, None]:
    """Run without QAS_* variables or env files from the working directory."""
    for name in ("QAS_TOKEN", "QAS_URL", "QAS_LOG_LEVEL", "QAS_LOG_JSON"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    yield


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Undo logging configured by CLI runs, whose stderr is closed afterwards."""
    yield
    structlog.reset_defaults()
