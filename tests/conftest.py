"""Shared pytest fixtures and helpers for delta_agent tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from delta_agent.core.executor import ToolExecutor
from delta_agent.core.tool_result import ToolResult


@pytest.fixture
def workspace(tmp_path):
    """A temporary directory that acts as the project root."""
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def executor(workspace):
    return ToolExecutor(workspace, command_timeout=5, max_file_bytes=1024)


class FakeClock:
    """Manually advanced clock for RateLimiter tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


# ── Plain helper functions ─────────────────────────────────────────────────
# Each test file imports these directly:
#   from conftest import assert_ok, assert_fail, make_file

def make_file(workspace: Path, relative_path: str, content: str = "hello\n") -> Path:
    p = workspace / relative_path
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(content, encoding="utf-8")
    return p


def assert_ok(result: ToolResult) -> None:
    assert result.ok, f"Expected ok=True but got error: {result.error_code} - {result.message}"


def assert_fail(result: ToolResult, error_code: str | None = None) -> None:
    assert not result.ok, f"Expected ok=False but result succeeded: {result.message}"
    if error_code:
        assert result.error_code == error_code, (
            f"Expected error_code={error_code!r}, got {result.error_code!r}"
        )
