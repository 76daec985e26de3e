"""Typed tool requests extracted from model output."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple, Union


@dataclass(frozen=True)
class DeltaBlock:
    """A single find-exact-text / replace-with-text unit."""

    current: str
    replacement: str


@dataclass(frozen=True)
class ReadFile:
    path: str

    name = "read_file"

    def describe(self) -> str:
        return self.path


@dataclass(frozen=True)
class ExecuteCommand:
    command: str

    name = "execute_command"

    def describe(self) -> str:
        return self.command


@dataclass(frozen=True)
class ChangeFile:
    path: str
    deltas: Tuple[DeltaBlock, ...]

    name = "change_file"

    def describe(self) -> str:
        count = len(self.deltas)
        return f"{self.path} ({count} delta{'s' if count != 1 else ''})"


ToolRequest = Union[ReadFile, ExecuteCommand, ChangeFile]
