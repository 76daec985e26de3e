"""Transactional application of current/new delta blocks."""

from __future__ import annotations

import difflib
from typing import Sequence

from delta_agent.core.requests import DeltaBlock
from delta_agent.core.tool_result import AMBIGUOUS, PATCH_NOT_FOUND


class PatchFailure(Exception):
    """Raised when a delta block cannot be located exactly once.

    Attributes:
        kind: PATCH_NOT_FOUND or AMBIGUOUS.
        index: 0-based position of the failing block.
        occurrences: How many times the block's current text was found.
    """

    def __init__(self, kind: str, index: int, occurrences: int, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.index = index
        self.occurrences = occurrences
        self.message = message


class PatchEngine:
    """Applies an ordered sequence of DeltaBlocks to file contents.

    Each block is located in the contents produced by the previous block.
    The input string is never modified; on any failure nothing is returned,
    so callers only write when every block succeeded.
    """

    def apply(self, contents: str, deltas: Sequence[DeltaBlock]) -> str:
        updated = contents
        for index, delta in enumerate(deltas):
            updated = self._apply_one(updated, delta, index)
        return updated

    @staticmethod
    def _apply_one(contents: str, delta: DeltaBlock, index: int) -> str:
        current = delta.current
        if not current:
            # An empty search string matches at every offset
            raise PatchFailure(
                AMBIGUOUS,
                index,
                len(contents) + 1,
                f"Delta {index + 1}: CURRENT section is empty; include the exact text to replace.",
            )

        count = _count_overlapping(contents, current)
        if count == 0:
            raise PatchFailure(
                PATCH_NOT_FOUND,
                index,
                0,
                f"Delta {index + 1}: CURRENT text was not found in the file. "
                "Use read_file to inspect the current content.",
            )
        if count > 1:
            raise PatchFailure(
                AMBIGUOUS,
                index,
                count,
                f"Delta {index + 1}: CURRENT text matched {count} times. "
                "Include more surrounding lines so it matches exactly once.",
            )

        pos = contents.index(current)
        return contents[:pos] + delta.replacement + contents[pos + len(current):]


def unified_diff(before: str, after: str, path: str = "") -> str:
    diff = difflib.unified_diff(
        before.splitlines(keepends=True),
        after.splitlines(keepends=True),
        fromfile=f"a/{path}" if path else "before",
        tofile=f"b/{path}" if path else "after",
        n=3,
    )
    return "".join(diff)


def _count_overlapping(haystack: str, needle: str) -> int:
    """Count occurrences of needle, including overlapping ones."""
    count = 0
    start = haystack.find(needle)
    while start != -1:
        count += 1
        start = haystack.find(needle, start + 1)
    return count
