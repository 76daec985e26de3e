"""Extract tool requests from free-form model output.

Three surface syntaxes are recognized, in the order they appear::

    read_file: "src/main.py"        read_file("src/main.py")
    execute_command: "pytest -q"    execute_command("pytest -q")

    CHANGE: src/main.py
    <<<<<<< CURRENT
    old text
    =======
    new text
    >>>>>>> NEW

Scanning is a single forward pass over lines. Text consumed as a delta body or
as a command argument is never scanned again, so tool syntax quoted inside a
delta or a command is left alone. Malformed segments become warnings; parse()
never raises on bad input.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from delta_agent.core.requests import (
    ChangeFile,
    DeltaBlock,
    ExecuteCommand,
    ReadFile,
    ToolRequest,
)
from delta_agent.utils import filter_thinking_tokens

_log = logging.getLogger(__name__)

CHANGE_HEADER = "CHANGE:"
CURRENT_MARKER = ("<<<<<<<", "CURRENT")
SEPARATOR_MARKER = ("=======",)
NEW_MARKER = (">>>>>>>", "NEW")

_SIMPLE_TOOLS = ("read_file", "execute_command")
_QUOTES = "\"'"


@dataclass
class ParseResult:
    """Requests in textual order plus any non-fatal warnings."""

    requests: List[ToolRequest] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.requests)

    def __bool__(self) -> bool:
        return bool(self.requests)


def _marker(line: str) -> Optional[str]:
    parts = tuple(line.split())
    if parts == CURRENT_MARKER:
        return "current"
    if parts == SEPARATOR_MARKER:
        return "separator"
    if parts == NEW_MARKER:
        return "new"
    return None


def _is_fence(line: str) -> bool:
    return line.strip().startswith("```")


def _unquote(text: str) -> str:
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in _QUOTES + "`":
        return text[1:-1]
    return text


class ResponseParser:
    """Turns raw model text into an ordered list of ToolRequests."""

    def parse(self, raw_text: str) -> ParseResult:
        result = ParseResult()
        lines = filter_thinking_tokens(raw_text or "").splitlines()

        i = 0
        while i < len(lines):
            line = lines[i]
            stripped = line.strip()

            if stripped.startswith(CHANGE_HEADER):
                i = self._parse_change(lines, i, result)
                continue

            if _marker(stripped) == "current":
                # A delta region with no CHANGE header: consume it unexecuted
                result.warnings.append(f"line {i + 1}: delta region without a CHANGE header was ignored")
                _, i, _ = self._read_region(lines, i)
                continue

            self._scan_simple(line, i + 1, result)
            i += 1

        for warning in result.warnings:
            _log.info("Parse warning: %s", warning)
        return result

    # ------------------------------------------------------------------ CHANGE blocks

    def _parse_change(self, lines: List[str], start: int, result: ParseResult) -> int:
        header_line = start + 1
        path = _unquote(lines[start].strip()[len(CHANGE_HEADER):])
        deltas: List[DeltaBlock] = []

        i = start + 1
        while i < len(lines):
            stripped = lines[i].strip()
            if not stripped or _is_fence(stripped):
                i += 1
                continue
            if _marker(stripped) != "current":
                break
            delta, i, error = self._read_region(lines, i)
            if error:
                result.warnings.append(f"line {header_line}: CHANGE {path or '?'}: {error}")
                if not deltas:
                    return i
                break
            deltas.append(delta)

        if not path:
            result.warnings.append(f"line {header_line}: CHANGE header has no file path; request dropped")
        elif not deltas:
            result.warnings.append(
                f"line {header_line}: CHANGE {path} has no well-formed CURRENT/NEW region; request dropped"
            )
        else:
            result.requests.append(ChangeFile(path=path, deltas=tuple(deltas)))
        return i

    @staticmethod
    def _read_region(lines: List[str], start: int) -> Tuple[Optional[DeltaBlock], int, Optional[str]]:
        """Read one CURRENT/=======/NEW region starting at the CURRENT marker.

        Returns (delta, next_index, error). An unterminated region consumes the
        rest of the text so its body is never interpreted as tool syntax.
        """
        current: List[str] = []
        replacement: List[str] = []
        section = current
        seen_separator = False

        i = start + 1
        while i < len(lines):
            kind = _marker(lines[i].strip())
            if kind == "separator" and not seen_separator:
                seen_separator = True
                section = replacement
            elif kind == "new" and seen_separator:
                delta = DeltaBlock(current="\n".join(current), replacement="\n".join(replacement))
                return delta, i + 1, None
            else:
                section.append(lines[i])
            i += 1

        missing = ">>>>>>> NEW" if seen_separator else "======="
        return None, len(lines), f"unterminated delta region (missing {missing} marker)"

    # ------------------------------------------------------------------ read_file / execute_command

    def _scan_simple(self, line: str, lineno: int, result: ParseResult) -> None:
        pos = 0
        while True:
            found = self._next_keyword(line, pos)
            if found is None:
                return
            tool, kw_start = found
            after = kw_start + len(tool)
            rest = line[after:]
            opener = rest.lstrip()[:1]
            if opener not in (":", "("):
                # A plain mention of the tool name in prose
                pos = after
                continue

            arg_start = after + (len(rest) - len(rest.lstrip())) + 1
            if opener == ":":
                arg, end = self._colon_argument(line, arg_start)
            else:
                arg, end = self._call_argument(line, arg_start)

            if arg is None or not arg.strip():
                result.warnings.append(f"line {lineno}: malformed {tool} call ignored")
                pos = after
                continue

            if tool == "read_file":
                result.requests.append(ReadFile(path=arg))
            else:
                result.requests.append(ExecuteCommand(command=arg))
            pos = end

    @staticmethod
    def _next_keyword(line: str, pos: int) -> Optional[Tuple[str, int]]:
        best: Optional[Tuple[str, int]] = None
        for tool in _SIMPLE_TOOLS:
            idx = line.find(tool, pos)
            while idx != -1 and idx > 0 and (line[idx - 1].isalnum() or line[idx - 1] == "_"):
                idx = line.find(tool, idx + 1)
            if idx != -1 and (best is None or idx < best[1]):
                best = (tool, idx)
        return best

    @staticmethod
    def _colon_argument(line: str, start: int) -> Tuple[Optional[str], int]:
        text = line[start:]
        body = text.lstrip()
        if not body or body[0] not in _QUOTES:
            return None, start
        quote = body[0]
        open_at = start + (len(text) - len(body))
        close_at = line.find(quote, open_at + 1)
        while close_at != -1 and line[close_at - 1] == "\\":
            close_at = line.find(quote, close_at + 1)
        if close_at == -1:
            return None, start
        return line[open_at + 1:close_at], close_at + 1

    @staticmethod
    def _call_argument(line: str, start: int) -> Tuple[Optional[str], int]:
        text = line[start:]
        body = text.lstrip()
        open_at = start + (len(text) - len(body))
        if body and body[0] in _QUOTES:
            quote = body[0]
            search = open_at + 1
            while True:
                close_at = line.find(quote, search)
                if close_at == -1:
                    return None, start
                tail = line[close_at + 1:]
                if line[close_at - 1] != "\\" and tail.lstrip().startswith(")"):
                    end = close_at + 1 + (len(tail) - len(tail.lstrip())) + 1
                    return line[open_at + 1:close_at], end
                search = close_at + 1
        close_paren = line.find(")", open_at)
        if close_paren == -1:
            return None, start
        return line[open_at:close_paren].strip(), close_paren + 1
