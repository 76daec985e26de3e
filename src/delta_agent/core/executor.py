"""Execute parsed tool requests against the project root."""

from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from delta_agent.core.patch import PatchEngine, PatchFailure, unified_diff
from delta_agent.core.requests import ChangeFile, ExecuteCommand, ReadFile, ToolRequest
from delta_agent.core.tool_guard import ToolGuard
from delta_agent.core.tool_result import (
    NOT_A_FILE,
    NOT_FOUND,
    READ_ERROR,
    SPAWN_FAILURE,
    TIMEOUT,
    TOO_LARGE,
    WRITE_ERROR,
    ToolResult,
)

_log = logging.getLogger(__name__)

DEFAULT_COMMAND_TIMEOUT = 60.0
DEFAULT_MAX_FILE_BYTES = 256 * 1024


class WorkspaceError(Exception):
    """The project root itself cannot be used; ends the session."""


class ToolExecutor:
    """Performs ReadFile, ExecuteCommand and ChangeFile requests one at a time."""

    def __init__(
        self,
        project_root: str | Path,
        command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
        max_file_bytes: int = DEFAULT_MAX_FILE_BYTES,
        policy: Optional[Dict[str, Any]] = None,
        audit_log: Optional[str | Path] = None,
    ) -> None:
        root = Path(project_root).expanduser()
        if not root.is_dir():
            raise WorkspaceError(f"Project root is not a directory: {root}")
        self.project_root = root.resolve()
        self.command_timeout = command_timeout
        self.max_file_bytes = max_file_bytes
        self._guard = ToolGuard(self.project_root, policy=policy, log_path=audit_log)
        self._patcher = PatchEngine()

    def execute(self, request: ToolRequest) -> ToolResult:
        _log.debug("Executing %s: %s", request.name, request.describe())
        if not self.project_root.is_dir():
            raise WorkspaceError(f"Project root is no longer a directory: {self.project_root}")
        if isinstance(request, ReadFile):
            return self._read_file(request)
        if isinstance(request, ExecuteCommand):
            return self._execute_command(request)
        if isinstance(request, ChangeFile):
            return self._change_file(request)
        raise TypeError(f"Unknown tool request: {request!r}")

    def execute_all(self, requests: Sequence[ToolRequest]) -> List[ToolResult]:
        """Run a batch strictly in order; later requests see earlier effects."""
        return [self.execute(request) for request in requests]

    # ------------------------------------------------------------------ read_file

    def _read_file(self, request: ReadFile) -> ToolResult:
        blocked = self._guard.check(request.name, request.path)
        if blocked is not None:
            return blocked

        path = self._guard.resolve(request.path)
        if not path.exists():
            return ToolResult.failure(NOT_FOUND, f"File not found: {request.path}")
        if not path.is_file():
            return ToolResult.failure(NOT_A_FILE, f"Path is not a file: {request.path}")

        try:
            size = path.stat().st_size
            if size > self.max_file_bytes:
                return ToolResult.failure(
                    TOO_LARGE,
                    f"File is {size} bytes, above the {self.max_file_bytes}-byte read limit: {request.path}",
                    data={"path": request.path, "size": size},
                )
            content = path.read_bytes().decode("utf-8", errors="replace")
        except OSError as exc:
            return ToolResult.failure(READ_ERROR, f"Could not read file: {exc}")

        return ToolResult.success(
            data={"path": request.path, "content": content, "size": size},
            message=f"Read {size} bytes from {request.path}",
        )

    # ------------------------------------------------------------------ execute_command

    def _execute_command(self, request: ExecuteCommand) -> ToolResult:
        blocked = self._guard.check(request.name)
        if blocked is not None:
            return blocked

        command = request.command
        popen_kwargs: Dict[str, Any] = {}
        if sys.platform != "win32":
            # Own process group so a timeout kills the whole pipeline
            popen_kwargs["start_new_session"] = True

        try:
            proc = subprocess.Popen(
                command,
                shell=True,
                cwd=str(self.project_root),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                **popen_kwargs,
            )
        except OSError as exc:
            return ToolResult.failure(SPAWN_FAILURE, f"Could not start command: {exc}")

        try:
            stdout, stderr = proc.communicate(timeout=self.command_timeout)
        except subprocess.TimeoutExpired:
            self._kill(proc)
            _log.warning("Command timed out after %ss: %s", self.command_timeout, command)
            return ToolResult.failure(
                TIMEOUT,
                f"Command timed out after {self.command_timeout:g} seconds: {command}",
            )

        success = proc.returncode == 0
        return ToolResult.success(
            data={
                "command": command,
                "exit_code": proc.returncode,
                "stdout": stdout,
                "stderr": stderr,
                "success": success,
            },
            message=f"Command exited with code {proc.returncode}",
            warnings=(
                [] if success
                else [f"Command exited with non-zero code {proc.returncode}"]
            ),
        )

    @staticmethod
    def _kill(proc: subprocess.Popen) -> None:
        if sys.platform != "win32":
            try:
                os.killpg(proc.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
        else:
            proc.kill()
        proc.communicate()

    # ------------------------------------------------------------------ change_file

    def _change_file(self, request: ChangeFile) -> ToolResult:
        blocked = self._guard.check(request.name, request.path)
        if blocked is not None:
            return blocked

        path = self._guard.resolve(request.path)
        if not path.exists():
            return ToolResult.failure(NOT_FOUND, f"File not found: {request.path}")
        if not path.is_file():
            return ToolResult.failure(NOT_A_FILE, f"Path is not a file: {request.path}")

        try:
            original = path.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            return ToolResult.failure(READ_ERROR, f"Could not read file as UTF-8 text: {exc}")

        try:
            updated = self._patcher.apply(original, request.deltas)
        except PatchFailure as exc:
            _log.info("Patch rejected for %s: %s", request.path, exc.message)
            return ToolResult.failure(
                exc.kind,
                f"{request.path}: {exc.message} No changes were written.",
                data={"path": request.path, "delta_index": exc.index, "occurrences": exc.occurrences},
            )

        try:
            self._atomic_write(path, updated)
        except OSError as exc:
            _log.warning("Write failed for %s: %s", request.path, exc)
            return ToolResult.failure(
                WRITE_ERROR,
                f"{request.path}: could not write file: {exc}. No changes were written.",
                data={"path": request.path},
            )
        count = len(request.deltas)
        return ToolResult.success(
            data={
                "path": request.path,
                "deltas_applied": count,
                "diff": unified_diff(original, updated, request.path),
            },
            message=f"Applied {count} delta{'s' if count != 1 else ''} to {request.path}",
        )

    @staticmethod
    def _atomic_write(path: Path, data: str) -> None:
        """Write to a temporary sibling file, then rename it over the target.

        The temporary file is removed again if any step fails.
        """
        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                newline="",
                dir=path.parent,
                prefix=f".{path.name}.",
                suffix=".tmp",
                delete=False,
            ) as f:
                tmp_name = f.name
                f.write(data)
            shutil.copymode(path, tmp_name)
            os.replace(tmp_name, str(path))
        except OSError:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise
