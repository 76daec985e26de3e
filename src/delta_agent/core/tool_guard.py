from __future__ import annotations

import datetime
import json
from pathlib import Path
from typing import Any, Dict, Optional

from delta_agent.core.tool_result import DENIED_BY_POLICY, OUT_OF_BOUNDS, ToolResult


class ToolGuard:
    """Policy and ProjectRoot boundary checks run before every tool request.

    Each decision is appended to an optional JSONL audit log.
    """

    def __init__(
        self,
        project_root: str | Path,
        policy: Optional[Dict[str, Any]] = None,
        log_path: Optional[str | Path] = None,
    ):
        self.project_root = Path(project_root).resolve()
        self.policy = policy or {}
        self._log_path = Path(log_path) if log_path else None

    def resolve(self, path_arg: str) -> Path:
        """Resolve a request path against the project root (may lie outside it)."""
        return (self.project_root / Path(path_arg).expanduser()).resolve()

    def is_inside(self, resolved: Path) -> bool:
        try:
            resolved.relative_to(self.project_root)
        except ValueError:
            return False
        return True

    def check(self, tool_name: str, path_arg: Optional[str] = None) -> Optional[ToolResult]:
        # 1. Check deny_tools list
        if tool_name in self.policy.get("deny_tools", []):
            result = ToolResult.failure(
                DENIED_BY_POLICY, f"Tool '{tool_name}' is denied by policy."
            )
            self._log(tool_name, path_arg, result)
            return result

        # 2. Check the path stays inside the project root (before any existence test)
        if path_arg is not None and not self.is_inside(self.resolve(path_arg)):
            result = ToolResult.failure(
                OUT_OF_BOUNDS,
                f"Path '{path_arg}' resolves outside the project root.",
            )
            self._log(tool_name, path_arg, result)
            return result

        self._log(tool_name, path_arg, None)
        return None  # All checks passed

    def _log(self, tool_name: str, path_arg: Optional[str], result: Optional[ToolResult]) -> None:
        if self._log_path is None:
            return
        entry = {
            "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "tool_name": tool_name,
            "path": path_arg,
            "denied": result is not None and not result.ok,
            "error_code": result.error_code if result is not None else None,
        }
        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry) + "\n")
