from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# Error kinds reported in ToolResult.error_code
OUT_OF_BOUNDS = "OUT_OF_BOUNDS"
NOT_FOUND = "NOT_FOUND"
NOT_A_FILE = "NOT_A_FILE"
TOO_LARGE = "TOO_LARGE"
READ_ERROR = "READ_ERROR"
WRITE_ERROR = "WRITE_ERROR"
PATCH_NOT_FOUND = "PATCH_NOT_FOUND"
AMBIGUOUS = "AMBIGUOUS"
TIMEOUT = "TIMEOUT"
SPAWN_FAILURE = "SPAWN_FAILURE"
DENIED_BY_POLICY = "DENIED_BY_POLICY"


@dataclass
class ToolResult:
    """Standard envelope for every executed tool request.

    ``ok=True`` carries a summary in ``message`` and the payload in ``data``.
    ``ok=False`` carries the error kind in ``error_code``.
    """

    ok: bool
    error_code: Optional[str]
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_error(self) -> bool:
        return not self.ok

    @property
    def output(self) -> str:
        """The text the model should see: file content, command output, or the message."""
        if "content" in self.data:
            return self.data["content"]
        if "exit_code" in self.data:
            return (
                f"stdout:\n{self.data.get('stdout', '')}\n"
                f"stderr:\n{self.data.get('stderr', '')}\n"
                f"exit_code: {self.data['exit_code']}"
            )
        return self.message

    def to_text(self) -> str:
        """Serialize for the next prompt's context."""
        if not self.ok:
            return f"Error [{self.error_code}]: {self.message}"
        if self.output == self.message:
            return self.message
        return f"{self.message}\n{self.output}"

    @classmethod
    def success(
        cls,
        data: Optional[Dict[str, Any]] = None,
        message: str = "",
        warnings: Optional[List[str]] = None,
    ) -> "ToolResult":
        return cls(
            ok=True,
            error_code=None,
            message=message,
            data=data or {},
            warnings=warnings or [],
        )

    @classmethod
    def failure(
        cls,
        error_code: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        warnings: Optional[List[str]] = None,
    ) -> "ToolResult":
        return cls(
            ok=False,
            error_code=error_code,
            message=message,
            data=data or {},
            warnings=warnings or [],
        )
