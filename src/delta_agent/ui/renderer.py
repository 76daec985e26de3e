"""Rich terminal output helpers for the CLI."""

import contextlib
import io

from rich.align import Align
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.status import Status
from rich.syntax import Syntax
from rich.text import Text

from delta_agent.core.requests import ChangeFile, ToolRequest
from delta_agent.core.tool_result import ToolResult

RESULT_PREVIEW_CHARS = 200
DIFF_PREVIEW_LINES = 80


class Renderer:
    """Render markdown and styled status/error output in terminal."""

    def __init__(self, output_file: io.TextIOBase | None = None) -> None:
        self._output_file = output_file
        if output_file is not None:
            self.console = Console(file=output_file, force_terminal=False, highlight=False, width=120)
        else:
            self.console = Console()

    def render_markdown(self, text: str) -> None:
        """Render markdown content with Rich formatting."""
        self.console.print(Markdown(text))

    def print_error(self, message: str) -> None:
        """Print a styled error message."""
        self.console.print(Text(message, style="red"), highlight=False)

    def print_info(self, message: str) -> None:
        """Print a styled informational message."""
        self.console.print(Text(message, style="dim"), highlight=False)

    def print_warning(self, message: str) -> None:
        """Print a styled warning message."""
        self.console.print(Text(message, style="yellow"), highlight=False)

    def print_success(self, message: str) -> None:
        """Print a styled success message."""
        self.console.print(Text(message, style="green"), highlight=False)

    def status_spinner(self, message: str) -> "Status | contextlib.AbstractContextManager":
        """Return a spinner context manager, or a no-op one when output is captured."""
        if self._output_file is not None:
            return contextlib.nullcontext()
        return self.console.status(message)

    def render_separator(self) -> None:
        """Render a dim horizontal rule as a separator."""
        self.console.print(Rule(style="dim"))

    def render_banner(self, version: str) -> None:
        """Render the application banner.

        Args:
            version: Application version string.
        """
        content = Text.assemble(
            ("delta-agent", "bold cyan"),
            ("  v" + version, "dim"),
        )
        self.console.print(Panel(
            Align.left(content),
            border_style="cyan dim",
            expand=False,
            padding=(0, 2),
        ))

    def render_config(self, config_items: dict) -> None:
        """Render configuration items one per line, left-aligned."""
        for key, value in config_items.items():
            line = Text.assemble(
                (f"{key}: ", "dim"),
                (str(value), "#888888"),
            )
            self.console.print(line, highlight=False)

    def render_tool(self, request: ToolRequest) -> None:
        """Render a compact inline line for a tool about to run.

        Args:
            request: The parsed tool request
        """
        detail = request.describe()
        if len(detail) > 60:
            detail = detail[:57] + "..."
        self.console.print(Text.assemble(
            ("◆ ", "bold cyan"),
            (request.name, "cyan"),
            (": ", "dim"),
            (detail, ""),
        ), highlight=False)
        if isinstance(request, ChangeFile):
            for index, delta in enumerate(request.deltas, 1):
                removed = delta.current.count("\n") + 1
                added = delta.replacement.count("\n") + 1
                self.console.print(Text(f"  delta {index}: -{removed} +{added} lines", style="dim"))

    def render_result(self, result: ToolResult) -> None:
        """Render the outcome of one tool with a short preview."""
        if not result.ok:
            self.console.print(Text(f"  ✗ {result.error_code}: {result.message}", style="red"), highlight=False)
            return

        self.console.print(Text(f"  ✓ {result.message}", style="green"), highlight=False)
        for warning in result.warnings:
            self.console.print(Text(f"  ! {warning}", style="yellow"), highlight=False)

        diff = result.data.get("diff")
        if diff:
            self.render_diff(diff)
            return
        preview = result.output if result.output != result.message else ""
        if preview:
            if len(preview) > RESULT_PREVIEW_CHARS:
                preview = preview[:RESULT_PREVIEW_CHARS - 3] + "..."
            self.console.print(Text(preview, style="dim"), highlight=False)

    def render_diff(self, diff_text: str) -> None:
        """Render a unified diff, capped at DIFF_PREVIEW_LINES lines."""
        lines = diff_text.splitlines(keepends=True)
        shown = "".join(lines[:DIFF_PREVIEW_LINES])
        if len(lines) > DIFF_PREVIEW_LINES:
            shown += f"\n  ... ({len(lines) - DIFF_PREVIEW_LINES} more lines)"
        self.console.print(Syntax(shown, "diff", theme="ansi_dark"))

    def render_status_line(self, model: str, tokens_in_window: int, tpm_limit: int, total_tokens: int) -> None:
        """Render compact status line after each assistant response.

        Args:
            model: The model name being used
            tokens_in_window: Tokens used in the trailing minute
            tpm_limit: Tokens-per-minute budget
            total_tokens: Tokens used this session
        """
        parts = [model, f"{tokens_in_window:,}/{tpm_limit:,} TPM", f"{total_tokens:,} tokens total"]
        self.console.print(Text(" | ".join(parts), style="dim"))

    def render_history(self, messages: list[dict]) -> None:
        """Render conversation history, one block per message."""
        styles = {"user": "green", "assistant": "blue"}
        self.console.print(Rule("Conversation History", style="cyan"))
        for msg in messages:
            role = msg.get("role", "?")
            self.console.print(Text.assemble(
                (f"{role}: ", f"bold {styles.get(role, 'dim')}"),
                (msg.get("content") or "", ""),
            ), highlight=False)
            self.console.print()
