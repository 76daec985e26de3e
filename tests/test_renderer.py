"""Tests for the Rich renderer."""

import io

import pytest

from delta_agent.core.requests import ChangeFile, DeltaBlock, ExecuteCommand, ReadFile
from delta_agent.core.tool_result import ToolResult
from delta_agent.ui.renderer import DIFF_PREVIEW_LINES, Renderer


@pytest.fixture()
def output():
    return io.StringIO()


@pytest.fixture()
def renderer(output):
    return Renderer(output_file=output)


class TestMessages:
    def test_markdown(self, renderer, output):
        renderer.render_markdown("# Title\n\nSome **bold** text")
        text = output.getvalue()
        assert "Title" in text
        assert "bold" in text
        assert "**" not in text

    @pytest.mark.parametrize("method", ["print_error", "print_info", "print_warning", "print_success"])
    def test_styled_messages(self, renderer, output, method):
        getattr(renderer, method)("message text")
        assert "message text" in output.getvalue()

    def test_markup_not_interpreted(self, renderer, output):
        renderer.print_error("bad [bold]input[/bold]")
        assert "[bold]" in output.getvalue()

    def test_spinner_is_noop_when_captured(self, renderer, output):
        with renderer.status_spinner("Working"):
            pass
        assert output.getvalue() == ""

    def test_banner_includes_version(self, renderer, output):
        renderer.render_banner("1.2.3")
        assert "1.2.3" in output.getvalue()

    def test_config_items(self, renderer, output):
        renderer.render_config({"Model": "gpt-4o", "TPM": 20000})
        text = output.getvalue()
        assert "Model: gpt-4o" in text
        assert "TPM: 20000" in text


class TestTools:
    def test_render_tool(self, renderer, output):
        renderer.render_tool(ExecuteCommand("pytest -q"))
        text = output.getvalue()
        assert "execute_command" in text
        assert "pytest -q" in text

    def test_long_detail_shortened(self, renderer, output):
        renderer.render_tool(ReadFile("d/" * 60 + "f.py"))
        assert "..." in output.getvalue()

    def test_change_lists_deltas(self, renderer, output):
        renderer.render_tool(ChangeFile("a.py", (DeltaBlock("a\nb", "c"), DeltaBlock("x", "y\nz"))))
        text = output.getvalue()
        assert "delta 1: -2 +1 lines" in text
        assert "delta 2: -1 +2 lines" in text

    def test_failure_result(self, renderer, output):
        renderer.render_result(ToolResult.failure("NOT_FOUND", "File not found: a.py"))
        text = output.getvalue()
        assert "✗ NOT_FOUND" in text
        assert "File not found: a.py" in text

    def test_success_preview_truncated(self, renderer, output):
        result = ToolResult.success(data={"content": "x" * 1000}, message="Read 1000 bytes from a")
        renderer.render_result(result)
        text = output.getvalue()
        assert "✓ Read 1000 bytes" in text
        assert "x" * 1000 not in text

    def test_result_warnings(self, renderer, output):
        result = ToolResult.success(
            data={"exit_code": 2, "stdout": "", "stderr": ""},
            message="Command exited with code 2",
            warnings=["Command exited with non-zero code 2"],
        )
        renderer.render_result(result)
        assert "non-zero code 2" in output.getvalue()

    def test_diff_shown_for_change(self, renderer, output):
        result = ToolResult.success(
            data={"diff": "--- a/f\n+++ b/f\n@@ -1 +1 @@\n-old\n+new\n"},
            message="Applied 1 delta to f",
        )
        renderer.render_result(result)
        text = output.getvalue()
        assert "-old" in text
        assert "+new" in text

    def test_long_diff_capped(self, renderer, output):
        diff = "".join(f"+line {i}\n" for i in range(DIFF_PREVIEW_LINES + 20))
        renderer.render_diff(diff)
        assert "20 more lines" in output.getvalue()


class TestStatus:
    def test_status_line(self, renderer, output):
        renderer.render_status_line("gpt-4o", 1500, 20000, 123456)
        text = output.getvalue()
        assert "gpt-4o" in text
        assert "1,500/20,000 TPM" in text
        assert "123,456 tokens total" in text

    def test_history(self, renderer, output):
        renderer.render_history([
            {"role": "user", "content": "question"},
            {"role": "assistant", "content": "answer"},
        ])
        text = output.getvalue()
        assert "user: question" in text
        assert "assistant: answer" in text
