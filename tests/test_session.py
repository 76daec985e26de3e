"""Tests for Session - the model → parse → execute → history loop."""

from unittest.mock import MagicMock, patch

import pytest

from delta_agent.core.conversation import TOOL_RESULTS_HEADER, ConversationManager
from delta_agent.core.rate_limiter import RateLimiter
from delta_agent.core.requests import ChangeFile, ReadFile
from delta_agent.core.session import MAX_REPEATED_BATCHES, Session
from delta_agent.utils import estimate_tokens

from conftest import make_file


@pytest.fixture(autouse=True)
def _heuristic_token_count():
    with patch("delta_agent.core.conversation.litellm.token_counter", side_effect=ValueError("offline")):
        yield


@pytest.fixture()
def llm():
    client = MagicMock()
    client.complete.side_effect = ["All done."]
    client.last_usage = None
    return client


@pytest.fixture()
def make_session(llm, executor, clock):
    def _make(tpm=100_000, min_interval=0.0, renderer=None):
        limiter = RateLimiter(tpm, min_interval=min_interval, clock=clock)
        sleep = MagicMock(side_effect=clock.advance)
        session = Session(
            llm_client=llm,
            conversation=ConversationManager("system prompt"),
            executor=executor,
            limiter=limiter,
            renderer=renderer,
            sleep=sleep,
        )
        return session, sleep
    return _make


class TestRunTurn:
    def test_plain_reply_has_no_followup(self, make_session, llm):
        session, _ = make_session()
        turn = session.run_turn("hello")
        assert turn.response_text == "All done."
        assert turn.requests == []
        assert not turn.needs_followup
        roles = [m["role"] for m in session.conversation.get_history()]
        assert roles == ["user", "assistant"]

    def test_requests_executed_in_order(self, make_session, llm, workspace):
        make_file(workspace, "a.txt", "alpha\n")
        llm.complete.side_effect = [
            'read_file: "a.txt"\n'
            "CHANGE: a.txt\n<<<<<<< CURRENT\nalpha\n=======\nbeta\n>>>>>>> NEW\n"
            'read_file("a.txt")'
        ]
        session, _ = make_session()
        turn = session.run_turn("edit it")
        assert [type(r) for r in turn.requests] == [ReadFile, ChangeFile, ReadFile]
        assert turn.results[0].data["content"] == "alpha\n"
        assert turn.results[1].ok
        assert turn.results[2].data["content"] == "beta\n"
        assert (workspace / "a.txt").read_text() == "beta\n"

    def test_results_appended_as_system_message(self, make_session, llm, workspace):
        make_file(workspace, "a.txt", "alpha\n")
        llm.complete.side_effect = ['read_file: "a.txt"\nread_file: "missing.txt"']
        session, _ = make_session()
        session.run_turn("look")
        last = session.conversation.get_history()[-1]
        assert last["role"] == "system"
        assert last["content"].startswith(TOOL_RESULTS_HEADER)
        assert "Tool: read_file: a.txt" in last["content"]
        assert "Error [NOT_FOUND]" in last["content"]

    def test_parse_warnings_reported_to_model(self, make_session, llm):
        llm.complete.side_effect = ["CHANGE: a.py\nno regions here"]
        session, _ = make_session()
        turn = session.run_turn("edit")
        assert turn.requests == []
        assert turn.needs_followup
        last = session.conversation.get_history()[-1]
        assert "Tool: parser" in last["content"]

    def test_thinking_tokens_removed_from_history(self, make_session, llm):
        llm.complete.side_effect = ["<|start|>assistant<|channel|>Answer<|end|>"]
        session, _ = make_session()
        session.run_turn("q")
        assert session.conversation.get_history()[-1]["content"] == "Answer"

    def test_tokens_recorded(self, make_session, llm):
        session, _ = make_session()
        session.run_turn("hello")
        assert session.limiter.total_tokens > 0

    def test_server_reported_completion_tokens_recorded(self, make_session, llm):
        llm.last_usage = {"prompt_tokens": 12, "completion_tokens": 500}
        session, _ = make_session()
        with patch.object(session.limiter, "record", wraps=session.limiter.record) as record:
            session.run_turn("hello")
        record.assert_called_once_with(500)

    def test_estimate_used_without_server_usage(self, make_session, llm):
        session, _ = make_session()
        with patch.object(session.limiter, "record", wraps=session.limiter.record) as record:
            session.run_turn("hello")
        record.assert_called_once_with(estimate_tokens("All done."))


class TestRateLimiting:
    def test_waits_when_budget_exhausted(self, make_session, llm, clock):
        llm.complete.side_effect = ["one", "two"]
        session, sleep = make_session(tpm=100_000)
        session.limiter.record(100_000)
        session.run_turn("hello")
        assert sleep.called
        assert sleep.call_args[0][0] == pytest.approx(60.0)

    def test_min_interval_between_calls(self, make_session, llm):
        llm.complete.side_effect = ["one", "two"]
        session, sleep = make_session(min_interval=2.0)
        session.run_turn("first")
        session.run_turn("second")
        sleep.assert_called_once()
        assert sleep.call_args[0][0] == pytest.approx(2.0)

    def test_no_wait_under_budget(self, make_session):
        session, sleep = make_session()
        session.run_turn("hello")
        sleep.assert_not_called()


class TestRun:
    def test_loops_until_plain_reply(self, make_session, llm, workspace):
        make_file(workspace, "a.txt", "x")
        llm.complete.side_effect = ['read_file: "a.txt"', "The file contains x."]
        session, _ = make_session()
        turn = session.run("what is in a.txt?")
        assert turn.response_text == "The file contains x."
        assert llm.complete.call_count == 2

    def test_iteration_cap(self, make_session, llm, workspace):
        make_file(workspace, "a.txt", "x")
        make_file(workspace, "b.txt", "y")
        llm.complete.side_effect = ['read_file: "a.txt"', 'read_file: "b.txt"'] * 10
        session, _ = make_session()
        session.run("loop", max_iterations=3)
        assert llm.complete.call_count == 3

    def test_repeated_batch_stops(self, make_session, llm, workspace):
        make_file(workspace, "a.txt", "x")
        llm.complete.side_effect = ['read_file: "a.txt"'] * 10
        session, _ = make_session()
        session.run("loop")
        assert llm.complete.call_count == MAX_REPEATED_BATCHES + 1

    def test_warnings_only_twice_stops(self, make_session, llm):
        llm.complete.side_effect = ["read_file:", "read_file:", "read_file:"]
        session, _ = make_session()
        session.run("go")
        assert llm.complete.call_count == 2

    def test_connection_error_propagates(self, make_session, llm):
        llm.complete.side_effect = ConnectionError("down")
        session, _ = make_session()
        with pytest.raises(ConnectionError):
            session.run("hello")


class TestRendering:
    def test_renderer_receives_tool_output(self, make_session, llm, workspace):
        make_file(workspace, "a.txt", "x")
        llm.complete.side_effect = ['read_file: "a.txt"']
        renderer = MagicMock()
        session, _ = make_session(renderer=renderer)
        session.run_turn("look")
        renderer.render_tool.assert_called_once()
        renderer.render_result.assert_called_once()
        renderer.render_markdown.assert_not_called()

    def test_plain_reply_rendered_as_markdown(self, make_session, llm):
        renderer = MagicMock()
        session, _ = make_session(renderer=renderer)
        session.run_turn("hi")
        renderer.render_markdown.assert_called_once_with("All done.")

    def test_warnings_printed(self, make_session, llm):
        llm.complete.side_effect = ["read_file:"]
        renderer = MagicMock()
        session, _ = make_session(renderer=renderer)
        session.run_turn("hi")
        assert "malformed" in renderer.print_warning.call_args[0][0]
