"""Session - drives the prompt → model → parse → execute → history loop."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from delta_agent.core.conversation import ConversationManager
from delta_agent.core.executor import ToolExecutor
from delta_agent.core.parser import ResponseParser
from delta_agent.core.rate_limiter import RateLimiter
from delta_agent.core.requests import ToolRequest
from delta_agent.core.tool_result import ToolResult
from delta_agent.utils import estimate_tokens, filter_thinking_tokens, truncate_output

_log = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 20
MAX_REPEATED_BATCHES = 3


@dataclass
class TurnResult:
    """Everything one model round-trip produced."""

    response_text: str
    requests: List[ToolRequest] = field(default_factory=list)
    results: List[ToolResult] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def needs_followup(self) -> bool:
        """True when the model acted (or tried to) and should see the outcome."""
        return bool(self.requests or self.warnings)


class Session:
    """Runs turns against the model and feeds tool results back into history."""

    def __init__(
        self,
        llm_client: Any,
        conversation: ConversationManager,
        executor: ToolExecutor,
        limiter: RateLimiter,
        parser: Optional[ResponseParser] = None,
        renderer: Any = None,
        max_context_tokens: int = 128000,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the session.

        Args:
            llm_client: Anything with complete(messages) -> str
            conversation: ConversationManager for message history
            executor: ToolExecutor bound to the project root
            limiter: RateLimiter gating model requests
            parser: ResponseParser (a default one is created if omitted)
            renderer: Renderer for output (optional; silent when None)
            max_context_tokens: History budget before truncation
            sleep: Called with the limiter's advised wait
        """
        self.llm_client = llm_client
        self.conversation = conversation
        self.executor = executor
        self.limiter = limiter
        self.parser = parser or ResponseParser()
        self.renderer = renderer
        self.max_context_tokens = max_context_tokens
        self._sleep = sleep

    def run(self, user_input: str, max_iterations: int = DEFAULT_MAX_ITERATIONS) -> TurnResult:
        """Run turns until the model replies without tool calls.

        Returns:
            The last TurnResult.
        """
        turn = self.run_turn(user_input)
        iterations = 1
        last_batch = turn.requests
        repeated = 0

        while turn.needs_followup:
            if iterations >= max_iterations:
                self._warn(f"Stopped: agent exceeded {max_iterations} iterations without finishing.")
                break
            acted = bool(turn.requests)
            turn = self.run_turn()
            iterations += 1
            if not acted and not turn.requests:
                # Two replies in a row with only parse warnings
                break

            if turn.requests and turn.requests == last_batch:
                repeated += 1
                if repeated >= MAX_REPEATED_BATCHES:
                    self._warn(f"Stopped: same tool calls repeated {MAX_REPEATED_BATCHES} times in a row.")
                    break
            else:
                repeated = 0
                last_batch = turn.requests
        return turn

    def run_turn(self, user_input: Optional[str] = None) -> TurnResult:
        """One round-trip: gate, call the model, parse, execute, record.

        Raises:
            ConnectionError: When the model service fails.
            WorkspaceError: When the project root becomes unusable.
        """
        if user_input is not None:
            self.conversation.add_message("user", user_input)

        self.conversation.truncate_if_needed(max_tokens=self.max_context_tokens)
        messages = self.conversation.get_messages()
        self._wait_for_budget(self.conversation.token_count)

        raw = self.llm_client.complete(messages)
        self.limiter.record(self._completion_tokens(raw))

        text = filter_thinking_tokens(raw)
        parsed = self.parser.parse(text)
        self.conversation.add_message("assistant", text)
        turn = TurnResult(response_text=text, requests=list(parsed.requests), warnings=list(parsed.warnings))

        if self.renderer:
            if parsed.requests:
                self.renderer.print_info(f"Executing {len(parsed.requests)} tool(s)...")
            else:
                self.renderer.render_markdown(text)
        for warning in parsed.warnings:
            self._warn(f"Parse warning: {warning}")

        entries = []
        for request in parsed.requests:
            if self.renderer:
                self.renderer.render_tool(request)
            result = self.executor.execute(request)
            if self.renderer:
                self.renderer.render_result(result)
            turn.results.append(result)
            entries.append((f"{request.name}: {request.describe()}", truncate_output(result.to_text())))

        if parsed.warnings:
            entries.append(("parser", "\n".join(parsed.warnings)))
        if entries:
            self.conversation.add_tool_results(entries)
        return turn

    def _completion_tokens(self, raw: str) -> int:
        """Server-reported completion tokens, else a local estimate of *raw*."""
        usage = getattr(self.llm_client, "last_usage", None)
        if usage and usage.get("completion_tokens"):
            return usage["completion_tokens"]
        return estimate_tokens(raw)

    def _wait_for_budget(self, prompt_tokens: int) -> None:
        while True:
            reservation = self.limiter.reserve(prompt_tokens)
            if reservation.granted:
                return
            if self.renderer:
                self.renderer.print_info(f"  Rate limit: waiting {reservation.wait_seconds:.1f}s...")
            self._sleep(reservation.wait_seconds)

    def _warn(self, message: str) -> None:
        _log.info(message)
        if self.renderer:
            self.renderer.print_warning(message)
