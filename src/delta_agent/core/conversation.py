"""Conversation management for LLM context."""

import logging
from typing import Any

import litellm

from delta_agent.utils import estimate_tokens

_log = logging.getLogger(__name__)

TOOL_RESULTS_HEADER = "Tool Results:"
TRUNCATED_MARK = "\n...[truncated]"


class ConversationManager:
    """Manages message history for LLM context."""

    def __init__(self, system_prompt: str, model: str = "gpt-4") -> None:
        """Initialize with system prompt (never dropped).

        Args:
            system_prompt: The system prompt to use
            model: The model to use for token counting (default: gpt-4)
        """
        self._messages: list[dict[str, Any]] = [
            {"role": "system", "content": system_prompt}
        ]
        self._model = model

    def add_message(self, role: str, content: str) -> None:
        """Add a message to the conversation history.

        Args:
            role: One of "user", "assistant", "system"
            content: The message content
        """
        self._messages.append({"role": role, "content": content})

    def add_tool_results(self, entries: list[tuple[str, str]]) -> None:
        """Append one system message summarizing a batch of executed tools.

        Args:
            entries: (tool label, result text) pairs in execution order
        """
        blocks = [f"Tool: {label}\nResult:\n{text}" for label, text in entries]
        self.add_message("system", f"{TOOL_RESULTS_HEADER}\n" + "\n\n".join(blocks))

    def get_messages(self) -> list[dict[str, Any]]:
        """Return all messages for LLM API."""
        return self._messages.copy()

    def get_history(self) -> list[dict[str, Any]]:
        """Return every message except the system prompt."""
        return self._messages[1:]

    def truncate_if_needed(self, max_tokens: int = 128000) -> None:
        """Truncate conversation history to prevent context overflow.

        Strategy:
        1. First: Prune old tool result messages (reduce content length)
        2. Then: Remove oldest non-system messages
        3. Never: Remove the system prompt

        Args:
            max_tokens: Maximum estimated tokens before truncation (default: 128K)
        """
        while self._estimate_tokens() > max_tokens:
            if self._prune_oldest_tool_output():
                continue
            if not self._remove_oldest_message():
                break  # Nothing more to remove

    def _prune_oldest_tool_output(self) -> bool:
        """Shorten the oldest long tool-result message.

        Returns:
            True if a message was pruned, False if none found.
        """
        for msg in self._messages[1:]:
            content = msg.get("content") or ""
            if (
                content.startswith(TOOL_RESULTS_HEADER)
                and len(content) > 1000
                and not content.endswith(TRUNCATED_MARK)
            ):
                msg["content"] = content[:1000] + TRUNCATED_MARK
                return True
        return False

    def _remove_oldest_message(self) -> bool:
        if len(self._messages) <= 1:
            return False
        del self._messages[1]
        return True

    def _estimate_tokens(self) -> int:
        """Estimate total tokens using litellm.token_counter() with fallback."""
        try:
            return litellm.token_counter(model=self._model, messages=self._messages)
        except Exception as e:
            _log.debug("token_counter failed for %s, using heuristic: %s", self._model, e)
            return self._estimate_tokens_heuristic()

    def _estimate_tokens_heuristic(self) -> int:
        return sum(estimate_tokens(m.get("content") or "") for m in self._messages)

    def clear(self) -> None:
        """Clear all non-system messages."""
        system_prompt = self._messages[0]["content"] if self._messages else ""
        self._messages = [{"role": "system", "content": system_prompt}]

    @property
    def token_count(self) -> int:
        """Return current estimated token count."""
        return self._estimate_tokens()
