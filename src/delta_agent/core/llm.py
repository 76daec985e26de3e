"""LiteLLM client wrapper - connectivity verification and completions."""

import logging
import traceback

import litellm

from delta_agent.config import AgentConfig

_log = logging.getLogger(__name__)


class LLMClient:
    """LiteLLM client for model communication.

    The session only needs complete(); tool requests are embedded in the
    returned text, so no native tool schemas are sent.
    """

    def __init__(self, config: AgentConfig, num_retries: int = 2) -> None:
        self.model = config.model
        self.api_base = config.api_base
        self.api_key = config.api_key
        self.temperature = config.temperature
        self.max_output_tokens = config.max_output_tokens
        self.top_p = config.top_p
        self.num_retries = num_retries
        self.last_response = None

    def _handle_llm_error(self, error: Exception) -> None:
        """Convert exceptions from LiteLLM calls to ConnectionError with clear messages.

        Raises:
            ConnectionError: Always. With differentiated messages for connectivity,
                authentication, timeout, server errors, and unexpected failures.
        """
        if isinstance(error, litellm.AuthenticationError):
            raise ConnectionError(
                f"Authentication failed connecting to LiteLLM server.\n\n"
                f"  Server: {self.api_base}\n"
                f"  Error: {error.message}\n\n"
                f"Check your api_key in ~/.delta-agent/config.yaml"
            ) from None
        if isinstance(error, litellm.APIConnectionError):
            raise ConnectionError(
                f"Cannot connect to LiteLLM server.\n\n"
                f"  Server: {self.api_base}\n"
                f"  Error: {error.message}\n\n"
                f"Suggestions:\n"
                f"  1. Verify the server is running at {self.api_base}\n"
                f"  2. Check your network/firewall settings\n"
                f"  3. Verify api_base in ~/.delta-agent/config.yaml"
            ) from None
        if isinstance(error, litellm.Timeout):
            raise ConnectionError(
                f"Connection to LiteLLM server timed out.\n\n"
                f"  Server: {self.api_base}\n\n"
                f"The server may be overloaded or unreachable. "
                f"Check your network connection."
            ) from None
        if isinstance(error, litellm.RateLimitError):
            raise ConnectionError(
                f"LiteLLM server rejected the request: rate limit exceeded.\n\n"
                f"  Server: {self.api_base}\n"
                f"  Error: {error.message}\n\n"
                f"Lower tpm_limit in ~/.delta-agent/config.yaml."
            ) from None
        if isinstance(error, litellm.APIError):
            raise ConnectionError(
                f"LiteLLM request failed (status {error.status_code}).\n\n"
                f"  Server: {self.api_base}\n"
                f"  Error: {error.message}\n\n"
                f"Check your LiteLLM server configuration and logs."
            ) from None
        tb = traceback.format_exception(type(error), error, error.__traceback__)
        raise ConnectionError(
            f"Unexpected error connecting to LiteLLM server.\n\n"
            f"  Server: {self.api_base}\n"
            f"  Error: {type(error).__name__}: {error}\n\n"
            f"Full traceback:\n{''.join(tb)}"
        ) from None

    def verify_connection(self) -> None:
        """Verify connectivity to LiteLLM server.

        Sends a lightweight test request to confirm the server is reachable
        and authentication is valid.

        Raises:
            ConnectionError: With differentiated messages for connectivity,
                authentication, timeout, and server errors.
        """
        try:
            litellm.completion(
                model=self.model,
                messages=[{"role": "user", "content": "ping"}],
                api_base=self.api_base,
                api_key=self.api_key,
                max_tokens=1,
                timeout=10,
                temperature=self.temperature,
                top_p=self.top_p,
            )
        except Exception as e:
            self._handle_llm_error(e)

    def complete(self, messages: list[dict]) -> str:
        """Send the conversation and return the assistant's raw text.

        Raises:
            ConnectionError: On any network, auth or server failure.
        """
        self.last_response = None
        try:
            response = litellm.completion(
                model=self.model,
                messages=messages,
                api_base=self.api_base,
                api_key=self.api_key,
                timeout=300,
                num_retries=self.num_retries,
                temperature=self.temperature,
                max_tokens=self.max_output_tokens,
                top_p=self.top_p,
            )
        except Exception as e:
            self._handle_llm_error(e)

        self.last_response = response
        if not response.choices:
            raise ConnectionError(f"LiteLLM server returned no choices.\n\n  Server: {self.api_base}")
        content = response.choices[0].message.content or ""
        _log.debug("Received %d characters from %s", len(content), self.model)
        return content

    @property
    def last_usage(self) -> dict | None:
        """Token usage reported by the server for the last completion, if any."""
        usage = getattr(self.last_response, "usage", None)
        if usage is None:
            return None
        return {
            "prompt_tokens": getattr(usage, "prompt_tokens", 0) or 0,
            "completion_tokens": getattr(usage, "completion_tokens", 0) or 0,
        }
