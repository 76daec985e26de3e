"""Shared text helpers."""

THINKING_TOKENS = ("<|start|>assistant<|channel|>", "<|message|>", "<|end|>")


def truncate_output(text: str, max_length: int = 30000) -> str:
    """Truncate output to max_length characters.

    Args:
        text: The text to truncate
        max_length: Maximum length (default 30000)

    Returns:
        Truncated text with indicator appended
    """
    if len(text) <= max_length:
        return text

    truncated = text[:max_length]
    indicator = f"\n\n[Output truncated - showing first {max_length} characters]"
    return truncated + indicator


def filter_thinking_tokens(text: str) -> str:
    """Strip chat-template channel tokens some models leak into their output."""
    for token in THINKING_TOKENS:
        text = text.replace(token, "")
    return text.strip()


def estimate_tokens(text: str) -> int:
    """Rough token estimate: about four characters per token, never fewer than the word count."""
    return max(len(text) // 4, len(text.split()))
