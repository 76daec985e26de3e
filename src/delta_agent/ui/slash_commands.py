"""Slash command system for CLI."""

from typing import Callable

import litellm
from prompt_toolkit.completion import Completer, Completion
from rich.table import Table

from delta_agent.core.session import Session
from delta_agent.ui.renderer import Renderer


class SlashCommand:
    """Represents a slash command."""

    def __init__(self, name: str, handler: Callable, help_text: str, arg_required: bool = False):
        self.name = name
        self.handler = handler
        self.help_text = help_text
        self.arg_required = arg_required


def cmd_help(args: str, session: Session, renderer: Renderer) -> bool:
    """Show help message."""
    table = Table(title="Available Commands", show_header=True, header_style="bold cyan")
    table.add_column("Command", style="cyan")
    table.add_column("Description")

    for cmd in COMMANDS.values():
        name = f"/{cmd.name}"
        if cmd.arg_required:
            name += " <arg>"
        table.add_row(name, cmd.help_text)

    renderer.console.print(table)

    tools = Table(title="Available Tools", show_header=True, header_style="bold cyan")
    tools.add_column("Syntax", style="cyan")
    tools.add_column("Description")
    tools.add_row('read_file: "path"', "Read file contents")
    tools.add_row('execute_command: "cmd"', "Run shell command in the project root")
    tools.add_row("CHANGE: path", "Modify file (CURRENT/NEW delta format)")
    renderer.console.print(tools)
    return True


def cmd_clear(args: str, session: Session, renderer: Renderer) -> bool:
    """Clear conversation history."""
    session.conversation.clear()
    renderer.print_success("Conversation cleared.")
    return True


def cmd_compact(args: str, session: Session, renderer: Renderer) -> bool:
    """Trigger conversation truncation."""
    session.conversation.truncate_if_needed(max_tokens=session.max_context_tokens // 2)
    renderer.print_success("Conversation compacted.")
    return True


def cmd_history(args: str, session: Session, renderer: Renderer) -> bool:
    """Show conversation history."""
    history = session.conversation.get_history()
    if not history:
        renderer.print_info("No messages yet.")
        return True
    renderer.render_history(history)
    return True


def cmd_tokens(args: str, session: Session, renderer: Renderer) -> bool:
    """Show rate limiter usage."""
    budget = session.limiter.budget
    renderer.render_config({
        "Window usage": f"{budget.tokens_used_in_window:,} / {budget.limit_per_minute:,} tokens",
        "Remaining": f"{budget.remaining:,} tokens",
        "Session total": f"{session.limiter.total_tokens:,} tokens",
        "Context": f"{session.conversation.token_count:,} tokens",
    })
    return True


def cmd_model(args: str, session: Session, renderer: Renderer) -> bool:
    """Switch to a different model."""
    llm_client = session.llm_client
    model_name = args.strip()

    # Validate with a one-token completion before switching
    try:
        litellm.completion(
            model=model_name,
            messages=[{"role": "user", "content": "ping"}],
            api_base=llm_client.api_base,
            api_key=llm_client.api_key,
            max_tokens=1,
            timeout=10,
        )
    except Exception:
        # Generic message; provider errors can include keys or account details
        renderer.print_error(f"Error: Model '{model_name}' is not available or not accessible.")
        return True

    llm_client.model = model_name
    renderer.print_success(f"Switched to model: {model_name}")
    return True


def cmd_exit(args: str, session: Session, renderer: Renderer) -> bool:
    """Exit the session."""
    renderer.print_info("Goodbye!")
    return False


COMMANDS: dict[str, SlashCommand] = {
    "help": SlashCommand("help", cmd_help, "Show commands and tool syntax", False),
    "clear": SlashCommand("clear", cmd_clear, "Clear conversation history", False),
    "compact": SlashCommand("compact", cmd_compact, "Shrink conversation history", False),
    "history": SlashCommand("history", cmd_history, "Show conversation history", False),
    "tokens": SlashCommand("tokens", cmd_tokens, "Show token usage against the TPM limit", False),
    "model": SlashCommand("model", cmd_model, "Switch to a different model", True),
    "exit": SlashCommand("exit", cmd_exit, "Exit the session", False),
    "quit": SlashCommand("quit", cmd_exit, "Exit the session", False),
}


class SlashCommandCompleter(Completer):
    """Autocomplete for slash commands in prompt-toolkit."""

    def get_completions(self, document, complete_event):
        """Yield completions when input starts with '/'."""
        text = document.text_before_cursor

        if not text.startswith("/"):
            return

        partial = text[1:]

        for name, cmd in COMMANDS.items():
            if name.startswith(partial):
                yield Completion(
                    name,
                    start_position=-len(partial),
                    display_meta=cmd.help_text,
                )


def is_slash_command(text: str) -> bool:
    """Check if input is a slash command."""
    return text.strip().startswith("/")


def parse_command(text: str) -> tuple[str, str]:
    """Parse command name and arguments from input.

    Returns:
        Tuple of (command_name, arguments)
    """
    text = text.strip()
    if not text.startswith("/"):
        return "", ""

    parts = text[1:].split(maxsplit=1)
    if not parts:
        return "", ""
    command = parts[0].lower()
    args = parts[1] if len(parts) > 1 else ""

    return command, args


def execute_command(text: str, session: Session, renderer: Renderer) -> bool | None:
    """Execute a slash command if the input is one.

    Returns:
        True if command executed and session should continue
        False if command executed and session should exit
        None if input is not a slash command
    """
    if not is_slash_command(text):
        return None

    command_name, args = parse_command(text)

    if command_name not in COMMANDS:
        renderer.print_error(f"Unknown command: /{command_name}. Type /help for available commands.")
        return True

    cmd = COMMANDS[command_name]

    if cmd.arg_required and not args:
        renderer.print_error(f"Command /{command_name} requires an argument.")
        return True

    return cmd.handler(args, session, renderer)
