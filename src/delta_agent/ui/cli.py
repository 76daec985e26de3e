"""delta-agent CLI entry point."""

import logging
import os
import sys
from pathlib import Path

import click
import litellm
from prompt_toolkit import PromptSession

from delta_agent import __version__
from delta_agent.config import AgentConfig, ConfigError, apply_cli_overrides, load_config
from delta_agent.core.conversation import ConversationManager
from delta_agent.core.executor import ToolExecutor, WorkspaceError
from delta_agent.core.llm import LLMClient
from delta_agent.core.rate_limiter import RateLimiter
from delta_agent.core.session import Session
from delta_agent.core.system_prompt import build_system_prompt
from delta_agent.ui.renderer import Renderer
from delta_agent.ui.slash_commands import SlashCommandCompleter, execute_command

litellm.suppress_debug_info = True

USER_PROMPT = "You   > "


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not verbose:
        # LiteLLM logs every request at INFO
        logging.getLogger("LiteLLM").setLevel(logging.WARNING)


def build_session(config: AgentConfig, llm_client: LLMClient, renderer: Renderer | None = None) -> Session:
    """Wire the core components from a validated config."""
    executor = ToolExecutor(
        config.project_root,
        command_timeout=config.command_timeout,
        max_file_bytes=config.max_file_bytes,
        policy={"deny_tools": config.deny_tools},
        audit_log=config.audit_log,
    )
    limiter = RateLimiter(config.tpm_limit, min_interval=config.min_request_interval)
    conversation = ConversationManager(build_system_prompt(str(config.project_root)), model=config.model)
    return Session(
        llm_client,
        conversation,
        executor,
        limiter,
        renderer=renderer,
        max_context_tokens=config.max_context_tokens,
    )


@click.command()
@click.option("--model", default=None, help="Override LLM model (e.g., litellm/gpt-4o)")
@click.option("--api-base", default=None, help="Override LiteLLM API base URL")
@click.option("--project", "project_root", default=None, type=click.Path(file_okay=False), help="Project root (default: config or cwd)")
@click.option("--tpm", "tpm_limit", default=None, type=int, help="Tokens-per-minute limit")
@click.option("--config", "config_path", default=None, type=click.Path(dir_okay=False), help="Config file path")
@click.option("--verbose", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="delta-agent")
def main(
    model: str | None,
    api_base: str | None,
    project_root: str | None,
    tpm_limit: int | None,
    config_path: str | None,
    verbose: bool,
) -> None:
    """Interactive coding agent that reads, runs and patches inside one project."""
    configure_logging(verbose)
    os.environ["LITELLM_NO_PROVIDER_LIST"] = "1"
    renderer = Renderer()
    renderer.render_banner(__version__)

    try:
        config = load_config(Path(config_path) if config_path else None)
        config = apply_cli_overrides(config, model=model, api_base=api_base, project_root=project_root, tpm_limit=tpm_limit)
    except ConfigError as e:
        click.echo(str(e), err=True)
        sys.exit(1)

    renderer.render_config({
        "Model": config.model,
        "API": config.api_base,
        "Project": str(config.project_root),
        "TPM limit": f"{config.tpm_limit:,}",
    })

    try:
        llm_client = LLMClient(config)
        with renderer.status_spinner("[dim]Connecting...[/dim]"):
            llm_client.verify_connection()
        session = build_session(config, llm_client, renderer)
    except (ConnectionError, WorkspaceError) as e:
        click.echo(str(e), err=True)
        sys.exit(1)

    renderer.print_info("Connected. Commands: /help /exit /clear /history /tokens")

    prompt = PromptSession(completer=SlashCommandCompleter())

    while True:
        try:
            text = prompt.prompt(USER_PROMPT)
        except KeyboardInterrupt:
            click.echo("\nUse Ctrl+D or type /exit to quit.")
            continue
        except EOFError:
            break

        text = text.strip()
        if not text:
            continue

        should_continue = execute_command(text, session, renderer)
        if should_continue is False:
            break
        if should_continue is True:
            continue

        try:
            session.run(text)
        except ConnectionError as e:
            renderer.print_error(str(e))
            continue
        except WorkspaceError as e:
            renderer.print_error(f"Workspace error: {e}")
            sys.exit(1)

        budget = session.limiter.budget
        renderer.render_status_line(
            llm_client.model,
            budget.tokens_used_in_window,
            budget.limit_per_minute,
            session.limiter.total_tokens,
        )
