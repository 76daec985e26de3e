"""Configuration management - Pydantic model with YAML loading, env and CLI overrides."""

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

DEFAULT_CONFIG_DIR = Path.home() / ".delta-agent"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"

OLLAMA_DEFAULT_API_BASE = "http://localhost:11434"

# Environment variable -> config field
ENV_OVERRIDES = {
    "LLM_TPM": "tpm_limit",
    "LLM_MIN_INTERVAL": "min_request_interval",
    "PROJECT_PATH": "project_root",
}


def is_ollama_model(model: str) -> bool:
    """Return True if the model string uses the Ollama provider prefix."""
    return model.startswith(("ollama/", "ollama_chat/"))


class ConfigError(Exception):
    """Raised when configuration is invalid or missing."""


class AgentConfig(BaseModel):
    """Agent configuration with validation."""

    model_config = ConfigDict(extra="forbid")

    model: str
    api_base: str
    api_key: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _apply_ollama_defaults(cls, values: dict) -> dict:
        """Auto-set api_base for Ollama models when not explicitly provided."""
        if isinstance(values, dict) and "api_base" not in values:
            if is_ollama_model(values.get("model", "")):
                values = dict(values)
                values["api_base"] = OLLAMA_DEFAULT_API_BASE
        return values

    # Model sampling parameters
    temperature: float = 0.0
    max_output_tokens: int = 4096
    top_p: float = 1.0

    # Context management
    max_context_tokens: int = 128000

    # Tool execution
    project_root: Path = Path(".")
    command_timeout: float = Field(default=60.0, gt=0)
    max_file_bytes: int = Field(default=256 * 1024, gt=0)
    deny_tools: list[str] = Field(default_factory=list)
    audit_log: Path | None = None

    # Rate limiting
    tpm_limit: int = Field(default=20000, gt=0)
    min_request_interval: float = Field(default=1.0, ge=0)

    @field_validator("api_base")
    @classmethod
    def validate_api_base(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("Must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("project_root")
    @classmethod
    def resolve_project_root(cls, v: Path) -> Path:
        return v.expanduser().resolve()

    def __repr__(self) -> str:
        api_key_display = "***" if self.api_key else "None"
        return (
            f"AgentConfig(model={self.model!r}, "
            f"api_base={self.api_base!r}, "
            f"api_key={api_key_display!r}, "
            f"project_root={str(self.project_root)!r}, "
            f"tpm_limit={self.tpm_limit!r}, "
            f"command_timeout={self.command_timeout!r})"
        )

    def __str__(self) -> str:
        return self.__repr__()


def _format_errors(e: ValidationError) -> str:
    errors = []
    for err in e.errors():
        field = ".".join(str(loc) for loc in err["loc"])
        msg = err["msg"]
        errors.append(f"  - {field}: {msg}")
    return "\n".join(errors)


def load_config(config_path: Path | None = None, environ: dict | None = None) -> AgentConfig:
    """Load and validate config from YAML file, then apply environment overrides.

    Args:
        config_path: Path to config file. Defaults to ~/.delta-agent/config.yaml.
        environ: Environment mapping. Defaults to os.environ.

    Returns:
        Validated AgentConfig instance.

    Raises:
        ConfigError: If file is missing, empty, or contains invalid config.
    """
    path = config_path or DEFAULT_CONFIG_FILE
    env = os.environ if environ is None else environ

    if not path.exists():
        raise ConfigError(
            f"Configuration file not found.\n\n"
            f"Expected location: {path}\n\n"
            f"For LiteLLM proxy / OpenAI-compatible APIs:\n"
            f"  model: litellm/gpt-4o\n"
            f"  api_base: http://localhost:4000\n\n"
            f"For local Ollama models (api_base defaults to {OLLAMA_DEFAULT_API_BASE}):\n"
            f"  model: ollama_chat/llama3.2\n\n"
            f"Optional fields: api_key, project_root, tpm_limit, command_timeout, max_file_bytes"
        )

    raw = path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw)

    if not isinstance(data, dict):
        raise ConfigError(
            f"Invalid configuration in {path}\n\n"
            f"  Config file is empty or not a valid YAML mapping.\n\n"
            f"Minimal example:\n"
            f"  model: litellm/gpt-4o\n"
            f"  api_base: http://localhost:4000"
        )

    for var, field in ENV_OVERRIDES.items():
        if env.get(var):
            data[field] = env[var]

    try:
        return AgentConfig(**data)
    except ValidationError as e:
        raise ConfigError(
            f"Invalid configuration in {path}\n\n{_format_errors(e)}"
        ) from None


def apply_cli_overrides(
    config: AgentConfig,
    model: str | None = None,
    api_base: str | None = None,
    project_root: str | Path | None = None,
    tpm_limit: int | None = None,
    command_timeout: float | None = None,
) -> AgentConfig:
    """Apply CLI flag overrides to config. Returns a new AgentConfig instance.

    Override precedence: Defaults → YAML → environment → CLI flags.
    """
    overrides = {}
    if model is not None:
        overrides["model"] = model
    if api_base is not None:
        overrides["api_base"] = api_base
    if project_root is not None:
        overrides["project_root"] = project_root
    if tpm_limit is not None:
        overrides["tpm_limit"] = tpm_limit
    if command_timeout is not None:
        overrides["command_timeout"] = command_timeout

    if not overrides:
        return config

    try:
        return AgentConfig.model_validate(config.model_dump() | overrides)
    except ValidationError as e:
        raise ConfigError(
            f"Invalid CLI override:\n\n{_format_errors(e)}"
        ) from None
