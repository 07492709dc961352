"""Configuration management for the code completer."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigMissingError

PERPLEXITY_MODELS = ("sonar", "sonar-pro", "sonar-reasoning")
PROVIDERS = ("perplexity", "openai", "anthropic")


@dataclass
class Config:
    # LLM API
    llm_provider: str = "perplexity"  # "perplexity", "openai" or "anthropic"
    perplexity_api_key: str = ""
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    llm_model: str = "sonar"
    enabled: bool = True

    # Inline profile
    inline_max_tokens: int = 60
    inline_temperature: float = 0.1
    inline_timeout: float = 10.0

    # Prompt-generation profile
    prompt_max_tokens: int = 300
    prompt_temperature: float = 0.2
    prompt_timeout: float = 15.0

    # Scheduling
    debounce_ms: int = 500

    # Cache
    cache_enabled: bool = True
    cache_ttl_seconds: float = 300.0
    cache_max_entries: int = 500

    # Context window
    scan_lines: int = 20
    fallback_lines: int = 15
    extended_before: int = 20
    extended_after: int = 5

    def __post_init__(self):
        if not self.perplexity_api_key:
            self.perplexity_api_key = os.environ.get("PERPLEXITY_API_KEY", "")
        if not self.openai_api_key:
            self.openai_api_key = os.environ.get("OPENAI_API_KEY", "")
        if not self.anthropic_api_key:
            self.anthropic_api_key = os.environ.get("ANTHROPIC_API_KEY", "")

    @property
    def api_key(self) -> str:
        """The key for the active provider."""
        return {
            "perplexity": self.perplexity_api_key,
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
        }.get(self.llm_provider, "")

    @api_key.setter
    def api_key(self, value: str) -> None:
        if self.llm_provider == "openai":
            self.openai_api_key = value
        elif self.llm_provider == "anthropic":
            self.anthropic_api_key = value
        else:
            self.perplexity_api_key = value

    @property
    def is_ready(self) -> bool:
        return self.enabled and bool(self.api_key)

    def require_ready(self) -> None:
        """Raise ConfigMissingError unless requests may be sent."""
        if not self.enabled:
            raise ConfigMissingError("Completions are disabled")
        if self.llm_provider not in PROVIDERS:
            raise ConfigMissingError(f"Unknown LLM provider: {self.llm_provider}")
        if not self.api_key:
            raise ConfigMissingError(
                f"No API key configured for provider '{self.llm_provider}'"
            )


def _load_dotenv() -> None:
    """Load .env file from the project root if it exists."""
    env_path = Path(__file__).resolve().parent.parent / ".env"
    if not env_path.is_file():
        return
    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip("\"'")
            if key and key not in os.environ:
                os.environ[key] = value


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() not in ("0", "false", "no", "off", "")


def load_config() -> Config:
    """Load configuration, using .env file, environment variables, and defaults."""
    _load_dotenv()
    config = Config(
        llm_provider=os.environ.get("CODECOMPLETER_LLM_PROVIDER", "perplexity"),
        llm_model=os.environ.get("CODECOMPLETER_LLM_MODEL", "sonar"),
        enabled=_env_flag("CODECOMPLETER_ENABLED", True),
        debounce_ms=int(os.environ.get("CODECOMPLETER_DEBOUNCE_MS", "500")),
    )
    return config
