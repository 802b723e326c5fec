"""Configuration management using Pydantic settings with optional file persistence."""

import json
import os
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Paths ---

APP_NAME = "research-engine"


def get_config_dir() -> Path:
    """Get the configuration directory (e.g. ~/.config/research-engine)."""
    if os.name == "nt":
        base = Path(os.environ.get("APPDATA", Path.home() / ".config")).expanduser()
    else:
        base = Path("~/.config").expanduser()

    path = base / APP_NAME
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_default_reports_dir() -> Path:
    """Get the default directory for saving research reports."""
    base = Path("~/Documents").expanduser()
    if not base.exists():
        base = Path.home()

    return base / "research-reports"


CONFIG_FILE = get_config_dir() / "config.json"


def load_config_file() -> dict[str, Any]:
    """Load settings from the JSON config file if it exists."""
    if not CONFIG_FILE.exists():
        return {}

    try:
        text = CONFIG_FILE.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        return json.loads(text)
    except (OSError, json.JSONDecodeError):
        return {}


def save_config_file(config_data: dict[str, Any]) -> None:
    """Save settings to the JSON config file."""
    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_FILE.write_text(json.dumps(config_data, indent=2), encoding="utf-8")


# Standard environment variable names for API keys (first match wins for lists)
STANDARD_ENV_VAR_NAMES: dict[str, str | list[str]] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "google": ["GEMINI_API_KEY", "GOOGLE_API_KEY"],
    "azure_openai": "AZURE_OPENAI_API_KEY",
    "groq": "GROQ_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "huggingface": ["HF_TOKEN", "HUGGINGFACE_API_KEY"],
    "tavily": "TAVILY_API_KEY",
    "serpapi": "SERPAPI_API_KEY",
}

# Providers that don't require an API key
NO_KEY_PROVIDERS = frozenset({"ollama", "duckduckgo", "hash"})

ProviderType = Literal[
    "openai",
    "anthropic",
    "google",
    "azure_openai",
    "groq",
    "deepseek",
    "ollama",
    "openrouter",
]


def resolve_api_key(provider: str, override: Optional[SecretStr], prefix: str) -> Optional[str]:
    """Resolve an API key with priority: explicit override > standard env var > prefixed env var.

    Args:
        provider: Provider name used to look up the standard variable name.
        override: Key configured directly on the settings object.
        prefix: Env prefix for the legacy fallback, e.g. ``RESEARCH_LLM_``.

    Returns:
        The resolved API key or None if not found.
    """
    if override:
        return override.get_secret_value()

    standard_vars = STANDARD_ENV_VAR_NAMES.get(provider)
    if standard_vars:
        if isinstance(standard_vars, str):
            standard_vars = [standard_vars]
        for var_name in standard_vars:
            key = os.environ.get(var_name)
            if key:
                return key

    return os.environ.get(f"{prefix}{provider.upper()}_API_KEY")


class LLMSettings(BaseSettings):
    """LLM provider configuration."""

    model_config = SettingsConfigDict(env_prefix="RESEARCH_LLM_")

    provider: ProviderType = Field(default="openai")
    model_name: str = Field(default="gpt-4o-mini")
    api_key: Optional[SecretStr] = Field(default=None, description="Generic API key override (highest priority)")
    base_url: Optional[str] = Field(default=None, description="Custom base URL for OpenAI-compatible APIs")
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0, description="Sampling temperature (provider default when unset)")

    # Azure OpenAI specific
    azure_endpoint: Optional[str] = Field(default=None, description="Azure OpenAI endpoint URL")
    azure_api_version: Optional[str] = Field(default="2024-02-01", description="Azure OpenAI API version")

    def get_api_key_for_provider(self) -> Optional[str]:
        """Resolve the API key for the configured provider."""
        return resolve_api_key(self.provider, self.api_key, "RESEARCH_LLM_")

    def requires_api_key(self) -> bool:
        """Check if the current provider requires an API key."""
        return self.provider not in NO_KEY_PROVIDERS


EmbeddingProviderType = Literal["openai", "huggingface", "hash"]


class EmbeddingSettings(BaseSettings):
    """Embedding provider configuration."""

    model_config = SettingsConfigDict(env_prefix="RESEARCH_EMBEDDING_")

    provider: EmbeddingProviderType = Field(default="openai")
    model_name: str = Field(default="text-embedding-3-small")
    api_key: Optional[SecretStr] = Field(default=None)
    base_url: Optional[str] = Field(default=None, description="Override the provider endpoint")
    timeout: float = Field(default=30.0, description="Per-request timeout in seconds")

    def get_api_key_for_provider(self) -> Optional[str]:
        """Resolve the API key for the configured embedding provider."""
        return resolve_api_key(self.provider, self.api_key, "RESEARCH_EMBEDDING_")


SearchProviderType = Literal["duckduckgo", "tavily", "serpapi"]


class SearchSettings(BaseSettings):
    """Web search tool configuration."""

    model_config = SettingsConfigDict(env_prefix="RESEARCH_SEARCH_")

    provider: SearchProviderType = Field(default="duckduckgo")
    api_key: Optional[SecretStr] = Field(default=None)
    max_results: int = Field(default=10, description="Default number of hits per search")
    timeout: float = Field(default=30.0, description="Per-request timeout in seconds")
    min_interval: float = Field(default=1.0, description="Minimum seconds between two searches")

    def get_api_key_for_provider(self) -> Optional[str]:
        """Resolve the API key for the configured search provider."""
        return resolve_api_key(self.provider, self.api_key, "RESEARCH_SEARCH_")


class ScraperSettings(BaseSettings):
    """Page scraper configuration."""

    model_config = SettingsConfigDict(env_prefix="RESEARCH_SCRAPER_")

    timeout: float = Field(default=15.0, description="Per-page timeout in seconds")
    user_agent: str = Field(default="Mozilla/5.0 (compatible; research-engine/0.1)")
    max_content_length: int = Field(default=50_000, description="Characters of page text kept per page")


class ResearchSettings(BaseSettings):
    """Pipeline limits and scoring defaults."""

    model_config = SettingsConfigDict(env_prefix="RESEARCH_PIPELINE_")

    max_search_terms: int = Field(default=3, description="Search terms taken from the research plan")
    max_results_per_term: int = Field(default=10)
    max_sources: int = Field(default=5, description="Maximum candidate sources scraped per task")
    max_content_chars: int = Field(default=3000, description="Characters of page text sent for relevance and extraction")
    max_findings: int = Field(default=20, description="Findings passed to synthesis")
    unverified_confidence: float = Field(default=0.6, ge=0.0, le=1.0, description="Confidence of analysis results")
    save_directory: Optional[str] = Field(default=None, description="Directory to save research reports")


class MemorySettings(BaseSettings):
    """Memory store configuration."""

    model_config = SettingsConfigDict(env_prefix="RESEARCH_MEMORY_")

    enabled: bool = Field(default=True)
    db_path: Optional[str] = Field(default=None, description="SQLite file (default: ~/.config/research-engine/memory.db)")
    chunk_size: int = Field(default=500, description="Words per stored chunk")
    chunk_overlap: int = Field(default=50, description="Words shared by consecutive chunks")
    recall_limit: int = Field(default=20)
    recall_threshold: float = Field(default=0.5)


class LoggingSettings(BaseSettings):
    """Logging and task history configuration."""

    model_config = SettingsConfigDict(env_prefix="RESEARCH_LOGGING_")

    level: str = Field(default="INFO")
    structured: bool = Field(default=True, description="Render task events as JSON via structlog")
    history_enabled: bool = Field(default=False, description="Record task snapshots in SQLite")
    history_db_path: Optional[str] = Field(default=None)


class AppSettings(BaseSettings):
    """Root application settings.

    Priority: Environment Variables > Config File > Defaults
    """

    model_config = SettingsConfigDict(env_prefix="RESEARCH_", extra="ignore")

    llm: LLMSettings = Field(default_factory=LLMSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    scraper: ScraperSettings = Field(default_factory=ScraperSettings)
    research: ResearchSettings = Field(default_factory=ResearchSettings)
    memory: MemorySettings = Field(default_factory=MemorySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def save(self) -> Path:
        """Save current configuration to file (excluding secrets)."""
        data = self.model_dump(mode="json", exclude_none=True)
        for section in ("llm", "embedding", "search"):
            if section in data and "api_key" in data[section]:
                del data[section]["api_key"]
        save_config_file(data)
        return CONFIG_FILE

    def get_memory_db_path(self) -> Path:
        """Get the memory database path."""
        if self.memory.db_path:
            return Path(self.memory.db_path).expanduser()
        return get_config_dir() / "memory.db"

    def get_history_db_path(self) -> Path:
        """Get the task history database path."""
        if self.logging.history_db_path:
            return Path(self.logging.history_db_path).expanduser()
        return get_config_dir() / "tasks.db"

    def get_reports_dir(self) -> Path:
        """Get the reports directory, creating if needed."""
        if self.research.save_directory:
            path = Path(self.research.save_directory).expanduser()
        else:
            path = get_default_reports_dir()
        path.mkdir(parents=True, exist_ok=True)
        return path


def _load_settings() -> AppSettings:
    """Load settings with file config as base, env vars overlay."""
    file_data = load_config_file()
    return AppSettings(**file_data)


settings = _load_settings()
