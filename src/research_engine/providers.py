"""Chat model factory for the research engine's language-model collaborator."""

from typing import TYPE_CHECKING, Any

from browser_use import (
    ChatAnthropic,
    ChatAzureOpenAI,
    ChatGoogle,
    ChatGroq,
    ChatOllama,
    ChatOpenAI,
)

# These are available via direct import but not in __all__
from browser_use.llm.deepseek.chat import ChatDeepSeek
from browser_use.llm.openrouter.chat import ChatOpenRouter

from .config import NO_KEY_PROVIDERS, STANDARD_ENV_VAR_NAMES, LLMSettings
from .exceptions import LLMProviderError

if TYPE_CHECKING:
    from browser_use.llm.base import BaseChatModel

DEFAULT_AZURE_API_VERSION = "2024-02-01"

# A custom base_url means a self-hosted OpenAI-compatible server, which may not need a key
SELF_HOSTABLE_PROVIDERS = frozenset({"openai"})


def _check_api_key(provider: str, api_key: str | None, base_url: str | None) -> None:
    if api_key or provider in NO_KEY_PROVIDERS:
        return
    if base_url and provider in SELF_HOSTABLE_PROVIDERS:
        return

    env_names = STANDARD_ENV_VAR_NAMES.get(provider, "an API key")
    if isinstance(env_names, list):
        env_names = " or ".join(env_names)
    raise LLMProviderError(f"API key required for provider '{provider}'. Set {env_names} or RESEARCH_LLM_API_KEY.")


def get_llm(
    provider: str,
    model: str,
    api_key: str | None = None,
    base_url: str | None = None,
    temperature: float | None = None,
    **kwargs: Any,
) -> "BaseChatModel":
    """Create the chat model used for planning, filtering, extraction and synthesis.

    Args:
        provider: openai, anthropic, google, azure_openai, groq, deepseek, ollama or openrouter
        model: Model name/identifier
        api_key: API key for the provider (ollama needs none)
        base_url: OpenAI-compatible endpoint, or the Ollama host
        temperature: Sampling temperature; provider default when None (ignored by ollama)
        **kwargs: azure_endpoint and azure_api_version for azure_openai

    Returns:
        Configured BaseChatModel instance

    Raises:
        LLMProviderError: If provider is unsupported or API key is missing
    """
    _check_api_key(provider, api_key, base_url)

    params: dict[str, Any] = {"model": model, "api_key": api_key}
    if temperature is not None:
        params["temperature"] = temperature

    try:
        match provider:
            case "openai":
                return ChatOpenAI(**params, base_url=base_url)
            case "anthropic":
                return ChatAnthropic(**params)
            case "google":
                return ChatGoogle(**params)
            case "groq":
                return ChatGroq(**params)
            case "deepseek":
                return ChatDeepSeek(**params)
            case "openrouter":
                return ChatOpenRouter(**params)
            case "azure_openai":
                if not kwargs.get("azure_endpoint"):
                    raise LLMProviderError("Azure OpenAI requires RESEARCH_LLM_AZURE_ENDPOINT to be set.")
                return ChatAzureOpenAI(
                    **params,
                    azure_endpoint=kwargs["azure_endpoint"],
                    api_version=kwargs.get("azure_api_version") or DEFAULT_AZURE_API_VERSION,
                )
            case "ollama":
                return ChatOllama(model=model, host=base_url)
            case _:
                raise LLMProviderError(f"Unsupported provider: {provider}")

    except LLMProviderError:
        raise
    except Exception as e:
        raise LLMProviderError(f"Failed to initialize {provider} LLM: {e}") from e


def get_llm_from_settings(llm_settings: LLMSettings) -> "BaseChatModel":
    """Create the chat model described by ``LLMSettings``."""
    return get_llm(
        provider=llm_settings.provider,
        model=llm_settings.model_name,
        api_key=llm_settings.get_api_key_for_provider(),
        base_url=llm_settings.base_url,
        temperature=llm_settings.temperature,
        azure_endpoint=llm_settings.azure_endpoint,
        azure_api_version=llm_settings.azure_api_version,
    )
