"""Routing: resolve a model alias to a profile and its upstream base URL.

The resolver looks up the alias in the current config snapshot. The locator
picks the upstream base URL: an explicit baseUrl wins, otherwise the
provider short name is looked up in a fixed table.
"""

from types import MappingProxyType
from typing import Mapping

from ollama_proxy.config import ConfigSnapshot, ProviderProfile

# groq points at SiliconFlow; kept as deployed until the mapping is confirmed.
PROVIDER_BASE_URLS: Mapping[str, str] = MappingProxyType(
    {
        "novita": "https://api.novita.ai/v3/openai",
        "siliconflow": "https://api.siliconflow.cn/v1",
        "groq": "https://api.siliconflow.cn/v1",
        "xAI": "https://api.x.ai/v1",
        "gemini": "https://generativelanguage.googleapis.com/v1beta/openai",
    }
)


class ModelNotFound(Exception):
    """Raised when no profile matches the requested alias."""

    def __init__(self, alias: object) -> None:
        self.alias = alias
        super().__init__("model '{}' not found".format(alias))


class ProviderResolutionError(Exception):
    """Raised when a profile names neither a baseUrl nor a known provider."""

    def __init__(self, alias: str, provider: object) -> None:
        self.alias = alias
        self.provider = provider
        super().__init__(
            "Invalid provider configuration - please specify baseUrl "
            "or a valid provider name"
        )


def resolve_profile(snapshot: ConfigSnapshot, alias: object) -> ProviderProfile:
    """Return the profile whose alias equals ``alias`` exactly.

    Raises:
        ModelNotFound: If the snapshot has no such alias.
    """
    for profile in snapshot.profiles:
        if profile.alias == alias:
            return profile
    raise ModelNotFound(alias)


def locate_base_url(profile: ProviderProfile) -> str:
    """Compute the upstream base URL for a profile.

    Args:
        profile: The resolved provider profile.

    Returns:
        ``profile.base_url`` if set, else the table entry for
        ``profile.provider``.

    Raises:
        ProviderResolutionError: If neither yields a URL.
    """
    if profile.base_url:
        return profile.base_url

    base_url = PROVIDER_BASE_URLS.get(profile.provider or "")
    if base_url is None:
        raise ProviderResolutionError(profile.alias, profile.provider)
    return base_url


def chat_completions_url(base_url: str) -> str:
    return "{}/chat/completions".format(base_url.rstrip("/"))
