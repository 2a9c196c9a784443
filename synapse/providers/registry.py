"""Map a provider's SDK family to its agent class."""

import logging
from collections.abc import Sequence

from config.config_loader import ProviderConfig
from synapse.models import AgentProfile
from synapse.providers.anthropic import AnthropicAgent
from synapse.providers.base import AIAgent, ProviderError
from synapse.providers.gemini import GeminiAgent
from synapse.providers.openai_provider import OpenAICompatibleAgent

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[str, type[AIAgent]] = {
    "anthropic": AnthropicAgent,
    "openai": OpenAICompatibleAgent,
    "gemini": GeminiAgent,
}


def build_agent(profile: AgentProfile, provider_config: ProviderConfig, keys: Sequence[str]) -> AIAgent:
    """Instantiate the client for ``profile``.

    Raises:
        ProviderError: unknown SDK family or no key to use.
    """
    agent_cls = PROVIDER_CLASSES.get(provider_config.sdk)
    if agent_cls is None:
        raise ProviderError(provider_config.name, f"Unknown sdk: {provider_config.sdk}")
    if not keys:
        raise ProviderError(provider_config.name, f"Missing API key: {provider_config.api_key_env}")
    return agent_cls(profile, provider_config, keys)
