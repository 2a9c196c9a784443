"""OpenAI-compatible chat agent (OpenAI, Groq, Together, DeepSeek, OpenRouter) via the openai SDK."""

import asyncio
import logging
from collections.abc import AsyncIterator

from openai import AsyncOpenAI

from synapse.providers.base import (
    DONE,
    ERROR,
    TEXT_DELTA,
    AIAgent,
    Completion,
    Message,
    ProviderError,
    StreamChunk,
    Usage,
)

logger = logging.getLogger(__name__)


class OpenAICompatibleAgent(AIAgent):
    """Any chat-completions endpoint reachable through ``base_url``."""

    def _client(self) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=self._keys.next_key(),
            base_url=self._config.base_url,
            timeout=self._config.timeout_sec,
            max_retries=0,
        )

    async def complete(self, messages: list[Message]) -> Completion:
        try:
            response = await asyncio.wait_for(
                self._client().chat.completions.create(
                    model=self.profile.model,
                    messages=messages,
                    max_tokens=self.profile.max_tokens,
                    temperature=self.profile.temperature,
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self.name(), f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            self._on_failure(str(exc))
            raise ProviderError(self.name(), f"API call failed: {exc}") from exc

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise ProviderError(self.name(), "Empty response content")

        usage = None
        if response.usage:
            usage = Usage(response.usage.prompt_tokens, response.usage.completion_tokens)
        return Completion(text=choice.message.content, usage=usage)

    async def stream(self, messages: list[Message]) -> AsyncIterator[StreamChunk]:
        usage = None
        try:
            response = await self._client().chat.completions.create(
                model=self.profile.model,
                messages=messages,
                max_tokens=self.profile.max_tokens,
                temperature=self.profile.temperature,
                stream=True,
            )
            try:
                async for chunk in response:
                    if chunk.usage:
                        usage = Usage(chunk.usage.prompt_tokens, chunk.usage.completion_tokens)
                    # Keep-alive and usage-only chunks carry no choices.
                    if not chunk.choices:
                        continue
                    delta = chunk.choices[0].delta
                    if delta is not None and delta.content:
                        yield StreamChunk(TEXT_DELTA, delta.content)
            finally:
                await response.close()
        except Exception as exc:
            self._on_failure(str(exc))
            logger.warning("OpenAI-compatible stream failed for %s: %s", self.name(), exc)
            yield StreamChunk(ERROR, f"{self.profile.display_name}: {exc}")
            return

        yield StreamChunk(DONE, usage=usage)
