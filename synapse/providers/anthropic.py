"""Anthropic Claude agent using the anthropic SDK with native async."""

import asyncio
import logging
from collections.abc import AsyncIterator

import anthropic as anthropic_sdk

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
    split_system,
)

logger = logging.getLogger(__name__)


class AnthropicAgent(AIAgent):
    """Claude via anthropic SDK."""

    def _client(self) -> anthropic_sdk.AsyncAnthropic:
        return anthropic_sdk.AsyncAnthropic(
            api_key=self._keys.next_key(),
            timeout=self._config.timeout_sec,
            max_retries=0,
        )

    def _request(self, messages: list[Message]) -> dict:
        system, rest = split_system(messages)
        request = {
            "model": self.profile.model,
            "max_tokens": self.profile.max_tokens,
            "temperature": self.profile.temperature,
            "messages": rest,
        }
        if system:
            request["system"] = system
        return request

    async def complete(self, messages: list[Message]) -> Completion:
        try:
            response = await asyncio.wait_for(
                self._client().messages.create(**self._request(messages)),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self.name(), f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            self._on_failure(str(exc))
            raise ProviderError(self.name(), f"API call failed: {exc}") from exc

        text = "\n".join(b.text for b in response.content if b.type == "text")
        if not text:
            raise ProviderError(self.name(), "No text blocks in response")

        usage = None
        if response.usage:
            usage = Usage(response.usage.input_tokens, response.usage.output_tokens)
        return Completion(text=text, usage=usage)

    async def stream(self, messages: list[Message]) -> AsyncIterator[StreamChunk]:
        try:
            async with self._client().messages.stream(**self._request(messages)) as response:
                async for text in response.text_stream:
                    if text:
                        yield StreamChunk(TEXT_DELTA, text)
                final = await response.get_final_message()
        except Exception as exc:
            self._on_failure(str(exc))
            logger.warning("Anthropic stream failed for %s: %s", self.name(), exc)
            yield StreamChunk(ERROR, f"{self.profile.display_name}: {exc}")
            return

        usage = None
        if final.usage:
            usage = Usage(final.usage.input_tokens, final.usage.output_tokens)
        yield StreamChunk(DONE, usage=usage)
