"""Gemini agent using the google-genai SDK with native async."""

import asyncio
import logging
from collections.abc import AsyncIterator

from google import genai
from google.genai import types as genai_types

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


class GeminiAgent(AIAgent):
    """Google Gemini via google-genai SDK."""

    def _client(self) -> genai.Client:
        return genai.Client(api_key=self._keys.next_key())

    def _request(self, messages: list[Message]) -> dict:
        system, rest = split_system(messages)
        contents = [
            genai_types.Content(
                role="model" if m["role"] == "assistant" else "user",
                parts=[genai_types.Part(text=m["content"])],
            )
            for m in rest
        ]
        return {
            "model": self.profile.model,
            "contents": contents,
            "config": genai_types.GenerateContentConfig(
                system_instruction=system or None,
                max_output_tokens=self.profile.max_tokens,
                temperature=self.profile.temperature,
            ),
        }

    async def complete(self, messages: list[Message]) -> Completion:
        try:
            response = await asyncio.wait_for(
                self._client().aio.models.generate_content(**self._request(messages)),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self.name(), f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            self._on_failure(str(exc))
            raise ProviderError(self.name(), f"API call failed: {exc}") from exc

        if not response.text:
            raise ProviderError(self.name(), "Empty response text")
        return Completion(text=response.text, usage=_usage(response))

    async def stream(self, messages: list[Message]) -> AsyncIterator[StreamChunk]:
        usage = None
        try:
            response = await asyncio.wait_for(
                self._client().aio.models.generate_content_stream(**self._request(messages)),
                timeout=self._config.timeout_sec,
            )
            async for chunk in response:
                usage = _usage(chunk) or usage
                if chunk.text:
                    yield StreamChunk(TEXT_DELTA, chunk.text)
        except Exception as exc:
            self._on_failure(str(exc))
            logger.warning("Gemini stream failed for %s: %s", self.name(), exc)
            yield StreamChunk(ERROR, f"{self.profile.display_name}: {exc}")
            return

        yield StreamChunk(DONE, usage=usage)


def _usage(response) -> Usage | None:
    meta = getattr(response, "usage_metadata", None)
    if not meta:
        return None
    return Usage(meta.prompt_token_count or 0, meta.candidates_token_count or 0)
