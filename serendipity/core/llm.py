"""Text-generation clients and helpers for untrusted LLM output."""

import json
import re
from collections.abc import AsyncIterator
from typing import Any, Protocol

from serendipity.core.config import Settings, get_settings
from serendipity.core.errors import GenerationConfigError


class TextGenerator(Protocol):
    """Prompt in, text out. Output is untrusted and may be malformed."""

    async def generate(self, system: str, prompt: str, max_tokens: int) -> str: ...

    def stream(self, system: str, prompt: str, max_tokens: int) -> AsyncIterator[str]: ...


class AnthropicTextGenerator:
    """Text generation backed by the Anthropic Messages API."""

    def __init__(self, api_key: str, model: str):
        from anthropic import AsyncAnthropic

        self.model = model
        self._client = AsyncAnthropic(api_key=api_key)

    async def generate(self, system: str, prompt: str, max_tokens: int) -> str:
        response = await self._client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            system=system,
            messages=[{"role": "user", "content": prompt}],
        )
        if not response.content:
            return ""
        block = response.content[0]
        return block.text if getattr(block, "type", None) == "text" else ""

    async def stream(self, system: str, prompt: str, max_tokens: int) -> AsyncIterator[str]:
        async with self._client.messages.stream(
            model=self.model,
            max_tokens=max_tokens,
            system=system,
            messages=[{"role": "user", "content": prompt}],
        ) as stream:
            async for event in stream:
                if getattr(event, "type", None) != "content_block_delta":
                    continue
                text = getattr(event.delta, "text", None)
                if text:
                    yield text


class OpenAITextGenerator:
    """Text generation backed by OpenAI chat completions."""

    def __init__(self, api_key: str, model: str):
        from openai import AsyncOpenAI

        self.model = model
        self._client = AsyncOpenAI(api_key=api_key)

    def _messages(self, system: str, prompt: str) -> list[dict[str, Any]]:
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": prompt},
        ]

    async def generate(self, system: str, prompt: str, max_tokens: int) -> str:
        response = await self._client.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            messages=self._messages(system, prompt),
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def stream(self, system: str, prompt: str, max_tokens: int) -> AsyncIterator[str]:
        stream = await self._client.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            messages=self._messages(system, prompt),
            stream=True,
        )
        async for chunk in stream:
            if not chunk.choices:
                continue
            text = chunk.choices[0].delta.content
            if text:
                yield text


def get_text_generator(settings: Settings | None = None) -> TextGenerator:
    """
    Get the configured text generator.

    Anthropic is preferred when its key is set, OpenAI otherwise.

    Raises:
        GenerationConfigError: If neither provider key is configured
    """
    settings = settings or get_settings()

    if settings.ANTHROPIC_API_KEY:
        return AnthropicTextGenerator(settings.ANTHROPIC_API_KEY, settings.CONNECTIONS_MODEL)
    if settings.OPENAI_API_KEY:
        return OpenAITextGenerator(settings.OPENAI_API_KEY, settings.OPENAI_CONNECTIONS_MODEL)

    raise GenerationConfigError(
        "No text generation provider configured. Set ANTHROPIC_API_KEY or OPENAI_API_KEY."
    )


# First fenced block, with an optional language tag such as json
_FENCED_BLOCK = re.compile(r"```[A-Za-z]*[ \t]*\n?(.*?)```", re.DOTALL)
_OPEN_FENCE = re.compile(r"^```[A-Za-z]*")


def strip_llm_fences(raw_output: str) -> str:
    """Reduce model text to the connections payload.

    Models asked for bare JSON still wrap it in a fenced block, sometimes with
    prose around it. When a complete block exists its body is returned;
    otherwise a dangling opening or closing fence is trimmed.
    """
    cleaned = raw_output.strip()

    block = _FENCED_BLOCK.search(cleaned)
    if block:
        return block.group(1).strip()

    cleaned = _OPEN_FENCE.sub("", cleaned, count=1)
    return cleaned.removesuffix("```").strip()


def parse_llm_json_dict(raw_output: str) -> Any:
    """
    Parse LLM output as JSON after fence cleanup.

    Args:
        raw_output: Raw string from LLM response

    Returns:
        Parsed JSON value (callers check it is a dict)

    Raises:
        json.JSONDecodeError: If JSON parsing fails after cleanup
    """
    cleaned = strip_llm_fences(raw_output)
    return json.loads(cleaned)
