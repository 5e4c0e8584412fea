"""Text-generation collaborator: a thin async client over Anthropic or OpenAI.

The engine only relies on :meth:`LLMClient.complete` (role-tagged messages in,
text out), so any object offering the same coroutine can stand in for it.
"""
from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any

from maturity.config import Settings
from maturity.errors import GenerationError, GenerationUnavailable, MalformedResponse

log = logging.getLogger(__name__)

Message = dict[str, str]

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)

DEFAULT_MODELS = {
    "anthropic": "claude-haiku-4-5-20251001",
    "openai": "gpt-4o-mini",
    "openai_compatible": "gpt-4o-mini",
}


class LLMClient:
    """Unified async LLM client supporting Anthropic and OpenAI."""

    def __init__(self, settings: Settings):
        self.provider = settings.llm_provider
        self.model = settings.llm_model or DEFAULT_MODELS.get(self.provider, "")
        self.timeout = settings.generation_timeout_seconds
        self._api_key = settings.generation_api_key
        self._base_url = settings.llm_base_url
        self._client: Any = None
        self._init_client()

    def _init_client(self) -> None:
        if self.provider == "anthropic":
            import anthropic
            self._client = anthropic.AsyncAnthropic(api_key=self._api_key)
        elif self.provider in ("openai", "openai_compatible"):
            import openai
            kwargs: dict[str, Any] = {"api_key": self._api_key}
            if self._base_url:
                kwargs["base_url"] = self._base_url
            self._client = openai.AsyncOpenAI(**kwargs)
        else:
            raise ValueError(f"Unknown LLM provider: {self.provider!r}")

    async def _request(
        self, messages: list[Message], max_tokens: int, temperature: float, json_mode: bool,
    ) -> str:
        if self.provider == "anthropic":
            system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
            chat = [m for m in messages if m["role"] != "system"]
            kwargs: dict[str, Any] = {}
            if system:
                kwargs["system"] = system
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=chat,
                **kwargs,
            )
            return response.content[0].text
        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response = await self._client.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=messages,
            **kwargs,
        )
        return response.choices[0].message.content or ""

    async def complete(
        self,
        messages: list[Message],
        *,
        max_tokens: int = 3000,
        temperature: float = 0.4,
        json_mode: bool = False,
    ) -> str:
        """Send role-tagged messages, return the generated text.

        Raises:
            GenerationUnavailable: network/auth/quota failure or timeout.
            MalformedResponse: the provider returned no usable text.
        """
        try:
            text = await asyncio.wait_for(
                self._request(messages, max_tokens, temperature, json_mode),
                timeout=self.timeout,
            )
        except GenerationError:
            raise
        except asyncio.TimeoutError as exc:
            raise GenerationUnavailable(f"LLM call timed out after {self.timeout}s") from exc
        except Exception as exc:
            raise GenerationUnavailable(f"LLM API call failed: {exc}") from exc
        if not text or not text.strip():
            raise MalformedResponse("LLM returned an empty response")
        return text.strip()


def parse_json_response(text: str) -> dict[str, Any]:
    """Parse a JSON object out of an LLM reply, tolerating Markdown fences."""
    cleaned = text.strip()
    m = _FENCE_RE.match(cleaned)
    if m:
        cleaned = m.group(1)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise MalformedResponse(f"LLM returned invalid JSON: {cleaned[:200]}") from exc
    if not isinstance(data, dict):
        raise MalformedResponse(f"Expected a JSON object, got {type(data).__name__}")
    return data


def build_client(settings: Settings) -> LLMClient | None:
    """Return a client when an API key is configured, else ``None``."""
    if not settings.generation_enabled:
        log.info("No generation API key configured; AI features use deterministic fallbacks")
        return None
    return LLMClient(settings)
