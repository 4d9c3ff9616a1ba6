"""LLM client — chat-completion adapters behind one callable protocol.

The orchestrator is handed a ChatLLM matching:

    async def __call__(self, transcript: list[Turn]) -> str: ...

The transcript starts with the system instruction turn. The returned text is
expected, but not guaranteed, to follow the reply protocol in
cafe_assistant.protocol.

Adapters never raise for provider trouble. Missing credentials, unknown
providers and transport failures all come back as a final-shaped reply
({"final": "..."}), so the orchestrator needs no special case for them.

    OpenAIChatLLM   — real HTTP client for OpenAI-compatible chat completions.
    PlaceholderLLM  — inert; always answers with a fixed explanatory message.

build_llm() picks one from Settings once, at startup.
Tests use a scripted stub instead.
"""

from __future__ import annotations

import json
import logging
from typing import Protocol

import httpx

from cafe_assistant.config import Settings
from cafe_assistant.models import Turn

logger = logging.getLogger(__name__)

ERROR_EXCERPT_LEN = 400
STUBBED_PROVIDERS = {
    "anthropic": "anthropic",
    "gemini": "gemini",
    "xai": "xai (Grok)",
    "grok": "xai (Grok)",
}


def final_reply(text: str) -> str:
    """Encode `text` as a protocol-conformant final answer."""
    return json.dumps({"final": text}, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Protocol — every adapter must match this signature
# ---------------------------------------------------------------------------

class ChatLLM(Protocol):
    async def __call__(self, transcript: list[Turn]) -> str: ...


# ---------------------------------------------------------------------------
# OpenAIChatLLM — connects to a real backend
# ---------------------------------------------------------------------------

class OpenAIChatLLM:
    """Async client for OpenAI-compatible chat completions.

    POST {base_url}/v1/chat/completions  {"model", "messages", "temperature"}
    Response: {"choices": [{"message": {"content": "..."}}]}

    Args:
        api_key:     Bearer token.
        model:       Model identifier.
        base_url:    Provider root, e.g. "https://api.openai.com".
        temperature: Sampling temperature; kept low for protocol compliance.
        timeout:     HTTP timeout in seconds.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://api.openai.com",
        temperature: float = 0.3,
        timeout: float = 60.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._temperature = temperature
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }

    def _build_request(self, transcript: list[Turn]) -> tuple[str, dict]:
        """Return (url, body).

        The provider's own "tool" role requires a matching tool_call_id, which
        this text protocol does not have, so tool results go out as user turns.
        """
        messages = []
        for turn in transcript:
            if turn.role == "tool":
                messages.append({"role": "user", "content": f"Tool result: {turn.content}"})
            else:
                messages.append({"role": turn.role, "content": turn.content})
        body = {"model": self._model, "messages": messages, "temperature": self._temperature}
        return f"{self._base_url}/v1/chat/completions", body

    def _parse_response(self, data: dict) -> str:
        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices or not isinstance(choices[0], dict):
            raise LLMError("Unexpected response format from chat completions backend")
        message = choices[0].get("message")
        if message is None:
            return final_reply("No response text.")
        if not isinstance(message, dict):
            raise LLMError("Unexpected response format from chat completions backend")
        content = message.get("content")
        if content is None or content == "":
            return final_reply("No response text.")
        if not isinstance(content, str):
            raise LLMError(
                f"Unsupported message content type from chat completions backend: {type(content).__name__}"
            )
        return content

    async def _complete(self, transcript: list[Turn]) -> str:
        url, body = self._build_request(transcript)
        logger.debug("llm call url=%s turns=%d", url, len(transcript))

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(
                f"HTTP {e.response.status_code}. {e.response.text}"
            ) from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise LLMError(f"LLM transport error: {type(e).__name__}: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise LLMError("LLM backend returned a non-JSON body") from e
        text = self._parse_response(data)
        logger.debug("llm response len=%d", len(text))
        return text

    async def __call__(self, transcript: list[Turn]) -> str:
        try:
            return await self._complete(transcript)
        except LLMError as e:
            logger.warning("LLM call failed: %s", e)
            return final_reply(f"Model provider error: {str(e)[:ERROR_EXCERPT_LEN]}")


# ---------------------------------------------------------------------------
# PlaceholderLLM — no network calls
# ---------------------------------------------------------------------------

class PlaceholderLLM:
    """Always answers with the same final message.

    Stands in for providers that are not wired up yet and for a server
    started without credentials.
    """

    def __init__(self, message: str) -> None:
        self.message = message

    async def __call__(self, transcript: list[Turn]) -> str:
        return final_reply(self.message)


def build_llm(settings: Settings) -> ChatLLM:
    provider = settings.provider
    if not settings.api_key:
        logger.warning("API_KEY is not set; chat replies will explain the missing configuration")
        return PlaceholderLLM("Server missing API_KEY. Set API_KEY environment variable.")
    if provider == "openai":
        return OpenAIChatLLM(
            api_key=settings.api_key,
            model=settings.model,
            base_url=settings.provider_url,
            temperature=settings.temperature,
            timeout=settings.llm_timeout,
        )
    if provider in STUBBED_PROVIDERS:
        label = STUBBED_PROVIDERS[provider]
        return PlaceholderLLM(
            f"PROVIDER={label} is not implemented yet. Switch to PROVIDER=openai."
        )
    return PlaceholderLLM("Unknown PROVIDER. Use openai | anthropic | gemini | xai.")


# ---------------------------------------------------------------------------
# LLMError — raised inside adapters for connection and protocol failures
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend cannot be reached or returns an error."""
