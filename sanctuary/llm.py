"""Dialogue generation gateway: HTTP connection to a text-completion backend.

The orchestrator talks to a gateway matching the protocol:

    async def generate(self, companion_id: str, context: dict) -> Generation: ...

`context` is the dict built by sanctuary.prompts.build_prompt_context: persona
fields, current landmark, a window of recent memory and, for discussion
turns, the partner and relationship dynamic.

Implementations:

    HttpGateway       real HTTP client, supports KoboldCpp and OpenAI-compatible
                      chat backends. Selected by provider_format.
    EchoGateway       returns a short deterministic line. Useful for
                      smoke-testing the wiring without a running model.
    ThrottledGateway  wraps another gateway with a minimum interval between
                      calls and exponential-backoff retries on rate limiting.

Failures: TransientGenerationError (HTTP 429) may be retried;
GenerationError covers everything else.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
import time
from collections.abc import Awaitable, Callable
from typing import Any, Literal, Protocol

import httpx
from pydantic import BaseModel

from sanctuary.prompts import render_companion_prompt

logger = logging.getLogger(__name__)

PUNCTUATION = re.compile(r"[.,!?;:'\"]")


class Generation(BaseModel):
    text: str
    tokens_used: int = 0


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class GenerationError(RuntimeError):
    """Raised when the backend cannot be reached or returns an error."""


class TransientGenerationError(GenerationError):
    """Raised on rate limiting; safe to retry after a pause."""


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

class Gateway(Protocol):
    async def generate(self, companion_id: str, context: dict[str, Any]) -> Generation: ...


# ---------------------------------------------------------------------------
# Token and word helpers
# ---------------------------------------------------------------------------

def estimate_tokens(text: str) -> int:
    """Rough token count: a token per four characters plus half per punctuation mark."""
    if not text:
        return 0
    return math.ceil(len(text) / 4 + len(PUNCTUATION.findall(text)) * 0.5)


def truncate_words(text: str, max_words: int) -> str:
    words = text.split()
    if len(words) <= max_words:
        return text.strip()
    return " ".join(words[:max_words]).rstrip(",;:") + "..."


# ---------------------------------------------------------------------------
# HttpGateway
# ---------------------------------------------------------------------------

ProviderFormat = Literal["koboldcpp", "openai"]


class HttpGateway:
    """Async HTTP client for text-generation backends.

    Supported formats:
      "koboldcpp"  POST /api/v1/generate       {"prompt": ..., "max_length": ...}
                   Response: {"results": [{"text": "..."}]}
      "openai"     POST /v1/chat/completions   {"model": ..., "messages": [...]}
                   Response: {"choices": [{"message": {"content": "..."}}],
                              "usage": {"total_tokens": N}}

    Args:
        provider_url:    Base URL of the backend, e.g. "http://localhost:5001".
        api_key:         Bearer token, or empty string if not required.
        provider_format: Wire format to use. Defaults to "koboldcpp".
        model:           Model identifier, used only by the openai format.
        timeout:         HTTP timeout in seconds. Defaults to 120.
        max_tokens:      Completion length cap sent to the backend.
        temperature:     Sampling temperature.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "koboldcpp",
        model: str = "",
        timeout: float = 120.0,
        max_tokens: int = 80,
        temperature: float = 0.8,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._timeout = timeout
        self._max_tokens = max_tokens
        self._temperature = temperature

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(self, prompt: str, context: dict[str, Any]) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        if self._format == "openai":
            url = f"{self._base_url}/v1/chat/completions"
            body: dict = {
                "messages": [
                    {"role": "system", "content": prompt},
                    {"role": "user", "content": context.get("message", "")},
                ],
                "max_tokens": self._max_tokens,
                "temperature": self._temperature,
            }
            if self._model:
                body["model"] = self._model
            return url, body

        # koboldcpp (default)
        url = f"{self._base_url}/api/v1/generate"
        return url, {
            "prompt": prompt,
            "max_length": self._max_tokens,
            "temperature": self._temperature,
        }

    def _parse_response(self, data: dict) -> tuple[str, int | None]:
        """Extract the completion text and reported token usage."""
        if self._format == "openai":
            choices = data.get("choices")
            if not choices or "content" not in (choices[0].get("message") or {}):
                raise GenerationError("Unexpected response format from OpenAI-compatible backend")
            usage = data.get("usage") or {}
            return choices[0]["message"]["content"], usage.get("total_tokens")

        # koboldcpp
        results = data.get("results")
        if not results or "text" not in results[0]:
            raise GenerationError("Unexpected response format from KoboldCpp backend")
        return results[0]["text"], None

    async def generate(self, companion_id: str, context: dict[str, Any]) -> Generation:
        prompt = render_companion_prompt(context)
        url, body = self._build_request(prompt, context)
        logger.debug("llm call companion=%s url=%s prompt_len=%d", companion_id, url, len(prompt))

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise GenerationError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 429:
                raise TransientGenerationError("LLM backend is rate limiting (HTTP 429)") from e
            raise GenerationError(f"LLM backend returned HTTP {status}") from e
        except httpx.TimeoutException as e:
            raise GenerationError(f"LLM backend timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise GenerationError(f"LLM backend request failed: {e!r}") from e

        try:
            text, tokens = self._parse_response(resp.json())
        except GenerationError:
            raise
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
            raise GenerationError(f"Unexpected response format from LLM backend: {e!r}") from e
        if not isinstance(text, str):
            raise GenerationError("Unexpected response format from LLM backend: text is not a string")
        text = text.strip()
        if not isinstance(tokens, int):
            tokens = estimate_tokens(prompt) + estimate_tokens(text)
        logger.debug("llm response companion=%s len=%d tokens=%d", companion_id, len(text), tokens)
        return Generation(text=text, tokens_used=tokens)


# ---------------------------------------------------------------------------
# EchoGateway
# ---------------------------------------------------------------------------

class EchoGateway:
    """Answers with a fixed line naming the companion and place. No network calls.

    Lets you verify that the wiring (scoring, sequencing, storage writes)
    works end-to-end without a running model.
    """

    async def generate(self, companion_id: str, context: dict[str, Any]) -> Generation:
        name = context.get("char", {}).get("name", companion_id)
        place = context.get("landmark", {}).get("name", "the sanctuary")
        if "discussion" in context:
            text = f"{name} turns to {context['discussion']['partner']} in {place}."
        else:
            text = f"{name} listens closely in {place}."
        logger.debug("EchoGateway companion=%s", companion_id)
        return Generation(text=text, tokens_used=estimate_tokens(text))


# ---------------------------------------------------------------------------
# ThrottledGateway
# ---------------------------------------------------------------------------

class ThrottledGateway:
    """Rate-limits and retries calls to an inner gateway.

    Calls are spaced at least min_interval seconds apart. A
    TransientGenerationError is retried up to max_retries times, waiting
    backoff_base * 2**attempt seconds before each retry; after that it
    propagates. GenerationError is never retried.

    `sleep` and `clock` are injectable so tests run without real waits.
    """

    def __init__(
        self,
        inner: Gateway,
        min_interval: float = 0.8,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._inner = inner
        self._min_interval = min_interval
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._sleep = sleep
        self._clock = clock
        self._last_call: float | None = None
        self._lock = asyncio.Lock()

    async def _throttle(self) -> None:
        if self._last_call is not None:
            wait = self._min_interval - (self._clock() - self._last_call)
            if wait > 0:
                await self._sleep(wait)
        self._last_call = self._clock()

    async def generate(self, companion_id: str, context: dict[str, Any]) -> Generation:
        attempt = 0
        while True:
            async with self._lock:
                await self._throttle()
            try:
                return await self._inner.generate(companion_id, context)
            except TransientGenerationError:
                if attempt >= self._max_retries:
                    raise
                delay = self._backoff_base * 2 ** attempt
                logger.warning(
                    "rate limited on %s, retry %d/%d in %.1fs",
                    companion_id, attempt + 1, self._max_retries, delay,
                )
                await self._sleep(delay)
                attempt += 1
