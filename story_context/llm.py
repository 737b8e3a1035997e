"""LLM clients — the collaborators on either side of context assembly.

Two contracts live here.

The simple caller handed to the smart-context analyzer:

    async def __call__(self, stage: str, prompt: str) -> str: ...

`stage` names what is calling (e.g. "scene_analysis"). Assembly passes the
caller it was given straight through to the analyzer.

The generation backend that consumes an assembled context:

    def generate(self, model, messages, *, stream=True, signal=None)
        -> AsyncIterator[GenerationChunk]

    HttpChatBackend — chat client for OpenAI-compatible and Anthropic
                      backends; forwards cache_control hints to Anthropic.
    EchoBackend     — streams the final user block back; no network.

Streaming honours an asyncio.Event abort signal: once it is set the stream
stops yielding. Chunks already delivered stay with the caller.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Literal, Protocol

import httpx
from pydantic import BaseModel

from story_context.activity import ActivitySink, LoggingActivitySink
from story_context.models import ChatMessage

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------

class LLM(Protocol):
    async def __call__(self, stage: str, prompt: str) -> str: ...


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0


class GenerationChunk(BaseModel):
    text: str | None = None
    usage: TokenUsage | None = None
    done: bool = False


class GenerationBackend(Protocol):
    def generate(
        self,
        model: str,
        messages: list[ChatMessage],
        *,
        stream: bool = True,
        signal: asyncio.Event | None = None,
    ) -> AsyncIterator[GenerationChunk]: ...


# ---------------------------------------------------------------------------
# HttpChatBackend: generation from an assembled context
# ---------------------------------------------------------------------------

ChatFormat = Literal["openai", "anthropic"]

ANTHROPIC_VERSION = "2023-06-01"


class HttpChatBackend:
    """Streaming chat client.

    Supported formats:
      "openai"     — POST /v1/chat/completions, SSE "data:" lines,
                     usage from the final chunk (stream_options.include_usage)
      "anthropic"  — POST /v1/messages, SSE events; system blocks go in the
                     top-level "system" field and cache_control is forwarded

    Args:
        provider_url:  Base URL of the backend.
        api_key:       Bearer token (openai) or x-api-key (anthropic).
        chat_format:   Wire format. Defaults to "openai".
        max_tokens:    Output token limit sent with every request.
        timeout:       HTTP timeout in seconds.
        sink:          Activity sink for request/cancel events.
        transport:     Optional httpx transport (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        chat_format: ChatFormat = "openai",
        max_tokens: int = 4096,
        timeout: float = 300.0,
        sink: ActivitySink | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = chat_format
        self._max_tokens = max_tokens
        self._timeout = timeout
        self._sink = sink or LoggingActivitySink(logging.DEBUG)
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._format == "anthropic":
            headers["anthropic-version"] = ANTHROPIC_VERSION
            if self._api_key:
                headers["x-api-key"] = self._api_key
        elif self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(self, model: str, messages: list[ChatMessage], stream: bool) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        if self._format == "anthropic":
            system: list[dict[str, Any]] = []
            turns: list[dict[str, Any]] = []
            for msg in messages:
                block: dict[str, Any] = {"type": "text", "text": msg.content}
                if msg.cache_control is not None:
                    block["cache_control"] = msg.cache_control.model_dump()
                if msg.role == "system":
                    system.append(block)
                else:
                    turns.append({"role": msg.role, "content": [block]})
            body: dict[str, Any] = {
                "model": model,
                "max_tokens": self._max_tokens,
                "messages": turns,
                "stream": stream,
            }
            if system:
                body["system"] = system
            return f"{self._base_url}/v1/messages", body

        body = {
            "model": model,
            "max_tokens": self._max_tokens,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "stream": stream,
        }
        if stream:
            body["stream_options"] = {"include_usage": True}
        return f"{self._base_url}/v1/chat/completions", body

    # -- response parsing ---------------------------------------------------

    def _parse_complete(self, data: dict) -> GenerationChunk:
        if self._format == "anthropic":
            blocks = data.get("content")
            if not isinstance(blocks, list):
                raise LLMError("Unexpected response format from Anthropic backend")
            text = "".join(b.get("text", "") for b in blocks if b.get("type") == "text")
            return GenerationChunk(text=text, usage=_anthropic_usage(data.get("usage", {})), done=True)

        choices = data.get("choices")
        if not choices or "message" not in choices[0]:
            raise LLMError("Unexpected response format from OpenAI-compatible backend")
        return GenerationChunk(
            text=choices[0]["message"].get("content") or "",
            usage=_openai_usage(data.get("usage")),
            done=True,
        )

    def _parse_event(self, data: dict, usage: TokenUsage) -> str | None:
        """Text carried by one streamed event; usage counters are updated in place."""
        if self._format == "anthropic":
            kind = data.get("type")
            if kind == "message_start":
                start = _anthropic_usage(data.get("message", {}).get("usage", {}))
                usage.input_tokens = start.input_tokens
                usage.cache_creation_tokens = start.cache_creation_tokens
                usage.cache_read_tokens = start.cache_read_tokens
            elif kind == "message_delta":
                usage.output_tokens = data.get("usage", {}).get("output_tokens", usage.output_tokens)
            elif kind == "content_block_delta":
                delta = data.get("delta", {})
                if delta.get("type") == "text_delta":
                    return delta.get("text", "")
            elif kind == "error":
                raise LLMError(f"Anthropic stream error: {data.get('error', {}).get('message', '')}")
            return None

        if data.get("usage"):
            final = _openai_usage(data["usage"])
            usage.input_tokens = final.input_tokens
            usage.output_tokens = final.output_tokens
            usage.cache_read_tokens = final.cache_read_tokens
        choices = data.get("choices") or []
        if choices:
            return choices[0].get("delta", {}).get("content")
        return None

    # -- public -------------------------------------------------------------

    async def generate(
        self,
        model: str,
        messages: list[ChatMessage],
        *,
        stream: bool = True,
        signal: asyncio.Event | None = None,
    ) -> AsyncIterator[GenerationChunk]:
        url, body = self._build_request(model, messages, stream)
        self._sink.record(
            "generation.request",
            model=model, url=url, blocks=len(messages),
            cached_blocks=sum(1 for m in messages if m.cache_control is not None),
        )

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                if not stream:
                    resp = await client.post(url, json=body, headers=self._headers())
                    resp.raise_for_status()
                    yield self._parse_complete(resp.json())
                    return

                usage = TokenUsage()
                async with client.stream("POST", url, json=body, headers=self._headers()) as resp:
                    resp.raise_for_status()
                    async for line in resp.aiter_lines():
                        if signal is not None and signal.is_set():
                            self._sink.record("generation.cancelled", model=model)
                            return
                        payload = _sse_data(line)
                        if payload is None:
                            continue
                        if payload == "[DONE]":
                            break
                        try:
                            data = json.loads(payload)
                        except json.JSONDecodeError:
                            logger.warning("skipping malformed stream line: %r", payload[:200])
                            continue
                        text = self._parse_event(data, usage)
                        if text:
                            yield GenerationChunk(text=text)
                yield GenerationChunk(usage=usage, done=True)
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(f"LLM backend returned HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e


def _sse_data(line: str) -> str | None:
    if not line.startswith("data:"):
        return None
    return line[len("data:"):].strip()


def _openai_usage(raw: dict | None) -> TokenUsage | None:
    if not raw:
        return None
    details = raw.get("prompt_tokens_details") or {}
    return TokenUsage(
        input_tokens=raw.get("prompt_tokens", 0),
        output_tokens=raw.get("completion_tokens", 0),
        cache_read_tokens=details.get("cached_tokens", 0),
    )


def _anthropic_usage(raw: dict) -> TokenUsage:
    return TokenUsage(
        input_tokens=raw.get("input_tokens", 0),
        output_tokens=raw.get("output_tokens", 0),
        cache_creation_tokens=raw.get("cache_creation_input_tokens") or 0,
        cache_read_tokens=raw.get("cache_read_input_tokens") or 0,
    )


# ---------------------------------------------------------------------------
# EchoBackend: no network; streams the final user block back word by word
# ---------------------------------------------------------------------------

class EchoBackend:
    """Lets you exercise assembly → generation wiring without a running model."""

    async def generate(
        self,
        model: str,
        messages: list[ChatMessage],
        *,
        stream: bool = True,
        signal: asyncio.Event | None = None,
    ) -> AsyncIterator[GenerationChunk]:
        last_user = next((m.content for m in reversed(messages) if m.role == "user"), "")
        if not stream:
            yield GenerationChunk(text=last_user, usage=TokenUsage(output_tokens=len(last_user.split())), done=True)
            return
        words = last_user.split(" ")
        for i, word in enumerate(words):
            if signal is not None and signal.is_set():
                return
            yield GenerationChunk(text=word if i == 0 else f" {word}")
        yield GenerationChunk(usage=TokenUsage(output_tokens=len(words)), done=True)


# ---------------------------------------------------------------------------
# LLMError: raised by the HTTP clients for all connection and protocol failures
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend cannot be reached or returns an error."""
