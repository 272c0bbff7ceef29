from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx

from chat_kernel.core.openrouter import OpenRouterClient
from chat_kernel.core.retry import RetryPolicy
from chat_kernel.models.config import OpenRouterConfig
from chat_kernel.models.openrouter import ChatParameters, ModelCallRequest


MODEL = "openai/gpt-5-nano"
NO_RETRY = RetryPolicy(max_attempts=1, base_delay=0, max_delay=0, jitter_ratio=0)


def make_request(
    *messages: tuple[str, str],
    model_id: str = MODEL,
    parameters: ChatParameters | None = None,
    api_key: str = "test-key",
    stream: bool = False,
) -> ModelCallRequest:
    if not messages:
        messages = (("user", "Hi"),)
    return ModelCallRequest(
        messages=[{"role": role, "content": content} for role, content in messages],
        model_id=model_id,
        parameters=parameters or ChatParameters(),
        api_key=api_key,
        stream=stream,
    )


def completion_body(text: str, *, model: str = MODEL) -> dict[str, Any]:
    return {
        "id": "gen-123",
        "choices": [
            {
                "message": {"role": "assistant", "content": text},
                "finish_reason": "stop",
            }
        ],
        "usage": {"prompt_tokens": 11, "completion_tokens": 7},
        "model": model,
    }


def json_response(status_code: int, body: Any, headers: dict[str, str] | None = None) -> httpx.Response:
    return httpx.Response(status_code, headers=headers, content=json.dumps(body).encode("utf-8"))


async def sse_body(
    lines: list[str],
    *,
    hang: bool = False,
    closed: asyncio.Event | None = None,
) -> AsyncIterator[bytes]:
    """Deliver SSE lines one chunk at a time, optionally never finishing."""
    try:
        for line in lines:
            yield (line + "\n").encode("utf-8")
            await asyncio.sleep(0)
        if hang:
            await asyncio.Event().wait()
    finally:
        if closed is not None:
            closed.set()


def sse_response(lines: list[str], **kwargs: Any) -> httpx.Response:
    return httpx.Response(
        200,
        headers={"Content-Type": "text/event-stream"},
        content=sse_body(lines, **kwargs),
    )


class SleepSpy:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class RecordingHandler:
    """MockTransport handler that records requests and replays responses."""

    def __init__(self, respond: Callable[[httpx.Request, int], httpx.Response]) -> None:
        self._respond = respond
        self.requests: list[httpx.Request] = []

    @property
    def attempts(self) -> int:
        return len(self.requests)

    def body(self, index: int = -1) -> dict[str, Any]:
        return json.loads(self.requests[index].content)

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._respond(request, len(self.requests))


def make_client(
    handler: Callable[[httpx.Request], Any],
    *,
    retry_policy: RetryPolicy = NO_RETRY,
    config: OpenRouterConfig | None = None,
    sleep: Callable[[float], Any] | None = None,
    random_unit: Callable[[], float] = lambda: 0.5,
) -> OpenRouterClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs: dict[str, Any] = {}
    if sleep is not None:
        kwargs["sleep"] = sleep
    return OpenRouterClient(
        config,
        retry_policy,
        http_client=http_client,
        random_unit=random_unit,
        **kwargs,
    )
