import asyncio
import random
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

import httpx
from pydantic import ValidationError

from chat_kernel.core.errors import (
    ApiKeyMissingError,
    DecodingError,
    NetworkUnavailableError,
    StreamingError,
    error_from_response,
)
from chat_kernel.core.request_builder import (
    MODELS_PATH,
    PreparedRequest,
    build_chat_request,
    build_headers,
    endpoint_url,
)
from chat_kernel.core.retry import RetryPolicy, parse_retry_after
from chat_kernel.core.streaming import ChatStream
from chat_kernel.models.config import AppConfig, OpenRouterConfig
from chat_kernel.models.openrouter import (
    ChatCompletionResponse,
    ChatCompletionResult,
    ModelCallRequest,
    ModelsResponse,
    OpenRouterModel,
)
from chat_kernel.utils.config import get_config
from chat_kernel.utils.logging import get_logger, set_log_level


logger = get_logger("openrouter")

SleepFunc = Callable[[float], Awaitable[None]]


class OpenRouterClient:
    """Async chat-completion client for the OpenRouter API."""

    def __init__(
        self,
        config: OpenRouterConfig | None = None,
        retry_policy: RetryPolicy | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        sleep: SleepFunc = asyncio.sleep,
        random_unit: Callable[[], float] = random.random,
    ):
        self.config = config or OpenRouterConfig()
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._random_unit = random_unit
        self._client = http_client
        self._owns_client = http_client is None

    @classmethod
    def from_config(cls, app_config: AppConfig | None = None) -> "OpenRouterClient":
        """Build a client from application config and apply its log level."""
        app_config = app_config or get_config()
        set_log_level(app_config.logging.level)
        return cls(app_config.openrouter, RetryPolicy.from_config(app_config.retry))

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout_sec),
                limits=httpx.Limits(
                    max_connections=50,
                    max_keepalive_connections=20,
                    keepalive_expiry=30,
                ),
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def pretty_request_json(self, request: ModelCallRequest) -> str:
        """Indented JSON body that would be sent for this call."""
        return build_chat_request(request, self.config).pretty_json()

    async def send_message(self, request: ModelCallRequest) -> ChatCompletionResult:
        """Send non-streaming chat completion request, retrying transient failures."""
        _require_api_key(request)
        prepared = build_chat_request(request.model_copy(update={"stream": False}), self.config)
        client = self._get_client()

        attempt = 0
        while True:
            attempt += 1
            logger.info(f"Chat request: model={request.model_id}, attempt={attempt}")

            try:
                response = await client.post(
                    prepared.url,
                    content=prepared.content,
                    headers=prepared.headers,
                )
            except httpx.TransportError as e:
                logger.error(f"Request error: {e}")
                raise NetworkUnavailableError(f"Request failed: {e}") from e

            if response.status_code == httpx.codes.OK:
                return _decode_completion(response, request.model_id)

            retry_after = parse_retry_after(response.headers.get("retry-after"))
            error = error_from_response(
                response.status_code,
                response.text,
                retry_after=retry_after,
                model_id=request.model_id,
            )

            if not self.retry_policy.should_retry(attempt, response.status_code):
                logger.error(f"HTTP error {response.status_code}: {error}")
                raise error

            delay = self.retry_policy.delay_for(attempt, retry_after, self._random_unit)
            logger.warning(
                f"HTTP {response.status_code} on attempt {attempt}/"
                f"{self.retry_policy.max_attempts}, retrying in {delay:.2f}s"
            )
            await self._sleep(delay)

    def stream_message(self, request: ModelCallRequest) -> ChatStream:
        """
        Start a streaming chat completion.

        Nothing is sent until the returned stream is iterated. Streaming
        calls are never retried.

        Args:
            request: Call descriptor; its stream flag is forced on

        Returns:
            ChatStream yielding StreamEvents in arrival order

        Raises:
            ApiKeyMissingError: If the request carries no key
            InvalidConfigurationError: If the endpoint URL cannot be formed
        """
        _require_api_key(request)
        prepared = build_chat_request(request.model_copy(update={"stream": True}), self.config)

        return ChatStream(
            lambda: self._open_stream(prepared, request.model_id),
            label=request.model_id,
        )

    @asynccontextmanager
    async def _open_stream(
        self, prepared: PreparedRequest, model_id: str
    ) -> AsyncIterator[AsyncIterator[str]]:
        client = self._get_client()
        connected = False

        try:
            async with client.stream(
                prepared.method,
                prepared.url,
                content=prepared.content,
                headers=prepared.headers,
            ) as response:
                if response.status_code != httpx.codes.OK:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise error_from_response(
                        response.status_code,
                        body,
                        retry_after=parse_retry_after(response.headers.get("retry-after")),
                        model_id=model_id,
                    )

                connected = True
                lines = response.aiter_lines()
                try:
                    yield lines
                finally:
                    await lines.aclose()

        except httpx.TransportError as e:
            if connected:
                raise StreamingError(f"Connection lost: {e}") from e
            raise NetworkUnavailableError(f"Request failed: {e}") from e

        except httpx.StreamError as e:
            raise StreamingError(str(e)) from e

    async def list_models(self, api_key: str) -> list[OpenRouterModel]:
        """Get list of available models."""
        if not api_key.strip():
            raise ApiKeyMissingError()
        client = self._get_client()
        url = endpoint_url(self.config.base_url, MODELS_PATH)

        try:
            response = await client.get(url, headers=build_headers(api_key, self.config))
        except httpx.TransportError as e:
            logger.error(f"Request error: {e}")
            raise NetworkUnavailableError(f"Request failed: {e}") from e

        if response.status_code != httpx.codes.OK:
            logger.error(f"Failed to fetch models: {response.status_code}")
            raise error_from_response(
                response.status_code,
                response.text,
                retry_after=parse_retry_after(response.headers.get("retry-after")),
            )

        try:
            return ModelsResponse.model_validate(response.json()).data
        except (ValueError, ValidationError) as e:
            raise DecodingError(str(e)) from e

    async def __aenter__(self) -> "OpenRouterClient":
        self._get_client()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()


def _require_api_key(request: ModelCallRequest) -> None:
    if not request.api_key.strip():
        raise ApiKeyMissingError()


def _decode_completion(response: httpx.Response, requested_model: str) -> ChatCompletionResult:
    try:
        data = ChatCompletionResponse.model_validate(response.json())
    except (ValueError, ValidationError) as e:
        logger.error(f"Failed to decode completion: {e}")
        raise DecodingError(str(e)) from e

    if not data.choices:
        raise DecodingError("response contained no choices")

    choice = data.choices[0]
    content = choice.message.content if choice.message else None
    usage = data.usage

    return ChatCompletionResult(
        content=content or "",
        prompt_tokens=usage.prompt_tokens if usage else 0,
        completion_tokens=usage.completion_tokens if usage else 0,
        model_id=data.model or requested_model,
        finish_reason=choice.finish_reason or None,
        generation_id=data.id,
    )
