import json
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field

from chat_kernel.core.errors import InvalidConfigurationError
from chat_kernel.models.config import OpenRouterConfig
from chat_kernel.models.openrouter import ChatParameters, ModelCallRequest


CHAT_COMPLETIONS_PATH = "/chat/completions"
MODELS_PATH = "/models"


class PreparedRequest(BaseModel):
    """Transport-ready chat-completion request."""

    model_config = ConfigDict(frozen=True)

    method: str = "POST"
    url: str
    headers: dict[str, str] = Field(repr=False)
    body: dict[str, Any]

    @property
    def content(self) -> bytes:
        return json.dumps(self.body, ensure_ascii=False).encode("utf-8")

    def pretty_json(self) -> str:
        """Body as indented JSON, for request inspection."""
        return json.dumps(self.body, indent=2, ensure_ascii=False)


def endpoint_url(base_url: str, path: str) -> str:
    """
    Join the configured base URL with an API path.

    Raises:
        InvalidConfigurationError: If the base URL is malformed
    """
    try:
        url = httpx.URL(base_url)
    except (httpx.InvalidURL, TypeError) as e:
        raise InvalidConfigurationError(f"Invalid base URL {base_url!r}: {e}") from e

    if url.scheme not in ("http", "https") or not url.host:
        raise InvalidConfigurationError(f"Invalid base URL {base_url!r}")

    return str(url).rstrip("/") + path


def build_headers(api_key: str, config: OpenRouterConfig, stream: bool = False) -> dict[str, str]:
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "X-Title": config.app_title,
    }
    if config.referer:
        headers["HTTP-Referer"] = config.referer
    if stream:
        headers["Accept"] = "text/event-stream"
    return headers


def build_parameters(params: ChatParameters) -> dict[str, Any]:
    """Wire fields for the optional knobs; neutral values are left to the server."""
    body: dict[str, Any] = {}

    if params.temperature is not None:
        body["temperature"] = params.temperature
    if params.max_tokens is not None:
        body["max_tokens"] = params.max_tokens
    if params.top_p is not None:
        body["top_p"] = params.top_p
    if params.top_k is not None and params.top_k > 0:
        body["top_k"] = params.top_k
    if params.frequency_penalty is not None and params.frequency_penalty != 0:
        body["frequency_penalty"] = params.frequency_penalty
    if params.presence_penalty is not None and params.presence_penalty != 0:
        body["presence_penalty"] = params.presence_penalty
    if params.repetition_penalty is not None and params.repetition_penalty != 1.0:
        body["repetition_penalty"] = params.repetition_penalty
    if params.min_p is not None and params.min_p != 0:
        body["min_p"] = params.min_p
    if params.top_a is not None and params.top_a != 0:
        body["top_a"] = params.top_a

    if params.reasoning_enabled is not None:
        reasoning: dict[str, Any] = {"enabled": params.reasoning_enabled}
        if params.reasoning_enabled:
            # max_tokens and effort are mutually exclusive on some providers
            if params.reasoning_max_tokens is not None:
                reasoning["max_tokens"] = params.reasoning_max_tokens
            elif params.reasoning_effort is not None:
                reasoning["effort"] = params.reasoning_effort
            if params.reasoning_exclude is not None:
                reasoning["exclude"] = params.reasoning_exclude
        body["reasoning"] = reasoning

    if params.verbosity is not None:
        body["verbosity"] = params.verbosity

    return body


def build_chat_request(
    request: ModelCallRequest,
    config: OpenRouterConfig,
) -> PreparedRequest:
    """
    Build a /chat/completions request from a model call.

    Args:
        request: Call descriptor (messages, model, parameters, key)
        config: Endpoint and client identification settings

    Returns:
        PreparedRequest ready to send

    Raises:
        InvalidConfigurationError: If the endpoint URL cannot be formed
    """
    url = endpoint_url(config.base_url, CHAT_COMPLETIONS_PATH)

    body: dict[str, Any] = {
        "model": request.model_id,
        "messages": [
            {"role": message.role, "content": message.content}
            for message in request.messages
        ],
        "stream": request.stream,
    }
    body.update(build_parameters(request.parameters))

    return PreparedRequest(
        url=url,
        headers=build_headers(request.api_key, config, stream=request.stream),
        body=body,
    )
