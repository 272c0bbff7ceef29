from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    """Single message in a conversation."""

    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: str


class ChatParameters(BaseModel):
    """Optional sampling, penalty and reasoning knobs. None means unset."""

    model_config = ConfigDict(frozen=True)

    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    top_k: int | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    repetition_penalty: float | None = None
    min_p: float | None = None
    top_a: float | None = None
    reasoning_enabled: bool | None = None
    reasoning_effort: str | None = None
    reasoning_max_tokens: int | None = None
    reasoning_exclude: bool | None = None
    verbosity: str | None = None


class ModelCallRequest(BaseModel):
    """Everything needed for one chat-completion call."""

    model_config = ConfigDict(frozen=True)

    messages: tuple[ChatMessage, ...]
    model_id: str
    parameters: ChatParameters = Field(default_factory=ChatParameters)
    api_key: str = Field(repr=False)
    stream: bool = False


class ChatCompletionResult(BaseModel):
    """Decoded non-streaming completion."""

    model_config = ConfigDict(frozen=True)

    content: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    model_id: str
    finish_reason: str | None = None
    generation_id: str | None = None


class ChatCompletionUsage(BaseModel):
    """Token usage in completion response."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int | None = None


class ResponseMessage(BaseModel):
    role: str = "assistant"
    content: str | None = None


class ChatCompletionChoice(BaseModel):
    """Single choice in completion response."""

    index: int = 0
    message: ResponseMessage | None = None
    finish_reason: str | None = None


class ChatCompletionResponse(BaseModel):
    """Response from the /chat/completions endpoint."""

    id: str | None = None
    model: str | None = None
    choices: list[ChatCompletionChoice]
    usage: ChatCompletionUsage | None = None


class OpenRouterModel(BaseModel):
    """Model info from the /models endpoint."""

    id: str
    name: str = ""
    description: str = ""
    context_length: int | None = None
    pricing: dict[str, Any] = Field(default_factory=dict)
    top_provider: dict[str, Any] | None = None
    architecture: dict[str, Any] | None = None


class ModelsResponse(BaseModel):
    """Response from the /models endpoint."""

    data: list[OpenRouterModel]
