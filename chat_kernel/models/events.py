from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from chat_kernel.core.errors import ErrorKind, StreamingError


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)


class DeltaEvent(_Event):
    """Incremental content fragment. May be empty."""

    type: Literal["delta"] = "delta"
    text: str


class UsageEvent(_Event):
    """Cumulative token usage. The last one received wins."""

    type: Literal["usage"] = "usage"
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int | None = None
    raw: dict[str, Any] = Field(default_factory=dict)


class ModelIDEvent(_Event):
    """Concrete model that served the request."""

    type: Literal["model_id"] = "model_id"
    model_id: str


class GenerationIDEvent(_Event):
    type: Literal["generation_id"] = "generation_id"
    generation_id: str


class FinishReasonEvent(_Event):
    type: Literal["finish_reason"] = "finish_reason"
    reason: str


class ErrorEvent(_Event):
    """Error reported inline by the server. Does not end the stream by itself."""

    type: Literal["error"] = "error"
    kind: ErrorKind = ErrorKind.STREAMING_ERROR
    message: str

    def to_exception(self) -> StreamingError:
        return StreamingError(self.message)


class DoneEvent(_Event):
    """End-of-stream sentinel. Always last when present."""

    type: Literal["done"] = "done"


StreamEvent = Annotated[
    DeltaEvent
    | UsageEvent
    | ModelIDEvent
    | GenerationIDEvent
    | FinishReasonEvent
    | ErrorEvent
    | DoneEvent,
    Field(discriminator="type"),
]
