import json
from typing import Any

from chat_kernel.models.events import (
    DeltaEvent,
    DoneEvent,
    ErrorEvent,
    FinishReasonEvent,
    GenerationIDEvent,
    ModelIDEvent,
    StreamEvent,
    UsageEvent,
)
from chat_kernel.utils.logging import get_logger


logger = get_logger("sse")

DONE_SENTINEL = "[DONE]"


def parse_sse_payload(payload: str) -> list[StreamEvent]:
    """
    Translate one SSE data payload into stream events.

    Events from a single payload always come out in the order
    generation id, finish reason, delta, usage, model id, then any
    inline error. Malformed payloads yield no events; this function
    never raises.

    Args:
        payload: Text after the "data: " prefix

    Returns:
        Zero or more events
    """
    if payload == DONE_SENTINEL:
        return [DoneEvent()]

    try:
        data = json.loads(payload)
    except (ValueError, RecursionError):
        logger.debug(f"Dropping malformed SSE payload: {payload[:80]!r}")
        return []

    if not isinstance(data, dict):
        return []

    events: list[StreamEvent] = []

    generation_id = data.get("id")
    if _is_nonempty_str(generation_id):
        events.append(GenerationIDEvent(generation_id=generation_id))

    choice = _first_choice(data)
    if choice is not None:
        finish_reason = choice.get("finish_reason")
        if _is_nonempty_str(finish_reason):
            events.append(FinishReasonEvent(reason=finish_reason))

        text = _choice_content(choice)
        if text is not None:
            events.append(DeltaEvent(text=text))

    usage = _usage_event(data.get("usage"))
    if usage is not None:
        events.append(usage)

    model = data.get("model")
    if _is_nonempty_str(model):
        events.append(ModelIDEvent(model_id=model))

    error = data.get("error")
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message.strip():
            events.append(ErrorEvent(message=message))

    return events


def _is_nonempty_str(value: Any) -> bool:
    return isinstance(value, str) and value != ""


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _first_choice(data: dict[str, Any]) -> dict[str, Any] | None:
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    choice = choices[0]
    return choice if isinstance(choice, dict) else None


def _choice_content(choice: dict[str, Any]) -> str | None:
    # Some upstream providers send a full message even when streaming
    for key in ("delta", "message"):
        part = choice.get(key)
        if isinstance(part, dict):
            content = part.get("content")
            if isinstance(content, str):
                return content
    return None


def _usage_event(usage: Any) -> UsageEvent | None:
    if not isinstance(usage, dict):
        return None
    prompt_tokens = usage.get("prompt_tokens")
    completion_tokens = usage.get("completion_tokens")
    if not (_is_int(prompt_tokens) and _is_int(completion_tokens)):
        return None
    total_tokens = usage.get("total_tokens")
    return UsageEvent(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=total_tokens if _is_int(total_tokens) else None,
        raw=usage,
    )
