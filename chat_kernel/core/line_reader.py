from collections.abc import AsyncIterable, AsyncIterator

from chat_kernel.core.sse import parse_sse_payload
from chat_kernel.models.events import StreamEvent


DATA_PREFIX = "data: "


async def iter_sse_payloads(lines: AsyncIterable[str]) -> AsyncIterator[str]:
    """
    Yield the payload of every "data: " line as the transport delivers it.

    Blank-line event framing is not required: each line is judged on its
    own. Comments, keepalives and other fields are skipped.
    """
    async for line in lines:
        line = line.rstrip("\r\n")
        if not line.startswith(DATA_PREFIX):
            continue
        yield line[len(DATA_PREFIX):]


async def iter_stream_events(lines: AsyncIterable[str]) -> AsyncIterator[StreamEvent]:
    """Parse a live SSE line stream into events, in arrival order."""
    async for payload in iter_sse_payloads(lines):
        for event in parse_sse_payload(payload):
            yield event
