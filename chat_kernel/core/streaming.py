import asyncio
from collections.abc import AsyncIterable, Callable
from contextlib import AbstractAsyncContextManager
from enum import Enum

from chat_kernel.core.errors import ChatKernelError
from chat_kernel.core.line_reader import iter_stream_events
from chat_kernel.models.events import DoneEvent, StreamEvent
from chat_kernel.utils.logging import get_logger


logger = get_logger("stream")


class StreamState(str, Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


LineSource = Callable[[], AbstractAsyncContextManager[AsyncIterable[str]]]


class _StreamStatus:
    """State shared by a ChatStream and its producer task."""

    def __init__(self, label: str):
        self.label = label
        self.state = StreamState.CONNECTING
        self.error: Exception | None = None

    @property
    def finished(self) -> bool:
        return self.state not in (StreamState.CONNECTING, StreamState.STREAMING)

    def settle(self, state: StreamState) -> bool:
        # terminal states are final
        if self.finished:
            return False
        self.state = state
        return True


class ChatStream:
    """
    Cancellable event stream for one streaming chat call.

    A producer task reads the transport and hands events over through a
    bounded queue, so the network is only read as fast as the consumer
    iterates. The producer starts on first iteration.

    Cancelling (directly, by leaving an ``async with`` block, by cancelling
    the consuming task, or by dropping the stream) aborts the in-flight
    request and ends iteration without raising and without an error event.
    A stream that already completed or failed keeps that state. Connection
    and stream failures are raised from ``__anext__`` exactly once.
    """

    def __init__(self, connect: LineSource, *, label: str = "", buffer_size: int = 1):
        if buffer_size < 1:
            raise ValueError(f"buffer_size must be at least 1, got {buffer_size}")
        self._connect = connect
        self._status = _StreamStatus(label)
        self._queue: asyncio.Queue[StreamEvent] = asyncio.Queue(maxsize=buffer_size)
        self._task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def state(self) -> StreamState:
        return self._status.state

    @property
    def cancelled(self) -> bool:
        return self._status.state is StreamState.CANCELLED

    def cancel(self) -> None:
        """Stop the stream. Events not yet delivered are dropped."""
        if self._closed:
            return
        self._closed = True
        if self._status.finished:
            return
        self._status.state = StreamState.CANCELLED
        logger.info(f"Stream {self._status.label}: cancelled")
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def aclose(self) -> None:
        """Cancel if still running and wait for the transport to be released."""
        self.cancel()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    def __del__(self) -> None:
        # the producer holds no reference back, so a dropped stream lands here
        task = getattr(self, "_task", None)
        if task is None or task.done() or task.get_loop().is_closed():
            return
        if not self._status.finished:
            self._status.state = StreamState.CANCELLED
        task.cancel()

    def __aiter__(self) -> "ChatStream":
        return self

    async def __anext__(self) -> StreamEvent:
        if self._closed:
            raise StopAsyncIteration

        if self._task is None:
            self._task = asyncio.create_task(_pump(self._connect, self._queue, self._status))
        task = self._task

        event: StreamEvent | None = None
        if self._queue.empty() and not task.done():
            getter = asyncio.ensure_future(self._queue.get())
            try:
                await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
            except asyncio.CancelledError:
                getter.cancel()
                self.cancel()
                raise
            if getter.done():
                event = getter.result()
            else:
                getter.cancel()

        if self._closed:
            raise StopAsyncIteration
        if event is not None:
            return event
        if not self._queue.empty():
            return self._queue.get_nowait()

        # producer has finished and everything has been delivered
        self._closed = True
        error, self._status.error = self._status.error, None
        if error is not None:
            raise error
        raise StopAsyncIteration

    async def __aenter__(self) -> "ChatStream":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()


async def _pump(
    connect: LineSource,
    queue: "asyncio.Queue[StreamEvent]",
    status: _StreamStatus,
) -> None:
    try:
        async with connect() as lines:
            status.settle(StreamState.STREAMING)
            logger.info(f"Stream {status.label}: connected")

            async for event in iter_stream_events(lines):
                await queue.put(event)
                if isinstance(event, DoneEvent):
                    status.settle(StreamState.COMPLETED)
                    break
                if status.state is StreamState.CANCELLED:
                    break

    except ChatKernelError as e:
        if status.settle(StreamState.FAILED):
            logger.error(f"Stream {status.label}: failed: {e}")
            status.error = e

    except Exception as e:
        if status.settle(StreamState.FAILED):
            logger.exception(f"Stream {status.label}: unexpected error: {e}")
            status.error = e

    else:
        status.settle(StreamState.COMPLETED)

    if status.state is StreamState.COMPLETED:
        logger.info(f"Stream {status.label}: completed")
