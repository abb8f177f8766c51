"""Monitoring of crawl requests through their server-pushed status stream.

``EventStreamMonitor.open`` returns an ``EventStream``: a producer task reads
and decodes frames and hands them to the consumer through a bounded queue.
Cancelling the stream (the caller's signal, a deadline, ``aclose`` or leaving
``async with``) cancels the producer wherever it is suspended, whether reading,
handing off or augmenting, and the response is closed exactly once.
"""

import asyncio
from typing import Any, AsyncIterator, Optional

import httpx

from ..foundation.config import ConfigManager
from ..foundation.errors import StreamError, WaterCrawlError
from ..foundation.logging import get_logger
from ..foundation.metrics import get_metrics_collector, record_diagnostic
from ..models.events import Event, EventKind
from .decoder import EventFrameDecoder
from .fetcher import ResultFetcher
from .transport import APITransport


STATUS_ENDPOINT = "/api/v1/core/crawl-requests/{job_id}/status/"


class EventStream:
    """A cancellable, forward-only async sequence of events for one job."""

    def __init__(
        self,
        response: httpx.Response,
        events: AsyncIterator[Event],
        job_id: str,
        cancel_event: Optional[asyncio.Event] = None,
        timeout: Optional[float] = None,
        queue_size: int = 1
    ):
        self.logger = get_logger(__name__)
        self.metrics = get_metrics_collector()
        self.job_id = job_id

        self._response = response
        self._events = events
        self._cancel_event = cancel_event
        self._timeout = timeout
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, queue_size))
        self._finished = asyncio.Event()

        self._producer: Optional[asyncio.Task] = None
        self._watcher: Optional[asyncio.Task] = None
        self._error: Optional[WaterCrawlError] = None
        self._cancelled = False
        self._closed = False
        self._stopping = False
        self._running = False
        self._released = False
        self.release_count = 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def released(self) -> bool:
        return self._released

    @property
    def finished(self) -> bool:
        return self._finished.is_set()

    def start(self) -> "EventStream":
        """Start the producer task (and the cancellation watcher if needed)."""
        if self._producer is not None:
            return self
        self._producer = asyncio.create_task(
            self._produce(), name=f"watercrawl-stream-{self.job_id}"
        )
        if self._cancel_event is not None or self._timeout is not None:
            self._watcher = asyncio.create_task(
                self._watch(), name=f"watercrawl-stream-watch-{self.job_id}"
            )
        return self

    async def _produce(self) -> None:
        self._running = True
        try:
            if self._cancelled:
                return
            async for event in self._events:
                self.metrics.increment_counter("stream.events.received")
                await self._queue.put(event)
        except asyncio.CancelledError:
            self._cancelled = True
            raise
        except WaterCrawlError as e:
            self.logger.warning(f"Event stream for {self.job_id} failed: {e}")
            self._error = e
        except Exception as e:
            self.logger.error(f"Unexpected error in event stream for {self.job_id}: {e}")
            self._error = StreamError(f"Event stream failed: {e}", job_id=self.job_id)
        finally:
            # No further cancels from here on, they would interrupt the release
            self._stopping = True
            try:
                await self._close_source()
                await self._release()
            finally:
                self._finished.set()
                if self._watcher is not None and self._watcher is not asyncio.current_task():
                    self._watcher.cancel()

    async def _watch(self) -> None:
        """Cancel the producer once the caller's signal fires or the deadline passes."""
        signal = self._cancel_event if self._cancel_event is not None else asyncio.Event()
        try:
            await asyncio.wait_for(signal.wait(), timeout=self._timeout)
            self.logger.debug(f"Cancellation requested for stream {self.job_id}")
        except asyncio.TimeoutError:
            self.logger.info(
                f"Monitoring deadline of {self._timeout}s reached for {self.job_id}"
            )
        self._cancel()

    def _cancel(self) -> None:
        self._cancelled = True
        # A task cancelled before its first step never runs its finally block,
        # so a producer that has not started is left to see the flag and exit
        if self._producer is None or self._producer.done() or self._stopping:
            return
        if self._running:
            self._producer.cancel()

    async def _close_source(self) -> None:
        aclose = getattr(self._events, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except RuntimeError as e:
            # Generator still running in another frame; the response close below ends it
            self.logger.debug(f"Could not close event source for {self.job_id}: {e}")

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True
        self.release_count += 1
        try:
            await self._response.aclose()
        except (httpx.HTTPError, OSError) as e:
            self.logger.warning(f"Error closing event stream for {self.job_id}: {e}")
        self.logger.debug(f"Released event stream for {self.job_id}")

    def __aiter__(self) -> "EventStream":
        return self

    async def __anext__(self) -> Event:
        if self._producer is None and not self._closed:
            self.start()

        while True:
            if self._cancelled or self._closed:
                raise StopAsyncIteration
            if not self._queue.empty():
                return self._queue.get_nowait()
            if self._finished.is_set():
                if self._error is not None:
                    error, self._error = self._error, None
                    raise error
                raise StopAsyncIteration

            getter = asyncio.ensure_future(self._queue.get())
            finisher = asyncio.ensure_future(self._finished.wait())
            try:
                done, _ = await asyncio.wait(
                    {getter, finisher}, return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                for waiter in (getter, finisher):
                    if not waiter.done():
                        waiter.cancel()

            if getter in done and not getter.cancelled():
                event = getter.result()
                if self._cancelled or self._closed:
                    raise StopAsyncIteration
                return event

    async def aclose(self) -> None:
        """Stop the stream and release the connection. Safe to call repeatedly."""
        self._closed = True
        if self._producer is None:
            self._stopping = True
            await self._close_source()
            await self._release()
            self._finished.set()
            return

        if not self._producer.done():
            self._cancel()
            await asyncio.wait({self._producer})
        if self._watcher is not None and not self._watcher.done():
            self._watcher.cancel()
            await asyncio.wait({self._watcher})

    async def __aenter__(self) -> "EventStream":
        return self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


class EventStreamMonitor:
    """Opens status streams and applies result augmentation to their events."""

    def __init__(
        self,
        transport: APITransport,
        fetcher: ResultFetcher,
        config_manager: Optional[ConfigManager] = None
    ):
        self.logger = get_logger(__name__)
        self.metrics = get_metrics_collector()
        self.transport = transport
        self.fetcher = fetcher
        self.config_manager = config_manager or transport.config_manager

        stream_config = self.config_manager.config.stream
        self.queue_size = stream_config.queue_size
        self.download_timeout = stream_config.download_timeout

    async def open(
        self,
        job_id: str,
        augment_results: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
        timeout: Optional[float] = None
    ) -> EventStream:
        """Open the status stream of ``job_id``.

        Args:
            job_id: Crawl request identifier
            augment_results: Replace ``result`` payloads with a fresh download
            cancel_event: Setting this event stops the stream
            timeout: Optional overall monitoring deadline in seconds

        Returns:
            A started ``EventStream``

        Raises:
            APIError: The stream endpoint answered with a non-2xx status
            NetworkError: The stream could not be established
        """
        response = await self.transport.open_stream(STATUS_ENDPOINT.format(job_id=job_id))
        self.logger.info(f"Monitoring crawl request {job_id}")

        decoder = EventFrameDecoder(job_id=job_id)
        events: AsyncIterator[Event] = decoder.from_response(response)
        if augment_results:
            events = self._augment(job_id, events)

        stream = EventStream(
            response,
            events,
            job_id=job_id,
            cancel_event=cancel_event,
            timeout=timeout,
            queue_size=self.queue_size,
        )
        return stream.start()

    async def _augment(self, job_id: str, events: AsyncIterator[Event]) -> AsyncIterator[Event]:
        try:
            async for event in events:
                if event.known_kind is EventKind.RESULT and event.payload_object() is not None:
                    event = await self._download_into(job_id, event)
                yield event
        finally:
            await events.aclose()

    async def _download_into(self, job_id: str, event: Event) -> Event:
        """Replace the payload of a result event with the downloaded result."""
        try:
            downloaded: Any = await self.fetcher.fetch_with_timeout(job_id, self.download_timeout)
        except WaterCrawlError as e:
            self.metrics.increment_counter("stream.augment.failed")
            record_diagnostic(
                self.logger,
                "augmentation_failed",
                "Keeping inline result payload, download failed",
                job_id=job_id,
                error=str(e),
                error_type=e.__class__.__name__,
            )
            return event

        self.metrics.increment_counter("stream.augment.succeeded")
        self.logger.debug(f"Replaced result payload for {job_id} with downloaded data")
        return event.with_payload(downloaded)
