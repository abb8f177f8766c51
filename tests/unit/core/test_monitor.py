"""Tests for the event stream monitor."""

import asyncio
import logging

import httpx
import pytest

from watercrawl.core.monitor import EventStream, EventStreamMonitor
from watercrawl.foundation.errors import APIError, StreamError

from conftest import (
    DOWNLOAD_PATH, JOB_ID, STATUS_PATH, CountingStream, FailingStream, frame
)


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """Poll ``predicate`` until it holds or ``timeout`` passes."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


async def collect(stream: EventStream) -> list:
    return [event async for event in stream]


class TestEventStream:
    """Test suite for streaming, ordering and release."""

    @pytest.mark.asyncio
    async def test_events_delivered_in_order(self, monitor, fake_api, metrics):
        body = CountingStream([
            frame("state", {"status": "running"}),
            frame("progress", {"progress": 50}),
            frame("result", {"content": "x"}),
        ])
        fake_api.add("GET", STATUS_PATH, stream=body)

        stream = await monitor.open(JOB_ID)
        events = await collect(stream)

        assert [e.kind for e in events] == ["state", "progress", "result"]
        assert events[2].payload == {"content": "x"}
        assert stream.finished
        assert stream.release_count == 1
        assert body.close_count == 1
        assert metrics.get_counter("stream.events.received") == 3

    @pytest.mark.asyncio
    async def test_malformed_line_between_good_lines(self, monitor, fake_api):
        body = CountingStream([
            frame("progress", {"progress": 10}),
            "data: {\"type\": \"progress\", \"data\": \n",
            "event: ping\n",
            frame("progress", {"progress": 20}),
        ])
        fake_api.add("GET", STATUS_PATH, stream=body)

        async with await monitor.open(JOB_ID) as stream:
            events = await collect(stream)

        assert [e.payload["progress"] for e in events] == [10, 20]

    @pytest.mark.asyncio
    async def test_frames_split_across_chunks(self, monitor, fake_api):
        line = frame("progress", {"progress": 30})
        body = CountingStream([line[:10], line[10:], frame("completed")])
        fake_api.add("GET", STATUS_PATH, stream=body)

        async with await monitor.open(JOB_ID) as stream:
            events = await collect(stream)

        assert [e.kind for e in events] == ["progress", "completed"]

    @pytest.mark.asyncio
    async def test_read_failure_surfaces_stream_error(self, monitor, fake_api):
        body = FailingStream([frame("progress", {"progress": 10})])
        fake_api.add("GET", STATUS_PATH, stream=body)

        stream = await monitor.open(JOB_ID)
        received = []
        with pytest.raises(StreamError):
            async for event in stream:
                received.append(event)

        assert len(received) == 1
        assert stream.release_count == 1
        assert body.close_count == 1

    @pytest.mark.asyncio
    async def test_open_failure_raises_api_error(self, monitor, fake_api):
        fake_api.add("GET", STATUS_PATH, status_code=404, json_body={"detail": "Not found."})

        with pytest.raises(APIError) as exc_info:
            await monitor.open(JOB_ID)
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_close_before_iterating_releases_once(self, monitor, fake_api):
        body = CountingStream([frame("progress", {"progress": 10})], hold_open=True)
        fake_api.add("GET", STATUS_PATH, stream=body)

        stream = await monitor.open(JOB_ID)
        await stream.aclose()
        await stream.aclose()

        assert stream.released
        assert stream.release_count == 1
        assert body.close_count == 1
        assert await collect(stream) == []

    @pytest.mark.asyncio
    async def test_consumer_early_exit_releases(self, monitor, fake_api):
        body = CountingStream(
            [frame("progress", {"progress": p}) for p in range(10)], hold_open=True
        )
        fake_api.add("GET", STATUS_PATH, stream=body)

        async with await monitor.open(JOB_ID) as stream:
            async for event in stream:
                if event.payload["progress"] == 2:
                    break

        assert stream.release_count == 1
        assert body.close_count == 1
        assert body.chunks_sent < 10


class TestCancellation:
    """Test suite for cancellation at each suspension point."""

    @pytest.mark.asyncio
    async def test_cancel_with_slow_consumer(self, monitor, fake_api):
        body = CountingStream(
            [frame("progress", {"progress": p}) for p in range(20)], hold_open=True
        )
        fake_api.add("GET", STATUS_PATH, stream=body)
        cancel = asyncio.Event()

        stream = await monitor.open(JOB_ID, cancel_event=cancel)
        first = await stream.__anext__()
        assert first.payload["progress"] == 0

        # Let the producer fill the queue and block handing off the next event
        await asyncio.sleep(0.05)
        assert not stream.finished

        cancel.set()
        await wait_until(lambda: stream.released)

        assert await collect(stream) == []
        assert stream.cancelled
        assert stream.release_count == 1
        assert body.close_count == 1

    @pytest.mark.asyncio
    async def test_cancel_while_waiting_for_frame(self, monitor, fake_api):
        body = CountingStream([], hold_open=True)
        fake_api.add("GET", STATUS_PATH, stream=body)
        cancel = asyncio.Event()

        stream = await monitor.open(JOB_ID, cancel_event=cancel)
        consumer = asyncio.create_task(collect(stream))
        await asyncio.sleep(0.02)
        assert not consumer.done()

        cancel.set()
        events = await asyncio.wait_for(consumer, timeout=1.0)

        assert events == []
        assert stream.release_count == 1
        assert body.close_count == 1

    @pytest.mark.asyncio
    async def test_signal_already_set(self, monitor, fake_api):
        body = CountingStream([frame("progress", {"progress": 1})], hold_open=True)
        fake_api.add("GET", STATUS_PATH, stream=body)
        cancel = asyncio.Event()
        cancel.set()

        stream = await monitor.open(JOB_ID, cancel_event=cancel)
        await asyncio.wait_for(stream.aclose(), timeout=1.0)

        assert stream.cancelled
        assert stream.release_count == 1
        assert body.close_count == 1

    @pytest.mark.asyncio
    async def test_deadline_ends_stream(self, monitor, fake_api, caplog):
        body = CountingStream([frame("progress", {"progress": 5})], hold_open=True)
        fake_api.add("GET", STATUS_PATH, stream=body)

        with caplog.at_level(logging.INFO, logger="watercrawl"):
            stream = await monitor.open(JOB_ID, timeout=0.05)
            events = await asyncio.wait_for(collect(stream), timeout=1.0)

        assert len(events) <= 1
        assert stream.cancelled
        assert stream.release_count == 1
        assert "deadline" in caplog.text

    @pytest.mark.asyncio
    async def test_cancel_abandons_inflight_augmentation(self, transport, fetcher, config_manager, fake_api):
        config_manager.set_setting("stream.download_timeout", 10.0)
        monitor = EventStreamMonitor(transport, fetcher, config_manager)
        download_cancelled = asyncio.Event()

        async def hanging_download(request):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                download_cancelled.set()
                raise
            return httpx.Response(200, json={"content": "late"})

        body = CountingStream([frame("result", {"content": "inline"})], hold_open=True)
        fake_api.add("GET", STATUS_PATH, stream=body)
        fake_api.add("GET", DOWNLOAD_PATH, handler=hanging_download)
        cancel = asyncio.Event()

        stream = await monitor.open(JOB_ID, augment_results=True, cancel_event=cancel)
        consumer = asyncio.create_task(collect(stream))
        await wait_until(lambda: fake_api.calls("GET", DOWNLOAD_PATH) == 1)

        cancel.set()
        events = await asyncio.wait_for(consumer, timeout=1.0)

        assert events == []
        assert download_cancelled.is_set()
        assert stream.release_count == 1
        assert body.close_count == 1


class TestAugmentation:
    """Test suite for result augmentation."""

    @pytest.mark.asyncio
    async def test_result_payload_replaced_by_download(self, monitor, fake_api, metrics):
        body = CountingStream([
            frame("progress", {"progress": 100}),
            frame("result", {"content": "partial"}),
        ])
        fake_api.add("GET", STATUS_PATH, stream=body)
        fake_api.add("GET", DOWNLOAD_PATH, json_body={"content": "full", "meta": {"pages": 3}})

        async with await monitor.open(JOB_ID, augment_results=True) as stream:
            events = await collect(stream)

        assert events[0].payload == {"progress": 100}
        assert events[1].payload == {"content": "full", "meta": {"pages": 3}}
        assert fake_api.calls("GET", DOWNLOAD_PATH) == 1
        assert metrics.get_counter("stream.augment.succeeded") == 1

    @pytest.mark.asyncio
    async def test_array_download_is_normalized(self, monitor, fake_api):
        body = CountingStream([frame("result", {"content": "partial"})])
        fake_api.add("GET", STATUS_PATH, stream=body)
        fake_api.add("GET", DOWNLOAD_PATH, json_body=[{"content": "a"}, {"content": "b"}])

        async with await monitor.open(JOB_ID, augment_results=True) as stream:
            events = await collect(stream)

        assert events[0].payload == {"results": [{"content": "a"}, {"content": "b"}]}

    @pytest.mark.asyncio
    async def test_failed_download_keeps_payload(self, monitor, fake_api, metrics, caplog):
        body = CountingStream([
            frame("result", {"content": "inline"}),
            frame("completed"),
        ])
        fake_api.add("GET", STATUS_PATH, stream=body)
        fake_api.add("GET", DOWNLOAD_PATH, status_code=500, text="boom")

        with caplog.at_level(logging.WARNING, logger="watercrawl"):
            async with await monitor.open(JOB_ID, augment_results=True) as stream:
                events = await collect(stream)

        assert [e.kind for e in events] == ["result", "completed"]
        assert events[0].payload == {"content": "inline"}
        assert metrics.get_counter("stream.augment.failed") == 1
        assert metrics.get_counter("diagnostics.augmentation_failed") == 1
        diagnostics = [r.diagnostic for r in caplog.records if hasattr(r, "diagnostic")]
        assert diagnostics[0]["error_type"] == "APIError"

    @pytest.mark.asyncio
    async def test_slow_download_times_out_and_keeps_payload(
        self, transport, fetcher, config_manager, fake_api
    ):
        config_manager.set_setting("stream.download_timeout", 0.05)
        monitor = EventStreamMonitor(transport, fetcher, config_manager)

        async def slow(request):
            await asyncio.sleep(5)
            return httpx.Response(200, json={"content": "late"})

        body = CountingStream([frame("result", {"content": "inline"})])
        fake_api.add("GET", STATUS_PATH, stream=body)
        fake_api.add("GET", DOWNLOAD_PATH, handler=slow)

        async with await monitor.open(JOB_ID, augment_results=True) as stream:
            events = await asyncio.wait_for(collect(stream), timeout=2.0)

        assert events[0].payload == {"content": "inline"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", ["a string", [1, 2], None, 3])
    async def test_non_object_result_is_not_augmented(self, monitor, fake_api, payload):
        body = CountingStream([frame("result", payload)])
        fake_api.add("GET", STATUS_PATH, stream=body)
        fake_api.add("GET", DOWNLOAD_PATH, json_body={"content": "full"})

        async with await monitor.open(JOB_ID, augment_results=True) as stream:
            events = await collect(stream)

        assert events[0].payload == payload
        assert fake_api.calls("GET", DOWNLOAD_PATH) == 0

    @pytest.mark.asyncio
    async def test_no_augmentation_unless_requested(self, monitor, fake_api):
        body = CountingStream([frame("result", {"content": "inline"})])
        fake_api.add("GET", STATUS_PATH, stream=body)
        fake_api.add("GET", DOWNLOAD_PATH, json_body={"content": "full"})

        async with await monitor.open(JOB_ID) as stream:
            events = await collect(stream)

        assert events[0].payload == {"content": "inline"}
        assert fake_api.calls("GET", DOWNLOAD_PATH) == 0
