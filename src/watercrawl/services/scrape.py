"""Service for scrape-and-wait operations.

``scrape_url`` submits a crawl request, follows its status stream and folds
the events into a single ``Outcome``:

* a ``result`` event with an object payload is the only immediate success
* a ``state`` event with status ``failed`` fails at once
* a ``state`` event with status ``completed`` ends the scrape, delivering a
  fresh download when one was asked for and succeeds, else degrading to the
  state payload
* a ``completed`` event resolves only when a download returns content

Whatever is still undecided when the stream ends is settled from the last
state, error and progress seen.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..core.fetcher import ResultFetcher
from ..core.monitor import EventStreamMonitor
from ..foundation.config import ConfigManager, get_config_manager
from ..foundation.errors import ErrorContext, StreamError, WaterCrawlError, handle_error
from ..foundation.logging import get_logger
from ..foundation.metrics import get_metrics_collector, record_diagnostic, timer
from ..models.events import CrawlStatus, Event, EventKind
from ..models.outcome import Degraded, Delivered, Failed, Outcome
from .crawl_requests import CrawlRequestService


@dataclass
class ScrapeProgress:
    """Running state of one scrape, owned by the consuming task."""
    job_id: str
    event_count: int = 0
    last_progress: float = 0.0
    last_error: Any = None
    last_state: Optional[Dict[str, Any]] = None
    stream_error: Optional[str] = None

    def details(self) -> Dict[str, Any]:
        details = {
            "job_id": self.job_id,
            "event_count": self.event_count,
            "last_progress": self.last_progress,
        }
        if self.last_error is not None:
            details["last_error"] = self.last_error
        if self.stream_error is not None:
            details["stream_error"] = self.stream_error
        return details


class ScrapeService:
    """Service for scraping a URL and waiting for its result."""

    def __init__(
        self,
        requests: CrawlRequestService,
        monitor: EventStreamMonitor,
        fetcher: ResultFetcher,
        config_manager: Optional[ConfigManager] = None
    ):
        self.logger = get_logger(__name__)
        self.config_manager = config_manager or get_config_manager()
        self.metrics = get_metrics_collector()
        self.requests = requests
        self.monitor = monitor
        self.fetcher = fetcher

    async def scrape_url(
        self,
        url: Any,
        page_options: Optional[Dict[str, Any]] = None,
        plugin_options: Optional[Dict[str, Any]] = None,
        wait_for_completion: Optional[bool] = None,
        download_result: Optional[bool] = None,
        cancel_event: Optional[asyncio.Event] = None,
        timeout: Optional[float] = None
    ) -> Outcome:
        """Scrape ``url`` and wait for the crawl to settle.

        Args:
            url: A URL or a non-empty list of URLs
            page_options: Page options sent with the crawl request
            plugin_options: Plugin options sent with the crawl request
            wait_for_completion: Follow the status stream (defaults to
                ``scrape.wait_for_completion``); when false only the job id and
                status are returned
            download_result: Download the accumulated result on completion
                (defaults to ``scrape.download_result``)
            cancel_event: Setting this event stops waiting
            timeout: Overall monitoring deadline in seconds (defaults to
                ``scrape.wait_timeout``, unbounded when unset)

        Returns:
            ``Delivered``, ``Degraded`` or ``Failed``

        Raises:
            ValidationError: The target is invalid; nothing was sent
            APIError: Creating the crawl request or opening its stream failed
            NetworkError: The API could not be reached
        """
        scrape_config = self.config_manager.config.scrape
        if wait_for_completion is None:
            wait_for_completion = scrape_config.wait_for_completion
        if download_result is None:
            download_result = scrape_config.download_result
        if timeout is None:
            timeout = scrape_config.wait_timeout

        context = ErrorContext(operation="scrape_url", url=str(url))

        try:
            request = await self.requests.create(
                url,
                spider_options={"allowed_domains": list(scrape_config.allowed_domains)},
                page_options=page_options or {},
                plugin_options=plugin_options or {},
            )
        except WaterCrawlError as e:
            handle_error(e, context)
            raise

        context.job_id = request.uuid

        if not wait_for_completion:
            return self._finish(Delivered({"uuid": request.uuid, "status": request.status}))

        try:
            with timer("scrape.wait"):
                outcome = await self._wait_for_outcome(
                    request.uuid, download_result, cancel_event, timeout
                )
        except WaterCrawlError as e:
            handle_error(e, context)
            raise

        return self._finish(outcome)

    async def _wait_for_outcome(
        self,
        job_id: str,
        download_result: bool,
        cancel_event: Optional[asyncio.Event],
        timeout: Optional[float]
    ) -> Outcome:
        progress = ScrapeProgress(job_id=job_id)

        self.logger.info(f"Monitoring crawl request {job_id}...")
        stream = await self.monitor.open(
            job_id,
            augment_results=download_result,
            cancel_event=cancel_event,
            timeout=timeout,
        )

        async with stream:
            try:
                async for event in stream:
                    progress.event_count += 1
                    self.logger.debug(
                        f"Received event #{progress.event_count} of type: {event.kind}"
                    )
                    outcome = await self._apply_event(event, progress, download_result)
                    if outcome is not None:
                        return outcome
            except StreamError as e:
                self.logger.warning(f"Status stream for {job_id} ended with an error: {e}")
                progress.stream_error = str(e)

            if stream.cancelled:
                self.logger.info(f"Stopped waiting for {job_id} before it settled")

        return self._settle(progress)

    async def _apply_event(
        self,
        event: Event,
        progress: ScrapeProgress,
        download_result: bool
    ) -> Optional[Outcome]:
        """Apply one event to the running state; return an outcome to stop."""
        kind = event.known_kind
        payload = event.payload_object()

        if kind is EventKind.RESULT:
            if payload is not None:
                return Delivered(payload)
            self.logger.warning(
                f"Result event has unexpected data type: {type(event.payload).__name__}"
            )

        elif kind is EventKind.ERROR:
            self.logger.warning(f"Error event received: {event.payload}")
            progress.last_error = event.payload

        elif kind is EventKind.PROGRESS:
            value = payload.get("progress") if payload is not None else None
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                progress.last_progress = float(value)
                self.logger.debug(f"Progress: {progress.last_progress:.2f}%")

        elif kind is EventKind.STATE:
            if payload is not None:
                progress.last_state = payload
                return await self._apply_state(payload, progress, download_result)

        elif kind is EventKind.COMPLETED:
            self.logger.info("Crawl completed event received")
            if download_result:
                downloaded = await self._download(progress.job_id)
                if downloaded:
                    return Delivered(downloaded)
                if downloaded is not None:
                    self.logger.info("Downloaded results were empty")

        else:
            self.metrics.increment_counter("scrape.events.ignored")

        return None

    async def _apply_state(
        self,
        state: Dict[str, Any],
        progress: ScrapeProgress,
        download_result: bool
    ) -> Optional[Outcome]:
        status = state.get("status")

        if status == CrawlStatus.FAILED.value:
            return Failed(
                f"crawl failed with status: {status}",
                details={**progress.details(), "state": state},
            )

        if status == CrawlStatus.COMPLETED.value:
            self.logger.info("Crawl completed according to state event")
            if download_result:
                downloaded = await self._download(progress.job_id)
                if downloaded is not None:
                    return Delivered(downloaded)
            return Degraded(state)

        return None

    async def _download(self, job_id: str) -> Optional[Dict[str, Any]]:
        """One time-boxed download; None when it failed."""
        try:
            return await self.fetcher.fetch_with_timeout(job_id)
        except WaterCrawlError as e:
            record_diagnostic(
                self.logger,
                "result_download_failed",
                f"Error downloading result data for {job_id}",
                job_id=job_id,
                error=str(e),
                error_type=e.__class__.__name__,
            )
            return None

    def _settle(self, progress: ScrapeProgress) -> Outcome:
        """Decide the outcome of a stream that ended without one."""
        if progress.last_state is not None:
            return Degraded(progress.last_state)

        if progress.event_count == 0:
            return Failed(
                "no events received from crawl request (timeout or connection error)",
                details=progress.details(),
            )

        if progress.last_error is not None:
            return Failed(
                f"crawl request failed with error: {progress.last_error}",
                details=progress.details(),
            )

        return Failed(
            f"received {progress.event_count} events "
            f"(last progress: {progress.last_progress:.2f}%) but no valid result event",
            details=progress.details(),
        )

    def _finish(self, outcome: Outcome) -> Outcome:
        self.metrics.increment_counter(f"scrape.outcome.{outcome.status}")
        if isinstance(outcome, Failed):
            self.logger.warning(f"Scrape failed: {outcome.reason}")
        else:
            self.logger.info(f"Scrape finished: {outcome.status}")
        return outcome
