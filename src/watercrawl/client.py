"""High-level asynchronous client for the WaterCrawl API."""

import asyncio
from typing import Any, Dict, Optional, Union

import httpx

from .core.fetcher import ResultFetcher
from .core.monitor import EventStream, EventStreamMonitor
from .core.transport import APITransport
from .foundation.config import ConfigManager, get_config_manager
from .foundation.logging import get_logger
from .models.crawl import CrawlOptions, CrawlRequest, CrawlRequestList, CrawlResultList
from .models.outcome import Outcome
from .services.crawl_requests import CrawlRequestService
from .services.scrape import ScrapeService


class WaterCrawlClient:
    """Client for the WaterCrawl API.

    Use it as an async context manager so the HTTP connection pool is closed::

        async with WaterCrawlClient(api_key="...") as client:
            outcome = await client.scrape_url("https://example.com")
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        config_manager: Optional[ConfigManager] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.logger = get_logger(__name__)
        self.config_manager = config_manager or get_config_manager()

        self.transport = APITransport(
            api_key=api_key,
            base_url=base_url,
            config_manager=self.config_manager,
            http_client=http_client,
        )
        self.fetcher = ResultFetcher(self.transport)
        self.monitor = EventStreamMonitor(self.transport, self.fetcher, self.config_manager)
        self.requests = CrawlRequestService(self.transport, self.fetcher)
        self.scraper = ScrapeService(
            self.requests, self.monitor, self.fetcher, self.config_manager
        )

    @property
    def base_url(self) -> str:
        return self.transport.base_url

    async def get_crawl_requests(self, page: int = 1, page_size: int = 10) -> CrawlRequestList:
        return await self.requests.list(page=page, page_size=page_size)

    async def get_crawl_request(self, job_id: str) -> CrawlRequest:
        return await self.requests.get(job_id)

    async def create_crawl_request(
        self,
        url: Any,
        options: Optional[Union[CrawlOptions, Dict[str, Any]]] = None,
        spider_options: Optional[Dict[str, Any]] = None,
        page_options: Optional[Dict[str, Any]] = None,
        plugin_options: Optional[Dict[str, Any]] = None
    ) -> CrawlRequest:
        return await self.requests.create(
            url,
            options=options,
            spider_options=spider_options,
            page_options=page_options,
            plugin_options=plugin_options,
        )

    async def stop_crawl_request(self, job_id: str) -> None:
        await self.requests.stop(job_id)

    async def download_crawl_request(self, job_id: str) -> Dict[str, Any]:
        return await self.requests.download(job_id)

    async def get_crawl_request_results(
        self,
        job_id: str,
        page: int = 1,
        page_size: int = 10
    ) -> CrawlResultList:
        return await self.requests.results(job_id, page=page, page_size=page_size)

    async def monitor_crawl_request(
        self,
        job_id: str,
        download: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
        timeout: Optional[float] = None
    ) -> EventStream:
        """Open the status stream of a crawl request.

        The returned stream must be closed, preferably with ``async with``.
        With ``download`` set, result events carry a freshly downloaded payload
        whenever the download succeeds.
        """
        return await self.monitor.open(
            job_id,
            augment_results=download,
            cancel_event=cancel_event,
            timeout=timeout,
        )

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
        return await self.scraper.scrape_url(
            url,
            page_options=page_options,
            plugin_options=plugin_options,
            wait_for_completion=wait_for_completion,
            download_result=download_result,
            cancel_event=cancel_event,
            timeout=timeout,
        )

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> "WaterCrawlClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
