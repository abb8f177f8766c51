"""Service for managing crawl requests on the WaterCrawl API."""

from typing import Any, Dict, List, Optional, Union

from ..core.fetcher import ResultFetcher
from ..core.transport import APITransport
from ..foundation.errors import ValidationError, DecodeError
from ..foundation.logging import get_logger
from ..foundation.metrics import get_metrics_collector, timer
from ..models.crawl import (
    CrawlOptions, CrawlRequest, CrawlRequestList, CrawlResultList, CreateCrawlRequestInput
)


CRAWL_REQUESTS_ENDPOINT = "/api/v1/core/crawl-requests/"
CRAWL_REQUEST_ENDPOINT = "/api/v1/core/crawl-requests/{job_id}/"
CRAWL_RESULTS_ENDPOINT = "/api/v1/core/crawl-requests/{job_id}/results/"


def validate_url_target(url: Any) -> Union[str, List[str]]:
    """Check a crawl target before anything is sent.

    A target is a non-empty string or a non-empty list of non-empty strings.

    Raises:
        ValidationError: Naming ``url`` or, for list items, ``url[i]``
    """
    if url is None:
        raise ValidationError("URL is required", field="url")

    if isinstance(url, str):
        if not url:
            raise ValidationError("URL cannot be empty", field="url")
        return url

    if isinstance(url, (list, tuple)):
        if not url:
            raise ValidationError("URL list cannot be empty", field="url")
        for i, item in enumerate(url):
            if not isinstance(item, str):
                raise ValidationError("URL must be a string or array of strings", field=f"url[{i}]")
            if not item:
                raise ValidationError("URL cannot be empty", field=f"url[{i}]")
        return list(url)

    raise ValidationError("URL must be a string or array of strings", field="url")


class CrawlRequestService:
    """CRUD operations on crawl requests."""

    def __init__(self, transport: APITransport, fetcher: Optional[ResultFetcher] = None):
        self.logger = get_logger(__name__)
        self.metrics = get_metrics_collector()
        self.transport = transport
        self.fetcher = fetcher or ResultFetcher(transport)

    async def list(self, page: int = 1, page_size: int = 10) -> CrawlRequestList:
        """List crawl requests, one page at a time."""
        data = await self.transport.request_json(
            "GET", CRAWL_REQUESTS_ENDPOINT, params={"page": page, "page_size": page_size}
        )
        return CrawlRequestList.model_validate(self._expect_object(data, "list"))

    async def get(self, job_id: str) -> CrawlRequest:
        data = await self.transport.request_json(
            "GET", CRAWL_REQUEST_ENDPOINT.format(job_id=job_id)
        )
        return CrawlRequest.model_validate(self._expect_object(data, "get"))

    async def create(
        self,
        url: Any,
        options: Optional[Union[CrawlOptions, Dict[str, Any]]] = None,
        spider_options: Optional[Dict[str, Any]] = None,
        page_options: Optional[Dict[str, Any]] = None,
        plugin_options: Optional[Dict[str, Any]] = None
    ) -> CrawlRequest:
        """Create a crawl request.

        Args:
            url: A URL or a list of URLs
            options: Full options object; the keyword option groups below
                override its matching sections
            spider_options: Spider options such as ``allowed_domains``
            page_options: Page options such as ``wait_time``
            plugin_options: Plugin options

        Returns:
            The created crawl request

        Raises:
            ValidationError: The target is missing or malformed (nothing is sent)
            APIError: The server rejected the request
        """
        target = validate_url_target(url)

        if isinstance(options, CrawlOptions):
            crawl_options = options.model_copy(deep=True)
        else:
            crawl_options = CrawlOptions.model_validate(options or {})
        if spider_options is not None:
            crawl_options.spider_options = spider_options
        if page_options is not None:
            crawl_options.page_options = page_options
        if plugin_options is not None:
            crawl_options.plugin_options = plugin_options

        body = CreateCrawlRequestInput(url=target, options=crawl_options)

        with timer("crawl_requests.create"):
            data = await self.transport.request_json(
                "POST", CRAWL_REQUESTS_ENDPOINT, json_body=body.model_dump()
            )

        request = CrawlRequest.model_validate(self._expect_object(data, "create"))
        self.metrics.increment_counter("crawl_requests.created")
        self.logger.info(f"Crawl request created with UUID: {request.uuid}, Status: {request.status}")
        return request

    async def stop(self, job_id: str) -> None:
        """Stop a running crawl request. The server answers ``204 No Content``."""
        await self.transport.request_json("DELETE", CRAWL_REQUEST_ENDPOINT.format(job_id=job_id))
        self.logger.info(f"Stopped crawl request {job_id}")

    async def results(self, job_id: str, page: int = 1, page_size: int = 10) -> CrawlResultList:
        data = await self.transport.request_json(
            "GET",
            CRAWL_RESULTS_ENDPOINT.format(job_id=job_id),
            params={"page": page, "page_size": page_size},
        )
        return CrawlResultList.model_validate(self._expect_object(data, "results"))

    async def download(self, job_id: str) -> Dict[str, Any]:
        """Download the accumulated result of a crawl request."""
        return await self.fetcher.fetch(job_id)

    def _expect_object(self, data: Any, operation: str) -> Dict[str, Any]:
        if not isinstance(data, dict):
            raise DecodeError(
                f"Expected a JSON object from {operation}, got {type(data).__name__}"
            )
        return data
