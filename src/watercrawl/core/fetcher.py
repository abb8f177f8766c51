"""Point-in-time download of a crawl request's accumulated output."""

import asyncio
from typing import Any, Dict, Optional

from ..foundation.errors import DecodeError, TimeoutError
from ..foundation.logging import get_logger
from ..foundation.metrics import get_metrics_collector
from .transport import APITransport


DOWNLOAD_ENDPOINT = "/api/v1/core/crawl-requests/{job_id}/download/"


def normalize_download(body: Any) -> Dict[str, Any]:
    """Give every download the same object shape.

    An object is returned unchanged; an array is wrapped as
    ``{"results": [...]}``. Anything else is a ``DecodeError``.
    """
    if isinstance(body, dict):
        return body
    if isinstance(body, list):
        return {"results": body}
    raise DecodeError(
        f"Download body must be a JSON object or array, got {type(body).__name__}"
    )


class ResultFetcher:
    """Fetches the accumulated result of a crawl request."""

    def __init__(self, transport: APITransport, default_timeout: Optional[float] = None):
        self.logger = get_logger(__name__)
        self.metrics = get_metrics_collector()
        self.transport = transport
        if default_timeout is None:
            default_timeout = transport.config_manager.config.stream.download_timeout
        self.default_timeout = default_timeout

    async def fetch(self, job_id: str) -> Dict[str, Any]:
        """Download the result of ``job_id``.

        Raises:
            APIError: Non-2xx response
            NetworkError: Connection failure
            DecodeError: Body is not JSON, or not an object or array
        """
        endpoint = DOWNLOAD_ENDPOINT.format(job_id=job_id)
        response = await self.transport.request_raw("GET", endpoint)

        try:
            body = response.json()
        except ValueError as e:
            raise DecodeError(f"Failed to decode download for {job_id}: {e}") from e

        result = normalize_download(body)
        self.metrics.increment_counter("fetcher.downloads")
        return result

    async def fetch_with_timeout(
        self,
        job_id: str,
        timeout: Optional[float] = None
    ) -> Dict[str, Any]:
        """``fetch`` bounded by its own time budget.

        Raises:
            TimeoutError: The download did not finish within ``timeout`` seconds
        """
        if timeout is None:
            timeout = self.default_timeout

        try:
            return await asyncio.wait_for(self.fetch(job_id), timeout=timeout)
        except asyncio.TimeoutError as e:
            self.metrics.increment_counter("fetcher.timeouts")
            raise TimeoutError(
                f"download of {job_id} exceeded {timeout:.1f}s",
                operation="download",
                timeout_duration=timeout,
            ) from e
