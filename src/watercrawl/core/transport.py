"""Authenticated HTTP transport for the WaterCrawl API."""

import json
from typing import Any, Dict, Optional

import httpx

from ..foundation.config import ConfigManager, get_config_manager
from ..foundation.errors import APIError, DecodeError, NetworkError
from ..foundation.logging import get_logger
from ..foundation.metrics import get_metrics_collector


def extract_error_message(response: httpx.Response) -> str:
    """Pick the most useful error message out of a failed response.

    The JSON ``error`` field wins, then ``detail``, then the raw body text,
    then a generic ``HTTP error N``.
    """
    body = response.text
    try:
        data = json.loads(body) if body else None
    except ValueError:
        data = None

    if isinstance(data, dict):
        for key in ("error", "detail"):
            message = data.get(key)
            if isinstance(message, str) and message:
                return message

    if body:
        return body
    return f"HTTP error {response.status_code}"


class APITransport:
    """Issues authenticated requests against the WaterCrawl API.

    Every request carries the API key, JSON content negotiation and the
    client identifier. Non-2xx responses become ``APIError``; connection
    failures become ``NetworkError``.
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
        self.metrics = get_metrics_collector()

        api_config = self.config_manager.config.api
        self.api_key = api_key if api_key is not None else (api_config.api_key or "")
        self.base_url = base_url or api_config.base_url
        self.user_agent = api_config.user_agent
        self.accept_language = api_config.accept_language
        self.timeout = httpx.Timeout(api_config.timeout, connect=api_config.connect_timeout)
        # The server holds status streams open, so reads wait indefinitely
        self.stream_timeout = httpx.Timeout(
            api_config.timeout, connect=api_config.connect_timeout, read=None
        )

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=self.timeout)

    def url_for(self, endpoint: str) -> str:
        """Absolute URL of an API endpoint such as ``/api/v1/core/crawl-requests/``."""
        return self.base_url.rstrip("/") + "/" + endpoint.lstrip("/")

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "X-API-Key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": self.user_agent,
            "Accept-Language": self.accept_language,
        }

    def _build_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Any = None,
        timeout: Optional[httpx.Timeout] = None
    ) -> httpx.Request:
        return self._client.build_request(
            method,
            self.url_for(endpoint),
            params=params,
            json=json_body,
            headers=self.headers,
            timeout=timeout or self.timeout,
        )

    async def _send(self, request: httpx.Request, stream: bool = False) -> httpx.Response:
        self.logger.debug(f"Making request to: {request.method} {request.url}")
        self.metrics.increment_counter("transport.requests")

        try:
            response = await self._client.send(request, stream=stream)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timed out: {e}", url=str(request.url)) from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Request failed: {e}", url=str(request.url)) from e

        self.logger.debug(f"Received response: {response.status_code} {response.reason_phrase}")
        return response

    def raise_for_api_error(self, response: httpx.Response) -> None:
        """Raise ``APIError`` for any non-2xx response. The body must be read."""
        if response.is_success:
            return
        self.metrics.increment_counter("transport.api_errors")
        raise APIError(extract_error_message(response), status_code=response.status_code)

    async def request_raw(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Any = None
    ) -> httpx.Response:
        """Send a request and return the fully read response after error mapping."""
        request = self._build_request(method, endpoint, params=params, json_body=json_body)
        response = await self._send(request)
        self.raise_for_api_error(response)
        return response

    async def request_json(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Any = None
    ) -> Any:
        """Send a request and decode its JSON body.

        Returns:
            The decoded body, or None for ``204 No Content``
        """
        response = await self.request_raw(method, endpoint, params=params, json_body=json_body)

        if response.status_code == 204 or not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(f"Failed to decode response from {endpoint}: {e}") from e

    async def open_stream(self, endpoint: str) -> httpx.Response:
        """Open a streamed GET. The caller owns the returned response and must close it.

        Raises:
            APIError: The server answered with a non-2xx status
            NetworkError: The connection could not be established
        """
        request = self._build_request("GET", endpoint, timeout=self.stream_timeout)
        response = await self._send(request, stream=True)

        if not response.is_success:
            try:
                await response.aread()
            except httpx.HTTPError as e:
                raise NetworkError(
                    f"Failed to read error response: {e}", url=str(request.url)
                ) from e
            finally:
                await response.aclose()
            self.raise_for_api_error(response)

        return response

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "APITransport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
