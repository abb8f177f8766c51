"""Pytest configuration and shared fixtures."""

import asyncio
import inspect
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest

from watercrawl.client import WaterCrawlClient
from watercrawl.core import APITransport, EventStreamMonitor, ResultFetcher
from watercrawl.foundation.config import ConfigManager, reset_config_manager
from watercrawl.foundation.errors import get_error_handler
from watercrawl.foundation.metrics import get_metrics_collector


BASE_URL = "https://api.watercrawl.test/"
API_KEY = "wc-test-key"
JOB_ID = "3fa85f64-5717-4562-b3fc-2c963f66afa6"

CRAWL_REQUESTS_PATH = "/api/v1/core/crawl-requests/"
CRAWL_REQUEST_PATH = f"/api/v1/core/crawl-requests/{JOB_ID}/"
STATUS_PATH = f"/api/v1/core/crawl-requests/{JOB_ID}/status/"
DOWNLOAD_PATH = f"/api/v1/core/crawl-requests/{JOB_ID}/download/"
RESULTS_PATH = f"/api/v1/core/crawl-requests/{JOB_ID}/results/"


def frame(kind: Any, data: Any = None) -> str:
    """One ``data:`` line of the status stream."""
    return f"data: {json.dumps({'type': kind, 'data': data})}\n"


def crawl_request_body(status: str = "new", url: Any = "https://example.com") -> Dict[str, Any]:
    return {
        "uuid": JOB_ID,
        "url": url,
        "status": status,
        "progress": 0,
        "options": {
            "spider_options": {"allowed_domains": ["*"]},
            "page_options": {},
            "plugin_options": {},
        },
        "created_at": "2025-01-01T00:00:00Z",
        "updated_at": "2025-01-01T00:00:00Z",
    }


class CountingStream(httpx.AsyncByteStream):
    """Streamed response body that records how often it is closed.

    With ``hold_open`` the body never ends after its lines, like a server
    keeping the status connection open.
    """

    def __init__(self, lines: List[Union[str, bytes]], hold_open: bool = False):
        self.lines = lines
        self.hold_open = hold_open
        self.close_count = 0
        self.chunks_sent = 0

    async def __aiter__(self):
        for line in self.lines:
            self.chunks_sent += 1
            yield line.encode("utf-8") if isinstance(line, str) else line
        if self.hold_open:
            await asyncio.Event().wait()

    async def aclose(self) -> None:
        self.close_count += 1


class FailingStream(CountingStream):
    """Streamed body whose connection drops after its lines."""

    async def __aiter__(self):
        for line in self.lines:
            self.chunks_sent += 1
            yield line.encode("utf-8") if isinstance(line, str) else line
        raise httpx.ReadError("connection reset by peer")


Route = Callable[[httpx.Request], Any]


class FakeAPI:
    """Routes requests by method and path and records what was sent."""

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Route] = {}
        self.requests: List[httpx.Request] = []

    def add(
        self,
        method: str,
        path: str,
        status_code: int = 200,
        json_body: Any = None,
        text: Optional[str] = None,
        stream: Optional[httpx.AsyncByteStream] = None,
        handler: Optional[Route] = None
    ) -> None:
        if handler is None:
            def handler(request: httpx.Request) -> httpx.Response:
                if stream is not None:
                    return httpx.Response(status_code, stream=stream)
                if text is not None:
                    return httpx.Response(status_code, text=text)
                if json_body is None:
                    return httpx.Response(status_code)
                return httpx.Response(status_code, json=json_body)
        self.routes[(method, path)] = handler

    def calls(self, method: str, path: str) -> int:
        return sum(
            1 for r in self.requests if r.method == method and r.url.path == path
        )

    def last(self, method: str, path: str) -> httpx.Request:
        matching = [r for r in self.requests if r.method == method and r.url.path == path]
        return matching[-1]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"detail": "Not found."})
        result = route(request)
        if inspect.isawaitable(result):
            result = await result
        return result


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep tests away from real config files, env vars and global state."""
    for key in list(os.environ):
        if key.startswith("WATERCRAWL_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("WATERCRAWL_CONFIG_PATH", str(tmp_path / "user-config.yaml"))

    root_logger = logging.getLogger()
    saved_handlers = list(root_logger.handlers)
    saved_level = root_logger.level

    reset_config_manager()
    get_metrics_collector().reset_metrics()
    get_error_handler().clear_errors()

    yield

    root_logger.handlers[:] = saved_handlers
    root_logger.setLevel(saved_level)
    logging.getLogger("watercrawl").setLevel(logging.NOTSET)
    reset_config_manager()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def config_manager():
    """Create a test configuration manager."""
    config_manager = ConfigManager()
    config_manager.set_setting("api.api_key", API_KEY)
    config_manager.set_setting("api.base_url", BASE_URL)
    config_manager.set_setting("stream.download_timeout", 1.0)
    return config_manager


@pytest.fixture
def metrics():
    return get_metrics_collector()


@pytest.fixture
def fake_api():
    return FakeAPI()


@pytest.fixture
async def http_client(fake_api):
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake_api.handler))
    yield client
    await client.aclose()


@pytest.fixture
def transport(config_manager, http_client):
    return APITransport(config_manager=config_manager, http_client=http_client)


@pytest.fixture
def fetcher(transport):
    return ResultFetcher(transport)


@pytest.fixture
def monitor(transport, fetcher, config_manager):
    return EventStreamMonitor(transport, fetcher, config_manager)


@pytest.fixture
def client(config_manager, http_client):
    return WaterCrawlClient(config_manager=config_manager, http_client=http_client)


@pytest.fixture
def cli_runner():
    """Create a Click CLI runner for testing."""
    from click.testing import CliRunner

    class TestingCliRunner(CliRunner):
        def invoke(self, cli, args=None, **kwargs):
            kwargs.setdefault('catch_exceptions', False)
            if kwargs.get('obj') is None:
                kwargs['obj'] = {}
            return super().invoke(cli, args, **kwargs)

    return TestingCliRunner()
