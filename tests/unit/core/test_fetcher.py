"""Tests for the result fetcher."""

import asyncio

import httpx
import pytest

from watercrawl.core.fetcher import ResultFetcher, normalize_download
from watercrawl.foundation.errors import APIError, DecodeError, TimeoutError

from conftest import DOWNLOAD_PATH, JOB_ID


class TestNormalizeDownload:
    """Test suite for download body normalization."""

    def test_object_is_returned_unchanged(self):
        body = {"content": "a"}
        assert normalize_download(body) is body

    def test_array_is_wrapped(self):
        body = [{"content": "a"}, {"content": "b"}]
        assert normalize_download(body) == {"results": [{"content": "a"}, {"content": "b"}]}

    @pytest.mark.parametrize("body", ["text", 42, 1.5, True, None])
    def test_scalar_is_rejected(self, body):
        with pytest.raises(DecodeError):
            normalize_download(body)


class TestResultFetcher:
    """Test suite for ResultFetcher."""

    def test_default_timeout_from_config(self, transport):
        assert ResultFetcher(transport).default_timeout == 1.0
        assert ResultFetcher(transport, default_timeout=5).default_timeout == 5

    @pytest.mark.asyncio
    async def test_fetch_object(self, fetcher, fake_api, metrics):
        fake_api.add("GET", DOWNLOAD_PATH, json_body={"content": "a"})

        assert await fetcher.fetch(JOB_ID) == {"content": "a"}
        assert metrics.get_counter("fetcher.downloads") == 1

    @pytest.mark.asyncio
    async def test_fetch_array(self, fetcher, fake_api):
        fake_api.add("GET", DOWNLOAD_PATH, json_body=[{"content": "a"}, {"content": "b"}])

        result = await fetcher.fetch(JOB_ID)
        assert result == {"results": [{"content": "a"}, {"content": "b"}]}

    @pytest.mark.asyncio
    async def test_malformed_json(self, fetcher, fake_api):
        fake_api.add("GET", DOWNLOAD_PATH, text="{truncated")

        with pytest.raises(DecodeError):
            await fetcher.fetch(JOB_ID)

    @pytest.mark.asyncio
    async def test_scalar_body(self, fetcher, fake_api):
        fake_api.add("GET", DOWNLOAD_PATH, json_body="done")

        with pytest.raises(DecodeError):
            await fetcher.fetch(JOB_ID)

    @pytest.mark.asyncio
    async def test_api_error(self, fetcher, fake_api):
        fake_api.add("GET", DOWNLOAD_PATH, status_code=404, json_body={"detail": "Not found."})

        with pytest.raises(APIError) as exc_info:
            await fetcher.fetch(JOB_ID)
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_fetch_with_timeout_expires(self, fetcher, fake_api, metrics):
        async def slow(request):
            await asyncio.sleep(5)
            return httpx.Response(200, json={"content": "late"})

        fake_api.add("GET", DOWNLOAD_PATH, handler=slow)

        with pytest.raises(TimeoutError) as exc_info:
            await fetcher.fetch_with_timeout(JOB_ID, timeout=0.05)

        assert exc_info.value.operation == "download"
        assert exc_info.value.timeout_duration == 0.05
        assert str(exc_info.value).startswith("timeout error during download")
        assert metrics.get_counter("fetcher.timeouts") == 1

    @pytest.mark.asyncio
    async def test_fetch_with_timeout_success(self, fetcher, fake_api):
        fake_api.add("GET", DOWNLOAD_PATH, json_body={"content": "a"})
        assert await fetcher.fetch_with_timeout(JOB_ID) == {"content": "a"}
