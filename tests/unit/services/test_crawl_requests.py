"""Tests for the crawl request service."""

import json

import pytest

from watercrawl.foundation.errors import APIError, DecodeError, ValidationError
from watercrawl.models.crawl import CrawlOptions
from watercrawl.services.crawl_requests import CrawlRequestService, validate_url_target

from conftest import (
    CRAWL_REQUEST_PATH, CRAWL_REQUESTS_PATH, DOWNLOAD_PATH, JOB_ID, RESULTS_PATH,
    crawl_request_body
)


@pytest.fixture
def service(transport, fetcher):
    return CrawlRequestService(transport, fetcher)


class TestValidateUrlTarget:
    """Test suite for crawl target validation."""

    @pytest.mark.parametrize("url,field,message", [
        (None, "url", "URL is required"),
        ("", "url", "URL cannot be empty"),
        ([], "url", "URL list cannot be empty"),
        (["https://a.test", ""], "url[1]", "URL cannot be empty"),
        (["", "https://a.test"], "url[0]", "URL cannot be empty"),
        (42, "url", "URL must be a string or array of strings"),
        ({"url": "https://a.test"}, "url", "URL must be a string or array of strings"),
        (["https://a.test", 7], "url[1]", "URL must be a string or array of strings"),
    ])
    def test_invalid_targets(self, url, field, message):
        with pytest.raises(ValidationError) as exc_info:
            validate_url_target(url)

        assert exc_info.value.field == field
        assert exc_info.value.message == message
        assert str(exc_info.value) == f"validation error: {field}: {message}"

    def test_valid_targets(self):
        assert validate_url_target("https://a.test") == "https://a.test"
        assert validate_url_target(("https://a.test", "https://b.test")) == \
            ["https://a.test", "https://b.test"]


class TestCrawlRequestService:
    """Test suite for CRUD operations."""

    @pytest.mark.asyncio
    async def test_list(self, service, fake_api):
        fake_api.add("GET", CRAWL_REQUESTS_PATH, json_body={
            "count": 1, "next": None, "previous": None,
            "results": [crawl_request_body("running")],
        })

        page = await service.list(page=2, page_size=5)

        assert page.count == 1
        assert page.results[0].uuid == JOB_ID
        assert page.results[0].status == "running"
        params = fake_api.last("GET", CRAWL_REQUESTS_PATH).url.params
        assert params["page"] == "2"
        assert params["page_size"] == "5"

    @pytest.mark.asyncio
    async def test_get(self, service, fake_api):
        fake_api.add("GET", CRAWL_REQUEST_PATH, json_body=crawl_request_body("completed"))

        request = await service.get(JOB_ID)
        assert request.status == "completed"
        assert request.options.spider_options == {"allowed_domains": ["*"]}

    @pytest.mark.asyncio
    async def test_create_sends_target_and_options(self, service, fake_api, metrics):
        fake_api.add("POST", CRAWL_REQUESTS_PATH, status_code=201, json_body=crawl_request_body())

        request = await service.create(
            "https://example.com",
            spider_options={"max_depth": 1},
            page_options={"wait_time": 100},
        )

        assert request.uuid == JOB_ID
        body = json.loads(fake_api.last("POST", CRAWL_REQUESTS_PATH).content)
        assert body["url"] == "https://example.com"
        assert body["options"]["spider_options"] == {"max_depth": 1}
        assert body["options"]["page_options"] == {"wait_time": 100}
        assert body["options"]["plugin_options"] == {}
        assert metrics.get_counter("crawl_requests.created") == 1

    @pytest.mark.asyncio
    async def test_create_keyword_groups_override_options(self, service, fake_api):
        fake_api.add("POST", CRAWL_REQUESTS_PATH, status_code=201, json_body=crawl_request_body())
        options = CrawlOptions(spider_options={"max_depth": 3}, page_options={"timeout": 5})

        await service.create(["https://a.test", "https://b.test"], options=options, page_options={})

        body = json.loads(fake_api.last("POST", CRAWL_REQUESTS_PATH).content)
        assert body["url"] == ["https://a.test", "https://b.test"]
        assert body["options"]["spider_options"] == {"max_depth": 3}
        assert body["options"]["page_options"] == {}
        assert options.page_options == {"timeout": 5}

    @pytest.mark.asyncio
    async def test_create_validates_before_sending(self, service, fake_api):
        with pytest.raises(ValidationError) as exc_info:
            await service.create(["https://a.test", ""])

        assert exc_info.value.field == "url[1]"
        assert fake_api.requests == []

    @pytest.mark.asyncio
    async def test_create_api_error_propagates(self, service, fake_api):
        fake_api.add("POST", CRAWL_REQUESTS_PATH, status_code=400, json_body={"error": "invalid url"})

        with pytest.raises(APIError) as exc_info:
            await service.create("https://example.com")
        assert exc_info.value.message == "invalid url"

    @pytest.mark.asyncio
    async def test_stop(self, service, fake_api):
        fake_api.add("DELETE", CRAWL_REQUEST_PATH, status_code=204)

        assert await service.stop(JOB_ID) is None
        assert fake_api.calls("DELETE", CRAWL_REQUEST_PATH) == 1

    @pytest.mark.asyncio
    async def test_results(self, service, fake_api):
        fake_api.add("GET", RESULTS_PATH, json_body={
            "count": 2,
            "results": [
                {"uuid": "r1", "url": "https://a.test", "status": "success", "data": {}},
                {"uuid": "r2", "url": "https://b.test", "status": "success"},
            ],
        })

        results = await service.results(JOB_ID)
        assert [r.uuid for r in results.results] == ["r1", "r2"]

    @pytest.mark.asyncio
    async def test_download(self, service, fake_api):
        fake_api.add("GET", DOWNLOAD_PATH, json_body=[{"content": "a"}])
        assert await service.download(JOB_ID) == {"results": [{"content": "a"}]}

    @pytest.mark.asyncio
    async def test_unexpected_body_shape(self, service, fake_api):
        fake_api.add("GET", CRAWL_REQUEST_PATH, json_body=["not", "an", "object"])

        with pytest.raises(DecodeError):
            await service.get(JOB_ID)
