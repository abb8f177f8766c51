"""Service layer components for the WaterCrawl client."""

from .crawl_requests import CrawlRequestService, validate_url_target
from .scrape import ScrapeService, ScrapeProgress

__all__ = [
    "CrawlRequestService",
    "validate_url_target",
    "ScrapeService",
    "ScrapeProgress",
]
