"""Pydantic models and result types for the WaterCrawl client."""

from .crawl import (
    CrawlOptions, CrawlRequest, CrawlRequestList,
    CrawlResult, CrawlResultList, CreateCrawlRequestInput
)
from .events import Event, EventKind, CrawlStatus
from .outcome import Delivered, Degraded, Failed, Outcome

__all__ = [
    # Crawl requests
    "CrawlOptions", "CrawlRequest", "CrawlRequestList",
    "CrawlResult", "CrawlResultList", "CreateCrawlRequestInput",

    # Events
    "Event", "EventKind", "CrawlStatus",

    # Outcomes
    "Delivered", "Degraded", "Failed", "Outcome",
]
