"""
WaterCrawl - asynchronous Python client for the WaterCrawl crawling service.

The package provides:
1. WaterCrawlClient - crawl request management, status stream monitoring and
   scrape-and-wait on top of httpx
2. CLI Interface - the ``watercrawl`` command for direct usage

Library code never configures logging; the CLI does.
"""

from .version import __version__
from .client import WaterCrawlClient
from .foundation.errors import (
    WaterCrawlError, ValidationError, APIError, TimeoutError,
    NetworkError, DecodeError, StreamError, ConfigurationError
)
from .models import Event, EventKind, Delivered, Degraded, Failed, Outcome

__all__ = [
    "__version__",
    "WaterCrawlClient",
    "WaterCrawlError",
    "ValidationError",
    "APIError",
    "TimeoutError",
    "NetworkError",
    "DecodeError",
    "StreamError",
    "ConfigurationError",
    "Event",
    "EventKind",
    "Delivered",
    "Degraded",
    "Failed",
    "Outcome",
]
