"""Core layer components for the WaterCrawl client."""

from .transport import APITransport, extract_error_message
from .decoder import EventFrameDecoder, DATA_MARKER
from .fetcher import ResultFetcher, normalize_download
from .monitor import EventStream, EventStreamMonitor

__all__ = [
    "APITransport",
    "extract_error_message",
    "EventFrameDecoder",
    "DATA_MARKER",
    "ResultFetcher",
    "normalize_download",
    "EventStream",
    "EventStreamMonitor",
]
