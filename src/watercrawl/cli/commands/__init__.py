"""CLI commands for the WaterCrawl client."""

from .scrape import scrape
from .requests import requests
from .config import config

__all__ = [
    "scrape",
    "requests",
    "config",
]
