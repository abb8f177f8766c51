"""Version information for the WaterCrawl client package."""

__version__ = "0.1.0"
__version_info__ = (0, 1, 0)

# API version the client talks to
API_VERSION = "v1"
