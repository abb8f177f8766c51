"""Configuration management for the WaterCrawl client."""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ConfigDict, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_BASE_URL = "https://app.watercrawl.dev/"
ENV_PREFIX = "WATERCRAWL_"


class APIConfig(BaseModel):
    """Connection settings for the WaterCrawl API."""
    api_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    user_agent: str = "WaterCrawl-Python-SDK"
    accept_language: str = "en-US"
    timeout: float = 30.0
    connect_timeout: float = 10.0

    model_config = ConfigDict(extra="allow")

    @field_validator("base_url")
    @classmethod
    def default_empty_base_url(cls, v):
        """An empty base URL falls back to the hosted service."""
        return v or DEFAULT_BASE_URL


class StreamConfig(BaseModel):
    """Event stream monitoring settings."""
    queue_size: int = 1
    download_timeout: float = 30.0

    model_config = ConfigDict(extra="allow")


class ScrapeConfig(BaseModel):
    """Defaults for scrape-and-wait calls."""
    wait_for_completion: bool = True
    download_result: bool = True
    wait_timeout: Optional[float] = None
    allowed_domains: List[str] = Field(default_factory=lambda: ["*"])

    model_config = ConfigDict(extra="allow")


class LoggingConfig(BaseModel):
    """Logging settings."""
    level: str = "WARNING"
    file: Optional[str] = None

    model_config = ConfigDict(extra="allow")

    @field_validator("file")
    @classmethod
    def expand_log_path(cls, v):
        if v and v.startswith("~"):
            return str(Path(v).expanduser())
        return v


class WaterCrawlConfig(BaseSettings):
    """Main configuration class that combines all settings."""

    version: str = "1.0"

    api: APIConfig = Field(default_factory=APIConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    scrape: ScrapeConfig = Field(default_factory=ScrapeConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="allow"
    )


def _coerce_env_value(value: str) -> Any:
    """Convert an environment string to bool/int/float where it looks like one."""
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    if value.isdigit():
        return int(value)
    if "." in value and value.replace(".", "", 1).isdigit():
        return float(value)
    return value


class ConfigManager:
    """Manages configuration loading, validation, and access."""

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        self.config_path = Path(config_path) if config_path else None
        self._config: Dict[str, Any] = {}
        self._pydantic_config: Optional[WaterCrawlConfig] = None
        self._load_default_config()

    def _get_default_config_path(self) -> Path:
        """Get the default configuration file path."""
        env_path = os.getenv("WATERCRAWL_CONFIG_PATH")
        if env_path:
            return Path(env_path).expanduser()
        return Path.home() / ".watercrawl" / "config.yaml"

    def get_default_config_path(self) -> Path:
        """Get the default configuration file path."""
        return self._get_default_config_path()

    def get_system_config_path(self) -> Path:
        """Get the system configuration file path."""
        return Path("/etc/watercrawl/config.yaml")

    def _load_default_config(self) -> None:
        """Load default configuration as dict."""
        default_config = WaterCrawlConfig.model_construct(
            version="1.0",
            api=APIConfig(),
            stream=StreamConfig(),
            scrape=ScrapeConfig(),
            logging=LoggingConfig(),
        )
        self._config = default_config.model_dump()
        self._pydantic_config = None

    @property
    def config(self) -> WaterCrawlConfig:
        """Get the current configuration as Pydantic model."""
        if self._pydantic_config is None:
            self._pydantic_config = WaterCrawlConfig(**self._config)
        return self._pydantic_config

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Get a configuration setting using dot notation.

        Args:
            key: Setting key in dot notation (e.g., 'stream.download_timeout')
            default: Default value if setting is not found

        Returns:
            Configuration value or default
        """
        value: Any = self._config
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set_setting(self, key: str, value: Any) -> None:
        """Set a configuration setting (runtime only).

        Args:
            key: Setting key in dot notation
            value: Value to set
        """
        keys = key.split('.')

        current = self._config
        for k in keys[:-1]:
            if not isinstance(current.get(k), dict):
                current[k] = {}
            current = current[k]
        current[keys[-1]] = value

        # Rebuilt lazily on next access
        self._pydantic_config = None

    def validate_config(self) -> Dict[str, Any]:
        """Validate the current configuration.

        Returns:
            Dictionary with validation results
        """
        result: Dict[str, Any] = {
            "valid": True,
            "errors": [],
            "warnings": []
        }

        for section in ("api", "stream", "scrape"):
            if section not in self._config:
                result["errors"].append(f"Required section '{section}' is missing")
        if result["errors"]:
            result["valid"] = False
            return result

        try:
            config = self.config
        except Exception as e:
            result["valid"] = False
            result["errors"].append(f"Configuration validation failed: {e}")
            return result

        if not config.api.api_key:
            result["warnings"].append("API key not configured")
        if not config.api.base_url.startswith(("http://", "https://")):
            result["errors"].append("API base_url must be an http(s) URL")
        if config.api.timeout <= 0:
            result["errors"].append("API timeout must be positive")
        if config.stream.queue_size < 1:
            result["errors"].append("Stream queue_size must be at least 1")
        if config.stream.download_timeout <= 0:
            result["errors"].append("Stream download_timeout must be positive")
        if config.scrape.wait_timeout is not None and config.scrape.wait_timeout <= 0:
            result["errors"].append("Scrape wait_timeout must be positive when set")

        if result["errors"]:
            result["valid"] = False

        return result

    def get_section(self, section_name: str) -> Optional[Dict[str, Any]]:
        """Get a configuration section.

        Args:
            section_name: Name of the section

        Returns:
            Section dictionary or None if not found
        """
        return self._config.get(section_name)

    def get_all_settings(self) -> Dict[str, Any]:
        """Get all configuration settings.

        Returns:
            Complete configuration dictionary
        """
        return self._config.copy()

    def load_from_file(self) -> None:
        """Load configuration from file and merge it over the current values."""
        if not self.config_path or not self.config_path.exists():
            return

        with open(self.config_path, 'r', encoding='utf-8') as f:
            if self.config_path.suffix.lower() == '.json':
                file_data = json.load(f)
            else:
                file_data = yaml.safe_load(f) or {}

        if not isinstance(file_data, dict):
            from .errors import ConfigurationError
            raise ConfigurationError(
                f"Configuration file {self.config_path} must contain a mapping"
            )

        self._deep_merge(self._config, file_data)
        self._pydantic_config = None

    def save_to_file(self) -> None:
        """Save configuration to file."""
        if not self.config_path:
            return

        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.config_path, 'w', encoding='utf-8') as f:
            if self.config_path.suffix.lower() == '.json':
                json.dump(self._config, f, indent=2)
            else:
                yaml.dump(self._config, f, default_flow_style=False, indent=2)

    def load_from_environment(self) -> None:
        """Load configuration from environment variables.

        ``WATERCRAWL_API_KEY`` and ``WATERCRAWL_BASE_URL`` map to the ``api``
        section; any other ``WATERCRAWL_SECTION__KEY`` variable maps to
        ``section.key``.
        """
        if "WATERCRAWL_API_KEY" in os.environ:
            self.set_setting("api.api_key", os.environ["WATERCRAWL_API_KEY"])
        if "WATERCRAWL_BASE_URL" in os.environ:
            self.set_setting("api.base_url", os.environ["WATERCRAWL_BASE_URL"])

        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX) or "__" not in key:
                continue
            config_key = key[len(ENV_PREFIX):].lower().replace("__", ".")
            self.set_setting(config_key, _coerce_env_value(value))

        self._pydantic_config = None

    def merge_config(self, new_config: Dict[str, Any]) -> None:
        """Merge new configuration with existing.

        Args:
            new_config: Configuration data to merge
        """
        self._deep_merge(self._config, new_config)
        self._pydantic_config = None

    def _deep_merge(self, target: Dict[str, Any], source: Dict[str, Any]) -> None:
        """Deep merge source into target dictionary."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._deep_merge(target[key], value)
            else:
                target[key] = value

    def load_hierarchical(self) -> None:
        """Load configuration hierarchically (system -> user -> custom -> env)."""
        self._load_default_config()

        for path in (self.get_system_config_path(), self.get_default_config_path(), self.config_path):
            if path and path.exists():
                temp_manager = ConfigManager(path)
                temp_manager._config = {}
                temp_manager.load_from_file()
                self.merge_config(temp_manager._config)

        self.load_from_environment()

    def create_default_config(self, config_path: Optional[Path] = None) -> Path:
        """Create a default configuration file.

        Args:
            config_path: Path to create config file (defaults to standard location)

        Returns:
            Path to created config file
        """
        if config_path is None:
            config_path = self._get_default_config_path()

        config_path.parent.mkdir(parents=True, exist_ok=True)

        defaults = ConfigManager()
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(defaults.get_all_settings(), f, default_flow_style=False, indent=2)

        return config_path


# Global configuration manager instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get the global configuration manager instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
        _config_manager.load_from_environment()
    return _config_manager


def reset_config_manager() -> None:
    """Drop the global configuration manager so the next access rebuilds it."""
    global _config_manager
    _config_manager = None


def get_config() -> WaterCrawlConfig:
    """Get the current configuration."""
    return get_config_manager().config
