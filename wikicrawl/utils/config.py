"""
Configuration management for the crawler.
"""

import logging
import re
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import yaml


@dataclass(frozen=True)
class CrawlerConfig:
    """Configuration for crawler behavior."""
    workers: int = 10
    pages: int = 750000
    max_depth: int = 10
    interval_ms: int = 5000
    entry_url: str = "https://en.wikipedia.org/wiki/Special:Random"
    host_regex: str = r"^en.wikipedia.org$"
    # Special pages (such as Help:Category) are not crawled
    path_regex: str = r"^/wiki/([^:]*)$"
    user_agent: str = "wikicrawl"
    request_timeout: int = 30
    queue_size: int = 100

    @property
    def interval(self) -> float:
        """Politeness interval in seconds."""
        return self.interval_ms / 1000


@dataclass(frozen=True)
class DatabaseConfig:
    """Configuration for database storage."""
    path: str = "pages.db"
    batch_size: int = 50


@dataclass(frozen=True)
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"
    file: Optional[str] = None
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    json: bool = False


@dataclass(frozen=True)
class MonitoringConfig:
    """Configuration for monitoring."""
    metrics_enabled: bool = False
    prometheus_port: int = 8000


@dataclass(frozen=True)
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Build a Config from nested dictionaries; missing keys keep their defaults."""
        sections = {
            'crawler': CrawlerConfig,
            'database': DatabaseConfig,
            'logging': LoggingConfig,
            'monitoring': MonitoringConfig,
        }
        unknown = set(data) - set(sections)
        if unknown:
            raise ValueError(f"Unknown configuration sections: {', '.join(sorted(unknown))}")

        kwargs = {}
        for name, section_cls in sections.items():
            section = data.get(name) or {}
            if not isinstance(section, dict):
                raise ValueError(f"Configuration section '{name}' must be a mapping")
            allowed = {f.name for f in fields(section_cls)}
            bad_keys = set(section) - allowed
            if bad_keys:
                raise ValueError(f"Unknown keys in '{name}': {', '.join(sorted(bad_keys))}")
            kwargs[name] = section_cls(**section)
        return cls(**kwargs)

    def with_overrides(self, **sections: Dict[str, Any]) -> 'Config':
        """Return a copy with the non-None values of each section replaced."""
        changes = {}
        for name, values in sections.items():
            values = {k: v for k, v in values.items() if v is not None}
            if values:
                changes[name] = replace(getattr(self, name), **values)
        return replace(self, **changes)


def validate_config(config: Config):
    """Validate configuration values, raising ValueError on the first problem."""
    crawler = config.crawler

    if crawler.workers < 1:
        raise ValueError("workers must be at least 1")
    if crawler.pages < 0:
        raise ValueError("pages must be non-negative")
    if crawler.max_depth < 0:
        raise ValueError("max_depth must be non-negative")
    if crawler.interval_ms < 0:
        raise ValueError("interval_ms must be non-negative")
    if crawler.queue_size < 1:
        raise ValueError("queue_size must be at least 1")

    parsed = urlparse(crawler.entry_url)
    if parsed.scheme not in ('http', 'https') or not parsed.hostname:
        raise ValueError(f"entry_url is not a valid http(s) URL: {crawler.entry_url}")

    for name in ('host_regex', 'path_regex'):
        try:
            re.compile(getattr(crawler, name))
        except re.error as e:
            raise ValueError(f"{name} is not a valid regular expression: {e}") from e

    if re.compile(crawler.path_regex).groups != 1:
        raise ValueError("path_regex must contain exactly one capture group yielding the page title")

    if config.database.batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    if not config.database.path:
        raise ValueError("database path must be provided")

    if not hasattr(logging, config.logging.level.upper()):
        raise ValueError(f"Unknown log level: {config.logging.level}")


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: Optional[str] = "config.yaml"):
        self.config_path = Path(config_path) if config_path else None
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from the YAML file, or defaults when there is no file."""
        if self.config_path is None:
            config_data = {}
        elif not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")
        else:
            with open(self.config_path, 'r', encoding='utf-8') as file:
                try:
                    config_data = yaml.safe_load(file) or {}
                except yaml.YAMLError as e:
                    raise ValueError(f"Invalid YAML in {self.config_path}: {e}") from e
            if not isinstance(config_data, dict):
                raise ValueError(f"Top level of {self.config_path} must be a mapping")

        self._config = Config.from_dict(config_data)
        validate_config(self._config)
        return self._config

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ValueError("Configuration not loaded. Call load_config() first.")
        return self._config


def load_config(config_path: Optional[str] = "config.yaml") -> Config:
    """Load and validate configuration from file."""
    return ConfigManager(config_path).load_config()
