"""
Configuration management using YAML files and dataclasses.

This module defines all configuration dataclasses and provides loading
from YAML files with defaults. Configuration sections:
- StorageConfig: Database file and planet directories
- FetchConfig: HTTP fetching settings
- IpfsConfig: Kubo RPC API, local gateway and probe settings
- NamesConfig: ENS avatar lookup
- ScheduleConfig: Periodic sync cycle settings
- LoggingConfig: Logging behavior
- AppConfig: Root configuration container
"""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Any

import yaml


@dataclass
class StorageConfig:
    """Configuration for local persistence.

    Attributes:
        database_path: SQLite database file
        planets_dir: Root directory holding one publish directory per planet
    """

    database_path: str = "~/.planet-sync/planet.db"
    planets_dir: str = "~/.planet-sync/planets"

    def resolved_database_path(self) -> Path:
        return Path(self.database_path).expanduser()

    def resolved_planets_dir(self) -> Path:
        return Path(self.planets_dir).expanduser()


@dataclass
class FetchConfig:
    """Configuration for HTTP fetching.

    Attributes:
        timeout_seconds: HTTP request timeout
        trust_env: Whether to respect system proxy settings
        user_agent: HTTP User-Agent header string
    """

    timeout_seconds: float = 20.0
    trust_env: bool = True
    user_agent: str = "planet-sync/0.1 (+https://github.com/planetable)"


@dataclass
class IpfsConfig:
    """Configuration for the IPFS node and public gateways.

    Attributes:
        api_url: Kubo RPC API base URL
        local_gateway_url: Local IPFS HTTP gateway used to read followed content
        api_timeout_seconds: Timeout for add/publish/resolve RPC calls
        probe_timeout_seconds: Timeout for each public gateway probe
        feed_filename: Feed document expected under an ENS content root
    """

    api_url: str = "http://127.0.0.1:5001"
    local_gateway_url: str = "http://127.0.0.1:8080"
    api_timeout_seconds: float = 120.0
    probe_timeout_seconds: float = 30.0
    feed_filename: str = "feed.xml"


@dataclass
class NamesConfig:
    """Configuration for ENS lookups.

    Attributes:
        avatar_url_template: URL for an ENS avatar, formatted with ``name``
    """

    avatar_url_template: str = "https://metadata.ens.domains/mainnet/avatar/{name}"


@dataclass
class ScheduleConfig:
    """Configuration for the periodic sync cycle.

    Attributes:
        interval_seconds: Delay between two sync cycles in watch mode
        max_concurrent_sources: Upper bound on planets checked at once
    """

    interval_seconds: float = 300.0
    max_concurrent_sources: int = 8


@dataclass
class LoggingConfig:
    """Configuration for logging behavior.

    Attributes:
        level: Logging level ("DEBUG", "INFO", "WARNING", "ERROR")
        console: Whether to log to console
        file: Whether to log to file
        format: Log file format ("jsonl" or "plain")
        filename: Name of the log file, relative to the log directory
        directory: Directory for the log file
    """

    level: str = "INFO"
    console: bool = True
    file: bool = False
    format: str = "jsonl"
    filename: str = "planet-sync.jsonl"
    directory: str = "~/.planet-sync/logs"


@dataclass
class AppConfig:
    """Root configuration container aggregating all config sections."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    ipfs: IpfsConfig = field(default_factory=IpfsConfig)
    names: NamesConfig = field(default_factory=NamesConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(path: str | None) -> AppConfig:
    """Load configuration from a YAML file with defaults.

    Environment variables ``PLANET_SYNC_DB`` and ``PLANET_SYNC_IPFS_API``
    override the file when set.
    """
    if path:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        cfg = _merge_config(AppConfig(), raw)
    else:
        cfg = AppConfig()
    return _apply_env(cfg)


def _apply_env(cfg: AppConfig) -> AppConfig:
    db_path = os.getenv("PLANET_SYNC_DB")
    if db_path:
        cfg.storage.database_path = db_path
    api_url = os.getenv("PLANET_SYNC_IPFS_API")
    if api_url:
        cfg.ipfs.api_url = api_url
    return cfg


def _merge_config(base: AppConfig, raw: dict[str, Any]) -> AppConfig:
    """Merge raw YAML config into base AppConfig."""
    data = _asdict(base)
    for key, value in raw.items():
        if key not in data:
            continue
        if isinstance(value, dict) and isinstance(data[key], dict):
            data[key].update({k: v for k, v in value.items() if k in data[key]})
        else:
            data[key] = value
    return _fromdict(data)


def _asdict(cfg: AppConfig) -> dict[str, Any]:
    """Convert AppConfig to nested dictionary."""
    return {
        "storage": {
            "database_path": cfg.storage.database_path,
            "planets_dir": cfg.storage.planets_dir,
        },
        "fetch": {
            "timeout_seconds": cfg.fetch.timeout_seconds,
            "trust_env": cfg.fetch.trust_env,
            "user_agent": cfg.fetch.user_agent,
        },
        "ipfs": {
            "api_url": cfg.ipfs.api_url,
            "local_gateway_url": cfg.ipfs.local_gateway_url,
            "api_timeout_seconds": cfg.ipfs.api_timeout_seconds,
            "probe_timeout_seconds": cfg.ipfs.probe_timeout_seconds,
            "feed_filename": cfg.ipfs.feed_filename,
        },
        "names": {
            "avatar_url_template": cfg.names.avatar_url_template,
        },
        "schedule": {
            "interval_seconds": cfg.schedule.interval_seconds,
            "max_concurrent_sources": cfg.schedule.max_concurrent_sources,
        },
        "logging": {
            "level": cfg.logging.level,
            "console": cfg.logging.console,
            "file": cfg.logging.file,
            "format": cfg.logging.format,
            "filename": cfg.logging.filename,
            "directory": cfg.logging.directory,
        },
    }


def _fromdict(data: dict[str, Any]) -> AppConfig:
    """Reconstruct AppConfig from nested dictionary."""
    return AppConfig(
        storage=StorageConfig(**data["storage"]),
        fetch=FetchConfig(**data["fetch"]),
        ipfs=IpfsConfig(**data["ipfs"]),
        names=NamesConfig(**data["names"]),
        schedule=ScheduleConfig(**data["schedule"]),
        logging=LoggingConfig(**data["logging"]),
    )
