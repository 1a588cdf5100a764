"""Tests for configuration loading, logging setup and the event bus."""

import json
import logging
from pathlib import Path

from planet_sync.config import LoggingConfig, load_config
from planet_sync.events import AvatarUpdated, DatabaseStatusChanged, EventBus
from planet_sync.logging_utils import log_event, setup_logging


def test_load_config_merges_sections(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("PLANET_SYNC_DB", raising=False)
    monkeypatch.delenv("PLANET_SYNC_IPFS_API", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text(
        "schedule:\n"
        "  interval_seconds: 60\n"
        "  unknown_key: 1\n"
        "ipfs:\n"
        "  local_gateway_url: http://10.0.0.2:8080\n"
        "unknown_section:\n"
        "  a: b\n",
        encoding="utf-8",
    )

    cfg = load_config(str(path))

    assert cfg.schedule.interval_seconds == 60
    assert cfg.schedule.max_concurrent_sources == 8
    assert cfg.ipfs.local_gateway_url == "http://10.0.0.2:8080"
    assert cfg.ipfs.api_url == "http://127.0.0.1:5001"


def test_env_overrides_file(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("PLANET_SYNC_DB", str(tmp_path / "other.db"))
    monkeypatch.setenv("PLANET_SYNC_IPFS_API", "http://ipfs:5001")

    cfg = load_config(None)

    assert cfg.storage.resolved_database_path() == tmp_path / "other.db"
    assert cfg.ipfs.api_url == "http://ipfs:5001"


def test_empty_config_file_uses_defaults(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("PLANET_SYNC_DB", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text("", encoding="utf-8")

    cfg = load_config(str(path))

    assert cfg.storage.database_path == "~/.planet-sync/planet.db"


def test_jsonl_log_file_carries_event_fields(tmp_path: Path):
    cfg = LoggingConfig(level="DEBUG", console=False, file=True, format="jsonl")
    logger = setup_logging(cfg, log_dir=tmp_path)

    log_event(logging.getLogger("planet_sync.ingest"), "Feed unchanged", event="feed_unchanged", planet="p1")
    for handler in logger.handlers:
        handler.flush()

    lines = (tmp_path / cfg.filename).read_text(encoding="utf-8").splitlines()
    record = json.loads(lines[-1])
    assert record["message"] == "Feed unchanged"
    assert record["logger"] == "planet_sync.ingest"
    assert record["event"] == "feed_unchanged"
    assert record["planet"] == "p1"
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def test_event_bus_isolates_failing_subscribers():
    bus = EventBus()
    received = []

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe(AvatarUpdated, broken)
    unsubscribe = bus.subscribe(AvatarUpdated, received.append)
    bus.subscribe(DatabaseStatusChanged, received.append)

    bus.emit(AvatarUpdated(source_id="s1"))
    unsubscribe()
    bus.emit(AvatarUpdated(source_id="s2"))

    assert received == [AvatarUpdated(source_id="s1")]
