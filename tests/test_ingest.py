"""Tests for the ingestion pipeline, its metadata side-channel and ENS checks."""

import asyncio
import json

import httpx

from planet_sync.core import PendingIngest
from planet_sync.errors import PersistenceError
from planet_sync.events import AvatarUpdated, EventBus
from planet_sync.ingest import IngestionPipeline
from planet_sync.storage import ArticleStore, SourceRegistry

from fakes import FakeResolver, RecordingAvatarUpdater, mock_client

FEED_URL = "https://blog.example.com/feed.xml"


def _rss(*slugs: str) -> bytes:
    items = "".join(
        f"<item><title>{slug}</title><link>https://blog.example.com/{slug}/</link>"
        f"<description>{slug} body</description></item>"
        for slug in slugs
    )
    return f'<?xml version="1.0"?><rss version="2.0"><channel><title>Blog</title>{items}</channel></rss>'.encode()


def _atom(*slugs: str) -> bytes:
    entries = "".join(
        f'<entry><title>{slug}</title><link href="https://example.eth.limo/{slug}/"/>'
        f"<id>urn:{slug}</id><updated>2024-01-01T00:00:00Z</updated></entry>"
        for slug in slugs
    )
    return (
        '<?xml version="1.0"?><feed xmlns="http://www.w3.org/2005/Atom">'
        f"<title>ENS Planet</title><id>urn:feed</id><updated>2024-01-01T00:00:00Z</updated>{entries}</feed>"
    ).encode()


def _pipeline(db, routes, **kwargs):
    registry = SourceRegistry(db)
    store = ArticleStore(db)
    return registry, store, IngestionPipeline(registry, store, mock_client(routes), **kwargs)


def test_ingest_creates_articles_with_verbatim_links(db):
    registry, store, pipeline = _pipeline(db, {FEED_URL: _rss("a", "b")})
    source = registry.create_dns(FEED_URL)

    result = asyncio.run(pipeline.ingest(source.id, FEED_URL))

    assert result.status == "ok"
    assert (result.created, result.known) == (2, 0)
    links = sorted(a.link for a in store.list_for_source(source.id))
    assert links == ["https://blog.example.com/a/", "https://blog.example.com/b/"]


def test_unchanged_http_feed_is_skipped_by_checksum(db):
    registry, store, pipeline = _pipeline(db, {FEED_URL: _rss("a")})
    source = registry.create_dns(FEED_URL)

    first = asyncio.run(pipeline.ingest(source.id, FEED_URL))
    second = asyncio.run(pipeline.ingest(source.id, FEED_URL))

    assert first.status == "ok"
    assert second.status == "unchanged"
    assert registry.get(source.id).feed_sha256 is not None
    assert store.count_for_source(source.id) == 1


def test_reingest_only_adds_new_entries(db):
    routes = {FEED_URL: _rss("a", "b")}
    registry, store, pipeline = _pipeline(db, routes)
    source = registry.create_dns(FEED_URL)
    asyncio.run(pipeline.ingest(source.id, FEED_URL))

    routes[FEED_URL] = _rss("a", "b", "c")
    result = asyncio.run(pipeline.ingest(source.id, FEED_URL))

    assert (result.created, result.known) == (1, 2)
    assert store.count_for_source(source.id) == 3


def test_fetch_failure_leaves_store_untouched(db):
    registry, store, pipeline = _pipeline(db, {FEED_URL: 503})
    source = registry.create_dns(FEED_URL)

    result = asyncio.run(pipeline.ingest(source.id, FEED_URL))

    assert result.status == "fetch_failed"
    assert result.error == "HTTP 503"
    assert store.count_for_source(source.id) == 0


def test_transport_error_is_fetch_failed(db):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    registry = SourceRegistry(db)
    store = ArticleStore(db)
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    pipeline = IngestionPipeline(registry, store, client)
    source = registry.create_dns(FEED_URL)

    result = asyncio.run(pipeline.ingest(source.id, FEED_URL))

    assert result.status == "fetch_failed"
    assert "ConnectError" in result.error


def test_parse_failure_is_reported(db):
    registry, store, pipeline = _pipeline(db, {FEED_URL: b"<html>not a feed</html>"})
    source = registry.create_dns(FEED_URL)

    result = asyncio.run(pipeline.ingest(source.id, FEED_URL))

    assert result.status == "parse_failed"
    assert registry.get(source.id).feed_sha256 is None


def test_store_failure_does_not_record_checksum(db, monkeypatch):
    registry, store, pipeline = _pipeline(db, {FEED_URL: _rss("a")})
    source = registry.create_dns(FEED_URL)

    def broken_insert(*args, **kwargs):
        raise PersistenceError("disk full")

    monkeypatch.setattr(store, "insert_new", broken_insert)
    failed = asyncio.run(pipeline.ingest(source.id, FEED_URL))

    assert failed.status == "store_failed"
    assert registry.get(source.id).feed_sha256 is None

    monkeypatch.undo()
    retried = asyncio.run(pipeline.ingest(source.id, FEED_URL))

    assert retried.status == "ok"
    assert retried.created == 1
    assert registry.get(source.id).feed_sha256 is not None


def test_unknown_source_is_skipped(db):
    _, _, pipeline = _pipeline(db, {})
    assert asyncio.run(pipeline.ingest("missing", FEED_URL)).status == "skipped"


def test_json_feed_metadata_updates_non_empty_fields(db):
    icon = "https://blog.example.com/icon.png"
    feed = {
        "version": "https://jsonfeed.org/version/1.1",
        "title": "",
        "description": "Fresh about",
        "icon": icon,
        "items": [{"id": "1", "url": "https://blog.example.com/x/", "title": "X"}],
    }
    events = EventBus()
    seen = []
    events.subscribe(AvatarUpdated, seen.append)
    avatars = RecordingAvatarUpdater()
    registry, store, pipeline = _pipeline(
        db,
        {FEED_URL: json.dumps(feed).encode(), icon: b"PNG"},
        avatar_updater=avatars,
        events=events,
    )
    source = registry.create_dns(FEED_URL)

    result = asyncio.run(pipeline.ingest(source.id, FEED_URL))

    assert result.created == 1
    updated = registry.get(source.id)
    assert updated.name == "blog.example.com"
    assert updated.about == "Fresh about"
    assert avatars.updates == [(source.id, b"PNG")]
    assert seen == [AvatarUpdated(source_id=source.id)]


def test_missing_icon_does_not_fail_ingest(db):
    feed = {"title": "T", "icon": "https://blog.example.com/gone.png", "items": []}
    avatars = RecordingAvatarUpdater()
    registry, _, pipeline = _pipeline(db, {FEED_URL: json.dumps(feed).encode()}, avatar_updater=avatars)
    source = registry.create_dns(FEED_URL)

    result = asyncio.run(pipeline.ingest(source.id, FEED_URL))

    assert result.status == "ok"
    assert avatars.updates == []
    assert registry.get(source.id).name == "T"


def test_malformed_icon_url_does_not_fail_ingest(db):
    feed = {
        "title": "T",
        "icon": "https://[not-an-ip]/x.png",
        "items": [{"url": "https://blog.example.com/a/", "title": "A"}],
    }
    avatars = RecordingAvatarUpdater()
    registry, store, pipeline = _pipeline(db, {FEED_URL: json.dumps(feed).encode()}, avatar_updater=avatars)
    source = registry.create_dns(FEED_URL)

    result = asyncio.run(pipeline.ingest(source.id, FEED_URL))

    assert result.status == "ok"
    assert store.count_for_source(source.id) == 1
    assert avatars.updates == []


def test_ens_check_returns_pending_ingest(db):
    resolver = FakeResolver(content="ipfs://bafyroot", avatar_bytes=b"AVATAR")
    avatars = RecordingAvatarUpdater()
    registry, _, pipeline = _pipeline(
        db,
        {"http://127.0.0.1:8080/ipfs/bafyroot": b"<html></html>"},
        name_resolver=resolver,
        avatar_updater=avatars,
    )
    source = registry.create_ens("example.eth")

    follow_ups = asyncio.run(pipeline.check_name_resolved_source(source))

    assert follow_ups == [PendingIngest(source_id=source.id, feed_url="http://127.0.0.1:8080/ipfs/bafyroot/feed.xml")]
    assert registry.get(source.id).ipfs == "bafyroot"
    assert avatars.updates == [(source.id, b"AVATAR")]


def test_ens_check_without_reachable_content_returns_nothing(db):
    resolver = FakeResolver(content="ipfs://bafyroot")
    registry, _, pipeline = _pipeline(db, {}, name_resolver=resolver)
    source = registry.create_ens("example.eth")

    assert asyncio.run(pipeline.check_name_resolved_source(source)) == []
    assert registry.get(source.id).ipfs == "bafyroot"


def test_ens_resolver_failure_still_updates_avatar(db):
    resolver = FakeResolver(fail=True, avatar_bytes=b"AVATAR")
    avatars = RecordingAvatarUpdater()
    registry, _, pipeline = _pipeline(db, {}, name_resolver=resolver, avatar_updater=avatars)
    source = registry.create_ens("example.eth")

    assert asyncio.run(pipeline.check_name_resolved_source(source)) == []
    assert avatars.updates == [(source.id, b"AVATAR")]


def test_content_addressed_links_are_stored_as_paths(db):
    feed_url = "http://127.0.0.1:8080/ipfs/bafyroot/feed.xml"
    registry, store, pipeline = _pipeline(db, {feed_url: _atom("2024-01-01")})
    source = registry.create_ens("example.eth")

    asyncio.run(pipeline.ingest(source.id, feed_url))

    assert [a.link for a in store.list_for_source(source.id)] == ["/2024-01-01/"]
