"""Tests for Atom, RSS and JSON Feed parsing."""

import json

import pytest

from planet_sync.errors import FeedParseError
from planet_sync.feeds import detect_dialect, link_path, normalize_link, parse_feed


ATOM = b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Example Planet</title>
  <id>urn:uuid:planet</id>
  <updated>2024-01-05T00:00:00Z</updated>
  <entry>
    <title>First</title>
    <link href="https://example.eth.limo/2024-01-01/?utm=feed#top"/>
    <id>urn:1</id>
    <published>2024-01-01T10:00:00Z</published>
    <updated>2024-01-01T10:00:00Z</updated>
    <content type="html">&lt;p&gt;one&lt;/p&gt;</content>
  </entry>
  <entry>
    <title>Second</title>
    <link href="https://example.eth.limo/2024-01-02/"/>
    <id>urn:2</id>
    <updated>2024-01-02T10:00:00Z</updated>
  </entry>
  <entry>
    <link href="https://example.eth.limo/2024-01-03/"/>
    <id>urn:3</id>
    <updated>2024-01-03T10:00:00Z</updated>
  </entry>
  <entry>
    <title>Fourth</title>
    <link href="https://example.eth.limo/2024-01-04/"/>
    <id>urn:4</id>
    <updated>2024-01-04T10:00:00Z</updated>
  </entry>
  <entry>
    <title>Fifth</title>
    <link href="https://example.eth.limo/2024-01-05/"/>
    <id>urn:5</id>
    <updated>2024-01-05T10:00:00Z</updated>
  </entry>
</feed>
"""

RSS = b"""<?xml version="1.0" encoding="utf-8"?>
<rss version="2.0" xmlns:content="http://purl.org/rss/1.0/modules/content/">
  <channel>
    <title>Example Blog</title>
    <link>https://blog.example.com/</link>
    <description>Blog</description>
    <item>
      <title>Hello</title>
      <link>https://blog.example.com/hello/</link>
      <description>short</description>
      <content:encoded><![CDATA[<p>full body</p>]]></content:encoded>
      <pubDate>Mon, 01 Jan 2024 10:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Summary only</title>
      <link>https://blog.example.com/summary/</link>
      <description>just a summary</description>
    </item>
    <item>
      <link>https://blog.example.com/untitled/</link>
      <description>no title</description>
    </item>
  </channel>
</rss>
"""


def _json_feed(**overrides) -> bytes:
    data = {
        "version": "https://jsonfeed.org/version/1.1",
        "title": "JSON Planet",
        "description": "About it",
        "icon": "https://example.com/avatar.png",
        "items": [
            {
                "id": "a",
                "url": "https://example.com/a/",
                "title": "A",
                "content_html": "<p>A</p>",
                "date_published": "2024-01-01T10:00:00Z",
            },
            {"id": "b", "url": "https://example.com/b/", "title": "B", "content_text": "plain"},
            {"id": "c", "title": "missing url"},
        ],
    }
    data.update(overrides)
    return json.dumps(data).encode("utf-8")


def test_detect_dialect():
    assert detect_dialect(b'  {"items": []}') == "json"
    assert detect_dialect(b"\xef\xbb\xbf{}") == "json"
    assert detect_dialect(ATOM) == "xml"


def test_atom_skips_entry_without_title():
    parsed = parse_feed(ATOM)

    assert parsed.dialect == "atom"
    assert [e.title for e in parsed.entries] == ["First", "Second", "Fourth", "Fifth"]


def test_atom_links_are_normalized():
    parsed = parse_feed(ATOM)
    first = parsed.entries[0]

    assert first.link == "https://example.eth.limo/2024-01-01/"
    assert first.content == "<p>one</p>"
    assert first.created.year == 2024 and first.created.day == 1


def test_atom_entry_without_content_has_empty_body():
    parsed = parse_feed(ATOM)
    assert parsed.entries[1].content == ""


def test_rss_prefers_encoded_content():
    parsed = parse_feed(RSS)

    assert parsed.dialect == "rss"
    assert len(parsed.entries) == 2
    hello, summary = parsed.entries
    assert hello.content == "<p>full body</p>"
    assert hello.link == "https://blog.example.com/hello/"
    assert hello.created.hour == 10
    assert summary.content == "just a summary"


def test_entries_get_fresh_ids():
    first = parse_feed(RSS).entries[0]
    second = parse_feed(RSS).entries[0]
    assert first.id != second.id


def test_json_feed_entries_and_metadata():
    parsed = parse_feed(_json_feed())

    assert parsed.dialect == "json"
    assert [e.title for e in parsed.entries] == ["A", "B"]
    assert parsed.entries[1].content == "plain"
    assert parsed.title == "JSON Planet"
    assert parsed.description == "About it"
    assert parsed.icon == "https://example.com/avatar.png"


def test_json_feed_blank_metadata_is_none():
    parsed = parse_feed(_json_feed(title="  ", description=""))
    assert parsed.title is None
    assert parsed.description is None


def test_json_feed_missing_date_falls_back_to_now():
    parsed = parse_feed(_json_feed())
    assert parsed.entries[1].created.tzinfo is not None


@pytest.mark.parametrize(
    "raw",
    [b"", b"   ", b"not a feed at all", b"{broken json", b'{"title": "no items"}'],
)
def test_unparseable_documents_raise(raw):
    with pytest.raises(FeedParseError):
        parse_feed(raw)


def test_normalize_and_path_helpers():
    assert normalize_link("https://example.com/post/1?utm=x#top") == "https://example.com/post/1"
    assert normalize_link("/2024-01-01/") == "/2024-01-01/"
    assert link_path("https://example.eth.limo/2024-01-01/") == "/2024-01-01/"
    assert link_path("/already/relative/") == "/already/relative/"
