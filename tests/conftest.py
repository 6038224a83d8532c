"""Shared test fixtures for feedserver tests."""

from __future__ import annotations

import pytest
from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis

from feedserver.core.store import FeedStore


SAMPLE_RSS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:dc="http://purl.org/dc/elements/1.1/">
  <channel>
    <title>Test Feed</title>
    <link>https://example.com/blog/</link>
    <description>A test RSS feed</description>
    <ttl>30</ttl>
    <item>
      <title>First Article</title>
      <link>article-1</link>
      <guid>article-1</guid>
      <description>Description of the first article</description>
      <pubDate>Fri, 13 Feb 2026 10:00:00 GMT</pubDate>
      <dc:creator>Jane Doe</dc:creator>
    </item>
    <item>
      <title>Second Article</title>
      <link>https://example.com/article-2</link>
      <description>Description of the second article</description>
      <pubDate>Fri, 13 Feb 2026 09:00:00 GMT</pubDate>
    </item>
  </channel>
</rss>"""

MINIMAL_RSS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Minimal</title>
    <link>http://x/</link>
    <item><title>T</title><link>http://x/a</link></item>
  </channel>
</rss>"""

SAMPLE_MALFORMED_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Malformed Feed</title>
    <item>
      <title>Bad Item</title>
"""

SAMPLE_NOT_A_FEED_XML = """<?xml version="1.0" encoding="UTF-8"?>
<html>
  <body>This is not a feed</body>
</html>"""


def rss_document(items: str, channel_extra: str = "") -> str:
    """Wrap item markup in a channel whose link is https://example.com/."""
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Generated</title>
    <link>https://example.com/</link>
    {channel_extra}
    {items}
  </channel>
</rss>"""


@pytest.fixture
def make_rss():
    return rss_document


@pytest.fixture
def sample_rss_xml():
    return SAMPLE_RSS_XML


@pytest.fixture
def minimal_rss_xml():
    return MINIMAL_RSS_XML


@pytest.fixture
def malformed_xml():
    return SAMPLE_MALFORMED_XML


@pytest.fixture
def not_a_feed_xml():
    return SAMPLE_NOT_A_FEED_XML


@pytest.fixture
def redis_client():
    """Isolated in-memory Redis; nothing is shared between tests."""
    return FakeRedis(server=FakeServer(), decode_responses=True)


@pytest.fixture
def store(redis_client):
    return FeedStore(redis_client)
