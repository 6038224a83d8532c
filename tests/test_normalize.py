"""Tests for URL normalization and time helpers."""

from __future__ import annotations

import pytest

from feedserver.services.normalize import HOUR_MS, MINUTE_MS, http_date_ms, normalize_feed_url, now_ms


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("https://example.com/feed.xml", "https://example.com/feed.xml"),
        ("  https://example.com/feed.xml\n", "https://example.com/feed.xml"),
        ("HTTPS://Example.COM/feed.xml", "https://example.com/feed.xml"),
        ("https://example.com/feed.xml#latest", "https://example.com/feed.xml"),
        ("https://example.com/Feed?Format=RSS", "https://example.com/Feed?Format=RSS"),
    ],
)
def test_normalize_feed_url(raw, expected) -> None:
    assert normalize_feed_url(raw) == expected


def test_units() -> None:
    assert MINUTE_MS == 60_000
    assert HOUR_MS == 3_600_000


def test_now_ms_is_epoch_millis() -> None:
    # 2001-09-09 is the first 13-digit millisecond timestamp
    assert len(str(now_ms())) == 13


class TestHttpDate:
    def test_rfc_1123(self) -> None:
        assert http_date_ms("Thu, 01 Jan 1970 00:01:00 GMT") == MINUTE_MS

    def test_numeric_offset(self) -> None:
        assert http_date_ms("Thu, 01 Jan 1970 01:01:00 +0100") == MINUTE_MS

    @pytest.mark.parametrize("value", [None, "", "0", "-1", "never"])
    def test_unparseable(self, value) -> None:
        assert http_date_ms(value) is None
