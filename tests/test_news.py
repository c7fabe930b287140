"""
Unit tests for src.arch_updates.collection.news module.
"""

from datetime import datetime, timedelta, timezone

import aiohttp
import pytest

from src.arch_updates.collection.news import (
    NewsChecker,
    filter_news,
    parse_news_feed,
)
from src.arch_updates.core.errors import ParseError, TransportError
from src.arch_updates.core.models import NewsItem
from tests.fakes import FakeResponse, FakeSession

FEED = """<?xml version="1.0" encoding="utf-8"?>
<rss version="2.0">
  <channel>
    <title>Arch Linux: Recent news updates</title>
    <link>https://archlinux.org/news/</link>
    <description>The latest news from the Arch Linux distribution.</description>
    <item>
      <title>Manual intervention for pacman 7.0.0</title>
      <link>https://archlinux.org/news/manual-intervention-for-pacman-700/</link>
      <pubDate>Sat, 14 Sep 2024 12:00:00 +0000</pubDate>
    </item>
    <item>
      <title>The sshd service needs a restart</title>
      <link>https://archlinux.org/news/the-sshd-service-needs-a-restart/</link>
      <pubDate>Mon, 01 Jul 2024 08:30:00 +0000</pubDate>
    </item>
    <item>
      <title>An entry without a date</title>
      <link>https://archlinux.org/news/undated/</link>
    </item>
  </channel>
</rss>
"""

SEPTEMBER = datetime(2024, 9, 14, 12, 0, tzinfo=timezone.utc)
JULY = datetime(2024, 7, 1, 8, 30, tzinfo=timezone.utc)


def item(title, published):
    return NewsItem(
        title=title, link=f"https://example.org/{title}", published=published
    )


class TestParseNewsFeed:
    """Test cases for parse_news_feed."""

    def test_all_dated_entries(self):
        """Test every complete entry is returned in feed order."""
        items = parse_news_feed(FEED)

        assert [i.title for i in items] == [
            "Manual intervention for pacman 7.0.0",
            "The sshd service needs a restart",
        ]
        assert items[0].published == SEPTEMBER
        assert items[1].link.endswith("the-sshd-service-needs-a-restart/")

    def test_since_filters_older_items(self):
        """Test only items after the cutoff are returned."""
        items = parse_news_feed(FEED, since=datetime(2024, 8, 1, tzinfo=timezone.utc))
        assert [i.published for i in items] == [SEPTEMBER]

    def test_since_is_exclusive(self):
        """Test an item published exactly at the cutoff is excluded."""
        assert parse_news_feed(FEED, since=SEPTEMBER) == []

    def test_not_a_feed(self):
        """Test an HTML error page is a parse error."""
        with pytest.raises(ParseError):
            parse_news_feed("<html><body><h1>502 Bad Gateway</h1></body>")


class TestFilterNews:
    """Test cases for filter_news."""

    def test_none_keeps_everything(self):
        """Test no cutoff returns every item."""
        items = [item("a", SEPTEMBER), item("b", JULY)]
        assert filter_news(items, None) == items

    def test_other_timezone_cutoff(self):
        """Test cutoffs in other timezones are compared as instants."""
        cutoff = datetime(2024, 9, 14, 13, 0, tzinfo=timezone(timedelta(hours=2)))
        items = [item("a", SEPTEMBER), item("b", JULY)]
        assert [i.title for i in filter_news(items, cutoff)] == ["a"]


class TestNewsChecker:
    """Test cases for NewsChecker."""

    @pytest.mark.asyncio
    async def test_online_check(self):
        """Test the feed is fetched, parsed and filtered."""
        session = FakeSession(lambda url, params: FakeResponse(text=FEED))
        checker = NewsChecker(feed_url="https://news.example.org/feed")

        items = await checker.check(session, since=JULY)

        assert [i.published for i in items] == [SEPTEMBER]
        assert session.requests[0][0] == "https://news.example.org/feed"
        assert len(checker.last_items) == 2

    @pytest.mark.asyncio
    async def test_http_error_is_transport_error(self):
        """Test a non-200 answer fails the fetch."""
        session = FakeSession(lambda url, params: FakeResponse(status=503))
        with pytest.raises(TransportError):
            await NewsChecker().check(session)

    @pytest.mark.asyncio
    async def test_connection_error_is_transport_error(self):
        """Test a connection failure fails the fetch."""

        def unreachable(url, params):
            raise aiohttp.ClientConnectionError("Cannot connect to host")

        with pytest.raises(TransportError):
            await NewsChecker().fetch(FakeSession(unreachable))

    @pytest.mark.asyncio
    async def test_offline_refilters_last_items(self):
        """Test offline checks re-filter the last fetched items."""
        session = FakeSession(lambda url, params: FakeResponse(text=FEED))
        checker = NewsChecker()
        await checker.check(session)

        items = await checker.check(None, since=JULY, online=False)

        assert [i.published for i in items] == [SEPTEMBER]
        assert len(session.requests) == 1
