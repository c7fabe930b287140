"""
Distribution news feed.

News is reported relative to a cutoff, normally the last full system upgrade,
so the user sees the announcements that may require manual intervention
before the next one.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional

import aiohttp
import feedparser

from src.arch_updates.core.errors import ParseError, TransportError
from src.arch_updates.core.models import NewsItem
from src.i18n import _

logger = logging.getLogger(__name__)

DEFAULT_FEED_URL = "https://archlinux.org/feeds/news/"


def _as_utc(moment: datetime) -> datetime:
    # naive datetimes are local time, as written by pacman.log and by users
    return moment.astimezone(timezone.utc)


def _entry_published(entry) -> Optional[datetime]:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if not parsed:
        return None
    return datetime(*parsed[:6], tzinfo=timezone.utc)


def parse_news_feed(content: str, since: Optional[datetime] = None) -> List[NewsItem]:
    """
    News items published strictly after since, in feed order.

    Entries without a title, link or date are skipped.

    Raises:
        ParseError: the content is not a feed at all
    """
    feed = feedparser.parse(content)
    if feed.bozo and not feed.entries:
        raise ParseError(
            _("Unable to parse news feed: %s") % feed.get("bozo_exception", "")
        )

    items = []
    for entry in feed.entries:
        title = entry.get("title")
        link = entry.get("link")
        published = _entry_published(entry)
        if not title or not link or published is None:
            logger.debug("Skipping incomplete news entry: %s", title or link)
            continue
        items.append(NewsItem(title=title, link=link, published=published))
    return filter_news(items, since)


def filter_news(items: List[NewsItem], since: Optional[datetime]) -> List[NewsItem]:
    """Items published strictly after since; None keeps everything."""
    if since is None:
        return list(items)
    cutoff = _as_utc(since)
    return [item for item in items if item.published > cutoff]


class NewsChecker:
    """
    Fetches and filters the news feed.

    The items of the last successful fetch are kept so offline checks can
    re-filter them against a new cutoff.
    """

    def __init__(self, feed_url: str = DEFAULT_FEED_URL, request_timeout: float = 30.0):
        self.feed_url = feed_url
        self.request_timeout = request_timeout
        self.last_items: List[NewsItem] = []

    async def fetch(self, session: aiohttp.ClientSession) -> str:
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        try:
            async with session.get(self.feed_url, timeout=timeout) as response:
                if response.status != 200:
                    raise TransportError(
                        _("HTTP %s from %s") % (response.status, self.feed_url)
                    )
                return await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as error:
            raise TransportError(
                _("Unable to fetch news from %s: %s") % (self.feed_url, error)
            ) from error

    async def check(
        self,
        session: aiohttp.ClientSession,
        since: Optional[datetime] = None,
        online: bool = True,
    ) -> List[NewsItem]:
        if online:
            content = await self.fetch(session)
            self.last_items = parse_news_feed(content)
        items = filter_news(self.last_items, since)
        logger.info(_("Found %d news item(s)"), len(items))
        return items
