"""RSS feed fetching."""

import logging
from datetime import datetime, timezone, timedelta
from typing import Any, Mapping, Optional

import feedparser
from dateutil.parser import parse as parse_date

from collect_sources.helpers import http_get
from collect_sources.models import CollectErrorKind, FetchError

logger = logging.getLogger(__name__)

# Timezone abbreviations for date parsing
TZINFOS = {
    "EST": timezone(timedelta(hours=-5)),
    "EDT": timezone(timedelta(hours=-4)),
    "CST": timezone(timedelta(hours=-6)),
    "CDT": timezone(timedelta(hours=-5)),
    "MST": timezone(timedelta(hours=-7)),
    "MDT": timezone(timedelta(hours=-6)),
    "PST": timezone(timedelta(hours=-8)),
    "PDT": timezone(timedelta(hours=-7)),
    "GMT": timezone.utc,
    "UTC": timezone.utc,
    "BST": timezone(timedelta(hours=1)),
}


class RssClient:
    """Fetch entries from an RSS/Atom feed published after `since`."""

    def fetch(self, params: Mapping[str, Any], since: Optional[datetime] = None) -> list[dict]:
        if since is not None and since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)

        response = http_get(params["url"], timeout=params.get("timeout_seconds"))
        feed = parse_feed(response.content)

        payloads = []
        seen_urls: set[str] = set()
        for entry in feed.entries:
            try:
                payload = parse_entry(entry, since, seen_urls)
            except Exception as e:
                logger.warning("Failed to parse entry from %s: %s", params["url"], e)
                continue
            if payload is not None:
                payloads.append(payload)
        return payloads


def parse_feed(content: bytes):
    """Parse feed bytes; a document with no entries that feedparser flags as malformed is a parse failure."""
    feed = feedparser.parse(content)
    if feed.bozo and not feed.entries:
        raise FetchError(
            CollectErrorKind.PARSE_FAILURE,
            f"Malformed feed: {feed.get('bozo_exception')}",
        )
    return feed


def parse_entry(entry, since: Optional[datetime], seen_urls: set) -> dict | None:
    """Parse a single RSS entry into a payload dict."""
    url = entry.get("link")
    if not url or url in seen_urls:
        return None

    published_at = parse_published_date(entry)
    if since is not None and published_at is not None and published_at <= since:
        return None

    title = entry.get("title", "").strip()
    if not title:
        return None

    seen_urls.add(url)

    return {
        "title": title,
        "body": entry.get("summary", "").strip() or None,
        "url": url,
        "published_at": published_at,
    }


def parse_published_date(entry) -> datetime | None:
    """Extract and parse the published date from an RSS entry."""
    published = entry.get("published") or entry.get("updated")
    if not published:
        return None

    try:
        dt = parse_date(published, tzinfos=TZINFOS)
    except (ValueError, OverflowError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
