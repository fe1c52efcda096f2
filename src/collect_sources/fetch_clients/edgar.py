"""SEC EDGAR current-filings fetching."""

import logging
import os
import re
from datetime import datetime
from typing import Any, Mapping, Optional

from collect_sources.fetch_clients.rss import parse_feed, parse_published_date
from collect_sources.helpers import http_get

logger = logging.getLogger(__name__)

EDGAR_CURRENT_URL = "https://www.sec.gov/cgi-bin/browse-edgar"
DEFAULT_SEC_USER_AGENT = "intel-pipeline admin@example.com"

# "8-K - APPLE INC (0000320193) (Filer)"
FILING_TITLE_RE = re.compile(r"^(?P<form>.+?)\s+-\s+(?P<company>.+?)\s+\((?P<cik>\d+)\)")


class EdgarClient:
    """Fetch the latest filings of one form type from EDGAR's Atom feed.

    SEC requires a descriptive User-Agent; it is read from SEC_USER_AGENT.
    """

    def fetch(self, params: Mapping[str, Any], since: Optional[datetime] = None) -> list[dict]:
        query = {
            "action": "getcurrent",
            "type": params["form_type"],
            "count": params.get("count", 40),
            "output": "atom",
        }
        response = http_get(
            EDGAR_CURRENT_URL,
            params=query,
            headers={"User-Agent": os.environ.get("SEC_USER_AGENT", DEFAULT_SEC_USER_AGENT)},
            timeout=params.get("timeout_seconds"),
        )
        feed = parse_feed(response.content)

        item = params.get("item")
        payloads = []
        for entry in feed.entries:
            summary = entry.get("summary", "")
            if item and f"Item {item}" not in summary:
                continue

            published_at = parse_published_date(entry)
            if since is not None and published_at is not None and published_at <= since:
                continue

            title = entry.get("title", "").strip()
            if not title:
                continue

            payloads.append({
                "title": title,
                "body": summary or None,
                "url": entry.get("link"),
                "published_at": published_at,
                "extras": parse_filing_title(title),
            })

        logger.debug("EDGAR %s: %d filings", params["form_type"], len(payloads))
        return payloads


def parse_filing_title(title: str) -> dict:
    """Form type, company and CIK from an EDGAR entry title."""
    match = FILING_TITLE_RE.match(title)
    if not match:
        return {}
    return {
        "form_type": match.group("form").strip(),
        "company": match.group("company").strip(),
        "cik": match.group("cik"),
    }
