import logging
from datetime import datetime
from typing import Any, Mapping, Optional

import trafilatura
from readability import Document
from lxml import html as lxml_html

from collect_sources.helpers import http_get
from collect_sources.models import CollectErrorKind, FetchError

logger = logging.getLogger(__name__)


class ScrapeClient:
    """
    Fetch the main text of a web page as a single item.

    Order:
    1. trafilatura
    2. readability-lxml

    The page is downloaded once. If neither extractor finds text the fetch
    is a parse failure.
    """

    def fetch(self, params: Mapping[str, Any], since: Optional[datetime] = None) -> list[dict]:
        url = params["url"]
        response = http_get(url, timeout=params.get("timeout_seconds"))
        page = response.text

        # 1. Try trafilatura
        extracted = None
        try:
            extracted = extract_with_trafilatura(page, url)
        except Exception as e:
            logger.warning("trafilatura failed for %s: %s", url, e)

        # 2. Fallback to readability
        if not extracted:
            try:
                extracted = extract_with_readability(page)
            except Exception as e:
                logger.warning("readability failed for %s: %s", url, e)

        if not extracted:
            raise FetchError(CollectErrorKind.PARSE_FAILURE, f"No extractable text at {url}")

        title, text = extracted
        return [{
            "title": title or params.get("title") or url,
            "body": text,
            "url": url,
            "published_at": None,
        }]


def extract_with_trafilatura(page: str, url: str) -> Optional[tuple[Optional[str], str]]:
    text = trafilatura.extract(page, url=url)
    if not text:
        return None
    metadata = trafilatura.extract_metadata(page, default_url=url)
    title = metadata.title if metadata is not None else None
    return title, text


def extract_with_readability(page: str) -> Optional[tuple[Optional[str], str]]:
    doc = Document(page)
    summary_html = doc.summary()

    tree = lxml_html.fromstring(summary_html)
    text = tree.text_content()

    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines:
        return None
    return doc.short_title() or None, "\n".join(lines)
