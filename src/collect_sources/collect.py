"""Core collection logic: one fetch per source, normalized and fingerprinted."""

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from datetime import datetime
from typing import Any, Mapping, Optional, Protocol

from collect_sources.fetch_clients.api import JsonApiClient
from collect_sources.fetch_clients.edgar import EdgarClient
from collect_sources.fetch_clients.rss import RssClient
from collect_sources.fetch_clients.scrape import ScrapeClient
from collect_sources.models import (
    CollectError,
    CollectErrorKind,
    CollectResult,
    FetchError,
    RawItem,
)
from common.datetime import parse_optional_datetime
from common.hashing import compute_fingerprint
from common.text import clean_text, extract_ticker, normalize_ticker
from source_registry.models import FetchKind, SourceDescriptor

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class FetchClient(Protocol):
    def fetch(self, params: Mapping[str, Any], since: Optional[datetime] = None) -> list[dict]:
        ...


def default_clients() -> dict[FetchKind, FetchClient]:
    """Built-in clients; "custom" sources need a client registered by the caller."""
    return {
        FetchKind.RSS: RssClient(),
        FetchKind.SCRAPE: ScrapeClient(),
        FetchKind.API: JsonApiClient(),
        FetchKind.EDGAR_FILING: EdgarClient(),
    }


class Collector:
    """Fetch one source and turn its payloads into RawItems.

    `collect` never raises for a fetch problem: every failure comes back as a
    typed CollectError on the result. The fetch runs on its own thread so a
    hung client cannot hold the caller past the source's timeout.
    """

    def __init__(
        self,
        clients: Optional[Mapping[FetchKind, FetchClient]] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self._clients = dict(default_clients() if clients is None else clients)
        self.timeout_seconds = timeout_seconds

    def register(self, kind: FetchKind, client: FetchClient) -> None:
        self._clients[kind] = client

    def timeout_for(self, source: SourceDescriptor) -> float:
        return source.timeout_seconds or self.timeout_seconds

    def collect(self, source: SourceDescriptor, since: Optional[datetime] = None) -> CollectResult:
        client = self._clients.get(source.fetch_kind)
        if client is None:
            return self._failed(
                source,
                CollectError(CollectErrorKind.UNREACHABLE, f"No fetch client for kind {source.fetch_kind.value}"),
            )

        timeout = self.timeout_for(source)
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"fetch-{source.id}")
        try:
            future = executor.submit(client.fetch, source.fetch_params, since)
            try:
                payloads = future.result(timeout=timeout)
            except FutureTimeout:
                future.cancel()
                return self._failed(
                    source,
                    CollectError(CollectErrorKind.TIMEOUT, f"No response within {timeout:g}s"),
                )
            except FetchError as e:
                return self._failed(source, CollectError.from_fetch_error(e))
            except Exception as e:
                return self._failed(
                    source,
                    CollectError(CollectErrorKind.PARSE_FAILURE, f"{type(e).__name__}: {e}"),
                )
        finally:
            executor.shutdown(wait=False)

        try:
            items = normalize_payloads(source, payloads or [])
        except Exception as e:
            return self._failed(
                source,
                CollectError(CollectErrorKind.PARSE_FAILURE, f"Could not normalize payloads: {e}"),
            )

        logger.info("Collected %d items from %s", len(items), source.id)
        return CollectResult(source_id=source.id, items=items)

    def _failed(self, source: SourceDescriptor, error: CollectError) -> CollectResult:
        logger.warning("Collection from %s failed: %s", source.id, error)
        return CollectResult(source_id=source.id, error=error)


def normalize_payloads(source: SourceDescriptor, payloads: list[Mapping[str, Any]]) -> list[RawItem]:
    items = []
    for payload in payloads:
        try:
            item = normalize_payload(source, payload)
        except (AttributeError, TypeError, ValueError) as e:
            logger.warning("Dropping malformed payload from %s: %s", source.id, e)
            continue
        if item is None:
            logger.debug("Dropping untitled payload from %s", source.id)
            continue
        items.append(item)
    return items


def normalize_payload(source: SourceDescriptor, payload: Mapping[str, Any]) -> RawItem | None:
    """Build a RawItem from a client payload; None when the payload has no usable title."""
    title = clean_text(payload.get("title"))
    if not title:
        return None
    body = clean_text(payload.get("body"))

    ticker = normalize_ticker(payload.get("ticker")) or extract_ticker(title, body)
    if ticker is None:
        # Single-company sources (e.g. a titan's filings) tag every item
        tickers = source.fetch_params.get("tickers") or []
        if len(tickers) == 1:
            ticker = normalize_ticker(tickers[0])

    published_at = parse_optional_datetime(payload.get("published_at"))

    return RawItem(
        source_id=source.id,
        category=source.category,
        fingerprint=compute_fingerprint(title, published_at, ticker),
        title=title,
        body=body,
        url=payload.get("url") or None,
        ticker=ticker,
        published_at=published_at,
        extras=dict(payload.get("extras") or {}),
    )
