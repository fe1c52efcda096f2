"""SQL item store (PostgreSQL in production, SQLite in tests)."""

import json
import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from collect_sources.models import RawItem
from common.datetime import parse_optional_datetime, utc_now
from item_store.base import ItemStore
from item_store.models import ItemFilter, StoreUnavailable, StoredItem, UnknownItem
from source_registry.models import Category

logger = logging.getLogger(__name__)

TABLE = "intel_items"

CREATE_TABLE_SQL = f"""
CREATE TABLE IF NOT EXISTS {TABLE} (
    id TEXT PRIMARY KEY,
    source_id TEXT NOT NULL,
    category TEXT NOT NULL,
    fingerprint TEXT NOT NULL,
    title TEXT NOT NULL,
    body TEXT,
    url TEXT,
    ticker TEXT,
    published_at TEXT,
    collected_at TEXT NOT NULL,
    extras TEXT,
    processed BOOLEAN NOT NULL DEFAULT FALSE,
    processed_at TEXT,
    enrichment TEXT,
    attempts INTEGER NOT NULL DEFAULT 0,
    last_error TEXT,
    UNIQUE (source_id, fingerprint)
)
"""

COLUMNS = (
    "id, source_id, category, fingerprint, title, body, url, ticker, published_at, "
    "collected_at, extras, processed, processed_at, enrichment, attempts, last_error"
)


def _timestamp(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _row_to_item(row) -> StoredItem:
    return StoredItem(
        id=row["id"],
        source_id=row["source_id"],
        category=Category(row["category"]),
        fingerprint=row["fingerprint"],
        title=row["title"],
        body=row["body"],
        url=row["url"],
        ticker=row["ticker"],
        published_at=parse_optional_datetime(row["published_at"]),
        collected_at=parse_optional_datetime(row["collected_at"]),
        extras=json.loads(row["extras"]) if row["extras"] else {},
        processed=bool(row["processed"]),
        processed_at=parse_optional_datetime(row["processed_at"]),
        enrichment=json.loads(row["enrichment"]) if row["enrichment"] else None,
        attempts=row["attempts"] or 0,
        last_error=row["last_error"],
    )


class SqlItemStore(ItemStore):
    """Item store over a SQLAlchemy engine using plain SQL statements.

    Insert-if-absent relies on ``ON CONFLICT DO NOTHING`` and the driver's
    rowcount, and the processed flag is only ever set by a conditional
    ``UPDATE ... WHERE processed = false``, so both stay atomic without
    application-level locking.
    """

    def __init__(self, engine: Engine, clock: Callable = utc_now, create_table: bool = True):
        self._engine = engine
        self._clock = clock
        if create_table:
            self.ensure_table()

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "SqlItemStore":
        return cls(create_engine(url, pool_pre_ping=True), **kwargs)

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        try:
            with self._engine.begin() as conn:
                yield conn
        except SQLAlchemyError as e:
            logger.error("Item store error: %s", e)
            raise StoreUnavailable(str(e)) from e

    def ensure_table(self) -> None:
        with self._connect() as conn:
            conn.execute(text(CREATE_TABLE_SQL))

    def insert_if_absent(self, source_id: str, fingerprint: str, item: RawItem) -> bool:
        stored = StoredItem.from_raw(item, collected_at=self._clock())
        with self._connect() as conn:
            result = conn.execute(
                text(
                    f"""
                    INSERT INTO {TABLE} (
                        id, source_id, category, fingerprint, title, body, url,
                        ticker, published_at, collected_at, extras
                    )
                    VALUES (
                        :id, :source_id, :category, :fingerprint, :title, :body, :url,
                        :ticker, :published_at, :collected_at, :extras
                    )
                    ON CONFLICT DO NOTHING
                    """
                ),
                {
                    "id": stored.id,
                    "source_id": source_id,
                    "category": stored.category.value,
                    "fingerprint": fingerprint,
                    "title": stored.title,
                    "body": stored.body,
                    "url": stored.url,
                    "ticker": stored.ticker,
                    "published_at": _timestamp(stored.published_at),
                    "collected_at": _timestamp(stored.collected_at),
                    "extras": json.dumps(stored.extras, default=str),
                },
            )
            return bool(result.rowcount and result.rowcount > 0)

    def mark_processed(self, item_id: str, enrichment: dict[str, Any]) -> bool:
        with self._connect() as conn:
            result = conn.execute(
                text(
                    f"""
                    UPDATE {TABLE}
                    SET processed = :processed,
                        processed_at = :processed_at,
                        enrichment = :enrichment,
                        last_error = NULL
                    WHERE id = :id
                      AND processed = :unprocessed
                    """
                ),
                {
                    "id": item_id,
                    "processed": True,
                    "unprocessed": False,
                    "processed_at": _timestamp(self._clock()),
                    "enrichment": json.dumps(enrichment, default=str),
                },
            )
            if result.rowcount:
                return True
            self._require_exists(conn, item_id)
            return False

    def record_failure(self, item_id: str, reason: str) -> None:
        with self._connect() as conn:
            result = conn.execute(
                text(
                    f"""
                    UPDATE {TABLE}
                    SET attempts = attempts + 1,
                        last_error = :reason
                    WHERE id = :id
                      AND processed = :unprocessed
                    """
                ),
                {"id": item_id, "reason": reason, "unprocessed": False},
            )
            if not result.rowcount:
                self._require_exists(conn, item_id)

    def get(self, item_id: str) -> Optional[StoredItem]:
        with self._connect() as conn:
            row = conn.execute(
                text(f"SELECT {COLUMNS} FROM {TABLE} WHERE id = :id"),
                {"id": item_id},
            ).mappings().first()
        return _row_to_item(row) if row is not None else None

    def select_by_filter(self, item_filter: ItemFilter) -> list[StoredItem]:
        clauses = []
        params: dict[str, Any] = {}
        if item_filter.category is not None:
            clauses.append("category = :category")
            params["category"] = item_filter.category.value
        if item_filter.ticker is not None:
            clauses.append("upper(ticker) = :ticker")
            params["ticker"] = item_filter.ticker.upper()
        if item_filter.processed is not None:
            clauses.append("processed = :processed")
            params["processed"] = item_filter.processed
        if item_filter.source_id is not None:
            clauses.append("source_id = :source_id")
            params["source_id"] = item_filter.source_id

        sql = f"SELECT {COLUMNS} FROM {TABLE}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)

        with self._connect() as conn:
            rows = conn.execute(text(sql), params).mappings().all()

        items = [_row_to_item(row) for row in rows]
        # Timestamps are stored as text, so the time bound is applied here
        if item_filter.since is not None:
            items = [item for item in items if item_filter.matches(item)]
        return items

    def _require_exists(self, conn: Connection, item_id: str) -> None:
        found = conn.execute(
            text(f"SELECT 1 FROM {TABLE} WHERE id = :id"),
            {"id": item_id},
        ).first()
        if found is None:
            raise UnknownItem(item_id)
