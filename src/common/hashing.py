"""Hashing utilities."""

import hashlib
from datetime import datetime

from common.datetime import canonical_timestamp
from common.text import normalize_title


def generate_item_id(source_id: str, fingerprint: str) -> str:
    """Generate a unique stored-item ID from source and fingerprint."""
    return hashlib.sha256(f"{source_id}:{fingerprint}".encode()).hexdigest()[:16]


def compute_fingerprint(
    title: str | None,
    published_at: datetime | str | None,
    ticker: str | None = None,
) -> str:
    """Content fingerprint over normalized title, canonical timestamp and ticker.

    Two payloads that differ only in title casing, surrounding markup,
    whitespace, timestamp representation or ticker case share a fingerprint.
    """
    parts = [
        normalize_title(title),
        canonical_timestamp(published_at) or "",
        (ticker or "").strip().upper(),
    ]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()[:16]
