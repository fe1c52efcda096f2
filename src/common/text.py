"""Text cleaning helpers."""

import re
from typing import Optional

CASHTAG_RE = re.compile(r"\$([A-Za-z]{1,5})(?![A-Za-z])")


def clean_text(text: Optional[str]) -> Optional[str]:
    """Clean text by stripping HTML, fixing escapes, and collapsing whitespace."""
    if not text:
        return None
    # Strip HTML tags (keep text content)
    text = re.sub(r"<[^>]+>", " ", text)
    # Remove escaped quotes
    text = text.replace('\\"', '"')
    # Collapse whitespace
    text = re.sub(r"\s+", " ", text).strip()
    return text if text else None


def normalize_title(title: Optional[str]) -> str:
    """Lowercased, cleaned title used for fingerprinting."""
    return (clean_text(title) or "").lower()


def normalize_ticker(ticker: Optional[str]) -> Optional[str]:
    """Uppercase a ticker symbol, dropping a leading "$"."""
    if not ticker:
        return None
    ticker = ticker.strip().lstrip("$").upper()
    return ticker or None


def extract_ticker(*texts: Optional[str]) -> Optional[str]:
    """Return the first cashtag ("$AAPL") found in the given texts."""
    for text in texts:
        if not text:
            continue
        match = CASHTAG_RE.search(text)
        if match:
            return match.group(1).upper()
    return None
