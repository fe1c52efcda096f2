"""Generic JSON API fetching with field mapping."""

import logging
from datetime import datetime
from typing import Any, Mapping, Optional

from collect_sources.helpers import http_get, resolve_api_key
from collect_sources.models import CollectErrorKind, FetchError
from common.utils import get_path

logger = logging.getLogger(__name__)


class JsonApiClient:
    """Fetch a JSON document and map each element of `items_path` to a payload.

    Field names in the params are dotted paths into each element, so nested
    listings (e.g. Reddit's ``data.children[].data``) need no custom code.
    """

    def fetch(self, params: Mapping[str, Any], since: Optional[datetime] = None) -> list[dict]:
        query = dict(params.get("query") or {})
        api_key = resolve_api_key(params.get("api_key_env"))
        if api_key:
            query[params.get("api_key_param", "api_key")] = api_key

        response = http_get(
            params["url"],
            params=query,
            headers=dict(params.get("headers") or {}),
            timeout=params.get("timeout_seconds"),
        )

        try:
            document = response.json()
        except ValueError as e:
            raise FetchError(CollectErrorKind.PARSE_FAILURE, f"Invalid JSON from {params['url']}") from e

        elements = get_path(document, params.get("items_path"))
        if elements is None:
            return []
        if not isinstance(elements, list):
            raise FetchError(
                CollectErrorKind.PARSE_FAILURE,
                f"Expected a list at {params.get('items_path')!r} in response from {params['url']}",
            )

        payloads = []
        for element in elements:
            payload = map_element(element, params)
            if payload is not None:
                payloads.append(payload)
        return payloads


def map_element(element: Any, params: Mapping[str, Any]) -> dict | None:
    """Map one API element to a payload dict, or None when it has no title."""
    template = params.get("title_template")
    if template:
        try:
            title = template.format_map(element)
        except (KeyError, IndexError, TypeError) as e:
            raise FetchError(CollectErrorKind.PARSE_FAILURE, f"Cannot render title template {template!r}: {e}") from e
    else:
        title = _field(element, params.get("title_field", "title"))

    if not title:
        return None

    return {
        "title": str(title),
        "body": _field(element, params.get("body_field")),
        "url": _field(element, params.get("url_field")),
        "ticker": _field(element, params.get("ticker_field")),
        "published_at": _field(element, params.get("timestamp_field")),
    }


def _field(element: Any, path: Optional[str]) -> Any:
    if not path:
        return None
    value = get_path(element, path)
    return value if value != "" else None
