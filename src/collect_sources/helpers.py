"""HTTP helpers shared by the fetch clients."""

import logging
import os
from typing import Any, Optional

import requests

from collect_sources.models import CollectErrorKind, FetchError

logger = logging.getLogger(__name__)

USER_AGENT = "intel-pipeline/1.0 (market intelligence collector)"
DEFAULT_TIMEOUT = 30


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Seconds from a Retry-After header (numeric form only)."""
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


def check_response(response: requests.Response) -> None:
    """Raise a typed FetchError for an unsuccessful HTTP response."""
    status = response.status_code
    if status in (401, 403):
        raise FetchError(CollectErrorKind.AUTH_FAILURE, f"HTTP {status} from {response.url}")
    if status == 429:
        raise FetchError(
            CollectErrorKind.RATE_LIMITED,
            f"HTTP 429 from {response.url}",
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
        )
    if status >= 400:
        raise FetchError(CollectErrorKind.UNREACHABLE, f"HTTP {status} from {response.url}")


def http_get(
    url: str,
    params: Optional[dict[str, Any]] = None,
    headers: Optional[dict[str, str]] = None,
    timeout: Optional[float] = None,
) -> requests.Response:
    """GET a URL, mapping transport failures and error statuses to FetchError."""
    request_headers = {"User-Agent": USER_AGENT}
    if headers:
        request_headers.update(headers)

    try:
        response = requests.get(
            url,
            params=params,
            headers=request_headers,
            timeout=timeout or DEFAULT_TIMEOUT,
        )
    except requests.Timeout as e:
        raise FetchError(CollectErrorKind.TIMEOUT, f"Request to {url} timed out") from e
    except requests.ConnectionError as e:
        raise FetchError(CollectErrorKind.UNREACHABLE, f"Could not connect to {url}: {e}") from e
    except requests.RequestException as e:
        raise FetchError(CollectErrorKind.UNREACHABLE, f"Request to {url} failed: {e}") from e

    check_response(response)
    return response


def resolve_api_key(env_var: Optional[str]) -> Optional[str]:
    """Read an API key from the environment; a declared but missing key is an auth failure."""
    if not env_var:
        return None
    key = os.environ.get(env_var)
    if not key:
        raise FetchError(CollectErrorKind.AUTH_FAILURE, f"Missing API key: {env_var} is not set")
    return key
