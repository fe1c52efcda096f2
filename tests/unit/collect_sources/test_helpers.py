"""Tests for collect_sources.helpers module."""

from unittest.mock import patch, Mock

import pytest
import requests

from collect_sources.helpers import check_response, http_get, parse_retry_after, resolve_api_key
from collect_sources.models import CollectErrorKind, FetchError


def _response(status_code, headers=None) -> Mock:
    response = Mock()
    response.status_code = status_code
    response.url = "https://example.com/feed"
    response.headers = headers or {}
    return response


class TestCheckResponse:
    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_failures(self, status) -> None:
        with pytest.raises(FetchError) as exc_info:
            check_response(_response(status))
        assert exc_info.value.kind == CollectErrorKind.AUTH_FAILURE

    def test_rate_limited_reads_retry_after(self) -> None:
        with pytest.raises(FetchError) as exc_info:
            check_response(_response(429, {"Retry-After": "120"}))
        assert exc_info.value.kind == CollectErrorKind.RATE_LIMITED
        assert exc_info.value.retry_after == 120

    def test_server_error_is_unreachable(self) -> None:
        with pytest.raises(FetchError) as exc_info:
            check_response(_response(503))
        assert exc_info.value.kind == CollectErrorKind.UNREACHABLE

    def test_success_passes(self) -> None:
        check_response(_response(200))


class TestHttpGet:
    @patch("collect_sources.helpers.requests.get")
    def test_timeout_maps_to_timeout(self, mock_get) -> None:
        mock_get.side_effect = requests.Timeout("slow")
        with pytest.raises(FetchError) as exc_info:
            http_get("https://example.com")
        assert exc_info.value.kind == CollectErrorKind.TIMEOUT

    @patch("collect_sources.helpers.requests.get")
    def test_connection_error_maps_to_unreachable(self, mock_get) -> None:
        mock_get.side_effect = requests.ConnectionError("refused")
        with pytest.raises(FetchError) as exc_info:
            http_get("https://example.com")
        assert exc_info.value.kind == CollectErrorKind.UNREACHABLE

    @patch("collect_sources.helpers.requests.get")
    def test_sends_user_agent_and_timeout(self, mock_get) -> None:
        mock_get.return_value = _response(200)
        http_get("https://example.com", params={"q": 1}, headers={"X-Key": "k"}, timeout=5)
        kwargs = mock_get.call_args.kwargs
        assert kwargs["timeout"] == 5
        assert kwargs["params"] == {"q": 1}
        assert kwargs["headers"]["X-Key"] == "k"
        assert "User-Agent" in kwargs["headers"]


class TestParseRetryAfter:
    def test_numeric(self) -> None:
        assert parse_retry_after("30") == 30.0

    def test_missing_or_http_date(self) -> None:
        assert parse_retry_after(None) is None
        assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") is None


class TestResolveApiKey:
    def test_no_env_var_declared(self) -> None:
        assert resolve_api_key(None) is None

    def test_reads_env(self, monkeypatch) -> None:
        monkeypatch.setenv("FRED_API_KEY", "secret")
        assert resolve_api_key("FRED_API_KEY") == "secret"

    def test_missing_key_is_auth_failure(self, monkeypatch) -> None:
        monkeypatch.delenv("FRED_API_KEY", raising=False)
        with pytest.raises(FetchError) as exc_info:
            resolve_api_key("FRED_API_KEY")
        assert exc_info.value.kind == CollectErrorKind.AUTH_FAILURE
