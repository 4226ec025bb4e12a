"""Tests for the shared HTTP helpers."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from common import http_client
from constants import Constants


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    monkeypatch.setattr(Constants, "HTTP_RETRY_BASE_DELAY_SEC", 0)
    http_client.clear_cache()
    yield
    http_client.clear_cache()


def _response(status, text="", headers=None):
    return MagicMock(status_code=status, text=text, headers=headers or {})


class TestRobustGet:
    """Test retries and caching."""

    @patch("common.http_client.requests.get")
    def test_success_cached(self, mock_get):
        mock_get.return_value = _response(200, "ok", {"ETag": "x"})

        first = http_client.robust_get("https://api.example.com/a")
        second = http_client.robust_get("https://api.example.com/a")

        assert first == (200, {"ETag": "x"}, "ok")
        assert second == first
        assert mock_get.call_count == 1

    @patch("common.http_client.requests.get")
    def test_retries_server_errors(self, mock_get):
        mock_get.side_effect = [_response(502), _response(200, "recovered")]

        status, _, text = http_client.robust_get("https://api.example.com/b")

        assert (status, text) == (200, "recovered")
        assert mock_get.call_count == 2

    @patch("common.http_client.requests.get")
    def test_client_errors_not_retried(self, mock_get):
        mock_get.return_value = _response(404, "missing")

        status, _, _ = http_client.robust_get("https://api.example.com/c")

        assert status == 404
        assert mock_get.call_count == 1

    @patch("common.http_client.requests.get")
    def test_all_attempts_fail(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("refused")

        status, headers, text = http_client.robust_get("https://api.example.com/d")

        assert status == 0
        assert headers == {}
        assert "refused" in text
        assert mock_get.call_count == Constants.HTTP_RETRY_MAX


class TestGetJson:
    """Test JSON decoding on top of robust_get."""

    @patch("common.http_client.robust_get")
    def test_parsed(self, mock_robust_get):
        mock_robust_get.return_value = (200, {}, '{"private": false}')
        assert http_client.get_json("https://api.example.com/r") == (200, {}, {"private": False})

    @patch("common.http_client.robust_get")
    def test_invalid_json(self, mock_robust_get):
        mock_robust_get.return_value = (200, {}, "<html>")
        assert http_client.get_json("https://api.example.com/r")[2] is None

    @patch("common.http_client.robust_get")
    def test_error_status(self, mock_robust_get):
        mock_robust_get.return_value = (404, {}, '{"message": "Not Found"}')
        assert http_client.get_json("https://api.example.com/r") == (404, {}, None)
