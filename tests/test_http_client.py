"""Tests for shared HTTP client."""

from unittest.mock import patch, MagicMock

from utils.http_client import (
    DEFAULT_TIMEOUT,
    build_retry,
    build_session,
    fund_with_friendbot,
    request,
)


class TestHttpClient:
    """Test HTTP client wrapper functions."""

    def test_default_timeout_is_tuple(self):
        """Timeout should be (connect, read) tuple."""
        assert isinstance(DEFAULT_TIMEOUT, tuple)
        assert len(DEFAULT_TIMEOUT) == 2
        assert DEFAULT_TIMEOUT[0] > 0  # connect timeout
        assert DEFAULT_TIMEOUT[1] > 0  # read timeout

    def test_post_is_never_retried_on_status(self):
        """JSON-RPC POSTs (sendTransaction) must not be replayed after a 5xx."""
        retry = build_retry()
        assert "POST" not in retry.allowed_methods
        assert retry.is_retry("POST", 503) is False
        assert retry.is_retry("GET", 503) is True

    def test_session_mounts_retrying_adapter(self):
        s = build_session(pool_size=3)
        adapter = s.get_adapter("https://soroban-testnet.stellar.org")
        assert adapter.max_retries.connect == 3

    @patch("utils.http_client.session")
    def test_custom_timeout_is_passed(self, mock_session):
        """Custom timeout should override default."""
        mock_resp = MagicMock()
        mock_resp.json.return_value = {}
        mock_session.request.return_value = mock_resp

        request("GET", "https://soroban-testnet.stellar.org", timeout=30)

        call_kwargs = mock_session.request.call_args.kwargs
        assert call_kwargs["timeout"] == 30

    @patch("utils.http_client.session")
    def test_default_timeout_is_applied(self, mock_session):
        request("POST", "https://soroban-testnet.stellar.org", json={"method": "getHealth"})

        call_kwargs = mock_session.request.call_args.kwargs
        assert call_kwargs["timeout"] == DEFAULT_TIMEOUT
        assert call_kwargs["json"] == {"method": "getHealth"}


class TestFriendbot:

    @patch("utils.http_client.session")
    def test_funds_address(self, mock_session):
        mock_resp = MagicMock(status_code=200)
        mock_resp.json.return_value = {"hash": "abc"}
        mock_session.request.return_value = mock_resp

        result = fund_with_friendbot("https://friendbot.stellar.org", "GABC")

        assert result == {"hash": "abc"}
        call_kwargs = mock_session.request.call_args.kwargs
        assert call_kwargs["params"] == {"addr": "GABC"}
        assert call_kwargs["method"] == "GET"

    @patch("utils.http_client.session")
    def test_already_funded_is_not_an_error(self, mock_session):
        mock_resp = MagicMock(status_code=400)
        mock_session.request.return_value = mock_resp

        assert fund_with_friendbot("https://friendbot.stellar.org", "GABC") is None
        mock_resp.raise_for_status.assert_not_called()
