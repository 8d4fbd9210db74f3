"""Tests for ExpoPushClient."""

import pytest
from unittest.mock import Mock, patch
import requests

from push.expo_client import ExpoPushClient, NotificationError, is_expo_push_token

TOKEN_A = "ExponentPushToken[aaaaaaaaaaaaaaaaaaaaaa]"
TOKEN_B = "ExpoPushToken[bbbbbbbbbbbbbbbbbbbbbb]"


def push_response(tickets):
    response = Mock()
    response.status_code = 200
    response.json.return_value = {"data": tickets}
    response.raise_for_status.return_value = None
    return response


def ok_tickets(chunk):
    return [{"status": "ok", "id": f"ticket-{i}"} for i in range(len(chunk))]


class TestExpoTokenFormat:
    """Test Expo token validation."""

    def test_valid_tokens(self):
        """Test bracketed and UUID-shaped tokens are accepted."""
        assert is_expo_push_token(TOKEN_A) is True
        assert is_expo_push_token(TOKEN_B) is True
        assert is_expo_push_token("3f2504e0-4f89-11d3-9a0c-0305e82c3301") is True

    def test_invalid_tokens(self):
        """Test other shapes are rejected."""
        assert is_expo_push_token("not-a-token") is False
        assert is_expo_push_token("ExponentPushToken[abc") is False
        assert is_expo_push_token("") is False
        assert is_expo_push_token(None) is False


class TestExpoPushClient:
    """Test push delivery through the Expo API."""

    def setup_method(self):
        """Set up test fixtures."""
        self.token_store = Mock()
        self.token_store.all_tokens.return_value = [TOKEN_A, TOKEN_B]
        self.client = ExpoPushClient(token_store=self.token_store, timeout=5)

    @patch('requests.post')
    def test_send_to_all(self, mock_post):
        """Test a broadcast reaches every registered token."""
        mock_post.return_value = push_response(ok_tickets([TOKEN_A, TOKEN_B]))

        result = self.client.send_to_all("stop", "you pick is weak")

        assert result.success is True
        assert result.sent == 2
        assert result.total == 2
        assert result.errors is None

        mock_post.assert_called_once()
        call_args = mock_post.call_args
        assert call_args[0][0] == ExpoPushClient.DEFAULT_URL
        assert call_args[1]["timeout"] == 5
        messages = call_args[1]["json"]
        assert [m["to"] for m in messages] == [TOKEN_A, TOKEN_B]
        assert messages[0]["title"] == "stop"
        assert messages[0]["body"] == "you pick is weak"
        assert messages[0]["sound"] == "default"
        assert messages[0]["priority"] == "high"
        assert "Authorization" not in call_args[1]["headers"]

    @patch('requests.post')
    def test_access_token_header(self, mock_post):
        """Test the access token is sent as a bearer token."""
        mock_post.return_value = push_response(ok_tickets([TOKEN_A]))
        client = ExpoPushClient(token_store=self.token_store, access_token="secret")

        client.send(TOKEN_A, "t", "b")

        assert mock_post.call_args[1]["headers"]["Authorization"] == "Bearer secret"

    @patch('requests.post')
    def test_chunking(self, mock_post):
        """Test large sends are split into chunks of 100."""
        tokens = [f"ExponentPushToken[{i:022d}]" for i in range(150)]
        mock_post.side_effect = lambda url, json, headers, timeout: push_response(ok_tickets(json))

        result = self.client.send(tokens, "t", "b", data={"screen": "chat"})

        assert mock_post.call_count == 2
        assert len(mock_post.call_args_list[0][1]["json"]) == 100
        assert len(mock_post.call_args_list[1][1]["json"]) == 50
        assert mock_post.call_args_list[0][1]["json"][0]["data"] == {"screen": "chat"}
        assert result.sent == 150

    @patch('requests.post')
    def test_invalid_tokens_reported(self, mock_post):
        """Test invalid tokens are skipped and listed separately."""
        mock_post.return_value = push_response(ok_tickets([TOKEN_A]))

        result = self.client.send([TOKEN_A, "garbage"], "t", "b")

        assert result.sent == 1
        assert result.invalid_tokens == ["garbage"]
        assert [m["to"] for m in mock_post.call_args[1]["json"]] == [TOKEN_A]

    def test_only_invalid_tokens(self):
        """Test a send with no valid token is rejected."""
        with pytest.raises(NotificationError) as exc_info:
            self.client.send(["garbage"], "t", "b")
        assert "No valid Expo push tokens" in str(exc_info.value)

    def test_missing_fields(self):
        """Test title and body are required."""
        with pytest.raises(NotificationError):
            self.client.send(TOKEN_A, "", "b")
        with pytest.raises(NotificationError):
            self.client.send(TOKEN_A, "t", None)

    def test_empty_registry(self):
        """Test broadcasting without registered devices is rejected."""
        self.token_store.all_tokens.return_value = []

        with pytest.raises(NotificationError) as exc_info:
            self.client.send_to_all("t", "b")
        assert "No tokens found" in str(exc_info.value)

    def test_invalid_recipient(self):
        """Test unsupported recipient values are rejected."""
        with pytest.raises(NotificationError):
            self.client.send(42, "t", "b")

    @patch('requests.post')
    def test_ticket_errors(self, mock_post):
        """Test per-ticket errors are collected."""
        mock_post.return_value = push_response([
            {"status": "ok", "id": "ticket-1"},
            {"status": "error", "message": "DeviceNotRegistered"},
        ])

        result = self.client.send_to_all("t", "b")

        assert result.success is True
        assert result.sent == 1
        assert result.total == 2
        assert result.errors[0].token == TOKEN_B
        assert result.errors[0].message == "DeviceNotRegistered"

    @patch('requests.post')
    def test_chunk_failure_is_contained(self, mock_post):
        """Test a failed chunk is logged and reported, not raised."""
        mock_post.side_effect = requests.exceptions.Timeout("timed out")

        result = self.client.send_to_all("t", "b")

        assert result.success is False
        assert result.sent == 0
        assert [e.token for e in result.errors] == [TOKEN_A, TOKEN_B]
        assert "timed out" in result.errors[0].message

    @patch('requests.post')
    def test_unexpected_response(self, mock_post):
        """Test a response without tickets counts as a failed chunk."""
        response = Mock()
        response.raise_for_status.return_value = None
        response.json.return_value = {"errors": [{"code": "PUSH_TOO_MANY_EXPERIENCE_IDS"}]}
        mock_post.return_value = response

        result = self.client.send_to_all("t", "b")

        assert result.success is False
        assert len(result.errors) == 2
