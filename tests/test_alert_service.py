from unittest.mock import MagicMock, Mock, patch

import httpx

from proposal_bot.config import settings
from proposal_bot.services.alert_service import alert_error, alert_warning, send_alert


def _configured():
    return patch.multiple(settings, alert_bot_token="test-token", alert_chat_id="ops-chat")


class TestSendAlert:
    def test_returns_false_when_not_configured(self):
        with patch.multiple(settings, alert_bot_token="", alert_chat_id=""):
            assert send_alert("ERROR", "Proposal commit failed") is False

    @patch("proposal_bot.services.alert_service.httpx.Client")
    def test_posts_to_ops_chat_with_context(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.return_value = Mock(status_code=200)

        with _configured():
            result = send_alert("ERROR", "Proposal commit failed", {"error_code": "proposal_error"})

        assert result is True
        url = mock_client.post.call_args[0][0]
        payload = mock_client.post.call_args[1]["json"]
        assert url == "https://api.telegram.org/bottest-token/sendMessage"
        assert payload["chat_id"] == "ops-chat"
        assert "ERROR" in payload["text"]
        assert "proposal_error" in payload["text"]

    @patch("proposal_bot.services.alert_service.httpx.Client")
    def test_transport_error_returns_false(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.side_effect = httpx.ConnectError("boom")

        with _configured():
            assert send_alert("WARNING", "Outbound delivery failed") is False


class TestShortcuts:
    @patch("proposal_bot.services.alert_service.send_alert", return_value=True)
    def test_alert_error_level(self, mock_send):
        alert_error("Conversation processing failed", {"channel": "telegram"})
        mock_send.assert_called_once_with("ERROR", "Conversation processing failed", {"channel": "telegram"})

    @patch("proposal_bot.services.alert_service.send_alert", return_value=True)
    def test_alert_warning_level(self, mock_send):
        alert_warning("Outbound delivery failed")
        mock_send.assert_called_once_with("WARNING", "Outbound delivery failed", None)
