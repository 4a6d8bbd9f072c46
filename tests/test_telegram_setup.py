from unittest.mock import MagicMock, Mock, patch

import pytest
from fastapi.testclient import TestClient

from proposal_bot.config import settings
from proposal_bot.main import app
from proposal_bot.routers.admin import get_telegram_service
from proposal_bot.services.telegram_service import TelegramService, register_webhook

URL = "/admin/telegram/webhook"
WEBHOOK = "https://bot.exemplo.com/webhook/telegram"


def _response(payload):
    response = Mock()
    response.json.return_value = payload
    return response


class TestRegisterWebhook:
    @patch("proposal_bot.services.telegram_service.httpx.Client")
    def test_deletes_sets_and_reads_back(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.side_effect = [
            _response({"ok": True, "result": True}),
            _response({"ok": True, "result": True}),
            _response({"ok": True, "result": {"url": WEBHOOK, "pending_update_count": 0}}),
        ]

        result = register_webhook(TelegramService("test-token"), WEBHOOK)

        assert result.ok is True
        assert result.value["url"] == WEBHOOK
        urls = [call[0][0] for call in mock_client.post.call_args_list]
        assert urls == [
            "https://api.telegram.org/bottest-token/deleteWebhook",
            "https://api.telegram.org/bottest-token/setWebhook",
            "https://api.telegram.org/bottest-token/getWebhookInfo",
        ]
        payload = mock_client.post.call_args_list[1][1]["json"]
        assert payload["url"] == WEBHOOK
        assert payload["allowed_updates"] == ["message"]

    def test_refused_webhook_is_a_failure(self):
        service = Mock()
        service.delete_webhook.return_value = {"ok": True}
        service.set_webhook.return_value = {"ok": False, "description": "Bad Request: bad webhook"}

        result = register_webhook(service, "http://localhost/webhook/telegram")

        assert result.ok is False
        assert result.error_code == "telegram_error"
        service.get_webhook_info.assert_not_called()


@pytest.fixture
def telegram_service():
    service = Mock()
    service.delete_webhook.return_value = {"ok": True}
    service.set_webhook.return_value = {"ok": True}
    service.get_webhook_info.return_value = {"ok": True, "result": {"url": WEBHOOK}}
    return service


@pytest.fixture
def client(telegram_service):
    app.dependency_overrides[get_telegram_service] = lambda: telegram_service
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def configured():
    with patch.multiple(
        settings,
        notifications_admin_token="secret",
        telegram_bot_token="test-token",
        webhook_base_url="https://bot.exemplo.com/",
    ):
        yield


class TestTelegramWebhookEndpoint:
    def test_requires_admin_token(self, client, configured, telegram_service):
        response = client.post(URL, headers={"X-Admin-Token": "wrong"})

        assert response.status_code == 401
        telegram_service.set_webhook.assert_not_called()

    def test_registers_default_url(self, client, configured, telegram_service):
        response = client.post(URL, headers={"X-Admin-Token": "secret"})

        assert response.status_code == 200
        assert response.json() == {"success": True, "webhook_url": WEBHOOK, "webhook_info": {"url": WEBHOOK}}
        telegram_service.set_webhook.assert_called_once_with(WEBHOOK)

    def test_explicit_url_wins(self, client, configured, telegram_service):
        response = client.post(
            URL,
            json={"webhook_url": "https://outro.exemplo.com/webhook/telegram"},
            headers={"X-Admin-Token": "secret"},
        )

        assert response.status_code == 200
        telegram_service.set_webhook.assert_called_once_with("https://outro.exemplo.com/webhook/telegram")

    def test_refusal_is_reported(self, client, configured, telegram_service):
        telegram_service.set_webhook.return_value = {"ok": False, "description": "Unauthorized"}

        response = client.post(URL, headers={"X-Admin-Token": "secret"})

        assert response.status_code == 502
        assert "Unauthorized" in response.json()["detail"]

    def test_missing_url_configuration(self, client, configured):
        with patch.object(settings, "webhook_base_url", ""):
            response = client.post(URL, headers={"X-Admin-Token": "secret"})

        assert response.status_code == 400
