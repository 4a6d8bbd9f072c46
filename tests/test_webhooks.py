import json
from types import SimpleNamespace
from unittest.mock import MagicMock, Mock, patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from proposal_bot.config import settings
from proposal_bot.database import get_db
from proposal_bot.main import app
from proposal_bot.models import Client, Proposal
from proposal_bot.routers.whatsapp_webhook import EMPTY_TWIML
from proposal_bot.schemas.conversation import Channel, InboundKind
from proposal_bot.services.channels import TelegramAdapter, WhatsAppAdapter, get_telegram_adapter, get_whatsapp_adapter
from proposal_bot.services.result import Result


@pytest.fixture
def db():
    return MagicMock()


@pytest.fixture
def client(db):
    app.dependency_overrides[get_telegram_adapter] = lambda: TelegramAdapter(service=Mock(), transcriber=Mock())
    app.dependency_overrides[get_whatsapp_adapter] = lambda: WhatsAppAdapter(service=Mock(), transcriber=Mock())
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _private_message(text="oi", chat_type="private"):
    return {
        "update_id": 10,
        "message": {
            "message_id": 5,
            "date": 1751371200,
            "chat": {"id": 777, "type": chat_type},
            "from": {"id": 777, "is_bot": False, "first_name": "Ana"},
            "text": text,
        },
    }


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestTelegramWebhook:
    def test_liveness_is_plain_text(self, client):
        response = client.get("/webhook/telegram")
        assert response.status_code == 200
        assert response.text == "Telegram webhook is running"

    def test_text_message_is_processed_in_background(self, client):
        with patch("proposal_bot.routers.telegram_webhook.process_inbound_task") as task:
            response = client.post("/webhook/telegram", json=_private_message("Criar proposta"))

        assert response.status_code == 200
        assert response.json() == {"ok": True, "message": "Accepted"}
        task.assert_called_once()
        inbound = task.call_args[0][1]
        assert inbound.channel == Channel.TELEGRAM
        assert inbound.external_user_id == "777"
        assert inbound.message_id == "5"
        assert inbound.kind == InboundKind.TEXT

    def test_group_message_is_ignored(self, client):
        with patch("proposal_bot.routers.telegram_webhook.process_inbound_task") as task:
            response = client.post("/webhook/telegram", json=_private_message(chat_type="group"))

        assert response.json()["message"] == "Ignored"
        task.assert_not_called()

    def test_update_without_message_is_ignored(self, client):
        with patch("proposal_bot.routers.telegram_webhook.process_inbound_task") as task:
            response = client.post("/webhook/telegram", json={"update_id": 11})

        assert response.status_code == 200
        assert response.json()["message"] == "Ignored"
        task.assert_not_called()

    def test_garbage_body_is_acknowledged(self, client):
        with patch("proposal_bot.routers.telegram_webhook.process_inbound_task") as task:
            response = client.post(
                "/webhook/telegram", content=b"not json", headers={"Content-Type": "application/json"}
            )

        assert response.status_code == 200
        assert response.json()["message"] == "Invalid payload"
        task.assert_not_called()

    def test_latin1_body_is_accepted(self, client):
        body = json.dumps(_private_message("Orçamento de reforma"), ensure_ascii=False).encode("latin-1")
        with patch("proposal_bot.routers.telegram_webhook.process_inbound_task") as task:
            response = client.post("/webhook/telegram", content=body, headers={"Content-Type": "application/json"})

        assert response.status_code == 200
        assert response.json()["message"] == "Accepted"
        assert task.call_args[0][1].text == "Orçamento de reforma"


class TestWhatsAppWebhook:
    def test_liveness_is_plain_text(self, client):
        response = client.get("/webhook/whatsapp")
        assert response.status_code == 200
        assert response.text == "WhatsApp webhook is running"

    def test_message_answers_with_empty_twiml(self, client):
        form = {"MessageSid": "SM123", "From": "whatsapp:+5511999999999", "Body": "Oi", "NumMedia": "0"}
        with patch("proposal_bot.routers.whatsapp_webhook.process_inbound_task") as task:
            response = client.post("/webhook/whatsapp", data=form)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        assert response.text == EMPTY_TWIML
        inbound = task.call_args[0][1]
        assert inbound.channel == Channel.WHATSAPP
        assert inbound.external_user_id == "5511999999999"
        assert inbound.text == "Oi"

    def test_status_callback_without_sender_is_ignored(self, client):
        with patch("proposal_bot.routers.whatsapp_webhook.process_inbound_task") as task:
            response = client.post("/webhook/whatsapp", data={"MessageSid": "SM124", "From": ""})

        assert response.status_code == 200
        assert response.text == EMPTY_TWIML
        task.assert_not_called()


class TestProposalStatusNotification:
    URL = "/notifications/proposal-status"

    def test_missing_token_configuration(self, client):
        with patch.object(settings, "notifications_admin_token", ""):
            response = client.post(self.URL, json={"proposal_id": str(uuid4()), "status": "aceita"})
        assert response.status_code == 500

    def test_wrong_token_is_rejected(self, client):
        with patch.object(settings, "notifications_admin_token", "secret"):
            response = client.post(
                self.URL,
                json={"proposal_id": str(uuid4()), "status": "aceita"},
                headers={"X-Admin-Token": "wrong"},
            )
        assert response.status_code == 401

    def test_unknown_proposal_is_404(self, client):
        with patch.object(settings, "notifications_admin_token", "secret"), patch(
            "proposal_bot.routers.notifications.update_proposal_status",
            return_value=Result.failure("not found", "not_found"),
        ):
            response = client.post(
                self.URL,
                json={"proposal_id": str(uuid4()), "status": "aceita"},
                headers={"X-Admin-Token": "secret"},
            )
        assert response.status_code == 404

    def test_accepted_proposal_notifies_operator(self, client, db):
        proposal = SimpleNamespace(id=uuid4(), user_id=uuid4(), status="aceita", title="Reforma", client=None)
        with patch.object(settings, "notifications_admin_token", "secret"), patch(
            "proposal_bot.routers.notifications.update_proposal_status", return_value=Result.success(proposal)
        ), patch("proposal_bot.routers.notifications.notify_operator", return_value=2) as notify:
            response = client.post(
                self.URL,
                json={"proposal_id": str(proposal.id), "status": "aceita"},
                headers={"X-Admin-Token": "secret"},
            )

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Status updated", "notified_channels": 2}
        db.commit.assert_called_once()
        text = notify.call_args[0][2]
        assert "Reforma" in text
        assert "aceita" in text

    def test_draft_status_does_not_notify(self, client):
        proposal = SimpleNamespace(id=uuid4(), user_id=uuid4(), status="rascunho", title="Reforma", client=None)
        with patch.object(settings, "notifications_admin_token", "secret"), patch(
            "proposal_bot.routers.notifications.update_proposal_status", return_value=Result.success(proposal)
        ), patch("proposal_bot.routers.notifications.notify_operator") as notify:
            response = client.post(
                self.URL,
                json={"proposal_id": str(proposal.id), "status": "rascunho"},
                headers={"X-Admin-Token": "secret"},
            )

        assert response.status_code == 200
        assert response.json()["notified_channels"] == 0
        notify.assert_not_called()

    def test_rejected_proposal_notifies_operator(self, client, db):
        proposal = Proposal(id=uuid4(), user_id=uuid4(), title="Reforma", status="enviada", client=Client(name="João"))
        db.query.return_value.filter.return_value.first.return_value = proposal
        with patch.object(settings, "notifications_admin_token", "secret"), patch(
            "proposal_bot.routers.notifications.notify_operator", return_value=1
        ) as notify:
            response = client.post(
                self.URL,
                json={"proposal_id": str(proposal.id), "status": "rejeitada"},
                headers={"X-Admin-Token": "secret"},
            )

        assert response.status_code == 200
        assert response.json()["notified_channels"] == 1
        assert proposal.status == "rejeitada"
        assert notify.call_args[0][2] == "❌ Sua proposta *Reforma* foi rejeitada por João."
