import uuid
from decimal import Decimal
from unittest.mock import MagicMock, Mock, patch

from sqlalchemy.exc import SQLAlchemyError

from proposal_bot.models import Client, Proposal
from proposal_bot.schemas.conversation import Channel, ProposalDraft
from proposal_bot.services.proposal_service import (
    ProposalStatus,
    build_status_notification,
    commit_proposal,
    list_recent_proposals,
    notify_operator,
    send_proposal_by_email,
    update_proposal_status,
)
from proposal_bot.services.result import Result


def _client_lookup(db, client):
    db.query.return_value.filter.return_value.order_by.return_value.first.return_value = client


class TestCommitProposal:
    def test_creates_client_then_proposal(self, db_session, operator_id, complete_draft):
        _client_lookup(db_session, None)

        result = commit_proposal(db_session, operator_id, complete_draft)

        assert result.ok is True
        added = [call[0][0] for call in db_session.add.call_args_list]
        assert isinstance(added[0], Client)
        assert added[0].name == "João"
        assert added[0].user_id == operator_id
        assert isinstance(added[1], Proposal)
        assert added[1].client_id == added[0].id
        assert added[1].status == ProposalStatus.DRAFT.value == "rascunho"
        assert added[1].public_hash
        assert result.value == added[1].id

    def test_reuses_existing_client(self, db_session, operator_id, complete_draft):
        existing = Client(id=uuid.uuid4(), user_id=operator_id, name="joão", email=None)
        _client_lookup(db_session, existing)
        draft = complete_draft.model_copy(update={"client_email": "joao@exemplo.com"})

        result = commit_proposal(db_session, operator_id, draft)

        assert result.ok is True
        added = [call[0][0] for call in db_session.add.call_args_list]
        assert len(added) == 1
        assert added[0].client_id == existing.id
        assert existing.email == "joao@exemplo.com"

    def test_client_failure_never_creates_proposal(self, db_session, operator_id, complete_draft):
        _client_lookup(db_session, None)
        db_session.flush.side_effect = SQLAlchemyError("connection lost")

        result = commit_proposal(db_session, operator_id, complete_draft)

        assert result.ok is False
        assert result.error_code == "client_error"
        assert db_session.add.call_count == 1
        assert isinstance(db_session.add.call_args[0][0], Client)

    def test_proposal_failure_is_reported(self, db_session, operator_id, complete_draft):
        _client_lookup(db_session, None)
        db_session.flush.side_effect = [None, SQLAlchemyError("constraint")]

        result = commit_proposal(db_session, operator_id, complete_draft)

        assert result.ok is False
        assert result.error_code == "proposal_error"

    def test_incomplete_draft_is_refused(self, db_session, operator_id):
        result = commit_proposal(db_session, operator_id, ProposalDraft(title="X"))

        assert result.error_code == "incomplete_draft"
        db_session.add.assert_not_called()


class TestSendProposalByEmail:
    def _proposal(self, operator_id):
        client = Client(id=uuid.uuid4(), user_id=operator_id, name="João", email=None)
        return Proposal(
            id=uuid.uuid4(),
            user_id=operator_id,
            title="Reforma",
            value=Decimal("3000"),
            delivery_time="10 dias",
            status="rascunho",
            public_hash="abc123",
            client=client,
        )

    @patch("proposal_bot.services.proposal_service.send_email")
    def test_success_marks_sent_and_returns_public_url(self, mock_send, db_session, operator_id):
        proposal = self._proposal(operator_id)
        db_session.query.return_value.filter.return_value.first.side_effect = [proposal, None]
        mock_send.return_value = Result.success("msg-1")

        result = send_proposal_by_email(db_session, proposal.id, "joao@exemplo.com")

        assert result.ok is True
        assert result.value == "http://localhost:8080/proposta/abc123"
        assert proposal.status == ProposalStatus.SENT.value
        assert proposal.client.email == "joao@exemplo.com"
        to, subject, html = mock_send.call_args[0]
        assert to == "joao@exemplo.com"
        assert subject == "Proposta: Reforma"
        assert "R$ 3.000,00" in html
        assert "/proposta/abc123" in html

    @patch("proposal_bot.services.proposal_service.send_email")
    def test_custom_message_gets_the_link(self, mock_send, db_session, operator_id):
        proposal = self._proposal(operator_id)
        db_session.query.return_value.filter.return_value.first.side_effect = [proposal, None]
        mock_send.return_value = Result.success("msg-1")

        send_proposal_by_email(db_session, proposal.id, "a@b.com", subject="Oi", message="Veja: [LINK_DA_PROPOSTA]")

        html = mock_send.call_args[0][2]
        assert "Veja: http://localhost:8080/proposta/abc123" in html

    @patch("proposal_bot.services.proposal_service.send_email")
    def test_failure_leaves_proposal_untouched(self, mock_send, db_session, operator_id):
        proposal = self._proposal(operator_id)
        db_session.query.return_value.filter.return_value.first.side_effect = [proposal, None]
        mock_send.return_value = Result.failure("timeout", "email_error")

        result = send_proposal_by_email(db_session, proposal.id, "joao@exemplo.com")

        assert result.ok is False
        assert proposal.status == "rascunho"

    def test_unknown_proposal(self, db_session):
        db_session.query.return_value.filter.return_value.first.return_value = None

        result = send_proposal_by_email(db_session, uuid.uuid4(), "joao@exemplo.com")

        assert result.error_code == "not_found"


class TestListAndStatus:
    def test_list_recent_proposals(self, db_session, operator_id):
        proposal_id = uuid.uuid4()
        query = db_session.query.return_value.outerjoin.return_value.filter.return_value.order_by.return_value
        query.limit.return_value.all.return_value = [(proposal_id, "Reforma", "João", Decimal("3000"), "rascunho")]

        summaries = list_recent_proposals(db_session, operator_id, limit=10)

        query.limit.assert_called_once_with(10)
        assert summaries[0].id == proposal_id
        assert summaries[0].client_name == "João"

    def test_update_status(self, db_session):
        proposal = Proposal(id=uuid.uuid4(), title="X", status="enviada", views=2)
        db_session.query.return_value.filter.return_value.first.return_value = proposal

        result = update_proposal_status(db_session, proposal.id, "visualizada")

        assert result.ok is True
        assert proposal.status == "visualizada"
        assert proposal.views == 3

    def test_rejected_status_matches_web_app_value(self, db_session):
        proposal = Proposal(id=uuid.uuid4(), title="Reforma", status="enviada", views=1, client=Client(name="João"))
        db_session.query.return_value.filter.return_value.first.return_value = proposal

        result = update_proposal_status(db_session, proposal.id, "rejeitada")

        assert result.ok is True
        assert proposal.status == "rejeitada"
        assert build_status_notification(proposal) == "❌ Sua proposta *Reforma* foi rejeitada por João."

    def test_update_status_rejects_unknown_status(self, db_session):
        result = update_proposal_status(db_session, uuid.uuid4(), "arquivada")

        assert result.error_code == "invalid_status"

    def test_status_notification_text(self):
        proposal = Proposal(title="Reforma", status="aceita", client=Client(name="João"))

        assert build_status_notification(proposal) == "🎉 Sua proposta *Reforma* foi aceita por João!"

    def test_no_notification_for_draft(self):
        assert build_status_notification(Proposal(title="Reforma", status="rascunho")) is None


class TestNotifyOperator:
    @patch("proposal_bot.services.proposal_service.get_linked_channels")
    def test_pushes_to_every_linked_channel(self, mock_links, db_session, operator_id):
        mock_links.return_value = [
            Mock(channel="telegram", external_user_id="777"),
            Mock(channel="whatsapp", external_user_id="5511999999999"),
        ]
        telegram = Mock()
        telegram.send_outbound.return_value = True
        whatsapp = Mock()
        whatsapp.send_outbound.return_value = False

        delivered = notify_operator(
            db_session,
            operator_id,
            "Sua proposta foi aceita",
            adapters={Channel.TELEGRAM: telegram, Channel.WHATSAPP: whatsapp},
        )

        assert delivered == 1
        assert telegram.send_outbound.call_args[0][0] == "777"
        assert telegram.send_outbound.call_args[0][1].text == "Sua proposta foi aceita"
