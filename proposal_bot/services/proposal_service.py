import html
import secrets
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from proposal_bot.config import settings
from proposal_bot.logging_config import get_logger
from proposal_bot.models import Client, Company, Proposal
from proposal_bot.schemas.conversation import Channel, OutboundMessage, ProposalDraft
from proposal_bot.services.channels import get_adapter
from proposal_bot.services.email_service import send_email
from proposal_bot.services.formatting import ProposalSummary, format_brl
from proposal_bot.services.identity_service import get_linked_channels
from proposal_bot.services.result import Result

logger = get_logger("proposal_service")

LINK_PLACEHOLDER = "[LINK_DA_PROPOSTA]"


class ProposalStatus(str, Enum):
    DRAFT = "rascunho"
    SENT = "enviada"
    VIEWED = "visualizada"
    ACCEPTED = "aceita"
    REJECTED = "rejeitada"


STATUS_NOTIFICATIONS = {
    ProposalStatus.VIEWED.value: "👀 Sua proposta *{title}* foi visualizada por {client}.",
    ProposalStatus.ACCEPTED.value: "🎉 Sua proposta *{title}* foi aceita por {client}!",
    ProposalStatus.REJECTED.value: "❌ Sua proposta *{title}* foi rejeitada por {client}.",
}


def public_url(public_hash: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}/proposta/{public_hash}"


def _find_client(db: Session, operator_id: UUID, draft: ProposalDraft) -> Optional[Client]:
    conditions = [func.lower(Client.name) == draft.client_name.strip().lower()]
    if draft.client_email:
        conditions.append(func.lower(Client.email) == draft.client_email.strip().lower())
    return (
        db.query(Client)
        .filter(Client.user_id == operator_id, or_(*conditions))
        .order_by(Client.created_at.desc())
        .first()
    )


def _find_or_create_client(db: Session, operator_id: UUID, draft: ProposalDraft) -> Client:
    client = _find_client(db, operator_id, draft)
    if client:
        # fill gaps, never overwrite what the operator edited in the dashboard
        if draft.client_email and not client.email:
            client.email = draft.client_email
        if draft.client_phone and not client.phone:
            client.phone = draft.client_phone
        db.flush()
        return client

    client = Client(
        id=uuid.uuid4(),
        user_id=operator_id,
        name=draft.client_name.strip(),
        email=draft.client_email,
        phone=draft.client_phone,
    )
    db.add(client)
    db.flush()
    logger.info(f"Created client {client.id} for operator {operator_id}")
    return client


def commit_proposal(db: Session, operator_id: UUID, draft: ProposalDraft) -> Result[UUID]:
    """
    Persist a complete draft: counterparty first, then the proposal.

    Each step runs in its own savepoint. When the counterparty step fails the
    proposal is not attempted, so no proposal is ever left without the client
    it was meant for.
    """
    missing = draft.missing_required_fields()
    if missing:
        return Result.failure(f"Draft incomplete: {missing}", "incomplete_draft")

    client_id = None
    if draft.client_name:
        try:
            with db.begin_nested():
                client_id = _find_or_create_client(db, operator_id, draft).id
        except SQLAlchemyError as e:
            logger.error(f"Client step failed for operator {operator_id}: {e}")
            return Result.failure(str(e), "client_error")

    try:
        with db.begin_nested():
            proposal = Proposal(
                id=uuid.uuid4(),
                user_id=operator_id,
                client_id=client_id,
                title=draft.title.strip(),
                service_description=draft.service_description,
                detailed_description=draft.detailed_description,
                value=draft.value,
                delivery_time=draft.delivery_time,
                validity_date=draft.validity_date,
                observations=draft.observations,
                status=ProposalStatus.DRAFT.value,
                public_hash=secrets.token_urlsafe(16),
                views=0,
            )
            db.add(proposal)
            db.flush()
    except SQLAlchemyError as e:
        logger.error(f"Proposal step failed for operator {operator_id}: {e}")
        return Result.failure(str(e), "proposal_error")

    logger.info(
        "Proposal committed",
        extra={"context": {"proposal_id": str(proposal.id), "operator_id": str(operator_id), "client_id": str(client_id)}},
    )
    return Result.success(proposal.id)


def _email_html(proposal: Proposal, company_name: Optional[str], message: str, url: str) -> str:
    sender = html.escape(company_name or "Sua proposta")
    body = html.escape(message).replace("\n", "<br>")
    return (
        f"<h2>{html.escape(proposal.title)}</h2>"
        f"<p>{body}</p>"
        f"<p><strong>Valor:</strong> {format_brl(proposal.value)}<br>"
        f"<strong>Prazo:</strong> {html.escape(proposal.delivery_time or '-')}</p>"
        f'<p><a href="{html.escape(url)}">Ver proposta completa</a></p>'
        f"<p>{sender}</p>"
    )


def send_proposal_by_email(
    db: Session,
    proposal_id: UUID,
    recipient_email: str,
    subject: Optional[str] = None,
    message: Optional[str] = None,
) -> Result[str]:
    """
    E-mail the public link of a proposal. Returns the public URL.

    A failed send leaves the proposal untouched; a successful one marks it as sent.
    """
    proposal = db.query(Proposal).filter(Proposal.id == proposal_id).first()
    if not proposal:
        return Result.failure(f"Proposal {proposal_id} not found", "not_found")

    if not proposal.public_hash:
        proposal.public_hash = secrets.token_urlsafe(16)
        db.flush()

    url = public_url(proposal.public_hash)
    company = db.query(Company).filter(Company.user_id == proposal.user_id).first()
    client_name = proposal.client.name if proposal.client else None

    subject = subject or f"Proposta: {proposal.title}"
    if message:
        message = message.replace(LINK_PLACEHOLDER, url)
    else:
        greeting = f"Olá, {client_name}!" if client_name else "Olá!"
        message = f"{greeting}\n\nSegue a proposta '{proposal.title}'. Ela está disponível em: {url}"

    result = send_email(recipient_email, subject, _email_html(proposal, company.name if company else None, message, url))
    if not result.ok:
        logger.warning(f"Proposal {proposal_id} e-mail failed: {result.error}")
        return Result.failure(result.error, result.error_code or "email_error")

    proposal.status = ProposalStatus.SENT.value
    proposal.updated_at = datetime.now(timezone.utc)
    if proposal.client and not proposal.client.email:
        proposal.client.email = recipient_email
    db.flush()

    logger.info(f"Proposal {proposal_id} sent to {recipient_email}")
    return Result.success(url)


def list_recent_proposals(db: Session, operator_id: UUID, limit: int = 10) -> list[ProposalSummary]:
    rows = (
        db.query(Proposal.id, Proposal.title, Client.name, Proposal.value, Proposal.status)
        .outerjoin(Client, Proposal.client_id == Client.id)
        .filter(Proposal.user_id == operator_id)
        .order_by(Proposal.created_at.desc(), Proposal.id)
        .limit(limit)
        .all()
    )
    return [
        ProposalSummary(id=row[0], title=row[1], client_name=row[2], value=row[3], status=row[4]) for row in rows
    ]


def update_proposal_status(db: Session, proposal_id: UUID, status: str) -> Result[Proposal]:
    try:
        new_status = ProposalStatus(status)
    except ValueError:
        return Result.failure(f"Unknown status: {status}", "invalid_status")

    proposal = db.query(Proposal).filter(Proposal.id == proposal_id).first()
    if not proposal:
        return Result.failure(f"Proposal {proposal_id} not found", "not_found")

    proposal.status = new_status.value
    proposal.updated_at = datetime.now(timezone.utc)
    if new_status == ProposalStatus.VIEWED:
        proposal.views = (proposal.views or 0) + 1
    db.flush()
    return Result.success(proposal)


def build_status_notification(proposal: Proposal) -> Optional[str]:
    template = STATUS_NOTIFICATIONS.get(proposal.status)
    if not template:
        return None
    client = proposal.client.name if proposal.client else "o cliente"
    return template.format(title=proposal.title, client=client)


def notify_operator(db: Session, operator_id: UUID, text: str, adapters: Optional[dict] = None) -> int:
    """Push ``text`` to every chat the operator linked; returns how many deliveries succeeded."""
    adapters = adapters or {}
    delivered = 0
    for link in get_linked_channels(db, operator_id):
        channel = Channel(link.channel)
        adapter = adapters.get(channel) or get_adapter(channel)
        if adapter.send_outbound(link.external_user_id, OutboundMessage(text=text)):
            delivered += 1
        else:
            logger.warning(f"Notification to operator {operator_id} via {channel.value} failed")
    return delivered
