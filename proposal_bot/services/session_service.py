"""Durable conversation sessions, one row per (channel, external user id)."""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import ValidationError
from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from proposal_bot.config import settings
from proposal_bot.logging_config import get_logger
from proposal_bot.models import BotSession, InboundMessageLog
from proposal_bot.schemas.conversation import Channel, Choice, ProposalDraft, ProposalFlow
from proposal_bot.services.state_machine import SessionState, Step

logger = get_logger("session_service")


def _expiry(now: datetime) -> datetime:
    return now + timedelta(hours=settings.session_ttl_hours)


def _row_to_state(row: BotSession) -> SessionState:
    context = row.context or {}
    try:
        draft = ProposalDraft.model_validate(row.draft or {})
    except ValidationError as e:
        # unreadable draft (older version): keep the conversation, lose the partial data
        logger.warning(f"Discarding invalid draft of session {row.id}: {e}")
        draft = ProposalDraft()

    last_proposal_id = context.get("last_proposal_id")
    return SessionState(
        channel=Channel(row.channel),
        external_user_id=row.external_user_id,
        step=Step(row.step),
        draft=draft,
        flow=ProposalFlow(context.get("flow", ProposalFlow.AI.value)),
        resolved_operator_id=row.resolved_operator_id,
        operator_name=context.get("operator_name"),
        offered_choices=[Choice(token) for token in context.get("offered_choices", [])],
        extraction_failures=int(context.get("extraction_failures", 0)),
        last_proposal_id=uuid.UUID(last_proposal_id) if last_proposal_id else None,
        created_at=row.created_at,
        expires_at=row.expires_at,
    )


def _state_context(state: SessionState) -> dict:
    return {
        "flow": state.flow.value,
        "operator_name": state.operator_name,
        "offered_choices": [choice.value for choice in state.offered_choices],
        "extraction_failures": state.extraction_failures,
        "last_proposal_id": str(state.last_proposal_id) if state.last_proposal_id else None,
    }


def _get_row(db: Session, channel: Channel, external_user_id: str, lock: bool = True) -> Optional[BotSession]:
    query = db.query(BotSession).filter(
        BotSession.channel == channel.value,
        BotSession.external_user_id == external_user_id,
    )
    if lock:
        query = query.with_for_update()
    return query.first()


def load_session(
    db: Session,
    channel: Channel,
    external_user_id: str,
    now: Optional[datetime] = None,
) -> Optional[SessionState]:
    """
    Load and lock the sender's session.

    The row stays locked (SELECT ... FOR UPDATE) until the caller commits, so two
    requests for the same sender are processed one after the other. An expired
    session is deleted here and reported as absent.
    """
    now = now or datetime.now(timezone.utc)
    row = _get_row(db, channel, external_user_id)
    if row is None:
        return None

    if row.expires_at is not None and row.expires_at <= now:
        logger.info(
            "Session expired",
            extra={"context": {"channel": channel.value, "step": row.step, "expired_at": row.expires_at}},
        )
        db.delete(row)
        db.flush()
        return None

    return _row_to_state(row)


def save_session(db: Session, state: SessionState, now: Optional[datetime] = None) -> SessionState:
    """
    Write the whole state back and push the expiry TTL forward.

    The first message of a new sender has no row to lock, so the write is an
    upsert: two concurrent first messages both land and the last one wins.
    """
    now = now or datetime.now(timezone.utc)
    row = _get_row(db, state.channel, state.external_user_id)

    if row is not None and row.resolved_operator_id and state.resolved_operator_id != row.resolved_operator_id:
        logger.warning(
            "Refusing to change the operator of a live session",
            extra={
                "context": {
                    "channel": state.channel.value,
                    "stored_operator_id": row.resolved_operator_id,
                    "new_operator_id": state.resolved_operator_id,
                }
            },
        )
        state = state.evolve(resolved_operator_id=row.resolved_operator_id)

    values = {
        "step": state.step.value,
        "draft": state.draft.model_dump(mode="json"),
        "context": _state_context(state),
        "resolved_operator_id": state.resolved_operator_id,
        "updated_at": now,
        "expires_at": _expiry(now),
    }
    stmt = insert(BotSession).values(
        id=uuid.uuid4(),
        channel=state.channel.value,
        external_user_id=state.external_user_id,
        created_at=now,
        **values,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["channel", "external_user_id"],
        set_={
            **values,
            # a row inserted concurrently keeps the operator it was resolved to
            "resolved_operator_id": func.coalesce(BotSession.resolved_operator_id, stmt.excluded.resolved_operator_id),
        },
    )
    db.execute(stmt)

    created_at = row.created_at if row is not None and row.created_at else now
    return state.evolve(created_at=created_at, expires_at=values["expires_at"])


def delete_session(db: Session, channel: Channel, external_user_id: str) -> bool:
    deleted = (
        db.query(BotSession)
        .filter(BotSession.channel == channel.value, BotSession.external_user_id == external_user_id)
        .delete(synchronize_session=False)
    )
    db.flush()
    return deleted > 0


def register_inbound_message(db: Session, channel: Channel, external_user_id: str, message_id: Optional[str]) -> bool:
    """
    Record a provider message id. Returns False when it was already seen
    (provider retry), True for new or id-less messages.
    """
    if not message_id:
        return True

    stmt = (
        insert(InboundMessageLog)
        .values(
            id=uuid.uuid4(),
            channel=channel.value,
            external_user_id=external_user_id,
            message_id=message_id,
            received_at=datetime.now(timezone.utc),
        )
        .on_conflict_do_nothing(index_elements=["channel", "external_user_id", "message_id"])
    )
    result = db.execute(stmt)
    return result.rowcount > 0


def purge_expired(db: Session, now: Optional[datetime] = None) -> dict:
    """Delete expired sessions and message ids older than the session TTL."""
    now = now or datetime.now(timezone.utc)
    sessions = db.query(BotSession).filter(BotSession.expires_at <= now).delete(synchronize_session=False)
    messages = (
        db.query(InboundMessageLog)
        .filter(InboundMessageLog.received_at <= now - timedelta(hours=settings.session_ttl_hours))
        .delete(synchronize_session=False)
    )
    db.commit()
    if sessions or messages:
        logger.info(f"Purged {sessions} expired sessions and {messages} message ids")
    return {"sessions": sessions, "messages": messages}
