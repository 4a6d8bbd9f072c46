"""
One inbound chat message, end to end:

dedup -> load session -> resolve identity / run extraction -> advance ->
send replies -> run commit/email/listing -> save or delete session -> commit.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.orm import Session

from proposal_bot.database import SessionLocal
from proposal_bot.logging_config import SessionLoggerAdapter, get_logger
from proposal_bot.schemas.conversation import InboundKind, InboundMessage, OutboundMessage
from proposal_bot.services.alert_service import alert_error, alert_warning
from proposal_bot.services.channels import ChannelAdapter
from proposal_bot.services.extraction_service import ExtractionError, ExtractionResult, extract_proposal
from proposal_bot.services.identity_service import link_channel, resolve_identity
from proposal_bot.services.proposal_service import commit_proposal, list_recent_proposals, send_proposal_by_email
from proposal_bot.services.session_service import delete_session, load_session, register_inbound_message, save_session
from proposal_bot.services.state_machine import (
    CommitAction,
    ListProposalsAction,
    SendEmailAction,
    SessionState,
    Step,
    StepOutcome,
    advance,
    after_commit,
    after_email,
    after_listing,
    needs_extraction,
    needs_identity,
)

logger = get_logger("conversation_service")

TRY_AGAIN_TEXT = "⚠️ Tive um problema ao processar sua mensagem. Tente novamente em instantes."

Extractor = Callable[[str], ExtractionResult]


@dataclass
class ProcessResult:
    processed: bool = False
    duplicate: bool = False
    step: Optional[str] = None
    replies_sent: int = 0
    error: Optional[str] = None


def _as_verified_contact(adapter: ChannelAdapter, state: SessionState, inbound: InboundMessage) -> InboundMessage:
    """On channels whose sender id is a verified phone, any message in ``start`` identifies the sender."""
    if not adapter.sender_is_verified_phone or state.step != Step.START:
        return inbound
    if inbound.kind == InboundKind.CONTACT_SHARE:
        return inbound
    return inbound.model_copy(update={"kind": InboundKind.CONTACT_SHARE, "contact_phone": inbound.external_user_id})


def _step(
    db: Session,
    state: SessionState,
    inbound: InboundMessage,
    extractor: Extractor,
    log: SessionLoggerAdapter,
) -> StepOutcome:
    identity = None
    if needs_identity(state, inbound):
        identity = resolve_identity(db, inbound.channel, inbound.contact_phone)
        log.info("Identity resolved", context={"known_operator": identity.is_known_operator})

    extraction = None
    if needs_extraction(state, inbound):
        try:
            extraction = extractor(inbound.text)
        except ExtractionError as e:
            log.warning(f"Extraction failed: {e}", context={"failures": state.extraction_failures + 1})
            extraction = e

    return advance(state, inbound, identity=identity, extraction=extraction)


def _run_action(db: Session, outcome: StepOutcome, log: SessionLoggerAdapter) -> Optional[StepOutcome]:
    action = outcome.action
    if action is None:
        return None

    if isinstance(action, CommitAction):
        result = commit_proposal(db, action.operator_id, action.draft)
        if result.ok:
            log.info("Proposal created", context={"proposal_id": str(result.value)})
        else:
            log.error(f"Commit failed: {result.error}", context={"error_code": result.error_code})
            alert_error(
                "Proposal commit failed",
                {"operator_id": str(action.operator_id), "error_code": result.error_code, "error": result.error},
            )
        return after_commit(outcome.state, action, result)

    if isinstance(action, SendEmailAction):
        result = send_proposal_by_email(db, action.proposal_id, action.recipient_email)
        if not result.ok:
            log.warning(f"E-mail failed: {result.error}", context={"proposal_id": str(action.proposal_id)})
        return after_email(outcome.state, result)

    if isinstance(action, ListProposalsAction):
        proposals = list_recent_proposals(db, action.operator_id, limit=action.limit)
        return after_listing(outcome.state, proposals)

    raise TypeError(f"Unknown action: {action!r}")


def _send(adapter: ChannelAdapter, inbound: InboundMessage, replies: list[OutboundMessage], log) -> int:
    sent = 0
    for reply in replies:
        if adapter.send_outbound(inbound.external_user_id, reply):
            sent += 1
        else:
            log.warning("Reply not delivered")
            alert_warning(
                "Outbound delivery failed",
                {"channel": inbound.channel.value, "external_user_id": inbound.external_user_id},
            )
    return sent


def process_inbound(
    db: Session,
    adapter: ChannelAdapter,
    inbound: InboundMessage,
    extractor: Optional[Extractor] = None,
) -> ProcessResult:
    """
    Handle one normalized inbound message. Never raises: failures are logged,
    alerted, answered with a generic reply and rolled back.
    """
    extractor = extractor or extract_proposal
    log = SessionLoggerAdapter(
        logger,
        {
            "channel": inbound.channel.value,
            "external_user_id": inbound.external_user_id,
            "message_id": inbound.message_id,
        },
    )

    try:
        if not register_inbound_message(db, inbound.channel, inbound.external_user_id, inbound.message_id):
            log.info("Duplicate delivery ignored")
            db.commit()
            return ProcessResult(duplicate=True)

        inbound = adapter.resolve_media(inbound)

        state = load_session(db, inbound.channel, inbound.external_user_id)
        if state is None:
            state = SessionState.initial(inbound.channel, inbound.external_user_id, adapter.proposal_flow)
        previous_operator_id = state.resolved_operator_id

        outcome = _step(db, state, _as_verified_contact(adapter, state, inbound), extractor, log)
        if outcome.reset and outcome.state is not None and adapter.sender_is_verified_phone:
            # restart on a verified-phone channel identifies the sender again right away
            restarted = _as_verified_contact(adapter, outcome.state, inbound)
            outcome = _step(db, outcome.state, restarted, extractor, log)
            outcome.reset = True
            previous_operator_id = None

        log.info(
            "Step advanced",
            context={
                "from_step": state.step.value,
                "to_step": outcome.state.step.value if outcome.state else None,
                "action": type(outcome.action).__name__ if outcome.action else None,
            },
        )

        sent = _send(adapter, inbound, outcome.replies, log)

        final = outcome
        follow_up = _run_action(db, outcome, log)
        if follow_up is not None:
            sent += _send(adapter, inbound, follow_up.replies, log)
            final = follow_up

        if final.state is not None and final.state.resolved_operator_id and not previous_operator_id:
            link_channel(db, final.state.resolved_operator_id, inbound.channel, inbound.external_user_id)

        if outcome.reset or final.state is None:
            delete_session(db, inbound.channel, inbound.external_user_id)
        if final.state is not None:
            save_session(db, final.state)

        db.commit()
        return ProcessResult(
            processed=True,
            step=final.state.step.value if final.state else None,
            replies_sent=sent,
        )

    except Exception as e:
        log.error(f"Unhandled error processing message: {e}", exc_info=True)
        db.rollback()
        alert_error(
            "Conversation processing failed",
            {"channel": inbound.channel.value, "external_user_id": inbound.external_user_id, "error": str(e)},
        )
        adapter.send_outbound(inbound.external_user_id, OutboundMessage(text=TRY_AGAIN_TEXT))
        return ProcessResult(error=str(e))


def process_inbound_task(adapter: ChannelAdapter, inbound: InboundMessage) -> ProcessResult:
    """Background-task entry point: owns its database session."""
    db = SessionLocal()
    try:
        return process_inbound(db, adapter, inbound)
    finally:
        db.close()
