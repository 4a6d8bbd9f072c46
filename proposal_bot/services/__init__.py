from proposal_bot.services.conversation_service import ProcessResult, process_inbound, process_inbound_task
from proposal_bot.services.identity_service import link_channel, resolve_identity
from proposal_bot.services.proposal_service import (
    commit_proposal,
    list_recent_proposals,
    send_proposal_by_email,
    update_proposal_status,
)
from proposal_bot.services.result import Result
from proposal_bot.services.session_service import delete_session, load_session, save_session
from proposal_bot.services.state_machine import SessionState, Step, StepOutcome, advance

__all__ = [
    "ProcessResult",
    "Result",
    "SessionState",
    "Step",
    "StepOutcome",
    "advance",
    "commit_proposal",
    "delete_session",
    "link_channel",
    "list_recent_proposals",
    "load_session",
    "process_inbound",
    "process_inbound_task",
    "resolve_identity",
    "save_session",
    "send_proposal_by_email",
    "update_proposal_status",
]
