from proposal_bot.schemas.conversation import (
    Channel,
    Choice,
    Identity,
    InboundKind,
    InboundMessage,
    OutboundMessage,
    ProposalDraft,
    ProposalFlow,
)
from proposal_bot.schemas.webhook import WebhookAck

__all__ = [
    "Channel",
    "Choice",
    "Identity",
    "InboundKind",
    "InboundMessage",
    "OutboundMessage",
    "ProposalDraft",
    "ProposalFlow",
    "WebhookAck",
]
