from proposal_bot.models.bot_session import BotSession
from proposal_bot.models.client import Client
from proposal_bot.models.company import Company
from proposal_bot.models.inbound_message import InboundMessageLog
from proposal_bot.models.operator_channel import OperatorChannel
from proposal_bot.models.profile import Profile
from proposal_bot.models.proposal import Proposal

__all__ = [
    "BotSession",
    "Client",
    "Company",
    "InboundMessageLog",
    "OperatorChannel",
    "Profile",
    "Proposal",
]
