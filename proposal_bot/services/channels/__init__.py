from proposal_bot.schemas.conversation import Channel
from proposal_bot.services.channels.base import ChannelAdapter, normalize_label
from proposal_bot.services.channels.telegram import TelegramAdapter
from proposal_bot.services.channels.whatsapp import WhatsAppAdapter

__all__ = [
    "ChannelAdapter",
    "TelegramAdapter",
    "WhatsAppAdapter",
    "get_adapter",
    "get_telegram_adapter",
    "get_whatsapp_adapter",
    "normalize_label",
]


def get_telegram_adapter() -> TelegramAdapter:
    return TelegramAdapter()


def get_whatsapp_adapter() -> WhatsAppAdapter:
    return WhatsAppAdapter()


def get_adapter(channel: Channel) -> ChannelAdapter:
    if Channel(channel) == Channel.TELEGRAM:
        return get_telegram_adapter()
    return get_whatsapp_adapter()
