from typing import Any, Optional

from pydantic import ValidationError

from proposal_bot.config import settings
from proposal_bot.logging_config import get_logger
from proposal_bot.schemas.conversation import Channel, Choice, InboundKind, InboundMessage, OutboundMessage, ProposalFlow
from proposal_bot.schemas.telegram import TelegramUpdate
from proposal_bot.services.channels.base import ChannelAdapter
from proposal_bot.services.llm import LLMProvider
from proposal_bot.services.telegram_service import (
    REMOVE_KEYBOARD,
    TelegramService,
    build_contact_keyboard,
    build_reply_keyboard,
)

logger = get_logger("channels.telegram")

SHARE_CONTACT_LABEL = "📱 Compartilhar meu telefone"


class TelegramAdapter(ChannelAdapter):
    channel = Channel.TELEGRAM
    proposal_flow = ProposalFlow.AI
    sender_is_verified_phone = False
    choice_labels = {
        Choice.CREATE_PROPOSAL: "📝 Criar proposta",
        Choice.VIEW_STATUS: "📋 Minhas propostas",
        Choice.YES: "✅ Sim",
        Choice.NO: "❌ Não",
        Choice.SKIP: "⏭️ Pular",
        Choice.CREATE_ANOTHER: "➕ Criar outra proposta",
        Choice.FINISH: "🏁 Encerrar",
    }

    def __init__(self, service: Optional[TelegramService] = None, transcriber: Optional[LLMProvider] = None):
        super().__init__(transcriber=transcriber)
        self.service = service or TelegramService(settings.telegram_bot_token)

    def parse_inbound(self, payload: Any) -> Optional[InboundMessage]:
        try:
            update = TelegramUpdate(**payload)
        except (ValidationError, TypeError) as e:
            logger.warning(f"Malformed Telegram update: {e}")
            return None

        message = update.message
        if message is None:
            return None
        if message.from_user and message.from_user.is_bot:
            return None
        if message.chat.type != "private":
            return None

        sender_name = message.from_user.first_name if message.from_user else None
        base = {
            "channel": self.channel,
            "external_user_id": str(message.chat.id),
            "message_id": str(message.message_id),
            "sender_name": sender_name,
        }

        if message.contact:
            contact = message.contact
            # only the sender's own contact card proves who they are
            if contact.user_id and message.from_user and contact.user_id != message.from_user.id:
                logger.info(f"Ignoring foreign contact card from chat {message.chat.id}")
                return InboundMessage(kind=InboundKind.TEXT, text=None, **base)
            return InboundMessage(kind=InboundKind.CONTACT_SHARE, contact_phone=contact.phone_number, **base)

        voice = message.voice or message.audio
        if voice:
            return InboundMessage(
                kind=InboundKind.VOICE_TRANSCRIPT,
                media_ref=voice.file_id,
                media_type=voice.mime_type or "audio/ogg",
                **base,
            )

        text = message.text or message.caption
        return InboundMessage(kind=InboundKind.TEXT, text=text, choice=self.match_choice(text), **base)

    def send_outbound(self, external_user_id: str, message: OutboundMessage) -> bool:
        if message.request_contact:
            markup = build_contact_keyboard(SHARE_CONTACT_LABEL)
        elif message.quick_replies:
            markup = build_reply_keyboard([self.render_choice(choice) for choice in message.quick_replies])
        else:
            markup = REMOVE_KEYBOARD

        result = self.service.send_message(external_user_id, message.text, reply_markup=markup)
        if result.get("ok"):
            return True

        # user supplied titles/names can break Markdown entities; send as plain text instead
        if "parse entities" in str(result.get("description", "")):
            result = self.service.send_message(external_user_id, message.text, reply_markup=markup, parse_mode=None)
            if result.get("ok"):
                return True

        logger.warning(
            "Telegram delivery failed",
            extra={"context": {"chat_id": external_user_id, "description": result.get("description")}},
        )
        return False

    def download_media(self, media_ref: str) -> Optional[bytes]:
        file_path = self.service.get_file_path(media_ref)
        if not file_path:
            return None
        return self.service.download_file(file_path)
