from typing import Any, Optional

from pydantic import ValidationError

from proposal_bot.config import settings
from proposal_bot.logging_config import get_logger
from proposal_bot.schemas.conversation import Channel, Choice, InboundKind, InboundMessage, OutboundMessage, ProposalFlow
from proposal_bot.schemas.twilio import TwilioWhatsAppInbound
from proposal_bot.services.channels.base import ChannelAdapter
from proposal_bot.services.llm import LLMProvider
from proposal_bot.services.phone_utils import normalize_phone, whatsapp_address
from proposal_bot.services.twilio_service import TwilioWhatsAppService

logger = get_logger("channels.whatsapp")


class WhatsAppAdapter(ChannelAdapter):
    """Twilio WhatsApp: plain text only, menus become numbered lists."""

    channel = Channel.WHATSAPP
    proposal_flow = ProposalFlow.STRUCTURED
    sender_is_verified_phone = True
    choice_labels = {
        Choice.CREATE_PROPOSAL: "Criar proposta",
        Choice.VIEW_STATUS: "Minhas propostas",
        Choice.YES: "Sim",
        Choice.NO: "Não",
        Choice.SKIP: "Pular",
        Choice.CREATE_ANOTHER: "Criar outra proposta",
        Choice.FINISH: "Encerrar",
    }

    def __init__(self, service: Optional[TwilioWhatsAppService] = None, transcriber: Optional[LLMProvider] = None):
        super().__init__(transcriber=transcriber)
        self.service = service or TwilioWhatsAppService(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_address=settings.twilio_whatsapp_from,
            api_url=settings.twilio_api_url,
        )

    def parse_inbound(self, payload: Any) -> Optional[InboundMessage]:
        try:
            form = TwilioWhatsAppInbound.model_validate(dict(payload))
        except (ValidationError, TypeError, ValueError) as e:
            logger.warning(f"Malformed Twilio payload: {e}")
            return None

        sender = normalize_phone(form.wa_id or form.from_)
        if not sender:
            logger.warning(f"Twilio payload without sender: sid={form.message_sid}")
            return None

        base = {
            "channel": self.channel,
            "external_user_id": sender,
            "message_id": form.message_sid,
            "sender_name": form.profile_name,
        }

        content_type = (form.media_content_type or "").lower()
        if form.num_media > 0 and form.media_url and content_type.startswith("audio/"):
            return InboundMessage(
                kind=InboundKind.VOICE_TRANSCRIPT,
                media_ref=form.media_url,
                media_type=content_type,
                **base,
            )

        text = form.body.strip() or None
        return InboundMessage(kind=InboundKind.TEXT, text=text, choice=self.match_choice(text), **base)

    def render_menu(self, message: OutboundMessage) -> str:
        if not message.quick_replies:
            return message.text
        options = "\n".join(
            f"{index}. {self.render_choice(choice)}" for index, choice in enumerate(message.quick_replies, start=1)
        )
        return f"{message.text}\n\n{options}\n\n_Responda com o número da opção._"

    def send_outbound(self, external_user_id: str, message: OutboundMessage) -> bool:
        ok = self.service.send_message(whatsapp_address(external_user_id), self.render_menu(message))
        if not ok:
            logger.warning("WhatsApp delivery failed", extra={"context": {"to": external_user_id}})
        return ok

    def download_media(self, media_ref: str) -> Optional[bytes]:
        return self.service.download_media(media_ref)
