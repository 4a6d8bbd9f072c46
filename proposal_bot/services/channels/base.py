import re
from abc import ABC, abstractmethod
from typing import Any, Optional

from proposal_bot.logging_config import get_logger
from proposal_bot.schemas.conversation import Channel, Choice, InboundKind, InboundMessage, OutboundMessage, ProposalFlow
from proposal_bot.services.llm import LLMProvider, LLMProviderError, get_default_provider

logger = get_logger("channels")

_LABEL_NOISE_RE = re.compile(r"[^\w\s]", re.UNICODE)


def normalize_label(text: Optional[str]) -> str:
    """"✅ Sim!" -> "sim"; used to compare typed answers with button labels."""
    if not text:
        return ""
    return " ".join(_LABEL_NOISE_RE.sub(" ", text).casefold().split())


class ChannelAdapter(ABC):
    """
    The only place that knows a provider's wire format.

    Inbound payloads become InboundMessage, OutboundMessage becomes provider calls,
    and Choice tokens become the provider's button/menu labels.
    """

    channel: Channel
    proposal_flow: ProposalFlow = ProposalFlow.AI
    # WhatsApp senders are identified by a phone number the provider already verified
    sender_is_verified_phone: bool = False
    choice_labels: dict[Choice, str] = {}

    def __init__(self, transcriber: Optional[LLMProvider] = None):
        self._transcriber = transcriber

    @abstractmethod
    def parse_inbound(self, payload: Any) -> Optional[InboundMessage]:
        """Normalize a provider payload; None for malformed or ignorable updates."""

    @abstractmethod
    def send_outbound(self, external_user_id: str, message: OutboundMessage) -> bool:
        pass

    @abstractmethod
    def download_media(self, media_ref: str) -> Optional[bytes]:
        pass

    def render_choice(self, choice: Choice) -> str:
        return self.choice_labels.get(choice, choice.value)

    def match_choice(self, text: Optional[str]) -> Optional[Choice]:
        normalized = normalize_label(text)
        if not normalized:
            return None
        for choice, label in self.choice_labels.items():
            if normalize_label(label) == normalized:
                return choice
        return None

    def resolve_media(self, inbound: InboundMessage) -> InboundMessage:
        """Turn a pending voice note into a voice transcript (text stays None on failure)."""
        if inbound.kind != InboundKind.VOICE_TRANSCRIPT or inbound.text or not inbound.media_ref:
            return inbound

        audio = self.download_media(inbound.media_ref)
        if not audio:
            return inbound

        transcriber = self._transcriber or get_default_provider()
        try:
            transcript = transcriber.transcribe_audio(
                audio_bytes=audio,
                filename="voice.ogg",
                mime_type=inbound.media_type or "audio/ogg",
                language="pt",
            )
        except (LLMProviderError, ValueError) as e:
            logger.warning(
                "Voice transcription failed",
                extra={"context": {"channel": self.channel.value, "error": str(e)}},
            )
            return inbound

        return inbound.model_copy(update={"text": transcript or None})
