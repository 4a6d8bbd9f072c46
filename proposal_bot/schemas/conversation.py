from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

REQUIRED_DRAFT_FIELDS = ("client_name", "title", "value", "delivery_time")


class Channel(str, Enum):
    TELEGRAM = "telegram"
    WHATSAPP = "whatsapp"


class InboundKind(str, Enum):
    TEXT = "text"
    VOICE_TRANSCRIPT = "voice_transcript"
    CONTACT_SHARE = "contact_share"


class ProposalFlow(str, Enum):
    AI = "ai"
    STRUCTURED = "structured"


class Choice(str, Enum):
    """Menu answers shared by every channel; adapters own the labels."""

    CREATE_PROPOSAL = "create_proposal"
    VIEW_STATUS = "view_status"
    YES = "yes"
    NO = "no"
    SKIP = "skip"
    CREATE_ANOTHER = "create_another"
    FINISH = "finish"


class ProposalDraft(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    version: int = 1
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    title: Optional[str] = None
    service_description: Optional[str] = None
    detailed_description: Optional[str] = None
    value: Optional[Decimal] = None
    delivery_time: Optional[str] = None
    validity_date: Optional[date] = None
    observations: Optional[str] = None

    def missing_required_fields(self) -> list[str]:
        return [name for name in REQUIRED_DRAFT_FIELDS if _is_empty(getattr(self, name))]

    def is_complete(self) -> bool:
        return not self.missing_required_fields()

    def is_filled(self, field_name: str) -> bool:
        return not _is_empty(getattr(self, field_name))

    def merged_with(self, other: "ProposalDraft") -> "ProposalDraft":
        """Fields filled in ``other`` win; empty ones never erase what we have."""
        updates = {
            name: getattr(other, name)
            for name in type(self).model_fields
            if name != "version" and not _is_empty(getattr(other, name))
        }
        return self.model_copy(update=updates)


def _is_empty(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, Decimal):
        return value <= 0
    return False


class InboundMessage(BaseModel):
    channel: Channel
    external_user_id: str
    kind: InboundKind = InboundKind.TEXT
    text: Optional[str] = None
    contact_phone: Optional[str] = None
    message_id: Optional[str] = None
    choice: Optional[Choice] = None
    sender_name: Optional[str] = None
    media_ref: Optional[str] = None  # provider file id / URL of a voice note still to transcribe
    media_type: Optional[str] = None


class OutboundMessage(BaseModel):
    text: str
    quick_replies: list[Choice] = Field(default_factory=list)
    request_contact: bool = False


class Identity(BaseModel):
    is_known_operator: bool
    operator_id: Optional[UUID] = None
    display_name: Optional[str] = None

    @classmethod
    def unknown(cls) -> "Identity":
        return cls(is_known_operator=False)
