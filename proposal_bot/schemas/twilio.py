from typing import Optional

from pydantic import AliasChoices, BaseModel, Field


class TwilioWhatsAppInbound(BaseModel):
    """Subset of the form fields Twilio posts for an incoming WhatsApp message."""

    message_sid: str = Field(validation_alias=AliasChoices("MessageSid", "SmsMessageSid"))
    from_: str = Field(validation_alias=AliasChoices("From", "from_"))
    to: Optional[str] = Field(default=None, validation_alias=AliasChoices("To", "to"))
    body: str = Field(default="", validation_alias=AliasChoices("Body", "body"))
    profile_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("ProfileName", "profile_name"))
    wa_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("WaId", "wa_id"))
    num_media: int = Field(default=0, validation_alias=AliasChoices("NumMedia", "num_media"))
    media_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("MediaUrl0", "media_url"))
    media_content_type: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MediaContentType0", "media_content_type"),
    )
