from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class WebhookAck(BaseModel):
    ok: bool = True
    message: Optional[str] = None


class ProposalStatusNotification(BaseModel):
    proposal_id: UUID
    status: str


class ProposalStatusNotificationResponse(BaseModel):
    success: bool
    message: str
    notified_channels: int = 0
