import uuid

from sqlalchemy import Column, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.sql import func

from proposal_bot.database import Base


class BotSession(Base):
    __tablename__ = "bot_sessions"
    __table_args__ = (UniqueConstraint("channel", "external_user_id", name="uq_bot_sessions_channel_user"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    channel = Column(Text, nullable=False)  # telegram, whatsapp
    external_user_id = Column(Text, nullable=False)
    step = Column(Text, nullable=False, default="start")
    draft = Column(JSONB, nullable=False, default=dict)
    context = Column(JSONB, nullable=False, default=dict)
    resolved_operator_id = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    expires_at = Column(TIMESTAMP(timezone=True), nullable=False)
