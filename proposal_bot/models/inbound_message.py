import uuid

from sqlalchemy import Column, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.sql import func

from proposal_bot.database import Base


class InboundMessageLog(Base):
    """Provider message ids already processed, per sender."""

    __tablename__ = "inbound_message_log"
    __table_args__ = (
        UniqueConstraint("channel", "external_user_id", "message_id", name="uq_inbound_message_log_key"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    channel = Column(Text, nullable=False)
    external_user_id = Column(Text, nullable=False)
    message_id = Column(Text, nullable=False)
    received_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
