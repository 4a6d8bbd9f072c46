import uuid

from sqlalchemy import Column, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.sql import func

from proposal_bot.database import Base


class OperatorChannel(Base):
    """Native chat id of an operator on one channel, used for pushed notifications."""

    __tablename__ = "operator_channels"
    __table_args__ = (UniqueConstraint("user_id", "channel", name="uq_operator_channels_user_channel"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False)
    channel = Column(Text, nullable=False)
    external_user_id = Column(Text, nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
