import uuid

from sqlalchemy import Column, Date, ForeignKey, Integer, Numeric, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from proposal_bot.database import Base


class Proposal(Base):
    __tablename__ = "proposals"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id"), nullable=True)
    title = Column(Text, nullable=False)
    service_description = Column(Text)
    detailed_description = Column(Text)
    value = Column(Numeric(12, 2))
    delivery_time = Column(Text)
    validity_date = Column(Date)
    observations = Column(Text)
    status = Column(Text, nullable=False, default="rascunho")
    public_hash = Column(Text, unique=True)
    views = Column(Integer, default=0)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())

    client = relationship("Client", back_populates="proposals")
