import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Index, String, Text
from sqlalchemy.orm import relationship

from crm_search.database import Base


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(36), nullable=False, index=True)
    subject = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)
    status = Column(String(50), nullable=False, default="open")
    priority = Column(String(20), nullable=False, default="medium")
    channel = Column(String(50), nullable=True)  # "email" | "chat" | "whatsapp" | ...
    assigned_agent_id = Column(String(36), nullable=True)
    team_id = Column(String(36), nullable=True)
    custom_fields = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    tag_links = relationship("TicketTag", cascade="all, delete-orphan", lazy="selectin")

    __table_args__ = (Index("idx_tickets_tenant_status", "tenant_id", "status"),)
