import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String
from sqlalchemy.orm import relationship

from crm_search.database import Base


class Lead(Base):
    __tablename__ = "leads"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(36), nullable=False, index=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True)
    company = Column(String(200), nullable=True)
    status = Column(String(50), nullable=False, default="new")
    score = Column(Integer, nullable=True)
    source = Column(String(100), nullable=True)
    assigned_user_id = Column(String(36), nullable=True)
    custom_fields = Column(JSON, nullable=True)
    last_activity_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    tag_links = relationship("LeadTag", cascade="all, delete-orphan", lazy="selectin")

    __table_args__ = (
        Index("idx_leads_tenant_status", "tenant_id", "status"),
        Index("idx_leads_tenant_created", "tenant_id", "created_at"),
    )
