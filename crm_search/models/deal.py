import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Float, Index, String, Text
from sqlalchemy.orm import relationship

from crm_search.database import Base


class Deal(Base):
    __tablename__ = "deals"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    stage = Column(String(50), nullable=False, default="prospecting")
    value = Column(Float, nullable=True)
    currency = Column(String(3), nullable=True, default="USD")
    pipeline_id = Column(String(36), nullable=True)
    assigned_user_id = Column(String(36), nullable=True)
    custom_fields = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    tag_links = relationship("DealTag", cascade="all, delete-orphan", lazy="selectin")

    __table_args__ = (
        Index("idx_deals_tenant_stage", "tenant_id", "stage"),
        Index("idx_deals_tenant_value", "tenant_id", "value"),
    )
