"""
SavedSearch Model

A named snapshot of a search request, owned by one user inside one tenant.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Index, String

from crm_search.database import Base


class SavedSearch(Base):
    __tablename__ = "saved_searches"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(36), nullable=False)
    user_id = Column(String(36), nullable=False)
    name = Column(String(200), nullable=False)
    query = Column(String(500), nullable=True)
    semantic = Column(Boolean, nullable=False, default=False)
    filters = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (Index("idx_saved_searches_owner", "tenant_id", "user_id", "created_at"),)
