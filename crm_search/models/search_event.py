"""
SearchEvent Model

Append-only log of text searches. Backs per-user search history and
tenant search analytics.
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Float, Index, Integer, String

from crm_search.database import Base


class SearchEvent(Base):
    __tablename__ = "search_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(String(36), nullable=False)
    user_id = Column(String(36), nullable=True)
    query = Column(String(500), nullable=False)
    normalized_query = Column(String(500), nullable=True, index=True)
    filters = Column(JSON, nullable=True)
    results_count = Column(Integer, nullable=True)
    execution_time_ms = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (
        Index("idx_search_events_owner", "tenant_id", "user_id", "created_at"),
        Index("idx_search_events_tenant_created", "tenant_id", "created_at"),
    )
