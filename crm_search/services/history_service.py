"""
Search History & Saved Searches

Per-user search history (an append-only event log that also feeds tenant
analytics) and named saved searches. Every operation is scoped to a
(tenant, user) pair.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import delete, distinct, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crm_search.config import settings
from crm_search.exceptions import SavedSearchNotFoundError, StorageError
from crm_search.models import SavedSearch, SearchEvent
from crm_search.schemas.search import SearchQuery

logger = logging.getLogger(__name__)

TOP_QUERIES_LIMIT = 10


def normalize_query_text(query_text: str) -> str:
    return " ".join(query_text.lower().split())


class SearchHistoryStore:
    """Persistence for search events and saved searches."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], max_entries: int | None = None):
        self._session_factory = session_factory
        self.max_entries = settings.search_history_max_entries if max_entries is None else max_entries

    # ========================================================================
    # History
    # ========================================================================

    async def record_history(
        self,
        tenant_id: str,
        user_id: str | None,
        query_text: str,
        filters: dict[str, Any] | None = None,
        results_count: int | None = None,
        execution_time_ms: float | None = None,
    ) -> None:
        """
        Append a search to the event log. Best effort: failures are logged, never raised.

        Args:
            tenant_id: Tenant the search ran in
            user_id: User who searched, if known
            query_text: The free-text query as typed
            filters: Serialized search request
            results_count: Total matches reported to the user
            execution_time_ms: Search time in milliseconds
        """
        if not query_text or not query_text.strip():
            return

        async with self._session_factory() as db:
            try:
                db.add(
                    SearchEvent(
                        tenant_id=tenant_id,
                        user_id=user_id,
                        query=query_text,
                        normalized_query=normalize_query_text(query_text),
                        filters=filters,
                        results_count=results_count,
                        execution_time_ms=round(execution_time_ms, 2) if execution_time_ms is not None else None,
                    )
                )
                await db.flush()

                if self.max_entries > 0 and user_id:
                    await self._prune(db, tenant_id, user_id)

                await db.commit()
            except Exception:
                logger.warning("Failed to record search history", exc_info=True)
                await db.rollback()

    async def _prune(self, db: AsyncSession, tenant_id: str, user_id: str) -> None:
        stale_ids = (
            select(SearchEvent.id)
            .where(SearchEvent.tenant_id == tenant_id, SearchEvent.user_id == user_id)
            .order_by(SearchEvent.created_at.desc(), SearchEvent.id.desc())
            .offset(self.max_entries)
        )
        result = await db.execute(stale_ids)
        ids = [row[0] for row in result.all()]
        if ids:
            await db.execute(delete(SearchEvent).where(SearchEvent.id.in_(ids)))
            logger.debug(f"Pruned {len(ids)} history entries for user {user_id}")

    async def list_history(self, tenant_id: str, user_id: str | None, limit: int = 10) -> list[str]:
        """Most recent query strings for one user, newest first."""
        if not user_id:
            return []
        async with self._session_factory() as db:
            try:
                result = await db.execute(
                    select(SearchEvent.query)
                    .where(SearchEvent.tenant_id == tenant_id, SearchEvent.user_id == user_id)
                    .order_by(SearchEvent.created_at.desc(), SearchEvent.id.desc())
                    .limit(limit)
                )
            except SQLAlchemyError as e:
                logger.error(f"Failed to list search history for tenant {tenant_id}: {e}")
                raise StorageError(
                    "Failed to list search history", entity_type="search_history", operation="list"
                ) from e
            return [query for query in result.scalars().all() if query]

    # ========================================================================
    # Saved searches
    # ========================================================================

    async def save_search(self, tenant_id: str, user_id: str, name: str, query: SearchQuery) -> SavedSearch:
        """Persist a full snapshot of a search request under a name."""
        saved = SavedSearch(
            tenant_id=tenant_id,
            user_id=user_id,
            name=name,
            query=query.query,
            semantic=query.semantic,
            filters=query.model_dump(mode="json", exclude_none=True),
        )
        async with self._session_factory() as db:
            try:
                db.add(saved)
                await db.commit()
                await db.refresh(saved)
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error(f"Failed to save search '{name}': {e}")
                raise StorageError("Failed to save search", entity_type="saved_search", operation="save") from e

        logger.info(f"Saved search '{name}' ({saved.id}) for user {user_id}")
        return saved

    async def list_saved(self, tenant_id: str, user_id: str) -> list[SavedSearch]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(SavedSearch)
                .where(SavedSearch.tenant_id == tenant_id, SavedSearch.user_id == user_id)
                .order_by(SavedSearch.created_at.desc(), SavedSearch.id)
            )
            return list(result.scalars().all())

    async def _owned(self, db: AsyncSession, tenant_id: str, user_id: str, search_id: str) -> SavedSearch:
        result = await db.execute(
            select(SavedSearch).where(
                SavedSearch.id == search_id,
                SavedSearch.tenant_id == tenant_id,
                SavedSearch.user_id == user_id,
            )
        )
        saved = result.scalars().first()
        if saved is None:
            raise SavedSearchNotFoundError(search_id)
        return saved

    async def get_saved(self, tenant_id: str, user_id: str, search_id: str) -> SavedSearch:
        """
        Raises:
            SavedSearchNotFoundError: If the search does not exist or is not owned by (tenant, user)
        """
        async with self._session_factory() as db:
            return await self._owned(db, tenant_id, user_id, search_id)

    async def delete_saved(self, tenant_id: str, user_id: str, search_id: str) -> None:
        """
        Raises:
            SavedSearchNotFoundError: If the search does not exist or is not owned by (tenant, user)
        """
        async with self._session_factory() as db:
            saved = await self._owned(db, tenant_id, user_id, search_id)
            await db.delete(saved)
            await db.commit()
        logger.info(f"Deleted saved search {search_id} for user {user_id}")

    # ========================================================================
    # Analytics
    # ========================================================================

    async def get_search_analytics(self, tenant_id: str, days: int = 30) -> dict:
        """
        Search analytics for a tenant over the last ``days`` days.

        Returns:
            dict matching SearchAnalyticsResponse schema
        """
        now = datetime.now(timezone.utc)
        since = now - timedelta(days=days)
        in_window = (SearchEvent.tenant_id == tenant_id, SearchEvent.created_at >= since)

        async with self._session_factory() as db:
            try:
                total_result = await db.execute(select(func.count(SearchEvent.id)).where(*in_window))
                total_searches = total_result.scalar() or 0

                users_result = await db.execute(select(func.count(distinct(SearchEvent.user_id))).where(*in_window))
                unique_users = users_result.scalar() or 0

                top_result = await db.execute(
                    select(SearchEvent.normalized_query, func.count(SearchEvent.id).label("count"))
                    .where(*in_window)
                    .group_by(SearchEvent.normalized_query)
                    .order_by(func.count(SearchEvent.id).desc(), SearchEvent.normalized_query)
                    .limit(TOP_QUERIES_LIMIT)
                )
                popular_queries = [{"query": row[0], "count": row[1]} for row in top_result.all() if row[0]]

                day = func.date(SearchEvent.created_at)
                daily_result = await db.execute(
                    select(day.label("day"), func.count(SearchEvent.id)).where(*in_window).group_by(day)
                )
                per_day = {str(row[0]): row[1] for row in daily_result.all()}
            except SQLAlchemyError as e:
                logger.error(f"Failed to compute search analytics for tenant {tenant_id}: {e}")
                raise StorageError(
                    "Failed to compute search analytics", entity_type="search_history", operation="analytics"
                ) from e

        # Zero-filled, oldest day first
        trend_days = [(now - timedelta(days=offset)).date().isoformat() for offset in range(days - 1, -1, -1)]
        search_trends = [{"date": date, "count": per_day.get(date, 0)} for date in trend_days]

        return {
            "days": days,
            "total_searches": total_searches,
            "unique_users": unique_users,
            "popular_queries": popular_queries,
            "search_trends": search_trends,
            "average_searches_per_day": round(total_searches / days, 1) if days else 0.0,
        }
