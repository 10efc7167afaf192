"""
Search Service

Federated search across leads, deals, customers, segments, tickets and
conversations. Plans one predicate per entity, fans the fetches out
concurrently, merges and ranks the pages, and attaches tenant facets,
suggestions and pagination. Also fronts search history, saved searches
and search analytics.
"""

import asyncio
import logging
import time
from collections.abc import Mapping

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crm_search import database
from crm_search.config import settings
from crm_search.constants import EntityType
from crm_search.exceptions import StorageError, TenantRequiredError
from crm_search.models import SavedSearch
from crm_search.schemas.search import (
    SearchFacets,
    SearchQuery,
    SearchResponse,
    SuggestionsResponse,
)
from crm_search.services.entity_store import EntityStore, build_entity_stores
from crm_search.services.executor import EntityExecutor, EntityPage
from crm_search.services.facets import FacetAggregator
from crm_search.services.history_service import SearchHistoryStore
from crm_search.services.query_planner import EntityPlan, QueryPlanner, validate_search_query
from crm_search.services.ranking import merge_pages
from crm_search.services.semantic import SemanticSimilarity
from crm_search.services.suggestions import generate_suggestions, popular_queries
from crm_search.utils.concurrency import gather_or_cancel
from crm_search.utils.pagination import build_pagination

logger = logging.getLogger(__name__)

SUGGESTION_HISTORY_SIZE = 5


class SearchService:
    """Service for searching CRM records across entity types"""

    def __init__(
        self,
        stores: Mapping[EntityType, EntityStore],
        history: SearchHistoryStore,
        semantic: SemanticSimilarity | None = None,
        facets: FacetAggregator | None = None,
        isolate_entity_failures: bool | None = None,
        history_enabled: bool | None = None,
    ):
        self.stores = stores
        self.history = history
        self.planner = QueryPlanner(semantic)
        self.executor = EntityExecutor(stores)
        self.facets = facets or FacetAggregator(stores)
        self.isolate_entity_failures = (
            settings.search_isolate_entity_failures if isolate_entity_failures is None else isolate_entity_failures
        )
        self.history_enabled = settings.search_history_enabled if history_enabled is None else history_enabled
        self._background_tasks: set[asyncio.Task] = set()

    @classmethod
    def from_session_factory(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        semantic: SemanticSimilarity | None = None,
    ) -> "SearchService":
        """Wire relational stores and the history store onto one session factory."""
        return cls(
            stores=build_entity_stores(session_factory),
            history=SearchHistoryStore(session_factory),
            semantic=semantic,
        )

    # ========================================================================
    # Search
    # ========================================================================

    async def search(self, query: SearchQuery, tenant_id: str, user_id: str | None = None) -> SearchResponse:
        """
        Run a federated search.

        Args:
            query: Search request
            tenant_id: Tenant every entity fetch is scoped to
            user_id: Searching user, used for history

        Returns:
            SearchResponse: Merged results, summed total, facets and pagination

        Raises:
            TenantRequiredError: If no tenant is given
            ValidationError: If the filters are contradictory
            StorageError: If an entity fetch fails and failures are not isolated
        """
        if not tenant_id:
            raise TenantRequiredError()

        start_time = time.perf_counter()
        validate_search_query(query)

        plans = await self.planner.plan(query, tenant_id)
        (pages, entity_errors), facets = await gather_or_cancel(
            self._execute_plans(plans, query),
            self.facets.get_facets(tenant_id),
        )

        total_count = sum(page.total for page in pages)
        results = merge_pages(pages, query.text, query.limit)
        search_time = round((time.perf_counter() - start_time) * 1000, 2)

        logger.info(
            f"Search completed: tenant={tenant_id}, entities={len(plans)}, "
            f"total={total_count}, returned={len(results)}, time={search_time}ms"
        )

        if query.text and self.history_enabled:
            self._record_in_background(tenant_id, user_id, query, total_count, search_time)

        return SearchResponse(
            results=results,
            total_count=total_count,
            facets=facets,
            search_time=search_time,
            suggestions=generate_suggestions(query.text) if query.text else None,
            pagination=build_pagination(query.page, query.limit, total_count),
            entity_errors=entity_errors,
        )

    async def _execute_plans(
        self, plans: list[EntityPlan], query: SearchQuery
    ) -> tuple[list[EntityPage], dict[EntityType, str]]:
        if not plans:
            return [], {}

        if not self.isolate_entity_failures:
            pages = await gather_or_cancel(*(self.executor.execute(plan, query) for plan in plans))
            return pages, {}

        outcomes = await asyncio.gather(*(self.executor.execute(plan, query) for plan in plans), return_exceptions=True)

        pages: list[EntityPage] = []
        entity_errors: dict[EntityType, str] = {}
        for plan, outcome in zip(plans, outcomes):
            if isinstance(outcome, StorageError):
                logger.warning(f"Omitting {plan.entity_type.value} from results: {outcome.message}")
                entity_errors[plan.entity_type] = outcome.message
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                pages.append(outcome)
        return pages, entity_errors

    def _record_in_background(
        self,
        tenant_id: str,
        user_id: str | None,
        query: SearchQuery,
        results_count: int,
        execution_time_ms: float,
    ) -> None:
        task = asyncio.create_task(
            self._record_history(
                tenant_id,
                user_id,
                query.text,
                filters=query.model_dump(mode="json", exclude_none=True),
                results_count=results_count,
                execution_time_ms=execution_time_ms,
            )
        )
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _record_history(self, tenant_id: str, user_id: str | None, query_text: str, **kwargs) -> None:
        # History must never fail a search
        try:
            await self.history.record_history(tenant_id, user_id, query_text, **kwargs)
        except Exception as e:
            logger.warning(f"Search history not recorded for tenant {tenant_id}: {e}")

    async def drain_background_tasks(self) -> None:
        """Wait for pending history writes (used on shutdown and in tests)."""
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)

    # ========================================================================
    # Facets & suggestions
    # ========================================================================

    async def get_facets(self, tenant_id: str) -> SearchFacets:
        if not tenant_id:
            raise TenantRequiredError()
        return await self.facets.get_facets(tenant_id)

    async def get_suggestions(self, tenant_id: str, user_id: str | None, query_text: str) -> SuggestionsResponse:
        """Pattern suggestions plus the user's recent queries and the popular canned ones."""
        # Suggestions never fail on a history read
        try:
            history = await self.history.list_history(tenant_id, user_id, limit=SUGGESTION_HISTORY_SIZE)
        except Exception as e:
            logger.warning(f"Search history unavailable for suggestions, tenant {tenant_id}: {e}")
            history = []
        return SuggestionsResponse(
            query=query_text,
            suggestions=generate_suggestions(query_text),
            history=history,
            popular=popular_queries(),
        )

    # ========================================================================
    # History, saved searches and analytics
    # ========================================================================

    async def get_history(self, tenant_id: str, user_id: str | None, limit: int = 10) -> list[str]:
        return await self.history.list_history(tenant_id, user_id, limit=limit)

    async def save_search(self, tenant_id: str, user_id: str, name: str, query: SearchQuery) -> SavedSearch:
        validate_search_query(query)
        return await self.history.save_search(tenant_id, user_id, name, query)

    async def list_saved(self, tenant_id: str, user_id: str) -> list[SavedSearch]:
        return await self.history.list_saved(tenant_id, user_id)

    async def get_saved(self, tenant_id: str, user_id: str, search_id: str) -> SavedSearch:
        return await self.history.get_saved(tenant_id, user_id, search_id)

    async def delete_saved(self, tenant_id: str, user_id: str, search_id: str) -> None:
        await self.history.delete_saved(tenant_id, user_id, search_id)

    async def get_search_analytics(self, tenant_id: str, days: int = 30) -> dict:
        return await self.history.get_search_analytics(tenant_id, days)


_search_service: SearchService | None = None


def get_search_service() -> SearchService:
    """FastAPI dependency returning the process-wide search service."""
    global _search_service
    if _search_service is None:
        _search_service = SearchService.from_session_factory(database.AsyncSessionLocal)
    return _search_service
