"""
Search Routes

API endpoints for federated CRM search, suggestions, facets, search
history, saved searches and search analytics.
"""

import logging

from fastapi import APIRouter, Depends, Query, Response, status

from crm_search.exceptions import UserRequiredError
from crm_search.middleware.tenant import SearchContext, get_search_context
from crm_search.schemas.search import (
    SavedSearchResponse,
    SaveSearchRequest,
    SearchAnalyticsResponse,
    SearchFacets,
    SearchHistoryResponse,
    SearchQuery,
    SearchResponse,
    SuggestionsResponse,
)
from crm_search.services.search_service import SearchService, get_search_service

logger = logging.getLogger(__name__)

router = APIRouter()


def _require_user(context: SearchContext) -> str:
    if not context.user_id:
        raise UserRequiredError()
    return context.user_id


@router.post("/", response_model=SearchResponse)
async def search(
    query: SearchQuery,
    context: SearchContext = Depends(get_search_context),
    service: SearchService = Depends(get_search_service),
):
    """
    Search leads, deals, customers, segments, tickets and conversations at once.

    Pagination is applied per entity type: page N returns at most ``limit``
    results drawn from each entity's own N-th window, merged and truncated to
    ``limit``. ``total_count`` is the sum of per-entity matches, so walking
    every page does not necessarily visit every match exactly once.
    """
    return await service.search(query, context.tenant_id, context.user_id)


@router.get("/suggestions", response_model=SuggestionsResponse)
async def get_suggestions(
    q: str = Query("", max_length=200, description="Partial search query"),
    context: SearchContext = Depends(get_search_context),
    service: SearchService = Depends(get_search_service),
):
    """Query suggestions, the caller's recent searches and popular queries."""
    return await service.get_suggestions(context.tenant_id, context.user_id, q)


@router.get("/facets", response_model=SearchFacets)
async def get_facets(
    context: SearchContext = Depends(get_search_context),
    service: SearchService = Depends(get_search_service),
):
    """Tenant-wide refinement counts, independent of any filters."""
    return await service.get_facets(context.tenant_id)


@router.get("/history", response_model=SearchHistoryResponse)
async def get_history(
    limit: int = Query(10, ge=1, le=100, description="Number of recent queries"),
    context: SearchContext = Depends(get_search_context),
    service: SearchService = Depends(get_search_service),
):
    history = await service.get_history(context.tenant_id, context.user_id, limit=limit)
    return SearchHistoryResponse(history=history)


@router.get("/saved", response_model=list[SavedSearchResponse])
async def list_saved_searches(
    context: SearchContext = Depends(get_search_context),
    service: SearchService = Depends(get_search_service),
):
    """The caller's saved searches, newest first."""
    return await service.list_saved(context.tenant_id, _require_user(context))


@router.post("/saved", response_model=SavedSearchResponse, status_code=status.HTTP_201_CREATED)
async def save_search(
    request: SaveSearchRequest,
    context: SearchContext = Depends(get_search_context),
    service: SearchService = Depends(get_search_service),
):
    """Save a search request under a name."""
    return await service.save_search(context.tenant_id, _require_user(context), request.name, request.filters)


@router.get("/saved/{search_id}", response_model=SavedSearchResponse)
async def get_saved_search(
    search_id: str,
    context: SearchContext = Depends(get_search_context),
    service: SearchService = Depends(get_search_service),
):
    return await service.get_saved(context.tenant_id, _require_user(context), search_id)


@router.delete("/saved/{search_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_saved_search(
    search_id: str,
    context: SearchContext = Depends(get_search_context),
    service: SearchService = Depends(get_search_service),
):
    """Delete one of the caller's saved searches."""
    await service.delete_saved(context.tenant_id, _require_user(context), search_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/analytics", response_model=SearchAnalyticsResponse)
async def get_search_analytics(
    days: int = Query(30, ge=1, le=365, description="Number of days to analyze"),
    context: SearchContext = Depends(get_search_context),
    service: SearchService = Depends(get_search_service),
):
    """Search volume, active users, popular queries and daily trends for the tenant."""
    return await service.get_search_analytics(context.tenant_id, days)
