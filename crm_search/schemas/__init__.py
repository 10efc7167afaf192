from .search import (
    SavedSearchResponse,
    SaveSearchRequest,
    SearchAnalyticsResponse,
    SearchFacets,
    SearchQuery,
    SearchResponse,
    SearchResult,
    SuggestionsResponse,
)

# Define the public API of this module
__all__ = [
    "SearchQuery",
    "SearchResult",
    "SearchResponse",
    "SearchFacets",
    "SaveSearchRequest",
    "SavedSearchResponse",
    "SuggestionsResponse",
    "SearchAnalyticsResponse",
]
