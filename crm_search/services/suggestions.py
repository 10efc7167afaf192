"""
Suggestion Generator

Pattern-based query suggestions. Pure and synchronous; it never fails a search.
"""

from crm_search.config import settings
from crm_search.constants import POPULAR_QUERIES

SUGGESTION_PATTERNS: tuple[str, ...] = (
    "{q} leads",
    "{q} deals",
    "{q} customers",
    "high value {q}",
    "recent {q}",
)


def generate_suggestions(query_text: str | None, max_results: int | None = None) -> list[str]:
    """
    Suggest follow-up queries for a free-text query.

    Args:
        query_text: Raw query as typed
        max_results: Cap on returned suggestions

    Returns:
        list[str]: Empty when the trimmed query is shorter than the minimum length
    """
    if not query_text:
        return []
    q = query_text.strip()
    if len(q) < settings.suggestion_min_length:
        return []
    limit = settings.suggestion_max_results if max_results is None else max_results
    return [pattern.format(q=q) for pattern in SUGGESTION_PATTERNS][:limit]


def popular_queries() -> list[str]:
    return list(POPULAR_QUERIES)
