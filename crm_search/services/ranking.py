"""
Ranker / Merger

Merges per-entity pages into one list. With a text query every result gets
a relevance score in [0, 1] and the list is ordered by it; otherwise the
canonical entity order is kept.
"""

from collections.abc import Sequence

from crm_search.constants import ENTITY_ORDER
from crm_search.schemas.search import SearchResultBase
from crm_search.services.executor import EntityPage
from crm_search.services.normalizer import normalize_rows

EXACT_TITLE_SCORE = 1.0
TITLE_PREFIX_SCORE = 0.9
TITLE_CONTAINS_SCORE = 0.8
OTHER_FIELD_SCORE = 0.6
TOKEN_FRACTION_WEIGHT = 0.5

_ENTITY_POSITION = {entity_type: position for position, entity_type in enumerate(ENTITY_ORDER)}


def _secondary_texts(result: SearchResultBase) -> list[str]:
    texts = [result.subtitle, result.description]
    metadata = getattr(result, "metadata", None)
    if metadata is not None:
        texts.append(getattr(metadata, "email", None))
        texts.append(getattr(metadata, "company", None))
        texts.extend(getattr(metadata, "tags", None) or [])
    return [text.lower() for text in texts if text]


def text_relevance(result: SearchResultBase, query_text: str) -> float:
    """Strength of a plain text match between a result and the query phrase."""
    phrase = query_text.strip().lower()
    if not phrase:
        return 0.0

    title = (result.title or "").lower()
    if title == phrase:
        return EXACT_TITLE_SCORE
    if title.startswith(phrase):
        return TITLE_PREFIX_SCORE
    if phrase in title:
        return TITLE_CONTAINS_SCORE

    others = _secondary_texts(result)
    if any(phrase in text for text in others):
        return OTHER_FIELD_SCORE

    tokens = list(dict.fromkeys(phrase.split()))
    haystack = [title, *others]
    matched = sum(1 for token in tokens if any(token in text for text in haystack))
    return round(TOKEN_FRACTION_WEIGHT * matched / len(tokens), 4)


def merge_pages(pages: Sequence[EntityPage], query_text: str | None, limit: int) -> list[SearchResultBase]:
    """
    Normalize, merge and truncate per-entity pages.

    Args:
        pages: Entity pages in any order
        query_text: Trimmed free-text query, or None
        limit: Maximum number of results to return

    Returns:
        list: At most ``limit`` results
    """
    ordered_pages = sorted(pages, key=lambda page: _ENTITY_POSITION[page.entity_type])

    merged: list[SearchResultBase] = []
    for page in ordered_pages:
        results = normalize_rows(page.entity_type, page.rows)
        if query_text:
            results = [
                result.model_copy(
                    update={
                        "relevance_score": page.semantic_scores.get(result.id, text_relevance(result, query_text))
                    }
                )
                for result in results
            ]
        merged.extend(results)

    if query_text:
        merged.sort(key=lambda result: (-(result.relevance_score or 0.0), _ENTITY_POSITION[result.type], result.id))

    return merged[:limit]
