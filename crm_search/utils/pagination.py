import math

from crm_search.schemas.search import Pagination


def build_pagination(page: int, limit: int, total_count: int) -> Pagination:
    """Pagination block for a response; pages are counted against the summed total."""
    return Pagination(
        page=page,
        limit=limit,
        total_pages=math.ceil(total_count / limit) if limit else 0,
        has_next=page * limit < total_count,
        has_prev=page > 1,
    )
