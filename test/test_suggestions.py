"""
Tests for suggestion generation and pagination metadata
"""

from crm_search.constants import POPULAR_QUERIES
from crm_search.services.suggestions import generate_suggestions, popular_queries
from crm_search.utils.pagination import build_pagination


class TestGenerateSuggestions:
    """Test pattern-based suggestions"""

    def test_patterns_for_query(self):
        assert generate_suggestions("acme") == [
            "acme leads",
            "acme deals",
            "acme customers",
            "high value acme",
            "recent acme",
        ]

    def test_query_is_trimmed(self):
        assert generate_suggestions("  acme  ")[0] == "acme leads"

    def test_short_or_missing_query(self):
        """Test queries under the minimum length get no suggestions"""
        assert generate_suggestions("ac") == []
        assert generate_suggestions("  ac  ") == []
        assert generate_suggestions("") == []
        assert generate_suggestions(None) == []

    def test_max_results(self):
        assert len(generate_suggestions("acme", max_results=2)) == 2

    def test_popular_queries(self):
        assert popular_queries() == list(POPULAR_QUERIES)


class TestBuildPagination:
    """Test pagination over the summed total"""

    def test_first_page(self):
        pagination = build_pagination(page=1, limit=10, total_count=25)

        assert pagination.total_pages == 3
        assert pagination.has_next
        assert not pagination.has_prev

    def test_last_page(self):
        pagination = build_pagination(page=3, limit=10, total_count=25)

        assert not pagination.has_next
        assert pagination.has_prev

    def test_exact_multiple(self):
        pagination = build_pagination(page=2, limit=10, total_count=20)

        assert pagination.total_pages == 2
        assert not pagination.has_next

    def test_empty(self):
        pagination = build_pagination(page=1, limit=20, total_count=0)

        assert pagination.total_pages == 0
        assert not pagination.has_next
        assert not pagination.has_prev
