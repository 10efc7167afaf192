"""
Tests for Search Routes

Tests API endpoints for federated search, suggestions, facets, history,
saved searches and search analytics.
"""

import pytest
from utils.mock_utils import seed_acme_dataset

from conftest import OTHER_TENANT_ID, TENANT_ID

BASE_URL = "/api/v1/crm/search"


class TestTenantResolution:
    """Test identity headers forwarded by the gateway"""

    def test_search_requires_tenant(self, client):
        """Test requests without a tenant are rejected"""
        response = client.post(f"{BASE_URL}/", json={"query": "acme"})

        assert response.status_code == 401
        assert response.json()["error"]["error_code"] == "AUTH_TENANT_REQUIRED"

    def test_blank_tenant_header_is_rejected(self, client):
        response = client.get(f"{BASE_URL}/facets", headers={"X-Tenant-ID": "   "})
        assert response.status_code == 401

    def test_saved_searches_require_user(self, client):
        """Test per-user endpoints need a user id"""
        response = client.get(f"{BASE_URL}/saved", headers={"X-Tenant-ID": TENANT_ID})

        assert response.status_code == 401
        assert response.json()["error"]["error_code"] == "AUTH_FAILED"

    def test_health_needs_no_tenant(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestSearchEndpoint:
    """Test POST /search"""

    @pytest.mark.asyncio
    async def test_search_returns_results(self, client, test_db, tenant_headers):
        """Test search returns typed results, totals, facets and pagination"""
        await seed_acme_dataset(test_db, TENANT_ID)

        response = client.post(
            f"{BASE_URL}/",
            json={"query": "acme", "entities": ["lead", "deal"], "page": 1, "limit": 10},
            headers=tenant_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total_count"] == 2
        assert {result["type"] for result in data["results"]} == {"lead", "deal"}
        assert all(0 <= result["relevance_score"] <= 1 for result in data["results"])
        assert data["pagination"] == {
            "page": 1,
            "limit": 10,
            "total_pages": 1,
            "has_next": False,
            "has_prev": False,
        }
        assert data["facets"]["entities"]
        assert data["suggestions"]
        assert data["entity_errors"] == {}

    @pytest.mark.asyncio
    async def test_search_is_tenant_scoped(self, client, test_db, tenant_headers):
        await seed_acme_dataset(test_db, OTHER_TENANT_ID)

        response = client.post(f"{BASE_URL}/", json={"query": "acme"}, headers=tenant_headers)

        assert response.status_code == 200
        assert response.json()["results"] == []
        assert response.json()["total_count"] == 0

    def test_contradictory_filters_return_400(self, client, tenant_headers):
        response = client.post(f"{BASE_URL}/", json={"min_value": 10, "max_value": 1}, headers=tenant_headers)

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["error_code"] == "VALIDATION_INVALID_FILTER"
        assert error["details"]["field"] == "min_value"

    def test_mixed_timezone_dates_are_accepted(self, client, tenant_headers):
        """Test a date without a timezone is read as UTC next to one with a timezone"""
        response = client.post(
            f"{BASE_URL}/",
            json={"date_from": "2024-01-01T00:00:00", "date_to": "2024-02-01T00:00:00Z"},
            headers=tenant_headers,
        )

        assert response.status_code == 200

    def test_inverted_mixed_timezone_dates_return_400(self, client, tenant_headers):
        response = client.post(
            f"{BASE_URL}/",
            json={"date_from": "2024-03-01T00:00:00", "date_to": "2024-02-01T00:00:00Z"},
            headers=tenant_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"]["details"]["field"] == "date_from"

    def test_unknown_field_returns_422(self, client, tenant_headers):
        response = client.post(f"{BASE_URL}/", json={"colour": "blue"}, headers=tenant_headers)
        assert response.status_code == 422

    def test_limit_above_maximum_returns_422(self, client, tenant_headers):
        response = client.post(f"{BASE_URL}/", json={"limit": 500}, headers=tenant_headers)
        assert response.status_code == 422


class TestFacetsAndSuggestions:
    """Test GET /facets and GET /suggestions"""

    @pytest.mark.asyncio
    async def test_facets(self, client, test_db, tenant_headers):
        await seed_acme_dataset(test_db, TENANT_ID)

        response = client.get(f"{BASE_URL}/facets", headers=tenant_headers)

        assert response.status_code == 200
        data = response.json()
        entities = {item["value"]: item["count"] for item in data["entities"]}
        assert entities["lead"] == 2
        assert [bucket["label"] for bucket in data["date_ranges"]] == ["Last 7 days", "Last 30 days", "Last 90 days"]
        assert len(data["value_ranges"]) == 3
        assert len(data["score_ranges"]) == 3

    def test_suggestions(self, client, tenant_headers):
        response = client.get(f"{BASE_URL}/suggestions", params={"q": "acme"}, headers=tenant_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["query"] == "acme"
        assert data["suggestions"][0] == "acme leads"
        assert data["history"] == []
        assert data["popular"]

    def test_short_query_has_no_suggestions(self, client, tenant_headers):
        response = client.get(f"{BASE_URL}/suggestions", params={"q": "a"}, headers=tenant_headers)
        assert response.json()["suggestions"] == []


class TestHistoryEndpoint:
    """Test GET /history"""

    @pytest.mark.asyncio
    async def test_history_lists_recent_queries(self, client, history_store, tenant_headers):
        await history_store.record_history(TENANT_ID, tenant_headers["X-User-ID"], "acme")
        await history_store.record_history(TENANT_ID, tenant_headers["X-User-ID"], "initech")

        response = client.get(f"{BASE_URL}/history", params={"limit": 1}, headers=tenant_headers)

        assert response.status_code == 200
        assert response.json() == {"history": ["initech"]}

    def test_history_limit_validated(self, client, tenant_headers):
        response = client.get(f"{BASE_URL}/history", params={"limit": 0}, headers=tenant_headers)
        assert response.status_code == 422


class TestSavedSearchEndpoints:
    """Test saved search CRUD"""

    def test_saved_search_round_trip(self, client, tenant_headers):
        """Test save, list, get and delete"""
        payload = {"name": "Big acme deals", "filters": {"query": "acme", "entities": ["deal"], "min_value": 1000}}

        created = client.post(f"{BASE_URL}/saved", json=payload, headers=tenant_headers)
        assert created.status_code == 201
        saved = created.json()
        assert saved["name"] == "Big acme deals"
        assert saved["query"] == "acme"
        assert saved["filters"]["entities"] == ["deal"]

        listed = client.get(f"{BASE_URL}/saved", headers=tenant_headers)
        assert [item["id"] for item in listed.json()] == [saved["id"]]

        fetched = client.get(f"{BASE_URL}/saved/{saved['id']}", headers=tenant_headers)
        assert fetched.status_code == 200
        assert fetched.json()["filters"]["min_value"] == 1000

        deleted = client.delete(f"{BASE_URL}/saved/{saved['id']}", headers=tenant_headers)
        assert deleted.status_code == 204

        assert client.get(f"{BASE_URL}/saved", headers=tenant_headers).json() == []

    def test_other_users_search_is_not_found(self, client, tenant_headers, other_user_headers):
        """Test another user can neither read nor delete the search"""
        created = client.post(
            f"{BASE_URL}/saved", json={"name": "Mine", "filters": {"query": "acme"}}, headers=tenant_headers
        )
        search_id = created.json()["id"]

        response = client.get(f"{BASE_URL}/saved/{search_id}", headers=other_user_headers)
        assert response.status_code == 404
        assert response.json()["error"]["error_code"] == "RESOURCE_SAVED_SEARCH_NOT_FOUND"

        assert client.delete(f"{BASE_URL}/saved/{search_id}", headers=other_user_headers).status_code == 404
        assert client.get(f"{BASE_URL}/saved/{search_id}", headers=tenant_headers).status_code == 200

    def test_save_rejects_contradictory_filters(self, client, tenant_headers):
        response = client.post(
            f"{BASE_URL}/saved",
            json={"name": "Broken", "filters": {"min_score": 90, "max_score": 10}},
            headers=tenant_headers,
        )
        assert response.status_code == 400

    def test_save_requires_name(self, client, tenant_headers):
        response = client.post(f"{BASE_URL}/saved", json={"name": "", "filters": {}}, headers=tenant_headers)
        assert response.status_code == 422


class TestAnalyticsEndpoint:
    """Test GET /analytics"""

    @pytest.mark.asyncio
    async def test_analytics(self, client, history_store, tenant_headers):
        await history_store.record_history(TENANT_ID, "user-1", "acme")
        await history_store.record_history(TENANT_ID, "user-2", "Acme")

        response = client.get(f"{BASE_URL}/analytics", params={"days": 7}, headers=tenant_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["days"] == 7
        assert data["total_searches"] == 2
        assert data["unique_users"] == 2
        assert data["popular_queries"] == [{"query": "acme", "count": 2}]
        assert len(data["search_trends"]) == 7

    def test_analytics_days_validated(self, client, tenant_headers):
        response = client.get(f"{BASE_URL}/analytics", params={"days": 400}, headers=tenant_headers)
        assert response.status_code == 422
