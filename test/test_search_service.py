"""
Tests for the Search Service

Tests federated search end to end against the database: entity
restriction, tenant isolation, filters, relevance ordering, pagination,
failure propagation and isolation, history recording and suggestions.
"""

import math

import pytest
from utils.mock_utils import (
    create_test_deal,
    create_test_lead,
    create_test_ticket,
    seed_acme_dataset,
)

from crm_search.constants import EntityType
from crm_search.exceptions import SemanticUnavailableError, StorageError, TenantRequiredError, ValidationError
from crm_search.schemas.search import SearchQuery
from crm_search.services.entity_store import build_entity_stores
from crm_search.services.history_service import SearchHistoryStore
from crm_search.services.suggestions import generate_suggestions

from conftest import OTHER_TENANT_ID, TENANT_ID, USER_ID, TestSessionLocal, make_search_service


class UnavailableSemantic:
    async def similar(self, text, entity_types):
        raise SemanticUnavailableError()


class BrokenStore:
    """Store whose fetches always fail"""

    def __init__(self, entity_type):
        self.entity_type = entity_type

    async def find(self, predicate, skip, take, order_by, projection):
        raise StorageError("database unreachable", entity_type=self.entity_type.value, operation="find")

    async def count(self, predicate):
        raise StorageError("database unreachable", entity_type=self.entity_type.value, operation="count")

    async def group_by(self, field, predicate):
        raise StorageError("database unreachable", entity_type=self.entity_type.value, operation="group_by")


def stores_with_broken(entity_type):
    stores = build_entity_stores(TestSessionLocal)
    stores[entity_type] = BrokenStore(entity_type)
    return stores


class TestFederatedSearch:
    """Test the main search flow"""

    @pytest.mark.asyncio
    async def test_text_search_restricted_to_entities(self, test_db, search_service):
        """Test a text query over leads and deals returns only those types"""
        seeded = await seed_acme_dataset(test_db, TENANT_ID)

        response = await search_service.search(
            SearchQuery(query="acme", entities=["lead", "deal"], page=1, limit=10), TENANT_ID, USER_ID
        )

        assert len(response.results) <= 10
        assert {result.type for result in response.results} <= {EntityType.LEAD, EntityType.DEAL}
        assert {result.id for result in response.results} == {seeded["lead"].id, seeded["deal"].id}
        assert response.total_count == 2

    @pytest.mark.asyncio
    async def test_text_search_spans_all_entities(self, test_db, search_service):
        """Test omitted entities searches all six types"""
        seeded = await seed_acme_dataset(test_db, TENANT_ID)

        response = await search_service.search(SearchQuery(query="acme"), TENANT_ID)

        assert {result.type for result in response.results} == set(EntityType)
        assert seeded["noise_lead"].id not in {result.id for result in response.results}
        assert response.total_count == 6

    @pytest.mark.asyncio
    async def test_results_ranked_by_relevance(self, test_db, search_service):
        """Test scored results come back in descending relevance"""
        await seed_acme_dataset(test_db, TENANT_ID)

        response = await search_service.search(SearchQuery(query="acme"), TENANT_ID)
        scores = [result.relevance_score for result in response.results]

        assert all(score is not None and 0.0 <= score <= 1.0 for score in scores)
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.asyncio
    async def test_tag_matches_text(self, test_db, search_service):
        """Test a query token equal to a tag matches the tagged record"""
        seeded = await seed_acme_dataset(test_db, TENANT_ID)

        response = await search_service.search(SearchQuery(query="enterprise"), TENANT_ID)

        assert [result.id for result in response.results] == [seeded["lead"].id]

    @pytest.mark.asyncio
    async def test_no_entities_still_returns_facets(self, test_db, search_service):
        """Test an empty entity list returns nothing but the facet menu"""
        await seed_acme_dataset(test_db, TENANT_ID)

        response = await search_service.search(SearchQuery(entities=[]), TENANT_ID)

        assert response.results == []
        assert response.total_count == 0
        assert response.facets.entities
        assert response.suggestions is None

    @pytest.mark.asyncio
    async def test_semantic_unavailable_matches_text_search(self, test_db):
        """Test a failing semantic backend gives the same results as plain text search"""
        await seed_acme_dataset(test_db, TENANT_ID)
        await create_test_deal(test_db, TENANT_ID, name="Enterprise renewal")
        service = make_search_service(semantic=UnavailableSemantic(), history_enabled=False)

        semantic = await service.search(SearchQuery(semantic=True, query="enterprise renewal"), TENANT_ID)
        text = await service.search(SearchQuery(semantic=False, query="enterprise renewal"), TENANT_ID)

        assert [result.id for result in semantic.results] == [result.id for result in text.results]
        assert semantic.total_count == text.total_count > 0

    @pytest.mark.asyncio
    async def test_suggestions_attached_to_text_searches(self, test_db, search_service):
        await seed_acme_dataset(test_db, TENANT_ID)

        response = await search_service.search(SearchQuery(query="acme"), TENANT_ID)

        assert response.suggestions[0] == "acme leads"
        assert response.search_time >= 0


class TestTenantIsolation:
    """Test no result crosses tenants"""

    @pytest.mark.asyncio
    async def test_other_tenant_records_never_returned(self, test_db, search_service):
        mine = await seed_acme_dataset(test_db, TENANT_ID)
        await seed_acme_dataset(test_db, OTHER_TENANT_ID)
        my_ids = {record.id for record in mine.values()}

        for query in (SearchQuery(query="acme"), SearchQuery(), SearchQuery(query="initech")):
            response = await search_service.search(query, TENANT_ID)
            assert {result.id for result in response.results} <= my_ids

    @pytest.mark.asyncio
    async def test_missing_tenant_is_rejected(self, search_service):
        with pytest.raises(TenantRequiredError):
            await search_service.search(SearchQuery(query="acme"), "")


class TestFilters:
    """Test filter semantics through the whole pipeline"""

    @pytest.mark.asyncio
    async def test_value_range(self, test_db, search_service):
        """Test every returned deal lies within the value range"""
        for value in (500, 1000, 3000, 5000, 8000):
            await create_test_deal(test_db, TENANT_ID, name=f"Deal {value}", value=value)

        response = await search_service.search(
            SearchQuery(entities=["deal"], min_value=1000, max_value=5000), TENANT_ID
        )

        values = sorted(result.metadata.value for result in response.results)
        assert values == [1000, 3000, 5000]

    @pytest.mark.asyncio
    async def test_unassigned(self, test_db, search_service):
        """Test unassigned returns no record with an assignee"""
        await create_test_lead(test_db, TENANT_ID, first_name="Free")
        await create_test_lead(test_db, TENANT_ID, first_name="Taken", assigned_user_id="user-1")
        await create_test_deal(test_db, TENANT_ID, name="Free deal")
        await create_test_ticket(test_db, TENANT_ID, subject="Taken ticket", assigned_agent_id="agent-1")

        response = await search_service.search(
            SearchQuery(entities=["lead", "deal", "ticket"], assigned_to=["user-1"], unassigned=True), TENANT_ID
        )

        assert sorted(result.title for result in response.results) == ["Free", "Free deal"]
        for result in response.results:
            assert getattr(result.metadata, "assigned_user_id", None) is None
            assert getattr(result.metadata, "assigned_agent_id", None) is None

    @pytest.mark.asyncio
    async def test_entity_specific_filter_does_not_hide_others(self, test_db, search_service):
        """Test a lead-only filter leaves entities without the field unfiltered"""
        await seed_acme_dataset(test_db, TENANT_ID)

        response = await search_service.search(SearchQuery(lead_status=["qualified"]), TENANT_ID)
        counts = {entity_type: 0 for entity_type in EntityType}
        for result in response.results:
            counts[result.type] += 1

        assert counts[EntityType.LEAD] == 1
        assert counts[EntityType.DEAL] == 2

    @pytest.mark.asyncio
    async def test_contradictory_filters_rejected_before_fetch(self, search_service):
        with pytest.raises(ValidationError):
            await search_service.search(SearchQuery(min_score=90, max_score=10), TENANT_ID)


class TestPagination:
    """Test per-entity windows and pagination metadata"""

    @pytest.mark.asyncio
    async def test_pagination_arithmetic(self, test_db, search_service):
        for index in range(7):
            await create_test_lead(test_db, TENANT_ID, first_name=f"Lead {index}")
        for index in range(4):
            await create_test_deal(test_db, TENANT_ID, name=f"Deal {index}")

        for page in (1, 2, 3, 4):
            response = await search_service.search(
                SearchQuery(entities=["lead", "deal"], page=page, limit=3), TENANT_ID
            )
            pagination = response.pagination

            assert response.total_count == 11
            assert pagination.total_pages == math.ceil(11 / 3)
            assert pagination.has_next == (page * 3 < 11)
            assert pagination.has_prev == (page > 1)
            assert len(response.results) <= 3

    @pytest.mark.asyncio
    async def test_windows_are_per_entity(self, test_db, search_service):
        """Test page 2 draws each entity's own second window"""
        for index in range(4):
            await create_test_lead(test_db, TENANT_ID, first_name=f"Lead {index}")
        await create_test_deal(test_db, TENANT_ID, name="Only deal")

        response = await search_service.search(
            SearchQuery(entities=["lead", "deal"], page=2, limit=2, sort_by="name", sort_order="asc"), TENANT_ID
        )

        # Deals have a single row, so their second window is empty
        assert [result.type for result in response.results] == [EntityType.LEAD, EntityType.LEAD]

    @pytest.mark.asyncio
    async def test_identical_queries_are_idempotent(self, test_db, search_service):
        """Test ties are broken deterministically"""
        await seed_acme_dataset(test_db, TENANT_ID)
        for _ in range(3):
            await create_test_lead(test_db, TENANT_ID, first_name="Same", company="Acme Corp")

        query = SearchQuery(query="acme", sort_by="name")
        first = await search_service.search(query, TENANT_ID)
        second = await search_service.search(query, TENANT_ID)

        assert [result.id for result in first.results] == [result.id for result in second.results]


class TestFailureHandling:
    """Test storage failures abort or degrade depending on configuration"""

    @pytest.mark.asyncio
    async def test_storage_failure_aborts_by_default(self, test_db):
        await seed_acme_dataset(test_db, TENANT_ID)
        service = make_search_service(stores=stores_with_broken(EntityType.DEAL), isolate_entity_failures=False)

        with pytest.raises(StorageError):
            await service.search(SearchQuery(query="acme"), TENANT_ID)

    @pytest.mark.asyncio
    async def test_storage_failure_isolated_when_enabled(self, test_db):
        """Test isolation returns partial results plus a per-entity error"""
        seeded = await seed_acme_dataset(test_db, TENANT_ID)
        service = make_search_service(
            stores=stores_with_broken(EntityType.DEAL), isolate_entity_failures=True, history_enabled=False
        )

        response = await service.search(SearchQuery(query="acme"), TENANT_ID)

        assert EntityType.DEAL in response.entity_errors
        assert EntityType.DEAL not in {result.type for result in response.results}
        assert seeded["lead"].id in {result.id for result in response.results}
        assert response.total_count == 5
        # Facet dimensions over deals degrade to empty lists
        assert response.facets.deal_stage == []
        assert response.facets.lead_status


class TestHistoryRecording:
    """Test background history recording"""

    @pytest.mark.asyncio
    async def test_text_search_recorded(self, test_db, search_service):
        await seed_acme_dataset(test_db, TENANT_ID)

        await search_service.search(SearchQuery(query="  Acme "), TENANT_ID, USER_ID)
        await search_service.search(SearchQuery(), TENANT_ID, USER_ID)
        await search_service.drain_background_tasks()

        assert await search_service.get_history(TENANT_ID, USER_ID) == ["Acme"]

    @pytest.mark.asyncio
    async def test_history_failure_never_fails_search(self, test_db):
        """Test a raising history store does not affect the response"""

        class ExplodingHistory:
            async def record_history(self, *args, **kwargs):
                raise RuntimeError("history store down")

        await seed_acme_dataset(test_db, TENANT_ID)
        service = make_search_service(history=ExplodingHistory(), history_enabled=True)

        response = await service.search(SearchQuery(query="acme"), TENANT_ID, USER_ID)
        await service.drain_background_tasks()

        assert response.total_count == 6


class TestSuggestions:
    """Test suggestions through the service"""

    @pytest.mark.asyncio
    async def test_history_failure_falls_back_to_patterns(self):
        """Test an unreachable history store still yields pattern suggestions"""

        def unreachable_session():
            raise RuntimeError("database unreachable")

        service = make_search_service(history=SearchHistoryStore(unreachable_session))

        response = await service.get_suggestions(TENANT_ID, USER_ID, "acme")

        assert response.suggestions == generate_suggestions("acme")
        assert len(response.suggestions) == 5
        assert response.history == []
        assert response.popular


class TestSavedSearchRoundTrip:
    """Test save, list and delete through the service"""

    @pytest.mark.asyncio
    async def test_round_trip(self, search_service):
        query = SearchQuery(query="acme", entities=["deal"], min_value=1000)

        saved = await search_service.save_search(TENANT_ID, USER_ID, "Big acme deals", query)
        listed = await search_service.list_saved(TENANT_ID, USER_ID)
        assert [(item.id, item.name) for item in listed] == [(saved.id, "Big acme deals")]
        assert SearchQuery(**listed[0].filters) == query

        await search_service.delete_saved(TENANT_ID, USER_ID, saved.id)
        assert await search_service.list_saved(TENANT_ID, USER_ID) == []

    @pytest.mark.asyncio
    async def test_invalid_filters_not_saved(self, search_service):
        with pytest.raises(ValidationError):
            await search_service.save_search(TENANT_ID, USER_ID, "Broken", SearchQuery(min_value=5, max_value=1))
