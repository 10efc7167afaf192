"""
Per-Entity Executor

Runs one EntityPlan against its store: a windowed fetch and a count with
the same predicate, concurrently, each bounded by the branch timeout.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from crm_search.config import settings
from crm_search.constants import EntityType, SortKey, SortOrder
from crm_search.schemas.search import SearchQuery
from crm_search.services.entity_store import EntityStore
from crm_search.services.query_planner import EntityPlan
from crm_search.utils.concurrency import gather_or_cancel, run_with_timeout

logger = logging.getLogger(__name__)

# Columns each normalizer reads
ENTITY_PROJECTIONS: dict[EntityType, tuple[str, ...]] = {
    EntityType.LEAD: (
        "id",
        "first_name",
        "last_name",
        "email",
        "company",
        "status",
        "score",
        "source",
        "tags",
        "assigned_user_id",
        "created_at",
        "updated_at",
    ),
    EntityType.DEAL: (
        "id",
        "name",
        "description",
        "stage",
        "value",
        "currency",
        "pipeline_id",
        "tags",
        "assigned_user_id",
        "created_at",
        "updated_at",
    ),
    EntityType.CUSTOMER: (
        "id",
        "first_name",
        "last_name",
        "email",
        "company",
        "tags",
        "health_score",
        "created_at",
        "updated_at",
    ),
    EntityType.SEGMENT: ("id", "name", "description", "is_active", "created_at", "updated_at"),
    EntityType.TICKET: (
        "id",
        "subject",
        "description",
        "status",
        "priority",
        "channel",
        "tags",
        "assigned_agent_id",
        "team_id",
        "created_at",
        "updated_at",
    ),
    EntityType.CONVERSATION: ("id", "subject", "status", "channel", "created_at", "updated_at"),
}

# Sort keys with a different column name per entity; anything unmapped falls back to created_at
ENTITY_SORT_COLUMNS: dict[EntityType, dict[SortKey, str]] = {
    EntityType.LEAD: {
        SortKey.NAME: "last_name",
        SortKey.SCORE: "score",
        SortKey.LAST_ACTIVITY_AT: "last_activity_at",
    },
    EntityType.DEAL: {SortKey.NAME: "name", SortKey.VALUE: "value"},
    EntityType.CUSTOMER: {SortKey.NAME: "last_name", SortKey.SCORE: "health_score"},
    EntityType.SEGMENT: {SortKey.NAME: "name"},
    EntityType.TICKET: {SortKey.NAME: "subject"},
    EntityType.CONVERSATION: {SortKey.NAME: "subject"},
}

_SHARED_SORT_COLUMNS = {
    SortKey.ID: "id",
    SortKey.CREATED_AT: "created_at",
    SortKey.UPDATED_AT: "updated_at",
}


def sort_column_for(entity_type: EntityType, sort_key: SortKey) -> str:
    if sort_key in _SHARED_SORT_COLUMNS:
        return _SHARED_SORT_COLUMNS[sort_key]
    return ENTITY_SORT_COLUMNS[entity_type].get(sort_key, "created_at")


def order_by_for(entity_type: EntityType, sort_key: SortKey, sort_order: SortOrder) -> list[tuple[str, SortOrder]]:
    """Requested ordering plus ``id`` as the deterministic tie-break."""
    column = sort_column_for(entity_type, sort_key)
    order_by = [(column, sort_order)]
    if column != "id":
        order_by.append(("id", SortOrder.ASC))
    return order_by


@dataclass
class EntityPage:
    """One entity's window of rows and its total match count."""

    entity_type: EntityType
    rows: list[dict[str, Any]]
    total: int
    semantic_scores: dict[str, float] = field(default_factory=dict)


class EntityExecutor:
    def __init__(self, stores: Mapping[EntityType, EntityStore], timeout: float | None = None):
        self.stores = stores
        self.timeout = settings.search_branch_timeout_seconds if timeout is None else timeout

    async def execute(self, plan: EntityPlan, query: SearchQuery) -> EntityPage:
        """
        Fetch one page window and count matches for a single entity.

        Raises:
            StorageError: If the fetch or the count fails or times out
        """
        entity_type = plan.entity_type
        store = self.stores[entity_type]

        rows, total = await gather_or_cancel(
            run_with_timeout(
                store.find(
                    plan.predicate,
                    skip=query.skip,
                    take=query.limit,
                    order_by=order_by_for(entity_type, query.sort_by, query.sort_order),
                    projection=ENTITY_PROJECTIONS[entity_type],
                ),
                self.timeout,
                entity_type=entity_type.value,
                operation="find",
            ),
            run_with_timeout(
                store.count(plan.predicate),
                self.timeout,
                entity_type=entity_type.value,
                operation="count",
            ),
        )

        logger.debug(f"{entity_type.value}: fetched {len(rows)} of {total} matches")
        return EntityPage(entity_type=entity_type, rows=rows, total=total, semantic_scores=plan.semantic_scores)
