"""
Facet Aggregator

Builds the tenant-wide refinement menu shown next to search results. The
counts ignore the current filters. Every dimension runs concurrently under
the branch timeout and a failing dimension degrades to an empty list.
"""

import logging
from collections import Counter
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from crm_search.config import settings
from crm_search.constants import ENTITY_ORDER, EntityType
from crm_search.exceptions import StorageError
from crm_search.schemas.search import (
    DateRangeBucket,
    FacetValue,
    ScoreRangeBucket,
    SearchFacets,
    ValueRangeBucket,
)
from crm_search.services.entity_store import EntityStore
from crm_search.services.predicates import EntityPredicate, Range
from crm_search.utils.cache import LRUCache
from crm_search.utils.concurrency import gather_or_cancel, run_with_timeout

logger = logging.getLogger(__name__)

UNKNOWN_VALUE = "unknown"


@dataclass(frozen=True)
class GroupedDimension:
    """A value/count dimension merged across one or more (entity, column) sources."""

    name: str
    sources: tuple[tuple[EntityType, str], ...]
    skip_null: bool = False


GROUPED_DIMENSIONS: tuple[GroupedDimension, ...] = (
    GroupedDimension("lead_status", ((EntityType.LEAD, "status"),)),
    GroupedDimension("deal_stage", ((EntityType.DEAL, "stage"),)),
    GroupedDimension("deal_pipeline", ((EntityType.DEAL, "pipeline_id"),)),
    GroupedDimension("ticket_status", ((EntityType.TICKET, "status"),)),
    GroupedDimension("ticket_priority", ((EntityType.TICKET, "priority"),)),
    GroupedDimension("conversation_status", ((EntityType.CONVERSATION, "status"),)),
    GroupedDimension("channels", ((EntityType.TICKET, "channel"), (EntityType.CONVERSATION, "channel"))),
    GroupedDimension("companies", ((EntityType.LEAD, "company"), (EntityType.CUSTOMER, "company")), skip_null=True),
    GroupedDimension("sources", ((EntityType.LEAD, "source"),)),
    GroupedDimension(
        "assigned_to",
        (
            (EntityType.LEAD, "assigned_user_id"),
            (EntityType.DEAL, "assigned_user_id"),
            (EntityType.TICKET, "assigned_agent_id"),
        ),
        skip_null=True,
    ),
    GroupedDimension("teams", ((EntityType.TICKET, "team_id"),), skip_null=True),
    GroupedDimension(
        "tags",
        (
            (EntityType.LEAD, "tags"),
            (EntityType.DEAL, "tags"),
            (EntityType.CUSTOMER, "tags"),
            (EntityType.TICKET, "tags"),
        ),
    ),
)

DATE_RANGE_DAYS: tuple[int, ...] = (7, 30, 90)

# (label, inclusive lower bound, exclusive upper bound)
DEAL_VALUE_BUCKETS: tuple[tuple[str, float, float | None], ...] = (
    ("Under $1K", 0, 1000),
    ("$1K - $10K", 1000, 10000),
    ("Over $10K", 10000, None),
)

# (label, inclusive lower bound, inclusive upper bound)
LEAD_SCORE_BUCKETS: tuple[tuple[str, int, int], ...] = (
    ("Cold (0-39)", 0, 39),
    ("Warm (40-69)", 40, 69),
    ("Hot (70-100)", 70, 100),
)


def merge_facet_counts(
    grouped: Sequence[Sequence[tuple[Any, int]]],
    skip_null: bool = False,
    max_values: int | None = None,
) -> list[FacetValue]:
    """Merge (value, count) lists from several sources, most frequent first."""
    counts: Counter = Counter()
    for pairs in grouped:
        for value, count in pairs:
            if value is None or value == "":
                if skip_null:
                    continue
                value = UNKNOWN_VALUE
            counts[str(value)] += count

    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    if max_values is not None:
        ordered = ordered[:max_values]
    return [FacetValue(value=value, count=count) for value, count in ordered]


class FacetAggregator:
    def __init__(
        self,
        stores: Mapping[EntityType, EntityStore],
        timeout: float | None = None,
        cache: LRUCache | None = None,
        cache_ttl: int | None = None,
    ):
        self.stores = stores
        self.timeout = settings.search_branch_timeout_seconds if timeout is None else timeout
        self.cache_ttl = settings.facet_cache_ttl_seconds if cache_ttl is None else cache_ttl
        self.cache = cache if cache is not None else LRUCache(max_size=settings.facet_cache_max_size)

    def invalidate(self, tenant_id: str | None = None) -> None:
        """Drop cached facets for one tenant, or for everyone."""
        if tenant_id is None:
            self.cache.clear()
        else:
            self.cache.delete(tenant_id)

    async def get_facets(self, tenant_id: str) -> SearchFacets:
        """
        Compute (or serve from cache) the facet menu for a tenant.

        Args:
            tenant_id: Tenant to aggregate over

        Returns:
            SearchFacets: Every dimension; failed dimensions are empty lists
        """
        if self.cache_ttl > 0:
            cached = self.cache.get(tenant_id)
            if cached is not None:
                return cached

        facets = await self._aggregate(tenant_id)

        if self.cache_ttl > 0:
            self.cache.set(tenant_id, facets, ttl=self.cache_ttl)
        return facets

    async def _aggregate(self, tenant_id: str) -> SearchFacets:
        scope = EntityPredicate(tenant_id=tenant_id)
        now = datetime.now(timezone.utc)

        dimensions: dict[str, Callable[[], Awaitable[list]]] = {
            "entities": lambda: self._entity_counts(scope),
            **{
                dimension.name: (lambda dimension=dimension: self._grouped(dimension, scope))
                for dimension in GROUPED_DIMENSIONS
            },
            "date_ranges": lambda: self._date_ranges(scope, now),
            "value_ranges": lambda: self._value_ranges(scope),
            "score_ranges": lambda: self._score_ranges(scope),
        }

        names = list(dimensions)
        values = await gather_or_cancel(*(self._isolated(name, dimensions[name]) for name in names))
        return SearchFacets(**dict(zip(names, values)))

    async def _isolated(self, name: str, compute: Callable[[], Awaitable[list]]) -> list:
        try:
            return await compute()
        except StorageError as e:
            logger.warning(f"Facet dimension '{name}' failed: {e.message}")
            return []

    def _bounded(self, aw: Awaitable, entity_type: EntityType, operation: str) -> Awaitable:
        return run_with_timeout(aw, self.timeout, entity_type=entity_type.value, operation=operation)

    async def _entity_counts(self, scope: EntityPredicate) -> list[FacetValue]:
        entity_types = [entity_type for entity_type in ENTITY_ORDER if entity_type in self.stores]
        counts = await gather_or_cancel(
            *(self._bounded(self.stores[entity_type].count(scope), entity_type, "count") for entity_type in entity_types)
        )
        return merge_facet_counts([[(entity_type.value, count)] for entity_type, count in zip(entity_types, counts)])

    async def _grouped(self, dimension: GroupedDimension, scope: EntityPredicate) -> list[FacetValue]:
        sources = [(entity_type, column) for entity_type, column in dimension.sources if entity_type in self.stores]
        grouped = await gather_or_cancel(
            *(
                self._bounded(self.stores[entity_type].group_by(column, scope), entity_type, "group_by")
                for entity_type, column in sources
            )
        )
        return merge_facet_counts(grouped, skip_null=dimension.skip_null, max_values=settings.facet_value_limit)

    async def _count_in(self, entity_type: EntityType, scope: EntityPredicate, term: Range) -> int:
        if entity_type not in self.stores:
            return 0
        return await self._bounded(self.stores[entity_type].count(scope.and_(term)), entity_type, "count")

    async def _date_ranges(self, scope: EntityPredicate, now: datetime) -> list[DateRangeBucket]:
        buckets = []
        for days in DATE_RANGE_DAYS:
            start = now - timedelta(days=days)
            term = Range("created_at", gte=start, lte=now)
            counts = await gather_or_cancel(*(self._count_in(entity_type, scope, term) for entity_type in ENTITY_ORDER))
            buckets.append(DateRangeBucket(label=f"Last {days} days", count=sum(counts), start=start, end=now))
        return buckets

    async def _value_ranges(self, scope: EntityPredicate) -> list[ValueRangeBucket]:
        counts = await gather_or_cancel(
            *(
                self._count_in(EntityType.DEAL, scope, Range("value", gte=low, lt=high))
                for _, low, high in DEAL_VALUE_BUCKETS
            )
        )
        return [
            ValueRangeBucket(label=label, count=count, min=low, max=high)
            for (label, low, high), count in zip(DEAL_VALUE_BUCKETS, counts)
        ]

    async def _score_ranges(self, scope: EntityPredicate) -> list[ScoreRangeBucket]:
        counts = await gather_or_cancel(
            *(
                self._count_in(EntityType.LEAD, scope, Range("score", gte=low or None, lte=high if high < 100 else None))
                for _, low, high in LEAD_SCORE_BUCKETS
            )
        )
        return [
            ScoreRangeBucket(label=label, count=count, min=low, max=high)
            for (label, low, high), count in zip(LEAD_SCORE_BUCKETS, counts)
        ]
