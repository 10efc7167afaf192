"""
Query Planner

Turns one SearchQuery into a tenant-scoped predicate per requested entity
type. Each entity has its own builder that only consumes the filters that
mean something for that entity; everything else is ignored for it.
"""

import asyncio
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field

from crm_search.config import settings
from crm_search.constants import DateField, EntityType
from crm_search.exceptions import ValidationError
from crm_search.schemas.search import SearchQuery
from crm_search.services.predicates import (
    AnyOf,
    Contains,
    CustomFieldEquals,
    EntityPredicate,
    HasAnyTag,
    InSet,
    IsNull,
    PredicateBuilder,
    Range,
)
from crm_search.services.semantic import DisabledSemanticSimilarity, SemanticSimilarity

logger = logging.getLogger(__name__)

# String columns matched by free text, per entity
SEARCHABLE_TEXT_FIELDS: dict[EntityType, tuple[str, ...]] = {
    EntityType.LEAD: ("first_name", "last_name", "email", "company"),
    EntityType.DEAL: ("name", "description", "stage"),
    EntityType.CUSTOMER: ("first_name", "last_name", "email", "company"),
    EntityType.SEGMENT: ("name", "description"),
    EntityType.TICKET: ("subject", "description"),
    EntityType.CONVERSATION: ("subject",),
}

TAGGABLE_ENTITIES = frozenset({EntityType.LEAD, EntityType.DEAL, EntityType.CUSTOMER, EntityType.TICKET})

_COMMON_DATE_FIELDS = frozenset({DateField.CREATED_AT, DateField.UPDATED_AT})

ENTITY_DATE_FIELDS: dict[EntityType, frozenset[DateField]] = {
    EntityType.LEAD: _COMMON_DATE_FIELDS | {DateField.LAST_ACTIVITY_AT},
    EntityType.DEAL: _COMMON_DATE_FIELDS,
    EntityType.CUSTOMER: _COMMON_DATE_FIELDS,
    EntityType.SEGMENT: _COMMON_DATE_FIELDS,
    EntityType.TICKET: _COMMON_DATE_FIELDS,
    EntityType.CONVERSATION: _COMMON_DATE_FIELDS,
}

CUSTOM_FIELD_KEY_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,63}$")


@dataclass(frozen=True)
class EntityPlan:
    """What to run against one entity store."""

    entity_type: EntityType
    predicate: EntityPredicate
    # id -> similarity, filled only when the semantic backend answered
    semantic_scores: dict[str, float] = field(default_factory=dict)


# ============================================================================
# Validation
# ============================================================================


def validate_search_query(query: SearchQuery) -> None:
    """
    Reject contradictory or unsafe filter combinations before any fetch.

    Raises:
        ValidationError: When a range is inverted, the page window is too deep,
            or a custom field is malformed
    """
    if query.min_value is not None and query.max_value is not None and query.min_value > query.max_value:
        raise ValidationError("min_value must not be greater than max_value", field="min_value")

    if query.min_score is not None and query.max_score is not None and query.min_score > query.max_score:
        raise ValidationError("min_score must not be greater than max_score", field="min_score")

    if query.date_from is not None and query.date_to is not None and query.date_from > query.date_to:
        raise ValidationError("date_from must not be after date_to", field="date_from")

    if query.limit > settings.search_max_limit:
        raise ValidationError(
            f"limit must not exceed {settings.search_max_limit}",
            field="limit",
            details={"max_limit": settings.search_max_limit},
        )

    if query.page * query.limit > settings.search_max_window:
        raise ValidationError(
            "Requested page is beyond the searchable window",
            field="page",
            details={"max_window": settings.search_max_window},
        )

    for key, value in (query.custom_fields or {}).items():
        if not CUSTOM_FIELD_KEY_PATTERN.match(key):
            raise ValidationError(f"Invalid custom field key '{key}'", field="custom_fields")
        if value is None or not isinstance(value, (str, int, float, bool)):
            raise ValidationError(
                f"Custom field '{key}' must be a string, number or boolean",
                field="custom_fields",
            )


# ============================================================================
# Per-entity builders
# ============================================================================


def _apply_date_range(builder: PredicateBuilder, entity_type: EntityType, query: SearchQuery) -> None:
    if query.date_from is None and query.date_to is None:
        return
    # Entities without the chosen column are left unfiltered
    if query.date_field not in ENTITY_DATE_FIELDS[entity_type]:
        return
    builder.set(Range(query.date_field.value, gte=query.date_from, lte=query.date_to))


def _apply_in(builder: PredicateBuilder, column: str, values) -> None:
    if values:
        builder.set(InSet(column, tuple(values)))


def _apply_assignment(builder: PredicateBuilder, column: str, query: SearchQuery) -> None:
    _apply_in(builder, column, query.assigned_to)
    if query.unassigned:
        builder.set(IsNull(column))


def _apply_range(builder: PredicateBuilder, column: str, low, high) -> None:
    if low is not None or high is not None:
        builder.set(Range(column, gte=low, lte=high))


def _apply_tags(builder: PredicateBuilder, tags) -> None:
    if tags:
        builder.set(HasAnyTag(tuple(tags)))


def _apply_custom_fields(builder: PredicateBuilder, custom_fields) -> None:
    for key in sorted(custom_fields or {}):
        builder.set(CustomFieldEquals(key, custom_fields[key]))


def build_lead_predicate(query: SearchQuery, tenant_id: str) -> PredicateBuilder:
    builder = PredicateBuilder(tenant_id)
    _apply_date_range(builder, EntityType.LEAD, query)
    _apply_in(builder, "status", query.lead_status)
    _apply_assignment(builder, "assigned_user_id", query)
    _apply_in(builder, "company", query.companies)
    _apply_in(builder, "source", query.sources)
    _apply_tags(builder, query.tags)
    _apply_range(builder, "score", query.min_score, query.max_score)
    _apply_custom_fields(builder, query.custom_fields)
    return builder


def build_deal_predicate(query: SearchQuery, tenant_id: str) -> PredicateBuilder:
    builder = PredicateBuilder(tenant_id)
    _apply_date_range(builder, EntityType.DEAL, query)
    _apply_in(builder, "stage", query.deal_stage)
    _apply_in(builder, "pipeline_id", query.deal_pipeline)
    _apply_assignment(builder, "assigned_user_id", query)
    _apply_tags(builder, query.tags)
    _apply_range(builder, "value", query.min_value, query.max_value)
    if query.currency:
        builder.set(InSet("currency", (query.currency.upper(),)))
    _apply_custom_fields(builder, query.custom_fields)
    return builder


def build_customer_predicate(query: SearchQuery, tenant_id: str) -> PredicateBuilder:
    builder = PredicateBuilder(tenant_id)
    _apply_date_range(builder, EntityType.CUSTOMER, query)
    _apply_in(builder, "company", query.companies)
    _apply_tags(builder, query.tags)
    _apply_custom_fields(builder, query.custom_fields)
    return builder


def build_segment_predicate(query: SearchQuery, tenant_id: str) -> PredicateBuilder:
    builder = PredicateBuilder(tenant_id)
    _apply_date_range(builder, EntityType.SEGMENT, query)
    return builder


def build_ticket_predicate(query: SearchQuery, tenant_id: str) -> PredicateBuilder:
    builder = PredicateBuilder(tenant_id)
    _apply_date_range(builder, EntityType.TICKET, query)
    _apply_in(builder, "status", query.ticket_status)
    _apply_in(builder, "priority", query.ticket_priority)
    _apply_assignment(builder, "assigned_agent_id", query)
    _apply_in(builder, "team_id", query.team_id)
    _apply_tags(builder, query.tags)
    _apply_in(builder, "channel", query.channels)
    _apply_custom_fields(builder, query.custom_fields)
    return builder


def build_conversation_predicate(query: SearchQuery, tenant_id: str) -> PredicateBuilder:
    builder = PredicateBuilder(tenant_id)
    _apply_date_range(builder, EntityType.CONVERSATION, query)
    _apply_in(builder, "status", query.conversation_status)
    _apply_in(builder, "channel", query.channels)
    return builder


PREDICATE_BUILDERS: dict[EntityType, Callable[[SearchQuery, str], PredicateBuilder]] = {
    EntityType.LEAD: build_lead_predicate,
    EntityType.DEAL: build_deal_predicate,
    EntityType.CUSTOMER: build_customer_predicate,
    EntityType.SEGMENT: build_segment_predicate,
    EntityType.TICKET: build_ticket_predicate,
    EntityType.CONVERSATION: build_conversation_predicate,
}


def build_text_match(entity_type: EntityType, text: str) -> AnyOf:
    """OR of substring checks over the entity's text columns, plus tag tokens where taggable."""
    terms = [Contains(column, text) for column in SEARCHABLE_TEXT_FIELDS[entity_type]]
    if entity_type in TAGGABLE_ENTITIES:
        tokens = tuple(dict.fromkeys(text.lower().split()))
        if tokens:
            terms.append(HasAnyTag(tokens))
    return AnyOf(tuple(terms))


# ============================================================================
# Planner
# ============================================================================


class QueryPlanner:
    """Builds one EntityPlan per requested entity type."""

    def __init__(self, semantic: SemanticSimilarity | None = None):
        self.semantic = semantic or DisabledSemanticSimilarity()

    async def plan(self, query: SearchQuery, tenant_id: str) -> list[EntityPlan]:
        """
        Plan a search.

        Args:
            query: Validated search request
            tenant_id: Tenant every predicate is scoped to

        Returns:
            list[EntityPlan]: One plan per requested entity, in canonical order
        """
        entities = query.requested_entities
        text = query.text

        semantic_rankings: list[list[tuple[str, float]]] = [[] for _ in entities]
        if text and query.semantic and entities:
            semantic_rankings = await asyncio.gather(
                *(self._semantic_ranking(text, entity_type) for entity_type in entities)
            )

        plans = []
        for entity_type, ranking in zip(entities, semantic_rankings):
            builder = PREDICATE_BUILDERS[entity_type](query, tenant_id)
            scores: dict[str, float] = {}

            if text:
                if ranking:
                    scores = {item_id: min(max(float(score), 0.0), 1.0) for item_id, score in ranking}
                    builder.set(InSet("id", tuple(scores)))
                else:
                    builder.set(build_text_match(entity_type, text))

            plans.append(EntityPlan(entity_type=entity_type, predicate=builder.build(), semantic_scores=scores))

        return plans

    async def _semantic_ranking(self, text: str, entity_type: EntityType) -> list[tuple[str, float]]:
        try:
            ranking = await self.semantic.similar(text, [entity_type])
        except Exception as e:
            logger.warning(f"Semantic search failed for {entity_type.value}, falling back to text search: {e}")
            return []

        if not ranking:
            logger.debug(f"No semantic matches for {entity_type.value}, falling back to text search")
        return list(ranking)
