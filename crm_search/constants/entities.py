"""
Entity Constants for CRM Search

Enumerations shared by the planner, normalizer, facet aggregator and schemas
so entity kinds and filter vocabulary are never spelled as loose strings.
"""

from enum import Enum


class EntityType(str, Enum):
    """The six searchable record kinds."""

    LEAD = "lead"
    DEAL = "deal"
    CUSTOMER = "customer"
    SEGMENT = "segment"
    TICKET = "ticket"
    CONVERSATION = "conversation"


# Iteration order used for fan-out and for merging when no text query is given
ENTITY_ORDER: tuple[EntityType, ...] = (
    EntityType.LEAD,
    EntityType.DEAL,
    EntityType.CUSTOMER,
    EntityType.SEGMENT,
    EntityType.TICKET,
    EntityType.CONVERSATION,
)


class DateField(str, Enum):
    """Date columns a query may filter on."""

    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    LAST_ACTIVITY_AT = "last_activity_at"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class SortKey(str, Enum):
    """Sort keys accepted by a query. Each entity maps the ones it has to a column."""

    ID = "id"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    LAST_ACTIVITY_AT = "last_activity_at"
    NAME = "name"
    SCORE = "score"
    VALUE = "value"


# Popular canned queries offered next to generated suggestions
POPULAR_QUERIES: tuple[str, ...] = (
    "high value leads",
    "recent deals",
    "unassigned customers",
    "hot prospects",
    "overdue tasks",
)
