"""
Search Schemas

Pydantic models for the federated search request, the per-entity result
variants, facets, saved searches and search analytics.
"""

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from crm_search.config import settings
from crm_search.constants import ENTITY_ORDER, DateField, EntityType, SortKey, SortOrder

# ============================================================================
# Request
# ============================================================================


class SearchQuery(BaseModel):
    """Immutable description of one search request. The tenant is supplied separately."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Text search
    query: str | None = Field(None, max_length=200, description="Free-text query")
    semantic: bool = Field(False, description="Ask the semantic collaborator before text matching")

    # None searches every entity type; an empty list searches none
    entities: tuple[EntityType, ...] | None = Field(None, description="Entity types to search")

    # Date filters
    date_from: datetime | None = None
    date_to: datetime | None = None
    date_field: DateField = DateField.CREATED_AT

    # Status filters
    lead_status: tuple[str, ...] | None = None
    deal_stage: tuple[str, ...] | None = None
    deal_pipeline: tuple[str, ...] | None = None
    ticket_status: tuple[str, ...] | None = None
    ticket_priority: tuple[str, ...] | None = None
    conversation_status: tuple[str, ...] | None = None
    channels: tuple[str, ...] | None = None

    # Value and score filters
    min_value: float | None = None
    max_value: float | None = None
    currency: str | None = Field(None, min_length=3, max_length=3)
    min_score: float | None = None
    max_score: float | None = None

    # Assignment filters
    assigned_to: tuple[str, ...] | None = None
    unassigned: bool = False
    team_id: tuple[str, ...] | None = None

    companies: tuple[str, ...] | None = None
    sources: tuple[str, ...] | None = None
    tags: tuple[str, ...] | None = None
    custom_fields: dict[str, Any] | None = None

    # Pagination and sorting
    page: int = Field(1, ge=1, description="1-based page number")
    limit: int = Field(settings.search_default_limit, ge=1, le=100, description="Results per page")
    sort_by: SortKey = SortKey.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC

    @field_validator("date_from", "date_to")
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        """Read a date without a timezone as UTC so both bounds compare."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def text(self) -> str | None:
        """The trimmed free-text query, or None when blank."""
        if self.query is None:
            return None
        stripped = self.query.strip()
        return stripped or None

    @property
    def requested_entities(self) -> tuple[EntityType, ...]:
        """Requested entity types in canonical iteration order."""
        if self.entities is None:
            return ENTITY_ORDER
        wanted = set(self.entities)
        return tuple(entity for entity in ENTITY_ORDER if entity in wanted)

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


# ============================================================================
# Result variants
# ============================================================================


class LeadMetadata(BaseModel):
    status: str | None = None
    source: str | None = None
    email: str | None = None
    company: str | None = None
    tags: list[str] = []
    assigned_user_id: str | None = None


class DealMetadata(BaseModel):
    stage: str | None = None
    value: float | None = None
    currency: str | None = None
    pipeline_id: str | None = None
    tags: list[str] = []
    assigned_user_id: str | None = None


class CustomerMetadata(BaseModel):
    email: str | None = None
    company: str | None = None
    tags: list[str] = []
    health_score: float | None = None


class SegmentMetadata(BaseModel):
    is_active: bool = False


class TicketMetadata(BaseModel):
    status: str | None = None
    priority: str | None = None
    channel: str | None = None
    tags: list[str] = []
    assigned_agent_id: str | None = None
    team_id: str | None = None


class ConversationMetadata(BaseModel):
    status: str | None = None
    channel: str | None = None


class SearchResultBase(BaseModel):
    """Fields shared by every result variant"""

    id: str
    title: str
    subtitle: str | None = None
    description: str | None = None
    score: float | None = Field(None, description="The entity's own score (lead score, health score)")
    relevance_score: float | None = Field(None, ge=0.0, le=1.0, description="Text match strength, 0 to 1")
    created_at: datetime | None = None
    updated_at: datetime | None = None


class LeadResult(SearchResultBase):
    type: Literal[EntityType.LEAD] = EntityType.LEAD
    metadata: LeadMetadata


class DealResult(SearchResultBase):
    type: Literal[EntityType.DEAL] = EntityType.DEAL
    metadata: DealMetadata


class CustomerResult(SearchResultBase):
    type: Literal[EntityType.CUSTOMER] = EntityType.CUSTOMER
    metadata: CustomerMetadata


class SegmentResult(SearchResultBase):
    type: Literal[EntityType.SEGMENT] = EntityType.SEGMENT
    metadata: SegmentMetadata


class TicketResult(SearchResultBase):
    type: Literal[EntityType.TICKET] = EntityType.TICKET
    metadata: TicketMetadata


class ConversationResult(SearchResultBase):
    type: Literal[EntityType.CONVERSATION] = EntityType.CONVERSATION
    metadata: ConversationMetadata


SearchResult = Annotated[
    Union[LeadResult, DealResult, CustomerResult, SegmentResult, TicketResult, ConversationResult],
    Field(discriminator="type"),
]


# ============================================================================
# Facets
# ============================================================================


class FacetValue(BaseModel):
    """Single facet value with count"""

    value: str
    count: int


class DateRangeBucket(BaseModel):
    label: str
    count: int
    start: datetime
    end: datetime


class ValueRangeBucket(BaseModel):
    label: str
    count: int
    min: float
    max: float | None = None


class ScoreRangeBucket(BaseModel):
    label: str
    count: int
    min: int
    max: int


class SearchFacets(BaseModel):
    """Tenant-wide refinement counts, independent of the current filters"""

    entities: list[FacetValue] = []
    lead_status: list[FacetValue] = []
    deal_stage: list[FacetValue] = []
    deal_pipeline: list[FacetValue] = []
    ticket_status: list[FacetValue] = []
    ticket_priority: list[FacetValue] = []
    conversation_status: list[FacetValue] = []
    channels: list[FacetValue] = []
    companies: list[FacetValue] = []
    sources: list[FacetValue] = []
    assigned_to: list[FacetValue] = []
    teams: list[FacetValue] = []
    tags: list[FacetValue] = []
    date_ranges: list[DateRangeBucket] = []
    value_ranges: list[ValueRangeBucket] = []
    score_ranges: list[ScoreRangeBucket] = []


# ============================================================================
# Response
# ============================================================================


class Pagination(BaseModel):
    page: int
    limit: int
    total_pages: int
    has_next: bool
    has_prev: bool


class SearchResponse(BaseModel):
    """Federated search response"""

    results: list[SearchResult]
    total_count: int = Field(..., description="Sum of per-entity match counts")
    facets: SearchFacets
    search_time: float = Field(..., description="Search execution time in milliseconds")
    suggestions: list[str] | None = None
    pagination: Pagination
    entity_errors: dict[EntityType, str] = Field(
        default_factory=dict, description="Entity types omitted because their fetch failed"
    )


class SuggestionsResponse(BaseModel):
    query: str
    suggestions: list[str]
    history: list[str]
    popular: list[str]


class SearchHistoryResponse(BaseModel):
    history: list[str]


# ============================================================================
# Saved searches
# ============================================================================


class SaveSearchRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    filters: SearchQuery


class SavedSearchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    query: str | None = None
    semantic: bool = False
    filters: dict[str, Any]
    created_at: datetime


# ============================================================================
# Analytics
# ============================================================================


class PopularQuery(BaseModel):
    query: str
    count: int


class DailySearchCount(BaseModel):
    date: str
    count: int


class SearchAnalyticsResponse(BaseModel):
    days: int
    total_searches: int
    unique_users: int
    popular_queries: list[PopularQuery]
    search_trends: list[DailySearchCount]
    average_searches_per_day: float
