"""
Result Normalizer

Pure functions mapping one projected row to its search result variant.
Missing optional columns never raise; they fall back to placeholders.
"""

from collections.abc import Callable
from typing import Any

from crm_search.config import settings
from crm_search.constants import EntityType
from crm_search.schemas.search import (
    ConversationMetadata,
    ConversationResult,
    CustomerMetadata,
    CustomerResult,
    DealMetadata,
    DealResult,
    LeadMetadata,
    LeadResult,
    SearchResultBase,
    SegmentMetadata,
    SegmentResult,
    TicketMetadata,
    TicketResult,
)


def _full_name(row: dict[str, Any]) -> str:
    return f"{row.get('first_name') or ''} {row.get('last_name') or ''}".strip()


def _truncate(text: str | None, max_length: int | None = None) -> str | None:
    if text is None:
        return None
    return text[: max_length or settings.description_max_length]


def _timestamps(row: dict[str, Any]) -> dict[str, Any]:
    return {"created_at": row.get("created_at"), "updated_at": row.get("updated_at")}


def normalize_lead(row: dict[str, Any]) -> LeadResult:
    return LeadResult(
        id=str(row["id"]),
        title=_full_name(row) or row.get("email") or "Unnamed Lead",
        subtitle=row.get("company") or row.get("email"),
        description=f"Lead from {row.get('source') or 'unknown source'}",
        score=row.get("score"),
        metadata=LeadMetadata(
            status=row.get("status"),
            source=row.get("source"),
            email=row.get("email"),
            company=row.get("company"),
            tags=list(row.get("tags") or []),
            assigned_user_id=row.get("assigned_user_id"),
        ),
        **_timestamps(row),
    )


def normalize_deal(row: dict[str, Any]) -> DealResult:
    return DealResult(
        id=str(row["id"]),
        title=row.get("name") or "Untitled Deal",
        subtitle=row.get("stage"),
        description=_truncate(row.get("description")),
        metadata=DealMetadata(
            stage=row.get("stage"),
            value=row.get("value"),
            currency=row.get("currency"),
            pipeline_id=row.get("pipeline_id"),
            tags=list(row.get("tags") or []),
            assigned_user_id=row.get("assigned_user_id"),
        ),
        **_timestamps(row),
    )


def normalize_customer(row: dict[str, Any]) -> CustomerResult:
    health_score = row.get("health_score")
    return CustomerResult(
        id=str(row["id"]),
        title=_full_name(row) or row.get("email") or "Unnamed Customer",
        subtitle=row.get("company") or row.get("email"),
        description=f"Customer with health score {health_score if health_score is not None else 'N/A'}",
        score=health_score,
        metadata=CustomerMetadata(
            email=row.get("email"),
            company=row.get("company"),
            tags=list(row.get("tags") or []),
            health_score=health_score,
        ),
        **_timestamps(row),
    )


def normalize_segment(row: dict[str, Any]) -> SegmentResult:
    is_active = bool(row.get("is_active"))
    return SegmentResult(
        id=str(row["id"]),
        title=row.get("name") or "Untitled Segment",
        subtitle="Active" if is_active else "Inactive",
        description=_truncate(row.get("description")),
        metadata=SegmentMetadata(is_active=is_active),
        **_timestamps(row),
    )


def normalize_ticket(row: dict[str, Any]) -> TicketResult:
    return TicketResult(
        id=str(row["id"]),
        title=row.get("subject") or "Untitled Ticket",
        subtitle=f"{row.get('status') or 'unknown'} - {row.get('priority') or 'unknown'}",
        description=_truncate(row.get("description")),
        metadata=TicketMetadata(
            status=row.get("status"),
            priority=row.get("priority"),
            channel=row.get("channel"),
            tags=list(row.get("tags") or []),
            assigned_agent_id=row.get("assigned_agent_id"),
            team_id=row.get("team_id"),
        ),
        **_timestamps(row),
    )


def normalize_conversation(row: dict[str, Any]) -> ConversationResult:
    return ConversationResult(
        id=str(row["id"]),
        title=row.get("subject") or "Conversation",
        subtitle=row.get("status"),
        description=f"Conversation via {row.get('channel') or 'unknown channel'}",
        metadata=ConversationMetadata(status=row.get("status"), channel=row.get("channel")),
        **_timestamps(row),
    )


NORMALIZERS: dict[EntityType, Callable[[dict[str, Any]], SearchResultBase]] = {
    EntityType.LEAD: normalize_lead,
    EntityType.DEAL: normalize_deal,
    EntityType.CUSTOMER: normalize_customer,
    EntityType.SEGMENT: normalize_segment,
    EntityType.TICKET: normalize_ticket,
    EntityType.CONVERSATION: normalize_conversation,
}


def normalize_rows(entity_type: EntityType, rows: list[dict[str, Any]]) -> list[SearchResultBase]:
    normalize = NORMALIZERS[entity_type]
    return [normalize(row) for row in rows]
