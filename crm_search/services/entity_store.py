"""
Entity Stores

The storage collaborator the search engine talks to: one store per entity
type exposing ``find``, ``count`` and ``group_by`` over a tenant-scoped
predicate. ``SQLEntityStore`` compiles predicates to SQLAlchemy expressions
and opens its own session per call so concurrent branches never share one.
"""

import logging
from collections.abc import Sequence
from typing import Any, Protocol

from sqlalchemy import and_, false, func, or_, select, true
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crm_search.constants import EntityType, SortOrder
from crm_search.exceptions import StorageError
from crm_search.models import (
    Conversation,
    Customer,
    CustomerSegment,
    CustomerTag,
    Deal,
    DealTag,
    Lead,
    LeadTag,
    Ticket,
    TicketTag,
)
from crm_search.services.predicates import (
    AnyOf,
    Contains,
    CustomFieldEquals,
    EntityPredicate,
    HasAnyTag,
    InSet,
    IsNull,
    Range,
    Term,
)

logger = logging.getLogger(__name__)

TAGS_FIELD = "tags"


class EntityStore(Protocol):
    entity_type: EntityType

    async def find(
        self,
        predicate: EntityPredicate,
        skip: int,
        take: int,
        order_by: Sequence[tuple[str, SortOrder]],
        projection: Sequence[str],
    ) -> list[dict[str, Any]]: ...

    async def count(self, predicate: EntityPredicate) -> int: ...

    async def group_by(self, field: str, predicate: EntityPredicate) -> list[tuple[Any, int]]: ...


class SQLEntityStore:
    """Relational entity store backed by one ORM model (and optionally its tag table)."""

    def __init__(
        self,
        entity_type: EntityType,
        model,
        session_factory: async_sessionmaker[AsyncSession],
        tag_model=None,
        tag_owner_column: str | None = None,
    ):
        self.entity_type = entity_type
        self.model = model
        self.tag_model = tag_model
        self._session_factory = session_factory
        self._tag_owner = getattr(tag_model, tag_owner_column) if tag_model is not None and tag_owner_column else None

    def has_field(self, name: str) -> bool:
        if name == TAGS_FIELD:
            return self.tag_model is not None
        return name in self.model.__table__.columns

    def _column(self, name: str):
        if name not in self.model.__table__.columns:
            raise ValueError(f"{self.model.__name__} has no column '{name}'")
        return getattr(self.model, name)

    # ------------------------------------------------------------------
    # Predicate compilation
    # ------------------------------------------------------------------

    def _compile_term(self, term: Term):
        if isinstance(term, Contains):
            return self._column(term.field).icontains(term.value, autoescape=True)

        if isinstance(term, InSet):
            if not term.values:
                return false()
            return self._column(term.field).in_(term.values)

        if isinstance(term, IsNull):
            return self._column(term.field).is_(None)

        if isinstance(term, Range):
            column = self._column(term.field)
            bounds = []
            if term.gte is not None:
                bounds.append(column >= term.gte)
            if term.lte is not None:
                bounds.append(column <= term.lte)
            if term.gt is not None:
                bounds.append(column > term.gt)
            if term.lt is not None:
                bounds.append(column < term.lt)
            return and_(*bounds) if bounds else true()

        if isinstance(term, HasAnyTag):
            if self.tag_model is None or not term.tags:
                return false()
            return (
                select(self.tag_model.id)
                .where(self._tag_owner == self.model.id, self.tag_model.tag.in_(term.tags))
                .exists()
            )

        if isinstance(term, CustomFieldEquals):
            if "custom_fields" not in self.model.__table__.columns:
                return false()
            element = self.model.custom_fields[term.key]
            value = term.value
            if isinstance(value, bool):
                return element.as_boolean() == value
            if isinstance(value, int):
                return element.as_integer() == value
            if isinstance(value, float):
                return element.as_float() == value
            return element.as_string() == str(value)

        if isinstance(term, AnyOf):
            if not term.terms:
                return false()
            return or_(*(self._compile_term(inner) for inner in term.terms))

        raise ValueError(f"Unsupported predicate term: {term!r}")

    def compile(self, predicate: EntityPredicate) -> list:
        """Return the WHERE clauses for a predicate, tenant scope first."""
        clauses = [self.model.tenant_id == predicate.tenant_id]
        clauses.extend(self._compile_term(term) for term in predicate.terms)
        return clauses

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def find(
        self,
        predicate: EntityPredicate,
        skip: int,
        take: int,
        order_by: Sequence[tuple[str, SortOrder]],
        projection: Sequence[str],
    ) -> list[dict[str, Any]]:
        """Fetch one window of projected rows as plain dicts."""
        field_names = [name for name in projection if name != TAGS_FIELD]
        if "id" not in field_names:
            field_names.insert(0, "id")

        ordering = []
        for name, order in order_by:
            column = self._column(name)
            ordering.append(column.asc() if order == SortOrder.ASC else column.desc())

        stmt = (
            select(*(self._column(name) for name in field_names))
            .where(*self.compile(predicate))
            .order_by(*ordering)
            .offset(skip)
            .limit(take)
        )

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                records = [dict(row) for row in result.mappings().all()]

                if TAGS_FIELD in projection and records:
                    tags_by_owner = await self._load_tags(session, [record["id"] for record in records])
                    for record in records:
                        record[TAGS_FIELD] = tags_by_owner.get(record["id"], [])
        except SQLAlchemyError as e:
            logger.error(f"{self.entity_type.value} find failed: {e}")
            raise StorageError(
                f"Failed to fetch {self.entity_type.value} records",
                entity_type=self.entity_type.value,
                operation="find",
            ) from e

        return records

    async def _load_tags(self, session: AsyncSession, owner_ids: list[str]) -> dict[str, list[str]]:
        if self.tag_model is None:
            return {}
        result = await session.execute(
            select(self._tag_owner, self.tag_model.tag)
            .where(self._tag_owner.in_(owner_ids))
            .order_by(self._tag_owner, self.tag_model.tag)
        )
        tags_by_owner: dict[str, list[str]] = {}
        for owner_id, tag in result.all():
            tags_by_owner.setdefault(owner_id, []).append(tag)
        return tags_by_owner

    async def count(self, predicate: EntityPredicate) -> int:
        stmt = select(func.count()).select_from(self.model).where(*self.compile(predicate))
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return int(result.scalar() or 0)
        except SQLAlchemyError as e:
            logger.error(f"{self.entity_type.value} count failed: {e}")
            raise StorageError(
                f"Failed to count {self.entity_type.value} records",
                entity_type=self.entity_type.value,
                operation="count",
            ) from e

    async def group_by(self, field: str, predicate: EntityPredicate) -> list[tuple[Any, int]]:
        """Return (value, count) pairs for one field. ``tags`` groups over the tag table."""
        if field == TAGS_FIELD:
            if self.tag_model is None:
                return []
            stmt = (
                select(self.tag_model.tag, func.count())
                .join(self.model, self._tag_owner == self.model.id)
                .where(*self.compile(predicate))
                .group_by(self.tag_model.tag)
            )
        else:
            column = self._column(field)
            stmt = select(column, func.count()).where(*self.compile(predicate)).group_by(column)

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [(row[0], int(row[1])) for row in result.all()]
        except SQLAlchemyError as e:
            logger.error(f"{self.entity_type.value} group_by({field}) failed: {e}")
            raise StorageError(
                f"Failed to group {self.entity_type.value} records by {field}",
                entity_type=self.entity_type.value,
                operation="group_by",
            ) from e


def build_entity_stores(session_factory: async_sessionmaker[AsyncSession]) -> dict[EntityType, SQLEntityStore]:
    """Create the relational store for every entity type."""
    return {
        EntityType.LEAD: SQLEntityStore(EntityType.LEAD, Lead, session_factory, LeadTag, "lead_id"),
        EntityType.DEAL: SQLEntityStore(EntityType.DEAL, Deal, session_factory, DealTag, "deal_id"),
        EntityType.CUSTOMER: SQLEntityStore(
            EntityType.CUSTOMER, Customer, session_factory, CustomerTag, "customer_id"
        ),
        EntityType.SEGMENT: SQLEntityStore(EntityType.SEGMENT, CustomerSegment, session_factory),
        EntityType.TICKET: SQLEntityStore(EntityType.TICKET, Ticket, session_factory, TicketTag, "ticket_id"),
        EntityType.CONVERSATION: SQLEntityStore(EntityType.CONVERSATION, Conversation, session_factory),
    }
