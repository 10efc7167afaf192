"""
Predicate vocabulary understood by entity stores.

A predicate is a tenant id plus a conjunction of terms. Terms are keyed by
the field they constrain, so setting a second term on the same field
replaces the first (used for ``unassigned`` overriding ``assigned_to``).
"""

from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True)
class Contains:
    """Case-insensitive substring match."""

    field: str
    value: str


@dataclass(frozen=True)
class InSet:
    field: str
    values: tuple[Any, ...]


@dataclass(frozen=True)
class IsNull:
    field: str


@dataclass(frozen=True)
class Range:
    """Inclusive (gte/lte) and exclusive (gt/lt) bounds on a numeric or date field."""

    field: str
    gte: Any = None
    lte: Any = None
    gt: Any = None
    lt: Any = None

    def is_empty(self) -> bool:
        return self.gte is None and self.lte is None and self.gt is None and self.lt is None


@dataclass(frozen=True)
class HasAnyTag:
    """The record carries at least one of the tags."""

    tags: tuple[str, ...]
    field: str = "tags"


@dataclass(frozen=True)
class CustomFieldEquals:
    key: str
    value: Any
    field: str = "custom_fields"


@dataclass(frozen=True)
class AnyOf:
    """Disjunction of terms; matches when at least one term matches."""

    terms: tuple["Term", ...]
    field: str = "__any_of__"


Term = Union[Contains, InSet, IsNull, Range, HasAnyTag, CustomFieldEquals, AnyOf]


@dataclass(frozen=True)
class EntityPredicate:
    tenant_id: str
    terms: tuple[Term, ...] = ()

    def and_(self, *terms: Term) -> "EntityPredicate":
        return EntityPredicate(tenant_id=self.tenant_id, terms=self.terms + tuple(terms))

    def term_for(self, field_name: str) -> Term | None:
        for term in self.terms:
            if term.field == field_name:
                return term
        return None


@dataclass
class PredicateBuilder:
    """
    Collects terms for one entity, one term per field.

    Custom field terms are keyed by their key so several can coexist.
    """

    tenant_id: str
    _terms: dict[str, Term] = field(default_factory=dict)

    def set(self, term: Term) -> "PredicateBuilder":
        key = term.field
        if isinstance(term, CustomFieldEquals):
            key = f"custom_fields.{term.key}"
        self._terms[key] = term
        return self

    def build(self) -> EntityPredicate:
        return EntityPredicate(tenant_id=self.tenant_id, terms=tuple(self._terms.values()))
