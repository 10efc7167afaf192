"""Constants package for CRM Search."""

from .entities import ENTITY_ORDER, POPULAR_QUERIES, DateField, EntityType, SortKey, SortOrder

__all__ = [
    "EntityType",
    "ENTITY_ORDER",
    "DateField",
    "SortKey",
    "SortOrder",
    "POPULAR_QUERIES",
]
