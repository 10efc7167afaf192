"""
Semantic Similarity

Collaborator the planner consults when a query asks for semantic search.
The shipped implementation is disabled and always answers with an empty
ranking, which the planner treats as "fall back to text search".
"""

import logging
from collections.abc import Sequence
from typing import Protocol

from crm_search.constants import EntityType

logger = logging.getLogger(__name__)


class SemanticSimilarity(Protocol):
    async def similar(self, text: str, entity_types: Sequence[EntityType]) -> list[tuple[str, float]]:
        """Return (id, similarity) pairs ranked best first; similarity lies in [0, 1]."""
        ...


class DisabledSemanticSimilarity:
    """Semantic search backend used until an embedding service is wired in."""

    async def similar(self, text: str, entity_types: Sequence[EntityType]) -> list[tuple[str, float]]:
        logger.debug("Semantic search requested but no backend is configured")
        return []
