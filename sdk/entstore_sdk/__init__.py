"""
EntStore Python SDK - calling layer over an in-process EntityStore.

This SDK provides:
- EntityRepository: finders and persistence for one entity type
- QueryBuilder / JoinQueryBuilder: fluent query construction
- CascadePolicy / cascade_delete: caller-orchestrated dependent deletes

Example:
    >>> from sdk.entstore_sdk import EntityRepository
    >>>
    >>> reviews = EntityRepository(store, "review")
    >>> top = (
    ...     reviews.create_query_builder()
    ...     .gte("rating", 4)
    ...     .order_by("rating", "DESC")
    ...     .limit(5)
    ...     .get_result()
    ... )

Invariants:
    - Repositories never bypass store validation
    - The store itself never cascades; only cascade_delete() does
"""

from .builder import JoinQueryBuilder, QueryBuilder
from .cascade import CascadePolicy, Relationship, cascade_delete
from .repository import EntityRepository

__all__ = [
    # Repositories
    "EntityRepository",
    # Builders
    "QueryBuilder",
    "JoinQueryBuilder",
    # Cascades
    "CascadePolicy",
    "Relationship",
    "cascade_delete",
]
