"""
Caller-side cascading deletes.

The store never deletes across entity types. Applications that want
dependent records removed together with their parent declare the
parent/child relationships in a CascadePolicy and call cascade_delete().

Invariants:
    - Children are deleted before their parent
    - Each (entity type, ID) is visited at most once, so cyclic
      relationships terminate
    - Records already gone are skipped, never an error

Example:
    >>> policy = CascadePolicy([Relationship("product", "review", "productId")])
    >>> cascade_delete(store, policy, "product", "7")
    4
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from dbaas.entstore_server.errors import NotFoundError, UnknownEntityTypeError
from dbaas.entstore_server.query import Query, eq
from dbaas.entstore_server.store import EntityStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Relationship:
    """Child records reference a parent through a field.

    Attributes:
        parent_type: Entity type of the parent
        child_type: Entity type of the dependents
        foreign_field: Child field holding the parent's value
        local_field: Parent field referenced (the record ID by default)
    """

    parent_type: str
    child_type: str
    foreign_field: str
    local_field: str = "id"


class CascadePolicy:
    """Set of relationships along which deletes cascade."""

    def __init__(self, relationships: Iterable[Relationship] = ()) -> None:
        self._by_parent: dict[str, list[Relationship]] = {}
        for relationship in relationships:
            self.add(relationship)

    def add(self, relationship: Relationship) -> CascadePolicy:
        self._by_parent.setdefault(relationship.parent_type, []).append(relationship)
        return self

    def children_of(self, parent_type: str) -> list[Relationship]:
        return list(self._by_parent.get(parent_type, ()))

    def __iter__(self) -> Iterator[Relationship]:
        for relationships in self._by_parent.values():
            yield from relationships

    def __len__(self) -> int:
        return sum(len(r) for r in self._by_parent.values())


def cascade_delete(
    store: EntityStore,
    policy: CascadePolicy,
    entity_type: str,
    record_id: str,
) -> int:
    """Delete a record and, depth first, everything that depends on it.

    Returns:
        Number of records deleted (0 if the record did not exist)

    Raises:
        UnknownEntityTypeError: If entity_type or a policy type is not registered
    """
    visited: set[tuple[str, str]] = set()

    def delete_tree(current_type: str, current_id: str) -> int:
        key = (current_type, current_id)
        if key in visited:
            return 0
        visited.add(key)

        try:
            record = store.get_by_id(current_type, current_id)
        except UnknownEntityTypeError:
            raise
        except NotFoundError:
            return 0

        deleted = 0
        for relationship in policy.children_of(current_type):
            value = record.get(relationship.local_field)
            if value is None:
                continue
            children = store.query(
                Query(
                    entity_type=relationship.child_type,
                    filters=(eq(relationship.foreign_field, value),),
                )
            )
            for child in children:
                deleted += delete_tree(relationship.child_type, child.id)

        if store.delete(current_type, current_id):
            deleted += 1
        return deleted

    total = delete_tree(entity_type, record_id)
    logger.debug(
        "Cascade delete finished",
        extra={"entity_type": entity_type, "record_id": record_id, "deleted": total},
    )
    return total
