"""
Query module for EntStore.

This module provides filter queries and joins over entity tables:
- Filter predicates and their constructors (eq, gt, in_, fuzzy, ...)
- Fuzzy string matching (FuzzyOptions)
- QueryEngine: validation, index-assisted selection, ordering, paging
- JoinEngine: INNER and LEFT joins across entity types

Invariants:
    - Queries are validated against the schema before evaluation
    - Index use never changes results
"""

from .engine import Query, QueryEngine, SortDirection
from .filters import (
    Filter,
    FilterOp,
    contains,
    eq,
    fuzzy,
    gt,
    gte,
    in_,
    lt,
    lte,
)
from .fuzzy import FuzzyOptions, fuzzy_match, levenshtein, similarity
from .join import JoinedRecord, JoinEngine, JoinQuery, JoinSpec, JoinType

__all__ = [
    # Filters
    "Filter",
    "FilterOp",
    "contains",
    "eq",
    "fuzzy",
    "gt",
    "gte",
    "in_",
    "lt",
    "lte",
    # Fuzzy matching
    "FuzzyOptions",
    "fuzzy_match",
    "levenshtein",
    "similarity",
    # Queries
    "Query",
    "QueryEngine",
    "SortDirection",
    # Joins
    "JoinEngine",
    "JoinQuery",
    "JoinSpec",
    "JoinType",
    "JoinedRecord",
]
