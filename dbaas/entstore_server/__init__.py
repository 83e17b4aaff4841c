"""
EntStore Server - in-process entity store with filterable queries, joins and fuzzy search.

This package implements a generic entity store built on:
- Explicitly registered entity schemas (typed fields, indexed flags, ID strategy)
- Per-type record tables with synchronous secondary indexes
- A conjunctive filter query engine with index-assisted candidate selection
- A join engine attaching related records from other entity types
- An optional aiohttp JSON API in front of the store

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │   Caller    │────▶│ QueryEngine │────▶│  IndexManager   │
    │ (SDK/HTTP)  │     │ JoinEngine  │     │  (per type)     │
    └──────┬──────┘     └──────┬──────┘     └────────┬────────┘
           │                   │                     │
           ▼                   ▼                     ▼
    ┌─────────────────────────────────────────────────────────┐
    │          EntityStore (records keyed by type, id)        │
    └─────────────────────────────────────────────────────────┘
                               │
                               ▼
                      ┌─────────────────┐
                      │ SchemaRegistry  │
                      └─────────────────┘

Invariants:
    - Every stored record satisfies its entity type's schema
    - Indexes reflect the current record set after every write
    - Generated IDs are never reused, even after deletion
    - The store never cascades deletes; callers orchestrate them

How to change safely:
    - Schemas are immutable once registered; register new types instead
    - Keep index maintenance inside the write lock of the owning type
    - Index use must never change query results, only their cost
"""

from ._version import __version__

__all__ = ["__version__"]
