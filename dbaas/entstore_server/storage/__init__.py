"""
Storage primitives for EntStore: records, tables, indexes, ID generators
and per-type locks. The EntityStore facade lives in entstore_server.store.
"""

from .idgen import AutoIncrementGenerator, IdGenerator, UuidGenerator, create_id_generator
from .index import FieldIndex, IndexManager
from .locks import LockTable, ReadWriteLock
from .record import Record
from .table import EntityTable

__all__ = [
    "AutoIncrementGenerator",
    "EntityTable",
    "FieldIndex",
    "IdGenerator",
    "IndexManager",
    "LockTable",
    "ReadWriteLock",
    "Record",
    "UuidGenerator",
    "create_id_generator",
]
