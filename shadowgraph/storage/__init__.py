"""Storage backends for graph snapshots and comparison records."""

from shadowgraph.storage.documents import InMemoryDocumentStore, SQLiteDocumentStore
from shadowgraph.storage.graphs import InMemoryGraphStore, JsonGraphStore

__all__ = [
    "InMemoryDocumentStore",
    "InMemoryGraphStore",
    "JsonGraphStore",
    "SQLiteDocumentStore",
]
