"""
Graph store abstraction for sections-rw.

This module provides the store capability the sections core depends on:
- GraphStore protocol (atomic statement batches, constraints, health check)
- SQLite-backed labelled property graph implementation

Invariants:
    - A batch is applied completely or not at all
    - Store failures surface as GraphStoreError subclasses, never retried here

How to change safely:
    - New backends must implement the GraphStore protocol
    - Verify atomicity by injecting a failing statement mid-batch
"""

from .base import (
    ConstraintViolationError,
    GraphStore,
    GraphStoreError,
    Statement,
    StatementResult,
    StoreUnavailableError,
    create_graph_store,
)
from .sqlite_store import SqliteGraphStore

__all__ = [
    # Protocol and types
    "GraphStore",
    "Statement",
    "StatementResult",
    "GraphStoreError",
    "StoreUnavailableError",
    "ConstraintViolationError",
    # Factory
    "create_graph_store",
    # Implementations
    "SqliteGraphStore",
]
