"""
Base protocol and types for the graph store abstraction.

This module defines the GraphStore protocol that every backend must
implement, along with the statement/result types passed across it and the
error hierarchy backends raise.

Invariants:
    - A statement is a query plus bound parameters; values never get
      formatted into the query text
    - execute_batch() applies all statements or none of them
    - ensure_constraints() is idempotent
    - Backends surface failures as GraphStoreError subclasses and never retry

How to change safely:
    - Protocol changes require updating all implementations
    - Keep the error hierarchy stable; the HTTP layer maps it to status codes
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..config import ServiceConfig


class GraphStoreError(Exception):
    """Base exception for graph store operations."""

    pass


class StoreUnavailableError(GraphStoreError):
    """The store could not be reached or could not execute the batch."""

    pass


class ConstraintViolationError(GraphStoreError):
    """A batch would break a uniqueness constraint.

    Attributes:
        label: Node label the constraint applies to
        property: Constrained property name
        value: The duplicated value
    """

    def __init__(
        self,
        message: str,
        label: str | None = None,
        property: str | None = None,
        value: Any = None,
    ) -> None:
        super().__init__(message)
        self.label = label
        self.property = property
        self.value = value


@dataclass(frozen=True)
class Statement:
    """A parameterised statement.

    Attributes:
        query: Statement text with named placeholders (``:name``)
        params: Values bound to the placeholders
    """

    query: str
    params: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class StatementResult:
    """Outcome of one statement in a batch.

    Attributes:
        rows: Result rows as dictionaries (empty for writes)
        rows_affected: Rows inserted, updated or deleted by the statement
    """

    rows: list[dict[str, Any]] = field(default_factory=list)
    rows_affected: int = 0


@runtime_checkable
class GraphStore(Protocol):
    """Protocol for graph store backends.

    Atomicity contract:
        - execute_batch() runs every statement inside one transaction
        - Any failure rolls the whole batch back before the error is raised

    Example:
        >>> store = SqliteGraphStore("/tmp/graph.db")
        >>> results = await store.execute_batch([
        ...     Statement("SELECT COUNT(*) AS c FROM nodes"),
        ... ])
        >>> results[0].rows[0]["c"]
        0
    """

    @abstractmethod
    async def execute_batch(self, statements: Sequence[Statement]) -> list[StatementResult]:
        """Execute statements atomically, in order.

        Args:
            statements: Statements to run

        Returns:
            One StatementResult per statement, in the same order

        Raises:
            StoreUnavailableError: If the store cannot execute the batch
            ConstraintViolationError: If the batch breaks a uniqueness constraint
            GraphStoreError: For other store failures
        """
        ...

    @abstractmethod
    async def ensure_constraints(self, constraints: Mapping[str, str]) -> None:
        """Ensure uniqueness constraints exist.

        Args:
            constraints: Mapping of node label to the property that must be
                unique among nodes carrying that label

        Raises:
            ConstraintViolationError: If existing data already breaks a constraint
            StoreUnavailableError: If the store cannot be reached
        """
        ...

    @abstractmethod
    async def check(self) -> None:
        """Verify the store can answer a trivial read.

        Raises:
            StoreUnavailableError: If the store is not usable
        """
        ...


def create_graph_store(config: ServiceConfig) -> GraphStore:
    """Factory function to create the graph store from configuration.

    Args:
        config: Service configuration

    Returns:
        Configured GraphStore implementation
    """
    from .sqlite_store import SqliteGraphStore

    return SqliteGraphStore(
        db_path=config.storage.db_path,
        wal_mode=config.storage.wal_mode,
        busy_timeout_ms=config.storage.busy_timeout_ms,
        cache_size_pages=config.storage.cache_size_pages,
    )
