"""
SQLite-backed property graph store.

This module keeps a labelled property graph in a single SQLite file:
- Nodes with a JSON property map
- Labels attached to nodes (many per node)
- Typed, directed relationships between nodes
- Registered uniqueness constraints (label, property)

Statements are plain SQL over these tables with named parameters. Each
batch runs inside one IMMEDIATE transaction, so readers never observe a
half-applied batch.

Invariants:
    - Deleting a node deletes its labels and every relationship touching it
    - Uniqueness constraints are verified before COMMIT; a violation rolls
      the whole batch back
    - One connection per operation; SQLite serialises writers

How to change safely:
    - Schema changes must be additive (CREATE ... IF NOT EXISTS)
    - Keep foreign_keys = ON, the cascades depend on it
    - Property names reach DDL only after identifier validation

Table schema:
    nodes:
        - node_id TEXT (UUID) PRIMARY KEY
        - props_json TEXT (JSON object)
        - created_at INTEGER (Unix ms)
        - updated_at INTEGER (Unix ms)

    node_labels:
        - node_id TEXT -> nodes.node_id (cascade)
        - label TEXT
        - PRIMARY KEY (node_id, label)

    relationships:
        - rel_id INTEGER PRIMARY KEY
        - rel_type TEXT
        - start_node TEXT -> nodes.node_id (cascade)
        - end_node TEXT -> nodes.node_id (cascade)
        - created_at INTEGER

    unique_constraints:
        - label TEXT
        - property TEXT
        - PRIMARY KEY (label, property)
"""

from __future__ import annotations

import logging
import re
import sqlite3
import time
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path

from .base import (
    ConstraintViolationError,
    GraphStoreError,
    Statement,
    StatementResult,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)

_PROPERTY_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_VIOLATION_QUERY = """
    SELECT c.label AS label,
           c.property AS property,
           json_extract(n.props_json, '$.' || c.property) AS value
    FROM unique_constraints c
    JOIN node_labels l ON l.label = c.label
    JOIN nodes n ON n.node_id = l.node_id
    WHERE json_extract(n.props_json, '$.' || c.property) IS NOT NULL
    GROUP BY c.label, c.property, value
    HAVING COUNT(*) > 1
    LIMIT 1
"""


class SqliteGraphStore:
    """Labelled property graph kept in one SQLite database file.

    Thread safety:
        Each operation opens its own connection.
        SQLite handles concurrent access via WAL mode and the busy timeout.

    Example:
        >>> store = SqliteGraphStore("/var/lib/sections-rw/graph.db")
        >>> await store.ensure_constraints({"Thing": "uuid"})
        >>> await store.check()
    """

    SCHEMA_VERSION = 1

    def __init__(
        self,
        db_path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        cache_size_pages: int = -64000,
    ) -> None:
        """Initialize the graph store.

        Args:
            db_path: Path of the SQLite database file
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
            cache_size_pages: SQLite cache size (negative = KB)
        """
        self.db_path = Path(db_path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self.cache_size_pages = cache_size_pages
        self._schema_ready = False

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection, creating the schema on first use.

        Yields:
            SQLite connection in autocommit mode
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
            conn.execute(f"PRAGMA cache_size = {int(self.cache_size_pages)}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            conn.execute("PRAGMA foreign_keys = ON")

            if not self._schema_ready:
                self._create_schema(conn)
                self._schema_ready = True

            yield conn
        finally:
            conn.close()

    @contextmanager
    def _translate_errors(self) -> Iterator[None]:
        """Map sqlite3 and filesystem failures onto GraphStoreError subclasses."""
        try:
            yield
        except sqlite3.IntegrityError as e:
            raise ConstraintViolationError(str(e)) from e
        except sqlite3.OperationalError as e:
            raise StoreUnavailableError(f"Graph store unavailable: {e}") from e
        except sqlite3.Error as e:
            raise GraphStoreError(str(e)) from e
        except OSError as e:
            raise StoreUnavailableError(f"Graph store unavailable: {e}") from e

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        """Create database schema."""
        conn.executescript("""
            -- Schema version tracking
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS nodes (
                node_id TEXT PRIMARY KEY,
                props_json TEXT NOT NULL DEFAULT '{}',
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS node_labels (
                node_id TEXT NOT NULL REFERENCES nodes(node_id) ON DELETE CASCADE,
                label TEXT NOT NULL,
                PRIMARY KEY (node_id, label)
            ) WITHOUT ROWID;

            CREATE INDEX IF NOT EXISTS idx_node_labels_label ON node_labels(label, node_id);

            CREATE TABLE IF NOT EXISTS relationships (
                rel_id INTEGER PRIMARY KEY AUTOINCREMENT,
                rel_type TEXT NOT NULL,
                start_node TEXT NOT NULL REFERENCES nodes(node_id) ON DELETE CASCADE,
                end_node TEXT NOT NULL REFERENCES nodes(node_id) ON DELETE CASCADE,
                created_at INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_relationships_start
                ON relationships(start_node, rel_type);
            CREATE INDEX IF NOT EXISTS idx_relationships_end
                ON relationships(end_node, rel_type);

            CREATE TABLE IF NOT EXISTS unique_constraints (
                label TEXT NOT NULL,
                property TEXT NOT NULL,
                created_at INTEGER NOT NULL,
                PRIMARY KEY (label, property)
            );
        """)
        conn.execute(
            "INSERT OR IGNORE INTO schema_version (version, applied_at) VALUES (?, ?)",
            (self.SCHEMA_VERSION, int(time.time() * 1000)),
        )
        logger.info(f"Initialized graph database: {self.db_path}")

    def _verify_constraints(self, conn: sqlite3.Connection) -> None:
        """Raise if any registered uniqueness constraint is broken.

        Raises:
            ConstraintViolationError: On the first duplicated value found
        """
        row = conn.execute(_VIOLATION_QUERY).fetchone()
        if row is not None:
            raise ConstraintViolationError(
                f"Node with label {row['label']} and {row['property']} "
                f"{row['value']!r} already exists",
                label=row["label"],
                property=row["property"],
                value=row["value"],
            )

    async def execute_batch(self, statements: Sequence[Statement]) -> list[StatementResult]:
        """Execute statements atomically, in order.

        Args:
            statements: Statements to run

        Returns:
            One StatementResult per statement

        Raises:
            StoreUnavailableError: If the database cannot be opened or is locked
            ConstraintViolationError: If the batch breaks a uniqueness constraint
            GraphStoreError: For other SQLite failures
        """
        results: list[StatementResult] = []

        with self._translate_errors(), self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                changes_before = conn.total_changes

                for statement in statements:
                    cursor = conn.execute(statement.query, dict(statement.params))
                    rows = [dict(row) for row in cursor.fetchall()]
                    results.append(
                        StatementResult(rows=rows, rows_affected=max(cursor.rowcount, 0))
                    )

                if conn.total_changes != changes_before:
                    self._verify_constraints(conn)

                conn.execute("COMMIT")

            except Exception:
                conn.execute("ROLLBACK")
                raise

        logger.debug(
            "Executed batch",
            extra={
                "statements": len(statements),
                "rows_affected": sum(r.rows_affected for r in results),
            },
        )

        return results

    async def ensure_constraints(self, constraints: Mapping[str, str]) -> None:
        """Register uniqueness constraints and index their properties.

        Already-registered constraints are left untouched.

        Args:
            constraints: Mapping of node label to unique property name

        Raises:
            ValueError: If a property name is not a plain identifier
            ConstraintViolationError: If existing data breaks a constraint
        """
        for prop in constraints.values():
            if not _PROPERTY_NAME.match(prop):
                raise ValueError(f"Invalid property name for constraint: {prop!r}")

        now = int(time.time() * 1000)

        with self._translate_errors(), self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                for label, prop in constraints.items():
                    conn.execute(
                        f"CREATE INDEX IF NOT EXISTS idx_nodes_prop_{prop} "
                        f"ON nodes(json_extract(props_json, '$.{prop}'))"
                    )
                    cursor = conn.execute(
                        """
                        INSERT OR IGNORE INTO unique_constraints (label, property, created_at)
                        VALUES (?, ?, ?)
                        """,
                        (label, prop, now),
                    )
                    if cursor.rowcount > 0:
                        logger.info(
                            "Created uniqueness constraint",
                            extra={"label": label, "property": prop},
                        )

                self._verify_constraints(conn)
                conn.execute("COMMIT")

            except Exception:
                conn.execute("ROLLBACK")
                raise

    async def list_constraints(self) -> dict[str, list[str]]:
        """Get registered constraints grouped by label.

        Returns:
            Mapping of label to its unique properties
        """
        with self._translate_errors(), self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT label, property FROM unique_constraints ORDER BY label, property"
            )
            constraints: dict[str, list[str]] = {}
            for row in cursor.fetchall():
                constraints.setdefault(row["label"], []).append(row["property"])
            return constraints

    async def check(self) -> None:
        """Verify the database can be opened and read.

        Raises:
            StoreUnavailableError: If the database is not usable
        """
        try:
            with self._translate_errors(), self._get_connection() as conn:
                conn.execute("SELECT node_id FROM nodes LIMIT 1").fetchall()
        except StoreUnavailableError:
            raise
        except GraphStoreError as e:
            raise StoreUnavailableError(f"Graph store unavailable: {e}") from e

    async def get_stats(self) -> dict[str, int]:
        """Get graph size statistics.

        Returns:
            Dictionary with node, label and relationship counts
        """
        with self._translate_errors(), self._get_connection() as conn:
            stats = {}

            cursor = conn.execute("SELECT COUNT(*) FROM nodes")
            stats["nodes"] = cursor.fetchone()[0]

            cursor = conn.execute("SELECT COUNT(*) FROM node_labels")
            stats["labels"] = cursor.fetchone()[0]

            cursor = conn.execute("SELECT COUNT(*) FROM relationships")
            stats["relationships"] = cursor.fetchone()[0]

            return stats
