"""
Sections read/write service.

This module owns the reconciliation logic between Section records and the
graph:
- write(): clear-and-rebuild of the section node and its identifiers
- read(): one query folding identifier nodes back into a Section
- delete(): un-classify, detach identifiers, drop the node if unreferenced
- count(), check(), initialise()

Invariants:
    - After write() the identifier nodes pointing at a section are exactly
      the identifiers of that write; nothing is merged with older state
    - An identifier node is deleted with its IDENTIFIES relationship unless
      something else still references it; then only the relationship goes
    - Nodes without the Identifier label are never removed as identifiers
    - A section node still referenced by other relationships survives delete
      as a bare {uuid} Thing
    - delete() reports True when classification labels were removed, even
      if the node itself is kept

How to change safely:
    - Never replace the clear-and-rebuild batch with a diff against stored state
    - Keep each operation a single batch so the store's transaction is the
      only serialisation boundary
    - Concurrent writes to one uuid may interleave; callers needing
      linearisable per-uuid writes must serialise above this service
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable

from ..graph import GraphStore
from . import queries
from .model import (
    CLASSIFICATION_LADDER,
    IDENTIFIER_CLASSES,
    AlternativeIdentifiers,
    Section,
    sort_types,
)

logger = logging.getLogger(__name__)

# Label -> unique property
CONSTRAINTS: dict[str, str] = {
    **{label: "uuid" for label in CLASSIFICATION_LADDER},
    **{cls.label: "value" for cls in IDENTIFIER_CLASSES},
}


def _now_ms() -> int:
    return int(time.time() * 1000)


class SectionsService:
    """Create, update, delete and read sections in the graph store.

    Example:
        >>> service = SectionsService(SqliteGraphStore("/tmp/graph.db"))
        >>> await service.initialise()
        >>> await service.write(Section(uuid="12345", pref_label="World"))
        >>> section = await service.read("12345")
    """

    def __init__(self, store: GraphStore, clock: Callable[[], int] | None = None) -> None:
        """Initialize the service.

        Args:
            store: Graph store executing the statement batches
            clock: Millisecond timestamp source (defaults to wall clock)
        """
        self.store = store
        self._clock = clock or _now_ms

    async def initialise(self) -> None:
        """Ensure uniqueness constraints exist. Safe to call on every start."""
        await self.store.ensure_constraints(CONSTRAINTS)
        logger.info("Sections constraints ensured", extra={"constraints": len(CONSTRAINTS)})

    async def write(self, section: Section) -> None:
        """Create or fully replace a section.

        Args:
            section: The section to persist

        Raises:
            InvalidRecordError: If the section has no uuid
            GraphStoreError: If the store rejects or cannot run the batch
        """
        section.validate()

        batch = queries.write_section(section, self._clock())
        await self.store.execute_batch(batch)

        logger.debug(
            "Wrote section",
            extra={
                "uuid": section.uuid,
                "identifiers": len(section.alternative_identifiers.pairs()),
                "statements": len(batch),
            },
        )

    async def read(self, uuid: str) -> Section | None:
        """Get a section by uuid.

        Args:
            uuid: Section uuid

        Returns:
            The stored Section, or None if no section has this uuid
        """
        results = await self.store.execute_batch([queries.read_section(uuid)])
        rows = results[0].rows
        if not rows:
            return None

        row = rows[0]
        pairs = (tuple(pair) for pair in json.loads(row["identifiers"] or "[]"))

        return Section(
            uuid=row["uuid"],
            pref_label=row["pref_label"] or "",
            alternative_identifiers=AlternativeIdentifiers.from_pairs(pairs),
            types=sort_types(json.loads(row["types"] or "[]")),
        )

    async def delete(self, uuid: str) -> bool:
        """Delete a section.

        Identifier nodes are removed with their relationships, the
        classification labels are stripped and the properties reset to
        {uuid}. The node itself is removed only when nothing else
        references it.

        Args:
            uuid: Section uuid

        Returns:
            True if classification labels were removed, False if no section
            with this uuid existed
        """
        now = self._clock()
        batch = queries.detach_identifiers(uuid)
        batch += [
            queries.remove_classification(uuid),
            queries.reset_properties(uuid, now),
            queries.remove_if_unused(uuid),
        ]
        results = await self.store.execute_batch(batch)

        labels_removed = results[-3].rows_affected
        node_removed = results[-1].rows_affected > 0

        logger.debug(
            "Deleted section",
            extra={"uuid": uuid, "labels_removed": labels_removed, "node_removed": node_removed},
        )

        return labels_removed > 0

    async def count(self) -> int:
        """Count stored sections."""
        results = await self.store.execute_batch([queries.count_sections()])
        return int(results[0].rows[0]["c"])

    async def check(self) -> None:
        """Verify the graph store is reachable.

        Raises:
            StoreUnavailableError: If it is not
        """
        await self.store.check()
