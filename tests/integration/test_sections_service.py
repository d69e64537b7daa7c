"""
Integration tests for SectionsService over a real SQLite graph.

Tests cover:
- Write/read round trips
- Idempotent writes and identifier convergence
- Delete completeness and safety for referenced nodes
- Uniqueness constraints across sections
- Counting
"""

import os
import tempfile

import pytest

from rwapp.sections_rw.graph import (
    ConstraintViolationError,
    SqliteGraphStore,
    Statement,
    StoreUnavailableError,
)
from rwapp.sections_rw.sections import (
    AlternativeIdentifiers,
    InvalidRecordError,
    Section,
    SectionsService,
)

VALUE_COUNT = """
    SELECT COUNT(*) AS c FROM nodes
    WHERE json_extract(props_json, '$.value') = :value
"""

NODE_PROPS = """
    SELECT n.props_json AS props,
           (SELECT json_group_array(l.label) FROM node_labels l
            WHERE l.node_id = n.node_id) AS labels
    FROM nodes n
    WHERE json_extract(n.props_json, '$.uuid') = :uuid
"""

INSERT_FOREIGN_NODE = """
    INSERT INTO nodes (node_id, props_json, created_at, updated_at)
    VALUES (:node_id, json_object('name', :name), 0, 0)
"""

LABEL_NODE = "INSERT INTO node_labels (node_id, label) VALUES (:node_id, :label)"

LINK_TO_SECTION = """
    INSERT INTO relationships (rel_type, start_node, end_node, created_at)
    SELECT :rel_type, :start, n.node_id, 0
    FROM nodes n
    JOIN node_labels l ON l.node_id = n.node_id AND l.label = 'Thing'
    WHERE json_extract(n.props_json, '$.uuid') = :uuid
"""

LINK_IDENTIFIER_TO_SECTION = """
    INSERT INTO relationships (rel_type, start_node, end_node, created_at)
    SELECT :rel_type, i.node_id, n.node_id, 0
    FROM nodes i, nodes n
    JOIN node_labels l ON l.node_id = n.node_id AND l.label = 'Thing'
    WHERE json_extract(i.props_json, '$.value') = :value
      AND json_extract(n.props_json, '$.uuid') = :uuid
"""

REL_COUNT = "SELECT COUNT(*) AS c FROM relationships WHERE rel_type = :rel_type"

NODE_COUNT = "SELECT COUNT(*) AS c FROM nodes WHERE node_id = :node_id"


class TestSectionsService:
    """Integration tests for SectionsService."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def store(self, data_dir):
        return SqliteGraphStore(os.path.join(data_dir, "graph.db"), wal_mode=False)

    @pytest.fixture
    def service(self, store):
        return SectionsService(store, clock=lambda: 1_700_000_000_000)

    async def value_count(self, store, value):
        return await self.scalar(store, VALUE_COUNT, value=value)

    async def scalar(self, store, query, **params):
        results = await store.execute_batch([Statement(query, params)])
        return results[0].rows[0]["c"]

    async def add_organisation(self, store, identifies, about):
        """Another writer's node: IDENTIFIES one section, ABOUT another."""
        await store.execute_batch(
            [
                Statement(INSERT_FOREIGN_NODE, {"node_id": "org-1", "name": "Org"}),
                Statement(LABEL_NODE, {"node_id": "org-1", "label": "Organisation"}),
                Statement(
                    LINK_TO_SECTION,
                    {"rel_type": "IDENTIFIES", "start": "org-1", "uuid": identifies},
                ),
                Statement(LINK_TO_SECTION, {"rel_type": "ABOUT", "start": "org-1", "uuid": about}),
            ]
        )

    @pytest.mark.asyncio
    async def test_initialise_idempotent(self, service, store):
        """Constraints can be ensured on every start."""
        await service.initialise()
        await service.initialise()

        constraints = await store.list_constraints()
        assert constraints["Thing"] == ["uuid"]
        assert constraints["Section"] == ["uuid"]
        assert constraints["TMEIdentifier"] == ["value"]
        assert constraints["UPPIdentifier"] == ["value"]

    @pytest.mark.asyncio
    async def test_write_and_read(self, service):
        """A section with a TME identifier reads back identically."""
        await service.initialise()

        section = Section(
            uuid="12345",
            pref_label="Test",
            alternative_identifiers=AlternativeIdentifiers(tme=("TME_ID",)),
        )
        await service.write(section)

        fetched = await service.read("12345")

        assert fetched == section
        assert fetched.types == ("Thing", "Concept", "Classification", "Section")
        assert fetched.alternative_identifiers.uuids == ()
        assert fetched.alternative_identifiers.factset_identifier == ""

    @pytest.mark.asyncio
    async def test_read_missing(self, service):
        await service.initialise()

        assert await service.read("nope") is None

    @pytest.mark.asyncio
    async def test_round_trip_special_characters(self, service):
        """Quotes in prefLabel are stored as data."""
        await service.initialise()

        section = Section(
            uuid="12345",
            pref_label="Test 'special chars\" and \"double\" ; --",
            alternative_identifiers=AlternativeIdentifiers(
                tme=("TME_1", "TME_2"),
                uuids=("alias-1",),
                factset_identifier="F-123",
                lei_code="LEI-456",
            ),
        )
        await service.write(section)

        assert await service.read("12345") == section

    @pytest.mark.asyncio
    async def test_write_idempotent(self, service, store):
        """Writing the same section twice leaves the same graph."""
        await service.initialise()

        section = Section(
            uuid="12345",
            pref_label="Test",
            alternative_identifiers=AlternativeIdentifiers(tme=("TME_ID",), uuids=("u1",)),
        )
        await service.write(section)
        first_stats = await store.get_stats()

        await service.write(section)

        assert await store.get_stats() == first_stats
        assert await service.read("12345") == section
        assert await service.count() == 1

    @pytest.mark.asyncio
    async def test_identifiers_converge(self, service, store):
        """Identifiers missing from a rewrite are gone, not merged."""
        await service.initialise()

        await service.write(
            Section(uuid="12345", alternative_identifiers=AlternativeIdentifiers(uuids=("x", "y")))
        )
        await service.write(
            Section(uuid="12345", alternative_identifiers=AlternativeIdentifiers(uuids=("y", "z")))
        )

        fetched = await service.read("12345")
        assert fetched.alternative_identifiers.uuids == ("y", "z")
        assert await self.value_count(store, "x") == 0
        assert await self.value_count(store, "y") == 1

        stats = await store.get_stats()
        assert stats["nodes"] == 3
        assert stats["relationships"] == 2

    @pytest.mark.asyncio
    async def test_rewrite_drops_all_identifiers(self, service, store):
        await service.initialise()

        await service.write(
            Section(
                uuid="12345",
                pref_label="Old",
                alternative_identifiers=AlternativeIdentifiers(tme=("TME_ID",), lei_code="L"),
            )
        )
        await service.write(Section(uuid="12345", pref_label="New"))

        fetched = await service.read("12345")
        assert fetched.pref_label == "New"
        assert fetched.alternative_identifiers.is_empty()
        assert await store.get_stats() == {"nodes": 1, "labels": 4, "relationships": 0}

    @pytest.mark.asyncio
    async def test_delete(self, service, store):
        """Delete removes the section and its identifier nodes."""
        await service.initialise()

        await service.write(
            Section(
                uuid="12345",
                pref_label="Test",
                alternative_identifiers=AlternativeIdentifiers(tme=("TME_ID",), uuids=("u1",)),
            )
        )

        assert await service.delete("12345") is True
        assert await service.read("12345") is None
        assert await store.get_stats() == {"nodes": 0, "labels": 0, "relationships": 0}

    @pytest.mark.asyncio
    async def test_delete_missing(self, service):
        await service.initialise()

        assert await service.delete("nope") is False

    @pytest.mark.asyncio
    async def test_delete_keeps_referenced_node(self, service, store):
        """A section other nodes point at survives as a bare Thing."""
        await service.initialise()

        await service.write(
            Section(
                uuid="12345",
                pref_label="Test",
                alternative_identifiers=AlternativeIdentifiers(tme=("TME_ID",)),
            )
        )

        # Content annotated with the section, written by another service
        await store.execute_batch(
            [
                Statement(
                    """
                    INSERT INTO nodes (node_id, props_json, created_at, updated_at)
                    VALUES ('content-1', json_object('uuid', 'content-uuid'), 0, 0)
                    """,
                    {},
                ),
                Statement(
                    """
                    INSERT INTO relationships (rel_type, start_node, end_node, created_at)
                    SELECT 'MENTIONS', 'content-1', n.node_id, 0
                    FROM nodes n
                    WHERE json_extract(n.props_json, '$.uuid') = :uuid
                    """,
                    {"uuid": "12345"},
                ),
            ]
        )

        assert await service.delete("12345") is True
        assert await service.read("12345") is None
        assert await self.value_count(store, "TME_ID") == 0

        results = await store.execute_batch([Statement(NODE_PROPS, {"uuid": "12345"})])
        rows = results[0].rows
        assert len(rows) == 1
        assert rows[0]["props"] == '{"uuid":"12345"}'
        assert rows[0]["labels"] == '["Thing"]'

        # A second delete finds nothing left to un-classify
        assert await service.delete("12345") is False

    @pytest.mark.asyncio
    async def test_delete_keeps_foreign_identifies_source(self, service, store):
        """A non-Identifier node pointing at the section is not an identifier."""
        await service.initialise()

        other = Section(uuid="s2", pref_label="Other")
        await service.write(Section(uuid="s1", pref_label="First"))
        await service.write(other)
        await self.add_organisation(store, identifies="s1", about="s2")

        assert await service.delete("s1") is True

        assert await self.scalar(store, NODE_COUNT, node_id="org-1") == 1
        assert await self.scalar(store, REL_COUNT, rel_type="ABOUT") == 1
        assert await service.read("s2") == other

        # Still referenced by the organisation, so kept as a bare Thing
        results = await store.execute_batch([Statement(NODE_PROPS, {"uuid": "s1"})])
        assert results[0].rows[0]["labels"] == '["Thing"]'

    @pytest.mark.asyncio
    async def test_write_keeps_foreign_identifies_source(self, service, store):
        await service.initialise()

        await service.write(Section(uuid="s1", pref_label="First"))
        await service.write(Section(uuid="s2", pref_label="Other"))
        await self.add_organisation(store, identifies="s1", about="s2")

        await service.write(
            Section(uuid="s1", alternative_identifiers=AlternativeIdentifiers(tme=("t1",)))
        )

        assert await self.scalar(store, NODE_COUNT, node_id="org-1") == 1
        assert await self.scalar(store, REL_COUNT, rel_type="ABOUT") == 1
        assert await self.scalar(store, REL_COUNT, rel_type="IDENTIFIES") == 2

        fetched = await service.read("s1")
        assert fetched.alternative_identifiers == AlternativeIdentifiers(tme=("t1",))

    @pytest.mark.asyncio
    async def test_rewrite_keeps_identifier_referenced_elsewhere(self, service, store):
        """An identifier node with other relationships only loses its IDENTIFIES edge."""
        await service.initialise()

        await service.write(
            Section(uuid="s1", alternative_identifiers=AlternativeIdentifiers(tme=("t1",)))
        )
        await service.write(Section(uuid="s2", pref_label="Other"))
        await store.execute_batch(
            [
                Statement(
                    LINK_IDENTIFIER_TO_SECTION,
                    {"rel_type": "MENTIONS", "value": "t1", "uuid": "s2"},
                )
            ]
        )

        await service.write(Section(uuid="s1", pref_label="First"))

        fetched = await service.read("s1")
        assert fetched.alternative_identifiers.is_empty()
        assert await self.value_count(store, "t1") == 1
        assert await self.scalar(store, REL_COUNT, rel_type="MENTIONS") == 1
        assert await self.scalar(store, REL_COUNT, rel_type="IDENTIFIES") == 0

    @pytest.mark.asyncio
    async def test_single_valued_identifiers_converge(self, service, store):
        """Replaced or cleared single-valued identifiers leave no node behind."""
        await service.initialise()

        await service.write(
            Section(
                uuid="12345",
                alternative_identifiers=AlternativeIdentifiers(
                    factset_identifier="A", lei_code="L1"
                ),
            )
        )
        await service.write(
            Section(
                uuid="12345",
                alternative_identifiers=AlternativeIdentifiers(factset_identifier="B"),
            )
        )

        fetched = await service.read("12345")
        assert fetched.alternative_identifiers.factset_identifier == "B"
        assert fetched.alternative_identifiers.lei_code == ""
        assert await self.value_count(store, "A") == 0
        assert await self.value_count(store, "L1") == 0
        assert await self.value_count(store, "B") == 1

        await service.write(Section(uuid="12345"))

        assert await self.value_count(store, "B") == 0
        assert (await store.get_stats())["nodes"] == 1

    @pytest.mark.asyncio
    async def test_read_foreign_labels_last(self, service, store):
        """Labels added by other writers follow the classification ladder."""
        await service.initialise()

        await service.write(Section(uuid="12345", pref_label="Test"))
        await store.execute_batch(
            [
                Statement(
                    """
                    INSERT INTO node_labels (node_id, label)
                    SELECT node_id, 'Brand' FROM nodes
                    WHERE json_extract(props_json, '$.uuid') = :uuid
                    """,
                    {"uuid": "12345"},
                )
            ]
        )

        fetched = await service.read("12345")

        assert fetched.types == ("Thing", "Concept", "Classification", "Section", "Brand")

    @pytest.mark.asyncio
    async def test_rewrite_after_delete_reuses_node(self, service, store):
        """A kept Thing is reclassified by the next write, not duplicated."""
        await service.initialise()

        await service.write(Section(uuid="12345", pref_label="Test"))
        await store.execute_batch(
            [
                Statement(
                    """
                    INSERT INTO relationships (rel_type, start_node, end_node, created_at)
                    SELECT 'SELF', n.node_id, n.node_id, 0 FROM nodes n
                    """,
                    {},
                )
            ]
        )
        await service.delete("12345")

        await service.write(Section(uuid="12345", pref_label="Back"))

        fetched = await service.read("12345")
        assert fetched.pref_label == "Back"
        assert (await store.get_stats())["nodes"] == 1

    @pytest.mark.asyncio
    async def test_count(self, service):
        await service.initialise()

        assert await service.count() == 0

        for i in range(3):
            await service.write(Section(uuid=f"uuid-{i}", pref_label=f"Section {i}"))

        assert await service.count() == 3

        await service.delete("uuid-1")

        assert await service.count() == 2

    @pytest.mark.asyncio
    async def test_identifier_shared_across_sections_rejected(self, service):
        """An identifier value can point at one section only."""
        await service.initialise()

        first = Section(
            uuid="first",
            pref_label="First",
            alternative_identifiers=AlternativeIdentifiers(tme=("shared",)),
        )
        await service.write(first)

        with pytest.raises(ConstraintViolationError) as exc_info:
            await service.write(
                Section(
                    uuid="second",
                    pref_label="Second",
                    alternative_identifiers=AlternativeIdentifiers(tme=("shared",)),
                )
            )

        assert exc_info.value.label == "TMEIdentifier"
        assert await service.read("second") is None
        assert await service.read("first") == first
        assert await service.count() == 1

    @pytest.mark.asyncio
    async def test_invalid_record_rejected_before_store(self, data_dir):
        """Validation runs before the store is touched."""
        blocker = os.path.join(data_dir, "blocker")
        with open(blocker, "w") as f:
            f.write("not a directory")
        service = SectionsService(SqliteGraphStore(os.path.join(blocker, "graph.db")))

        with pytest.raises(InvalidRecordError):
            await service.write(Section(uuid="", pref_label="Test"))

        with pytest.raises(StoreUnavailableError):
            await service.write(Section(uuid="12345", pref_label="Test"))

    @pytest.mark.asyncio
    async def test_check(self, service):
        await service.check()
