"""
Statement builders for the sections graph.

Every function returns parameterised statements against the SQLite graph
schema (nodes, node_labels, relationships). Record values (uuid, prefLabel,
identifier values) are always bound parameters; only constant SQL fragments
defined in this module are composed into query text.

The section node is addressed the same way everywhere: the node labelled
Thing whose uuid property equals :uuid.
"""

from __future__ import annotations

import json
import uuid as uuid_lib

from ..graph import Statement
from .model import (
    CLASSIFICATION_LABELS,
    IDENTIFIER_CLASSES,
    IDENTIFIER_LABEL,
    IDENTIFIES,
    SECTION_LABEL,
    THING_LABEL,
    IdentifierClass,
    Section,
)

_MATCH_THING = """
    SELECT n.node_id FROM nodes n
    JOIN node_labels l ON l.node_id = n.node_id AND l.label = :thing_label
    WHERE json_extract(n.props_json, '$.uuid') = :uuid
"""

# Identifier nodes whose only relationships are IDENTIFIES edges into :uuid
DETACH_IDENTIFIERS_QUERY = f"""
    DELETE FROM nodes
    WHERE node_id IN (
        SELECT r.start_node FROM relationships r
        JOIN node_labels il ON il.node_id = r.start_node AND il.label = :identifier_label
        WHERE r.rel_type = :rel_type
          AND r.end_node IN ({_MATCH_THING})
    )
      AND NOT EXISTS (
          SELECT 1 FROM relationships o
          WHERE (o.start_node = nodes.node_id OR o.end_node = nodes.node_id)
            AND NOT (
                o.start_node = nodes.node_id
                AND o.rel_type = :rel_type
                AND o.end_node IN ({_MATCH_THING})
            )
      )
"""

# Identifier nodes still referenced elsewhere only lose their edge to :uuid
UNLINK_IDENTIFIERS_QUERY = f"""
    DELETE FROM relationships
    WHERE rel_type = :rel_type
      AND end_node IN ({_MATCH_THING})
      AND start_node IN (SELECT node_id FROM node_labels WHERE label = :identifier_label)
"""

MERGE_THING_NODE_QUERY = f"""
    INSERT INTO nodes (node_id, props_json, created_at, updated_at)
    SELECT :node_id, json_object('uuid', :uuid), :now, :now
    WHERE NOT EXISTS ({_MATCH_THING})
"""

# No-op unless the previous statement created :node_id
MERGE_THING_LABEL_QUERY = """
    INSERT OR IGNORE INTO node_labels (node_id, label)
    SELECT node_id, :thing_label FROM nodes WHERE node_id = :node_id
"""

SET_PROPERTIES_QUERY = f"""
    UPDATE nodes SET props_json = :props, updated_at = :now
    WHERE node_id IN ({_MATCH_THING})
"""

ADD_LABELS_QUERY = f"""
    INSERT OR IGNORE INTO node_labels (node_id, label)
    SELECT t.node_id, j.value
    FROM ({_MATCH_THING}) AS t, json_each(:labels) AS j
"""

CREATE_IDENTIFIER_NODE_QUERY = """
    INSERT INTO nodes (node_id, props_json, created_at, updated_at)
    VALUES (:node_id, json_object('value', :value), :now, :now)
"""

LABEL_IDENTIFIER_QUERY = """
    INSERT INTO node_labels (node_id, label)
    SELECT :node_id, j.value FROM json_each(:labels) AS j
"""

LINK_IDENTIFIER_QUERY = f"""
    INSERT INTO relationships (rel_type, start_node, end_node, created_at)
    SELECT :rel_type, :node_id, t.node_id, :now
    FROM ({_MATCH_THING}) AS t
"""

READ_SECTION_QUERY = """
    SELECT
        json_extract(n.props_json, '$.uuid') AS uuid,
        json_extract(n.props_json, '$.prefLabel') AS pref_label,
        (
            SELECT json_group_array(l.label)
            FROM node_labels l
            WHERE l.node_id = n.node_id
        ) AS types,
        (
            SELECT json_group_array(json_array(il.label, json_extract(i.props_json, '$.value')))
            FROM relationships r
            JOIN nodes i ON i.node_id = r.start_node
            JOIN node_labels il ON il.node_id = i.node_id
            WHERE r.end_node = n.node_id
              AND r.rel_type = :rel_type
              AND il.label IN (SELECT value FROM json_each(:identifier_labels))
        ) AS identifiers
    FROM nodes n
    JOIN node_labels s ON s.node_id = n.node_id AND s.label = :section_label
    WHERE json_extract(n.props_json, '$.uuid') = :uuid
"""

REMOVE_CLASSIFICATION_QUERY = f"""
    DELETE FROM node_labels
    WHERE node_id IN ({_MATCH_THING})
      AND label IN (SELECT value FROM json_each(:labels))
"""

RESET_PROPERTIES_QUERY = f"""
    UPDATE nodes SET props_json = json_object('uuid', :uuid), updated_at = :now
    WHERE node_id IN ({_MATCH_THING})
"""

REMOVE_IF_UNUSED_QUERY = f"""
    DELETE FROM nodes
    WHERE node_id IN ({_MATCH_THING})
      AND NOT EXISTS (
          SELECT 1 FROM relationships r
          WHERE r.start_node = nodes.node_id OR r.end_node = nodes.node_id
      )
"""

COUNT_QUERY = "SELECT COUNT(*) AS c FROM node_labels WHERE label = :label"


def _thing_params(uuid: str) -> dict[str, str]:
    return {"uuid": uuid, "thing_label": THING_LABEL}


def _new_node_id() -> str:
    return str(uuid_lib.uuid4())


def _identifier_params(uuid: str) -> dict[str, str]:
    return {**_thing_params(uuid), "rel_type": IDENTIFIES, "identifier_label": IDENTIFIER_LABEL}


def detach_identifiers(uuid: str) -> list[Statement]:
    """Remove the section's identifier nodes.

    Identifier nodes referenced by nothing else are deleted; the rest only
    lose their IDENTIFIES relationship. Nodes without the Identifier label
    are never touched.
    """
    return [
        Statement(DETACH_IDENTIFIERS_QUERY, _identifier_params(uuid)),
        Statement(UNLINK_IDENTIFIERS_QUERY, _identifier_params(uuid)),
    ]


def merge_thing(uuid: str, now: int, node_id: str | None = None) -> list[Statement]:
    """Create the Thing node for uuid unless one exists."""
    node_id = node_id or _new_node_id()
    return [
        Statement(MERGE_THING_NODE_QUERY, {**_thing_params(uuid), "node_id": node_id, "now": now}),
        Statement(MERGE_THING_LABEL_QUERY, {"node_id": node_id, "thing_label": THING_LABEL}),
    ]


def set_properties(section: Section, now: int) -> Statement:
    """Replace the node's properties with exactly uuid and prefLabel."""
    props = {"uuid": section.uuid, "prefLabel": section.pref_label}
    return Statement(
        SET_PROPERTIES_QUERY,
        {**_thing_params(section.uuid), "props": json.dumps(props), "now": now},
    )


def add_classification(uuid: str) -> Statement:
    """Apply the Concept/Classification/Section labels."""
    return Statement(
        ADD_LABELS_QUERY, {**_thing_params(uuid), "labels": json.dumps(CLASSIFICATION_LABELS)}
    )


def create_identifier(
    uuid: str,
    identifier_class: IdentifierClass,
    value: str,
    now: int,
    node_id: str | None = None,
) -> list[Statement]:
    """Create one identifier node and link it to the section."""
    node_id = node_id or _new_node_id()
    labels = json.dumps([IDENTIFIER_LABEL, identifier_class.label])
    return [
        Statement(CREATE_IDENTIFIER_NODE_QUERY, {"node_id": node_id, "value": value, "now": now}),
        Statement(LABEL_IDENTIFIER_QUERY, {"node_id": node_id, "labels": labels}),
        Statement(
            LINK_IDENTIFIER_QUERY,
            {**_thing_params(uuid), "node_id": node_id, "rel_type": IDENTIFIES, "now": now},
        ),
    ]


def write_section(section: Section, now: int) -> list[Statement]:
    """Build the full clear-and-rebuild batch for a section."""
    batch = detach_identifiers(section.uuid)
    batch.extend(merge_thing(section.uuid, now))
    batch.append(set_properties(section, now))
    batch.append(add_classification(section.uuid))

    for identifier_class, value in section.alternative_identifiers.pairs():
        batch.extend(create_identifier(section.uuid, identifier_class, value, now))

    return batch


def read_section(uuid: str) -> Statement:
    identifier_labels = json.dumps([cls.label for cls in IDENTIFIER_CLASSES])
    return Statement(
        READ_SECTION_QUERY,
        {
            "uuid": uuid,
            "section_label": SECTION_LABEL,
            "rel_type": IDENTIFIES,
            "identifier_labels": identifier_labels,
        },
    )


def remove_classification(uuid: str) -> Statement:
    """Strip the labels write applied; rows_affected counts labels removed."""
    return Statement(
        REMOVE_CLASSIFICATION_QUERY,
        {**_thing_params(uuid), "labels": json.dumps(CLASSIFICATION_LABELS)},
    )


def reset_properties(uuid: str, now: int) -> Statement:
    return Statement(RESET_PROPERTIES_QUERY, {**_thing_params(uuid), "now": now})


def remove_if_unused(uuid: str) -> Statement:
    """Delete the node only if no relationship of any type touches it."""
    return Statement(REMOVE_IF_UNUSED_QUERY, _thing_params(uuid))


def count_sections() -> Statement:
    return Statement(COUNT_QUERY, {"label": SECTION_LABEL})
