"""
Section record model.

This module defines the canonical entity persisted by sections-rw and the
schema knowledge shared by the writer, reader and delete path:
- Section: the record (uuid, prefLabel, classification types, identifiers)
- AlternativeIdentifiers: the fixed set of external identifier classes
- IdentifierClass: label and cardinality of one identifier class
- The classification ladder applied to every section node

Invariants:
    - uuid is the primary key and never changes once written
    - Multi-valued identifier classes are sets: sorted, de-duplicated,
      empty strings dropped
    - Single-valued identifier classes are "" when absent
    - Every section carries the full ladder Thing > Concept > Classification > Section

How to change safely:
    - Adding an identifier class means adding it here, to the constraint
      map in the service and to the wire schema
    - Never reorder CLASSIFICATION_LADDER; read results are sorted by it
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

THING_LABEL = "Thing"
SECTION_LABEL = "Section"
IDENTIFIER_LABEL = "Identifier"
IDENTIFIES = "IDENTIFIES"

# Generic to specific
CLASSIFICATION_LADDER: tuple[str, ...] = (THING_LABEL, "Concept", "Classification", SECTION_LABEL)

# Labels a delete strips; Thing stays so other entity kinds can keep the node
CLASSIFICATION_LABELS: tuple[str, ...] = CLASSIFICATION_LADDER[1:]


class InvalidRecordError(ValueError):
    """Section is malformed and was rejected before reaching the store.

    Attributes:
        field_name: Offending field, if known
    """

    def __init__(self, message: str, field_name: str | None = None) -> None:
        super().__init__(message)
        self.field_name = field_name


@dataclass(frozen=True)
class IdentifierClass:
    """One class of alternative identifier.

    Attributes:
        attr: Attribute name on AlternativeIdentifiers
        label: Node label of identifier nodes of this class
        multi_valued: Whether a section may carry several values
    """

    attr: str
    label: str
    multi_valued: bool


IDENTIFIER_CLASSES: tuple[IdentifierClass, ...] = (
    IdentifierClass("factset_identifier", "FactsetIdentifier", multi_valued=False),
    IdentifierClass("lei_code", "LegalEntityIdentifier", multi_valued=False),
    IdentifierClass("tme", "TMEIdentifier", multi_valued=True),
    IdentifierClass("uuids", "UPPIdentifier", multi_valued=True),
)

IDENTIFIER_CLASSES_BY_LABEL: dict[str, IdentifierClass] = {
    cls.label: cls for cls in IDENTIFIER_CLASSES
}


@dataclass(frozen=True)
class AlternativeIdentifiers:
    """External identifiers that resolve to a section.

    Attributes:
        tme: Legacy taxonomy codes
        uuids: Alias UUIDs of the same concept
        factset_identifier: FactSet code
        lei_code: Legal entity identifier
    """

    tme: tuple[str, ...] = ()
    uuids: tuple[str, ...] = ()
    factset_identifier: str = ""
    lei_code: str = ""

    def __post_init__(self) -> None:
        for cls in IDENTIFIER_CLASSES:
            value = getattr(self, cls.attr)
            if cls.multi_valued:
                if isinstance(value, str):
                    raise InvalidRecordError(
                        f"{cls.attr} must be a collection of strings", field_name=cls.attr
                    )
                normalised: object = tuple(sorted({v for v in value if v}))
            else:
                normalised = value or ""
            object.__setattr__(self, cls.attr, normalised)

    def pairs(self) -> list[tuple[IdentifierClass, str]]:
        """List one (class, value) pair per identifier node to create."""
        result = []
        for cls in IDENTIFIER_CLASSES:
            value = getattr(self, cls.attr)
            if cls.multi_valued:
                result.extend((cls, v) for v in value)
            elif value:
                result.append((cls, value))
        return result

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str, str]]) -> AlternativeIdentifiers:
        """Fold stored (label, value) pairs back into identifier classes.

        Unknown labels are ignored. A single-valued class with several stored
        values keeps the smallest one.
        """
        collected: dict[str, list[str]] = {c.attr: [] for c in IDENTIFIER_CLASSES}
        for label, value in pairs:
            identifier_class = IDENTIFIER_CLASSES_BY_LABEL.get(label)
            if identifier_class is None or value is None:
                continue
            collected[identifier_class.attr].append(value)

        kwargs: dict[str, object] = {}
        for identifier_class in IDENTIFIER_CLASSES:
            values = collected[identifier_class.attr]
            if identifier_class.multi_valued:
                kwargs[identifier_class.attr] = tuple(values)
            else:
                kwargs[identifier_class.attr] = min(values) if values else ""
        return cls(**kwargs)  # type: ignore[arg-type]

    def is_empty(self) -> bool:
        return not self.pairs()


def sort_types(labels: Iterable[str]) -> tuple[str, ...]:
    """Order node labels by ladder position, foreign labels last (alphabetical)."""
    unique = set(labels)
    ladder = [label for label in CLASSIFICATION_LADDER if label in unique]
    others = sorted(unique.difference(CLASSIFICATION_LADDER))
    return tuple(ladder + others)


@dataclass(frozen=True)
class Section:
    """A section: a taxonomy concept classifying content.

    Attributes:
        uuid: Canonical identifier
        pref_label: Display name
        alternative_identifiers: External identifiers resolving to this section
        types: Classification labels, generic to specific
    """

    uuid: str
    pref_label: str = ""
    alternative_identifiers: AlternativeIdentifiers = field(
        default_factory=AlternativeIdentifiers
    )
    types: tuple[str, ...] = CLASSIFICATION_LADDER

    def __post_init__(self) -> None:
        object.__setattr__(self, "pref_label", self.pref_label or "")
        object.__setattr__(self, "types", tuple(self.types))

    def validate(self) -> None:
        """Reject sections that cannot be written.

        Raises:
            InvalidRecordError: If uuid is missing or blank
        """
        if not self.uuid or not self.uuid.strip():
            raise InvalidRecordError("Section uuid is required", field_name="uuid")
