"""
Sections module - the taxonomy concept records persisted by sections-rw.

This module handles:
- The Section record model and its identifier classes
- Statement builders for the graph schema
- The read/write service reconciling records with the graph

Invariants:
    - Writes replace a section's identifier set; they never merge with it
    - Deletes leave no orphaned identifier nodes
    - A node still referenced elsewhere is never deleted

How to change safely:
    - Test convergence (write {x,y} then {y,z}) after any query change
    - Keep every operation a single store batch
"""

from .model import (
    CLASSIFICATION_LADDER,
    IDENTIFIER_CLASSES,
    AlternativeIdentifiers,
    IdentifierClass,
    InvalidRecordError,
    Section,
)
from .service import CONSTRAINTS, SectionsService

__all__ = [
    "Section",
    "AlternativeIdentifiers",
    "IdentifierClass",
    "IDENTIFIER_CLASSES",
    "CLASSIFICATION_LADDER",
    "InvalidRecordError",
    "SectionsService",
    "CONSTRAINTS",
]
