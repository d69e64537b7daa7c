"""
sections-rw - reads and writes taxonomy sections to a graph store.

This package persists sections (taxonomy concepts with a UUID and a set of
alternative identifiers) as a labelled property graph:
- One Thing node per section, labelled Concept, Classification and Section
- One Identifier node per alternative identifier, pointing at the section
  through an IDENTIFIES relationship
- SQLite as the graph store

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐     ┌─────────┐
    │   Client    │────▶│    HTTP     │────▶│ SectionsService │────▶│ SQLite  │
    │             │     │  (FastAPI)  │     │  (statements)   │     │ (graph) │
    └─────────────┘     └─────────────┘     └─────────────────┘     └─────────┘

Invariants:
    - Every write replaces the section's identifier set completely
    - Deletes never leave orphaned identifier nodes
    - Each operation is one atomic statement batch

How to change safely:
    - Query changes must keep the convergence and orphan tests green
    - The graph schema only grows; never drop tables or columns

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
