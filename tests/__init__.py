"""
sections-rw Test Suite.

This package contains:
- unit/: Unit tests (model, statement builders, config, SQLite graph store)
- integration/: Integration tests (service and HTTP API over a real SQLite graph)
"""
