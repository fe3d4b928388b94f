"""
ledger11 backup server test suite.

This package contains:
- unit/: Unit tests (no network, temporary directories only)
- integration/: Pipeline tests against real SQLite databases
"""
