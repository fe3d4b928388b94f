"""
Shared fixtures for the backup server tests.
"""

import tempfile
from pathlib import Path

import pytest

from tests.utils import create_database


@pytest.fixture
def work_dir():
    """Create temporary working directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def snapshot_dir(work_dir):
    """Directory receiving local snapshot files."""
    path = work_dir / "snapshots"
    path.mkdir()
    return path


@pytest.fixture
def make_database(work_dir):
    """Factory creating databases inside the working directory."""

    def _make(name: str = "appdata.db", rows: int = 3, wal_mode: bool = False) -> Path:
        return create_database(work_dir / name, rows=rows, wal_mode=wal_mode)

    return _make
