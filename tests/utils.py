"""
Helpers shared by the backup server tests.
"""

import sqlite3
import time
from pathlib import Path


def create_database(path: Path, rows: int = 3, wal_mode: bool = False) -> Path:
    """Create a small ledger-like SQLite database."""
    conn = sqlite3.connect(str(path))
    try:
        if wal_mode:
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute(
            "CREATE TABLE IF NOT EXISTS transactions ("
            "id INTEGER PRIMARY KEY, amount REAL NOT NULL, note TEXT)"
        )
        conn.executemany(
            "INSERT INTO transactions (amount, note) VALUES (?, ?)",
            [(10.0 * (i + 1), f"expense {i}") for i in range(rows)],
        )
        conn.commit()
    finally:
        conn.close()
    return path


def count_rows(path: Path) -> int:
    """Number of rows in the transactions table of ``path``."""
    conn = sqlite3.connect(str(path))
    try:
        return conn.execute("SELECT COUNT(*) FROM transactions").fetchone()[0]
    finally:
        conn.close()


class SlowReader:
    """Binary stream wrapper that hands out small chunks with a pause.

    Lets tests stop the pipeline while a copy is still in progress.
    """

    def __init__(self, raw, chunk_size: int = 512, pause: float = 0.05) -> None:
        self.raw = raw
        self.chunk_size = chunk_size
        self.pause = pause

    def read(self, size: int = -1) -> bytes:
        time.sleep(self.pause)
        if size < 0 or size > self.chunk_size:
            size = self.chunk_size
        return self.raw.read(size)

    def close(self) -> None:
        self.raw.close()

    def __enter__(self) -> "SlowReader":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
