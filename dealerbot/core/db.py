"""SQLite helpers shared by the key-value store and readiness probe."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


def prepare_database(path: Path) -> Path:
    """Make sure the parent directory of ``path`` exists and return it as a Path."""

    db_path = Path(path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return db_path


@contextmanager
def sqlite_connection(path: Path, *, timeout: float = 5.0) -> Iterator[sqlite3.Connection]:
    """Yield a committing SQLite connection; rolls back when the block raises."""

    conn = sqlite3.connect(path, timeout=timeout)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    except Exception:  # noqa: BLE001
        conn.rollback()
        raise
    finally:
        conn.close()


def table_exists(conn: sqlite3.Connection, name: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type='table' AND name = ?",
        (name,),
    ).fetchone()
    return row is not None
