"""
SQLite connections for the invoice pool.

The database file and any missing parent directories are created on first
connect, so ``--db reports/2024/pool.db`` works without a separate mkdir.
"""

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

IN_MEMORY = ":memory:"


def get_connection(db_path: str = "cost_pool.db") -> sqlite3.Connection:
    """Open the invoice database with foreign keys enforced.

    Usage records reference their invoice with ``ON DELETE CASCADE``, which
    SQLite only honours per connection once ``foreign_keys`` is switched on.
    """
    if db_path != IN_MEMORY:
        parent = Path(db_path).parent
        if not parent.exists():
            logger.info(f"Creating database directory {parent}")
            parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn
