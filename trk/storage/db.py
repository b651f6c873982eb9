import sqlite3
from pathlib import Path

from trk.utils.log import get_logger

logger = get_logger(__name__)

SCHEMA_PATH = Path(__file__).with_name("schema.sql")


def get_connection(db_path: str, busy_timeout_s: float = 5.0) -> sqlite3.Connection:
    """
    Open a SQLite connection shared by the fix-delivery, checkpoint and
    request threads, with rows returned as sqlite3.Row.

    Callers serialize access with their own lock; file databases use WAL so
    `trk status` can read a device file while `trk track` writes to it.
    """
    conn = sqlite3.connect(db_path, timeout=busy_timeout_s, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    if db_path != ":memory:":
        conn.execute("PRAGMA journal_mode = WAL;")
    return conn


def init_db(db_path: str) -> sqlite3.Connection:
    """
    Create the kv, draft and trip tables if missing and return a live connection.
    """
    conn = get_connection(db_path)
    logger.debug("Applying schema %s to %s", SCHEMA_PATH.name, db_path)
    conn.executescript(SCHEMA_PATH.read_text(encoding="utf-8"))
    conn.commit()
    return conn
