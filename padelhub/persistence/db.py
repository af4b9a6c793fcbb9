"""
Database connection and initialization.
"""
from __future__ import annotations

import sqlite3
from pathlib import Path

from padelhub.config import Config

from .schema import all_schema_sql


def _columns(conn: sqlite3.Connection, table: str) -> list[str]:
    cur = conn.execute(f"PRAGMA table_info({table})")
    return [row[1] for row in cur.fetchall()]


def _run_league_format_migration(conn: sqlite3.Connection) -> None:
    """Add format/current_phase/phase_ends_at to leagues created before divisions existed."""
    cols = _columns(conn, "leagues")
    if "format" not in cols:
        conn.execute("ALTER TABLE leagues ADD COLUMN format TEXT NOT NULL DEFAULT 'classic'")
    if "current_phase" not in cols:
        conn.execute("ALTER TABLE leagues ADD COLUMN current_phase INTEGER NOT NULL DEFAULT 0")
    if "phase_ends_at" not in cols:
        conn.execute("ALTER TABLE leagues ADD COLUMN phase_ends_at TEXT")
    pcols = _columns(conn, "league_players")
    if "division" not in pcols:
        conn.execute("ALTER TABLE league_players ADD COLUMN division INTEGER NOT NULL DEFAULT 1")


def _run_versioning_migration(conn: sqlite3.Connection) -> None:
    """Optimistic-concurrency tokens on leagues and league_players."""
    if "version" not in _columns(conn, "leagues"):
        conn.execute("ALTER TABLE leagues ADD COLUMN version INTEGER NOT NULL DEFAULT 0")
    if "version" not in _columns(conn, "league_players"):
        conn.execute("ALTER TABLE league_players ADD COLUMN version INTEGER NOT NULL DEFAULT 0")


# Default DB path (project root / data / padelhub.db)
def _default_db_path() -> Path:
    if Config.DB_PATH:
        return Path(Config.DB_PATH)
    return Path(__file__).resolve().parent.parent.parent / "data" / "padelhub.db"


_db_path: Path | None = None


def set_db_path(path: str | Path) -> None:
    """Set the database path. Call before first get_connection if not using default."""
    global _db_path
    _db_path = Path(path)


def get_db_path() -> Path:
    """Return the current database path."""
    if _db_path is not None:
        return _db_path
    return _default_db_path()


def get_connection(db_path: str | Path | None = None) -> sqlite3.Connection:
    """
    Return a new SQLite connection.
    Use as context manager or ensure close() is called.
    """
    path = Path(db_path) if db_path else get_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: str | Path | None = None) -> None:
    """Create or ensure all tables exist, then apply additive migrations."""
    path = Path(db_path) if db_path else get_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    try:
        conn.executescript(all_schema_sql())
        _run_league_format_migration(conn)
        _run_versioning_migration(conn)
        conn.commit()
    finally:
        conn.close()
