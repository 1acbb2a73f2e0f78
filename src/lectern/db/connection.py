"""SQLite connection management."""

import sqlite3
from pathlib import Path


def get_connection(db_path: Path) -> sqlite3.Connection:
    """
    Get a SQLite connection with row factory and WAL mode.

    WAL (Write-Ahead Logging) mode lets cache reads proceed while another
    resolve call is upserting a chapter.
    """
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, timeout=5.0)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    """Initialize database schema."""
    conn.executescript("""
        -- chapters: resolved chapter cache, one row per (work, section, edition)
        CREATE TABLE IF NOT EXISTS chapters (
            id INTEGER PRIMARY KEY,
            work_name TEXT NOT NULL,
            section_number INTEGER NOT NULL,
            edition_code TEXT NOT NULL,
            verses_json TEXT NOT NULL,
            fetched_at TEXT NOT NULL,
            expires_at TEXT,
            UNIQUE(work_name, section_number, edition_code)
        );

        CREATE INDEX IF NOT EXISTS idx_chapters_edition ON chapters(edition_code);
    """)
    conn.commit()
