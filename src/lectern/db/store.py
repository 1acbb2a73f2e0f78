"""Chapter cache store.

Persists resolved chapters keyed by (work_name, section_number,
edition_code). The store is the only writer of chapter records:

- get() never raises; a read failure is logged and treated as a miss
- put() is a whole-record upsert (last writer wins); a write failure is
  logged and reported as False, never raised
- records are never deleted here; expiry is a freshness check at read time

All sqlite work runs in a worker thread so callers can await it from the
event loop without blocking other resolve calls.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from lectern.db.connection import get_connection, init_db
from lectern.models import Verse

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_fresh(expires_at: datetime | None, now: datetime) -> bool:
    """A record is fresh iff it never expires or expires strictly after now."""
    return expires_at is None or expires_at > now


def _to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class CacheRecord:
    """Persisted form of a chapter."""

    work_name: str
    section_number: int
    edition_code: str
    verses: tuple[Verse, ...]
    fetched_at: datetime
    expires_at: datetime | None

    def is_fresh(self, now: datetime) -> bool:
        return is_fresh(self.expires_at, now)


class ChapterStore:
    """SQLite-backed chapter cache."""

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self._initialized = False

    def _connect(self) -> sqlite3.Connection:
        conn = get_connection(self.db_path)
        if not self._initialized:
            init_db(conn)
            self._initialized = True
        return conn

    # --- sync implementations (run in worker threads) ---

    def _get_sync(
        self, work_name: str, section: int, edition_code: str
    ) -> CacheRecord | None:
        conn = self._connect()
        try:
            row = conn.execute(
                """SELECT work_name, section_number, edition_code,
                          verses_json, fetched_at, expires_at
                   FROM chapters
                   WHERE work_name = ? AND section_number = ? AND edition_code = ?""",
                (work_name, section, edition_code),
            ).fetchone()
        finally:
            conn.close()

        if row is None:
            return None

        verses = tuple(Verse.from_dict(v) for v in json.loads(row["verses_json"]))
        return CacheRecord(
            work_name=row["work_name"],
            section_number=row["section_number"],
            edition_code=row["edition_code"],
            verses=verses,
            fetched_at=_from_iso(row["fetched_at"]),
            expires_at=_from_iso(row["expires_at"]),
        )

    def _put_sync(
        self,
        work_name: str,
        section: int,
        edition_code: str,
        verses: list[Verse] | tuple[Verse, ...],
        fetched_at: datetime,
        expires_at: datetime | None,
    ) -> None:
        verses_json = json.dumps([v.to_dict() for v in verses], ensure_ascii=False)
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    """INSERT INTO chapters
                       (work_name, section_number, edition_code,
                        verses_json, fetched_at, expires_at)
                       VALUES (?, ?, ?, ?, ?, ?)
                       ON CONFLICT(work_name, section_number, edition_code)
                       DO UPDATE SET verses_json = excluded.verses_json,
                                     fetched_at = excluded.fetched_at,
                                     expires_at = excluded.expires_at""",
                    (
                        work_name,
                        section,
                        edition_code,
                        verses_json,
                        _to_iso(fetched_at),
                        _to_iso(expires_at) if expires_at else None,
                    ),
                )
        finally:
            conn.close()

    def _stats_sync(self, now: datetime) -> dict:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT edition_code, expires_at FROM chapters"
            ).fetchall()
        finally:
            conn.close()

        by_edition: dict[str, dict[str, int]] = {}
        expired = 0
        for row in rows:
            entry = by_edition.setdefault(
                row["edition_code"], {"records": 0, "expired": 0}
            )
            entry["records"] += 1
            if not is_fresh(_from_iso(row["expires_at"]), now):
                entry["expired"] += 1
                expired += 1

        return {
            "total_records": len(rows),
            "expired_records": expired,
            "by_edition": dict(sorted(by_edition.items())),
        }

    # --- async API ---

    async def get(
        self, work_name: str, section: int, edition_code: str
    ) -> CacheRecord | None:
        """Read a record. Store failures are logged and treated as absent."""
        try:
            return await asyncio.to_thread(
                self._get_sync, work_name, section, edition_code
            )
        except (sqlite3.Error, OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(
                f"Cache read failed for {work_name} {section} {edition_code}: {e}"
            )
            return None

    async def put(
        self,
        work_name: str,
        section: int,
        edition_code: str,
        verses: list[Verse] | tuple[Verse, ...],
        fetched_at: datetime,
        expires_at: datetime | None,
    ) -> bool:
        """Upsert a record. Returns False (after logging) if the write failed."""
        try:
            await asyncio.to_thread(
                self._put_sync,
                work_name,
                section,
                edition_code,
                verses,
                fetched_at,
                expires_at,
            )
        except (sqlite3.Error, OSError, TypeError, ValueError) as e:
            logger.error(
                f"Cache write failed for {work_name} {section} {edition_code}: {e}"
            )
            return False

        logger.debug(
            f"Cached {work_name} {section} {edition_code} "
            f"({len(verses)} verses, expires {expires_at.isoformat() if expires_at else 'never'})"
        )
        return True

    async def seed(
        self,
        work_name: str,
        section: int,
        edition_code: str,
        verses: list[Verse] | tuple[Verse, ...],
        fetched_at: datetime | None = None,
    ) -> bool:
        """Write a never-expiring record (local public-domain editions)."""
        return await self.put(
            work_name,
            section,
            edition_code,
            verses,
            fetched_at or utcnow(),
            None,
        )

    async def stats(self, now: datetime | None = None) -> dict:
        """Record counts per edition.

        Returns:
            {
                "total_records": 1189,
                "expired_records": 3,
                "by_edition": {"ESV": {"records": 12, "expired": 3}, ...}
            }
        """
        return await asyncio.to_thread(self._stats_sync, now or utcnow())
