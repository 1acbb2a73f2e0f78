"""Chapter cache persistence (SQLite)."""

from lectern.db.store import CacheRecord, ChapterStore, is_fresh

__all__ = ["CacheRecord", "ChapterStore", "is_fresh"]
