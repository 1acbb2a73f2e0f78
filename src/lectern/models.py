"""Canonical chapter model shared by every source."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Verse:
    """A single verse within a chapter."""

    number: int  # 1-based
    text: str
    paragraph_start: bool = False

    def to_dict(self) -> dict:
        return {
            "verse": self.number,
            "text": self.text,
            "paragraph_start": self.paragraph_start,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Verse":
        number = data.get("verse", data.get("number"))
        return cls(
            number=int(number),
            text=data.get("text", ""),
            paragraph_start=bool(data.get("paragraph_start", False)),
        )


def normalize_verses(verses: list[Verse]) -> list[Verse]:
    """Sort verses ascending by number and drop duplicate numbers.

    The first occurrence of a number wins, so upstream order decides
    which text is kept when a source repeats a verse.
    """
    seen: set[int] = set()
    unique = []
    for verse in verses:
        if verse.number in seen:
            continue
        seen.add(verse.number)
        unique.append(verse)
    return sorted(unique, key=lambda v: v.number)


@dataclass(frozen=True)
class Chapter:
    """A resolved chapter in one edition.

    Attributes:
        work_code: Standard work code (e.g., "GEN")
        work_name: Canonical work name (e.g., "Genesis")
        section_number: 1-based chapter number
        edition_code: Edition code (e.g., "ESV")
        verses: Verses sorted ascending by number
        attribution: Required credit text, None when not required
        cached_at: When the text was obtained
        expires_at: None means never expires (seeded public domain)
    """

    work_code: str
    work_name: str
    section_number: int
    edition_code: str
    verses: tuple[Verse, ...]
    attribution: str | None
    cached_at: datetime
    expires_at: datetime | None = None

    @property
    def paragraph_count(self) -> int:
        return sum(1 for v in self.verses if v.paragraph_start)

    @property
    def never_expires(self) -> bool:
        return self.expires_at is None

    @property
    def reference(self) -> str:
        """Human-readable reference, e.g. "Genesis 1 (KJV)"."""
        return f"{self.work_name} {self.section_number} ({self.edition_code})"

    def to_dict(self) -> dict:
        """Serialize to dictionary for JSON output."""
        return {
            "work_code": self.work_code,
            "work_name": self.work_name,
            "section_number": self.section_number,
            "edition_code": self.edition_code,
            "verses": [v.to_dict() for v in self.verses],
            "attribution": self.attribution,
            "cached_at": self.cached_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }
