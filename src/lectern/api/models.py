"""Pydantic models for API."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from lectern.models import Chapter
from lectern.sources.catalog import EditionMeta


class VerseModel(BaseModel):
    """A single verse."""

    verse: int = Field(..., description="1-based verse number")
    text: str = Field(..., description="Verse text, whitespace collapsed")
    paragraph_start: bool = Field(..., description="True if a paragraph starts here")


class ChapterModel(BaseModel):
    """A resolved chapter."""

    work_code: str = Field(..., description="Standard work code (e.g., GEN)")
    work_name: str = Field(..., description="Canonical work name")
    section_number: int = Field(..., description="Chapter number")
    edition_code: str = Field(..., description="Edition code")
    verses: List[VerseModel] = Field(..., description="Verses in ascending order")
    attribution: Optional[str] = Field(
        None, description="Credit text that must be displayed with the verses"
    )
    cached_at: str = Field(..., description="ISO timestamp the text was obtained")
    expires_at: Optional[str] = Field(
        None, description="ISO expiry timestamp; null means never expires"
    )

    @classmethod
    def from_chapter(cls, chapter: Chapter) -> "ChapterModel":
        return cls(**chapter.to_dict())


class EditionModel(BaseModel):
    """Catalog entry for an edition."""

    code: str
    name: str
    abbreviation: str
    tier: str
    strategy: str
    language: str
    attribution_required: bool

    @classmethod
    def from_edition(cls, edition: EditionMeta) -> "EditionModel":
        return cls(**edition.to_dict())


class EditionsResponse(BaseModel):
    """Response for GET /editions."""

    editions: List[EditionModel]


class UnavailableModel(BaseModel):
    """Detail returned when a chapter cannot be resolved."""

    error: str = Field(..., description="Failure kind (e.g., upstream_unavailable)")
    message: str = Field(..., description="Human-readable reason")


class HealthModel(BaseModel):
    """Health check response."""

    status: str
    version: str
    editions: int
