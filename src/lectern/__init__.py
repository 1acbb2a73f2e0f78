"""Lectern: chapter resolution across local and upstream Bible editions.

Resolves (work, section, edition) into one canonical Chapter whether the
edition's text is seeded locally, served by a plain-text passage API, or
served by a JSON content-tree aggregator.

Usage:
    from lectern import resolve_chapter, unavailable_reason

    chapter = await resolve_chapter("GEN", 1, "ESV")
    if chapter is None:
        print(unavailable_reason("ESV"))
"""

__version__ = "0.1.0"

from lectern.models import Chapter, Verse
from lectern.resolver import (
    ChapterResolver,
    FailureKind,
    Resolution,
    get_resolver,
    resolve_chapter,
    set_resolver,
    unavailable_reason,
)

__all__ = [
    "__version__",
    "Chapter",
    "Verse",
    "ChapterResolver",
    "FailureKind",
    "Resolution",
    "get_resolver",
    "set_resolver",
    "resolve_chapter",
    "unavailable_reason",
]
