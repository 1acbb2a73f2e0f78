"""Chapter resolution: the single entry point for reading a chapter.

Dispatch for resolve(work, section, edition):

1. Look the edition up in the catalog (miss: unsupported_edition)
2. Validate the reference against the work registry (miss: invalid_reference)
3. Read the store; a fresh record is returned without calling any source
4. Otherwise fetch from the source serving the edition's strategy,
   coalescing concurrent identical requests into one upstream call
5. Sort and de-duplicate verses, stamp attribution from the catalog,
   write through with the source's TTL and return the chapter

resolve() never raises. Every failure collapses to None; the kind is kept
for diagnostics (last_failure) and for unavailable_reason().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

import httpx

from lectern.config import Settings
from lectern.db.store import CacheRecord, ChapterStore, utcnow
from lectern.models import Chapter, normalize_verses
from lectern.singleflight import SingleFlight
from lectern.sources.base import ChapterSource, FetchedText, SourceError
from lectern.sources.catalog import AcquisitionStrategy, EditionCatalog, EditionMeta
from lectern.sources.local import LocalSource
from lectern.sources.plain_text import PlainTextApiSource
from lectern.sources.tree import TreeApiSource
from lectern.works import Work, lookup_work

logger = logging.getLogger(__name__)


class FailureKind(Enum):
    """Why a resolution returned None."""

    UNSUPPORTED_EDITION = "unsupported_edition"
    INVALID_REFERENCE = "invalid_reference"
    LOCAL_NOT_SEEDED = "local_not_seeded"
    MISSING_CREDENTIAL = "missing_credential"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    MALFORMED_UPSTREAM_CONTENT = "malformed_upstream_content"

    @property
    def is_permanent(self) -> bool:
        """Retrying will not help until the request or configuration changes."""
        return self in (
            FailureKind.UNSUPPORTED_EDITION,
            FailureKind.INVALID_REFERENCE,
            FailureKind.MISSING_CREDENTIAL,
        )


REASON_UNSUPPORTED = "Translation not supported."
REASON_INVALID_REFERENCE = "That book and chapter could not be found."
REASON_LOCAL_NOT_SEEDED = (
    "Bible content hasn't been loaded yet. The administrator needs to run the "
    "seed scripts to populate the database with Bible text."
)
REASON_MISSING_CREDENTIAL = (
    "The {name} requires an API key that hasn't been configured. Please contact "
    "support or choose a free translation."
)
REASON_TEMPORARILY_UNAVAILABLE = (
    "The {name} is temporarily unavailable. Please try again in a moment or "
    "choose a different translation."
)


@dataclass(frozen=True)
class Resolution:
    """Outcome of a single resolve call."""

    chapter: Chapter | None
    failure: FailureKind | None = None
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.chapter is not None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _lookup_reference(work_code: str, section: int) -> Work | None:
    """The work, if (work_code, section) names a real chapter."""
    if not isinstance(work_code, str):
        return None
    work = lookup_work(work_code)
    if work is None or isinstance(section, bool) or not isinstance(section, int):
        return None
    return work if work.has_section(section) else None


class ChapterResolver:
    """Resolves (work, section, edition) to a canonical Chapter.

    Usage:
        resolver = ChapterResolver.from_settings(Settings.from_env())

        chapter = await resolver.resolve("GEN", 1, "ESV")
        if chapter is None:
            print(resolver.unavailable_reason("ESV"))
    """

    def __init__(
        self,
        catalog: EditionCatalog,
        store: ChapterStore,
        sources: dict[AcquisitionStrategy, ChapterSource],
        clock: Callable[[], datetime] = utcnow,
    ):
        self.catalog = catalog
        self.store = store
        self.sources = sources
        self._clock = clock
        self._flights = SingleFlight()
        self._failures: dict[tuple[str, int, str], FailureKind] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        catalog: EditionCatalog | None = None,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> "ChapterResolver":
        """Wire the catalog, store and the three sources from settings."""
        catalog = catalog or EditionCatalog.load(settings.catalog_path)
        store = ChapterStore(settings.db_path)
        sources: dict[AcquisitionStrategy, ChapterSource] = {
            AcquisitionStrategy.LOCAL: LocalSource(store, clock=clock),
            AcquisitionStrategy.PLAIN_TEXT_API: PlainTextApiSource(
                base_url=settings.plain_text_base_url,
                api_key=settings.plain_text_api_key,
                timeout=settings.http_timeout,
                client=client,
                clock=clock,
            ),
            AcquisitionStrategy.TREE_API: TreeApiSource(
                base_url=settings.tree_base_url,
                api_key=settings.tree_api_key,
                timeout=settings.http_timeout,
                client=client,
                clock=clock,
            ),
        }
        return cls(catalog, store, sources, clock=clock)

    def source_for(self, edition: EditionMeta) -> ChapterSource | None:
        return self.sources.get(edition.acquisition_strategy)

    # --- resolution ---

    async def resolve(
        self, work_code: str, section: int, edition_code: str
    ) -> Chapter | None:
        """Resolve a chapter, or None if it is unavailable."""
        resolution = await self.resolve_detailed(work_code, section, edition_code)
        return resolution.chapter

    async def resolve_detailed(
        self, work_code: str, section: int, edition_code: str
    ) -> Resolution:
        """Resolve a chapter and report where it came from or why it failed."""
        try:
            resolution = await self._resolve(work_code, section, edition_code)
        except Exception as e:
            # Last-resort boundary: nothing escapes resolve
            logger.exception(
                f"Unexpected error resolving {work_code} {section} {edition_code}: {e}"
            )
            resolution = Resolution(None, FailureKind.UPSTREAM_UNAVAILABLE)

        key = self._failure_key(work_code, section, edition_code)
        if key is not None:
            if resolution.failure is not None:
                self._failures[key] = resolution.failure
            else:
                self._failures.pop(key, None)
        return resolution

    async def _resolve(
        self, work_code: str, section: int, edition_code: str
    ) -> Resolution:
        edition = self.catalog.lookup(edition_code)
        if edition is None:
            logger.warning(f"Unknown edition code: {edition_code}")
            return Resolution(None, FailureKind.UNSUPPORTED_EDITION)

        source = self.source_for(edition)
        if source is None:
            logger.error(
                f"{edition.code}: no source registered for strategy "
                f"{edition.acquisition_strategy.value}"
            )
            return Resolution(None, FailureKind.UNSUPPORTED_EDITION)

        work = _lookup_reference(work_code, section)
        if work is None:
            logger.warning(f"Invalid reference: {work_code} {section}")
            return Resolution(None, FailureKind.INVALID_REFERENCE)

        record = await self.store.get(work.name, section, edition.code)
        if record is not None and record.is_fresh(self._clock()):
            logger.debug(f"Cache hit for {work.name} {section} {edition.code}")
            return Resolution(self._wrap_record(work, edition, record), from_cache=True)

        flight_key = (work.code, section, edition.code)
        return await self._flights.do(
            flight_key, lambda: self._fetch_and_cache(work, section, edition, source)
        )

    async def _fetch_and_cache(
        self, work: Work, section: int, edition: EditionMeta, source: ChapterSource
    ) -> Resolution:
        try:
            fetched = await source.fetch(work, section, edition)
        except SourceError as e:
            failure = FailureKind(e.kind)
            if failure == FailureKind.MALFORMED_UPSTREAM_CONTENT:
                logger.error(f"Malformed upstream content: {e}")
            else:
                logger.warning(f"Could not fetch {work.name} {section}: {e}")
            return Resolution(None, failure)

        chapter = await self.cache_and_wrap(work, section, edition, source, fetched)
        return Resolution(chapter)

    async def cache_and_wrap(
        self,
        work: Work,
        section: int,
        edition: EditionMeta,
        source: ChapterSource,
        fetched: FetchedText,
    ) -> Chapter:
        """Normalize fetched verses, write them through and build the Chapter.

        A failed cache write is logged by the store and does not affect the
        returned chapter.
        """
        verses = tuple(normalize_verses(list(fetched.verses)))
        fetched_at = _as_utc(fetched.fetched_at)

        if source.writes_through:
            expires_at = fetched_at + source.cache_ttl if source.cache_ttl else None
            await self.store.put(
                work.name, section, edition.code, verses, fetched_at, expires_at
            )
        else:
            expires_at = fetched.expires_at

        return Chapter(
            work_code=work.code,
            work_name=work.name,
            section_number=section,
            edition_code=edition.code,
            verses=verses,
            attribution=self._attribution(edition),
            cached_at=fetched_at,
            expires_at=expires_at,
        )

    def _wrap_record(
        self, work: Work, edition: EditionMeta, record: CacheRecord
    ) -> Chapter:
        return Chapter(
            work_code=work.code,
            work_name=work.name,
            section_number=record.section_number,
            edition_code=edition.code,
            verses=tuple(normalize_verses(list(record.verses))),
            attribution=self._attribution(edition),
            cached_at=record.fetched_at,
            expires_at=record.expires_at,
        )

    @staticmethod
    def _attribution(edition: EditionMeta) -> str | None:
        return edition.attribution if edition.attribution_required else None

    # --- diagnostics ---

    def _failure_key(
        self, work_code: str, section: int, edition_code: str
    ) -> tuple[str, int, str] | None:
        """Canonical key for failure tracking.

        None for unknown editions and invalid references; their reason is
        derived from the catalog and work registry, so only real chapters
        are ever tracked.
        """
        edition = self.catalog.lookup(edition_code) if isinstance(edition_code, str) else None
        work = _lookup_reference(work_code, section)
        if edition is None or work is None:
            return None
        return (work.code, section, edition.code)

    def last_failure(
        self, work_code: str, section: int, edition_code: str
    ) -> FailureKind | None:
        """Failure kind of the most recent resolve for this key, if it failed."""
        key = self._failure_key(work_code, section, edition_code)
        return self._failures.get(key) if key is not None else None

    def has_credential(self, edition: EditionMeta) -> bool:
        source = self.source_for(edition)
        return bool(getattr(source, "has_credential", True))

    def unavailable_reason(
        self,
        edition_code: str,
        work_code: str | None = None,
        section: int | None = None,
    ) -> str:
        """Human-readable explanation for a None resolution.

        With only an edition code the reason is derived from configuration,
        as the reading surface does. When the reference is given and its
        last resolve failed, that failure picks the message.
        """
        edition = self.catalog.lookup(edition_code)
        if edition is None:
            return REASON_UNSUPPORTED

        failure = None
        if work_code is not None and section is not None:
            if _lookup_reference(work_code, section) is None:
                return REASON_INVALID_REFERENCE
            failure = self.last_failure(work_code, section, edition_code)

        if failure == FailureKind.LOCAL_NOT_SEEDED or (failure is None and edition.is_local):
            return REASON_LOCAL_NOT_SEEDED
        if failure == FailureKind.MISSING_CREDENTIAL or (
            failure is None and not self.has_credential(edition)
        ):
            return REASON_MISSING_CREDENTIAL.format(name=edition.display_name)
        return REASON_TEMPORARILY_UNAVAILABLE.format(name=edition.display_name)


# --- process-wide default resolver ---

_default_resolver: ChapterResolver | None = None


def get_resolver() -> ChapterResolver:
    """Get or create the default resolver from environment settings."""
    global _default_resolver
    if _default_resolver is None:
        _default_resolver = ChapterResolver.from_settings(Settings.from_env())
    return _default_resolver


def set_resolver(resolver: ChapterResolver | None) -> None:
    """Replace the default resolver (None resets to lazy creation)."""
    global _default_resolver
    _default_resolver = resolver


async def resolve_chapter(
    work_code: str, section_number: int, edition_code: str
) -> Chapter | None:
    """Resolve a chapter with the default resolver."""
    return await get_resolver().resolve(work_code, section_number, edition_code)


def unavailable_reason(edition_code: str) -> str:
    """Reason text for a None resolution, using the default resolver."""
    return get_resolver().unavailable_reason(edition_code)
