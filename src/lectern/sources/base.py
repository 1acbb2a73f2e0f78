"""Chapter source interface and source error hierarchy.

Every source follows the same template:

    raw = await source.fetch_raw(work, section, edition)
    verses = source.parse(raw)

Sources know nothing about caching. The resolver decides freshness and
writes results through to the store using the source's ``cache_ttl``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable

import httpx

from lectern.db.store import utcnow
from lectern.models import Verse, normalize_verses
from lectern.sources.catalog import AcquisitionStrategy, EditionMeta
from lectern.works import Work

logger = logging.getLogger(__name__)


class SourceError(Exception):
    """Base exception for source failures."""

    kind = "upstream_unavailable"

    def __init__(self, message: str, edition_code: str | None = None):
        self.edition_code = edition_code
        full_message = f"[{edition_code}] {message}" if edition_code else message
        super().__init__(full_message)


class MissingCredentialError(SourceError):
    """Raised before any network call when the API credential is not configured."""

    kind = "missing_credential"


class UpstreamUnavailableError(SourceError):
    """Network failure, timeout, non-success status or empty payload."""

    kind = "upstream_unavailable"


class MalformedContentError(SourceError):
    """Upstream answered, but nothing parseable came back."""

    kind = "malformed_upstream_content"


class LocalNotSeededError(SourceError):
    """A local edition has no seeded record for the requested chapter."""

    kind = "local_not_seeded"


@dataclass(frozen=True)
class FetchedText:
    """Verses produced by a source, before caching and wrapping."""

    verses: tuple[Verse, ...]
    fetched_at: datetime
    # Only set by sources that read an existing record
    expires_at: datetime | None = None


class ChapterSource(ABC):
    """Abstract base class for chapter sources."""

    strategy: AcquisitionStrategy
    # None = never expires
    cache_ttl: timedelta | None = None
    # False for sources that read the store instead of an upstream
    writes_through: bool = True

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock

    @abstractmethod
    async def fetch_raw(self, work: Work, section: int, edition: EditionMeta) -> Any:
        """Obtain raw upstream content for one chapter.

        Raises:
            MissingCredentialError: Credential not configured
            UpstreamUnavailableError: Upstream failed or returned nothing
        """
        ...

    @abstractmethod
    def parse(self, raw: Any) -> list[Verse]:
        """Turn raw upstream content into verses (any order)."""
        ...

    async def fetch(self, work: Work, section: int, edition: EditionMeta) -> FetchedText:
        """Fetch and parse one chapter.

        Raises:
            SourceError: Any failure, including zero parseable verses
        """
        raw = await self.fetch_raw(work, section, edition)
        fetched_at = self._clock()
        verses = normalize_verses(self.parse(raw))
        if not verses:
            raise MalformedContentError(
                f"No verses parsed for {work.name} {section}", edition.code
            )
        return FetchedText(verses=tuple(verses), fetched_at=fetched_at)


class HttpChapterSource(ChapterSource):
    """Shared HTTP plumbing for upstream API sources.

    The httpx client may be injected (tests use httpx.MockTransport);
    otherwise a client is created per request with the configured timeout.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(clock=clock)
        self.base_url = base_url
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key)

    def require_credential(self, edition: EditionMeta) -> str:
        if not self.api_key:
            logger.warning(
                f"{edition.code}: API credential not configured, cannot fetch"
            )
            raise MissingCredentialError("API credential not configured", edition.code)
        return self.api_key

    async def get_json(
        self,
        url: str,
        edition: EditionMeta,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> Any:
        """GET a JSON document; every failure becomes UpstreamUnavailableError."""
        try:
            if self._client is not None:
                response = await self._client.get(
                    url, params=params, headers=headers, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, params=params, headers=headers)
        except httpx.TimeoutException as e:
            logger.error(f"{edition.code}: upstream timed out for {url}: {e!r}")
            raise UpstreamUnavailableError("Upstream request timed out", edition.code)
        except httpx.HTTPError as e:
            logger.error(f"{edition.code}: network error for {url}: {e!r}")
            raise UpstreamUnavailableError(f"Network error: {e}", edition.code)

        if not response.is_success:
            logger.error(
                f"{edition.code}: upstream returned {response.status_code} for {url}: "
                f"{response.text[:200]}"
            )
            raise UpstreamUnavailableError(
                f"Upstream returned HTTP {response.status_code}", edition.code
            )

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"{edition.code}: upstream returned invalid JSON: {e}")
            raise UpstreamUnavailableError("Upstream returned invalid JSON", edition.code)
