"""Local source for seeded public-domain editions.

WEB / KJV / ASV / YLT are populated by an offline seeding step
(``lectern seed``). This source reads them straight from the chapter
store and never touches the network; a missing record means the seed
data has not been loaded.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from lectern.db.store import CacheRecord, ChapterStore, utcnow
from lectern.models import Verse
from lectern.sources.base import ChapterSource, FetchedText, LocalNotSeededError
from lectern.sources.catalog import AcquisitionStrategy, EditionMeta
from lectern.works import Work

logger = logging.getLogger(__name__)


class LocalSource(ChapterSource):
    """Reads seeded chapters from the store."""

    strategy = AcquisitionStrategy.LOCAL
    cache_ttl = None
    writes_through = False

    def __init__(self, store: ChapterStore, clock: Callable[[], datetime] = utcnow):
        super().__init__(clock=clock)
        self.store = store

    async def fetch_raw(
        self, work: Work, section: int, edition: EditionMeta
    ) -> CacheRecord:
        record = await self.store.get(work.name, section, edition.code)
        if record is None:
            logger.warning(
                f"{edition.code}: no seeded text for {work.name} {section}"
            )
            raise LocalNotSeededError(
                f"{work.name} {section} has not been seeded", edition.code
            )
        return record

    def parse(self, raw: CacheRecord) -> list[Verse]:
        return list(raw.verses)

    async def fetch(self, work: Work, section: int, edition: EditionMeta) -> FetchedText:
        record = await self.fetch_raw(work, section, edition)
        return FetchedText(
            verses=tuple(self.parse(record)),
            fetched_at=record.fetched_at,
            expires_at=record.expires_at,
        )
