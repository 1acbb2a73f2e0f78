"""Plain-text API source (api.esv.org passage text endpoint).

The upstream returns a JSON envelope whose ``passages`` list holds plain
text with inline verse markers and blank lines between paragraphs:

    "[1] In the beginning, God created the heavens and the earth.\\n\\n
     [2] The earth was without form and void, ..."

Each blank-line-separated block is a paragraph; the first non-empty verse
in a block starts the paragraph.
"""

from __future__ import annotations

import logging
import re
from datetime import timedelta

from lectern.models import Verse
from lectern.sources.base import HttpChapterSource, UpstreamUnavailableError
from lectern.sources.catalog import AcquisitionStrategy, EditionMeta
from lectern.works import Work

logger = logging.getLogger(__name__)

# Paragraph blocks are separated by one or more blank lines
PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n")

# "[12] text..." up to the next marker or end of block
VERSE_MARKER = re.compile(r"\[(\d+)\]\s*(.*?)(?=\[\d+\]|\Z)", re.DOTALL)

WHITESPACE = re.compile(r"\s+")

# Verse numbers inline; no footnotes, headings, copyright or indentation
QUERY_FLAGS = {
    "include-verse-numbers": "true",
    "include-footnotes": "false",
    "include-footnote-body": "false",
    "include-headings": "false",
    "include-short-copyright": "false",
    "include-copyright": "false",
    "include-passage-references": "false",
    "indent-paragraphs": "0",
    "indent-poetry": "false",
}


def build_query(work: Work, section: int) -> str:
    """Upstream passage query, e.g. "Genesis 1"."""
    return f"{work.name} {section}"


def parse_marked_text(raw_text: str) -> list[Verse]:
    """Parse marker-delimited plain text into verses.

    Args:
        raw_text: Passage text with "[N]" verse markers

    Returns:
        Verses sorted by number. Empty verses are discarded and a block
        that yields no verses is dropped.
    """
    normalized = raw_text.replace("\r\n", "\n").replace("\r", "\n").strip()
    if not normalized:
        return []

    verses: list[Verse] = []
    for block in PARAGRAPH_BREAK.split(normalized):
        first_in_paragraph = True
        for match in VERSE_MARKER.finditer(block):
            number = int(match.group(1))
            text = WHITESPACE.sub(" ", match.group(2)).strip()
            if not text or number < 1:
                continue
            verses.append(
                Verse(number=number, text=text, paragraph_start=first_in_paragraph)
            )
            first_in_paragraph = False

    verses.sort(key=lambda v: v.number)
    return verses


class PlainTextApiSource(HttpChapterSource):
    """Licensed plain-text passage API, cached for 24 hours."""

    strategy = AcquisitionStrategy.PLAIN_TEXT_API
    cache_ttl = timedelta(hours=24)

    async def fetch_raw(self, work: Work, section: int, edition: EditionMeta) -> str:
        api_key = self.require_credential(edition)
        query = build_query(work, section)

        logger.info(f"{edition.code}: fetching {query}")
        data = await self.get_json(
            self.base_url,
            edition,
            params={"q": query, **QUERY_FLAGS},
            headers={
                "Authorization": f"Token {api_key}",
                "Accept": "application/json",
            },
        )

        passages = data.get("passages") if isinstance(data, dict) else None
        raw_text = passages[0] if passages else ""
        if not isinstance(raw_text, str) or not raw_text.strip():
            logger.error(f"{edition.code}: empty passages array for {query}")
            raise UpstreamUnavailableError(f"Empty passage for {query}", edition.code)
        return raw_text

    def parse(self, raw: str) -> list[Verse]:
        return parse_marked_text(raw)
