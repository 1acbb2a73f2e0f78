"""Tree API source (scripture.api.bible JSON content).

The aggregator returns ``data.content``: a nested list of nodes. Node kinds:

- paragraph container: {"type": "para", "items": [...]}
- verse: {"type": "verse", "number": "3", "items": [...text...]}
- text: {"type": "text", "content": "..."} or a bare string
- anything else with "items": an opaque container, walked transparently

Paragraph grouping is structural rather than positional. Each paragraph
container owns the verses beneath it, except those inside a nested
paragraph container, which form their own group. Verses outside every
paragraph container form one implicit root group. Within each group the
lowest-numbered verse starts the paragraph. Because groups are decided by
containment and the marker by minimum, reordering sibling nodes never
changes the result, and a paragraph boundary never leaks to the siblings
that follow its container.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from datetime import timedelta
from typing import Any

from lectern.models import Verse
from lectern.sources.base import HttpChapterSource, UpstreamUnavailableError
from lectern.sources.catalog import AcquisitionStrategy, EditionMeta
from lectern.works import Work

logger = logging.getLogger(__name__)

WHITESPACE = re.compile(r"\s+")
LEADING_NUMBER = re.compile(r"\s*(\d+)")

# JSON content with verse numbers; no notes, titles or chapter numbers
QUERY_FLAGS = {
    "content-type": "json",
    "include-notes": "false",
    "include-titles": "false",
    "include-chapter-numbers": "false",
    "include-verse-numbers": "true",
    "include-verse-spans": "true",
}

PARA = "para"
VERSE = "verse"
TEXT = "text"
CONTAINER = "container"


def chapter_id(work: Work, section: int) -> str:
    """Upstream chapter identifier, e.g. "GEN.1"."""
    return f"{work.code.upper()}.{section}"


def _node_kind(node: Any) -> str:
    if isinstance(node, str):
        return TEXT
    if not isinstance(node, dict):
        return CONTAINER
    kind = node.get("type")
    if kind in (PARA, VERSE, TEXT):
        return kind
    # USX-style tags carry the element name separately
    if node.get("name") in (PARA, VERSE):
        return node["name"]
    return CONTAINER


def _children(node: Any) -> list:
    if not isinstance(node, dict):
        return []
    items = node.get("items")
    if isinstance(items, list):
        return items
    content = node.get("content")
    if isinstance(content, list):
        return content
    return []


def _verse_number(node: dict) -> int:
    raw = node.get("number")
    if raw is None:
        raw = (node.get("attrs") or {}).get("number")
    # Verse spans ("1-2") are numbered by their first verse
    match = LEADING_NUMBER.match(str(raw)) if raw is not None else None
    return int(match.group(1)) if match else 0


def _collect_text(items: list) -> list[str]:
    parts: list[str] = []
    for item in items:
        if isinstance(item, str):
            parts.append(item)
        elif isinstance(item, dict):
            if item.get("type") == TEXT:
                content = item.get("content", item.get("text"))
                if isinstance(content, str):
                    parts.append(content)
                    continue
            parts.extend(_collect_text(_children(item)))
    return parts


def extract_text(items: list) -> str:
    """All text beneath a node, whitespace collapsed."""
    return WHITESPACE.sub(" ", "".join(_collect_text(items))).strip()


def _mark_paragraph(group: list[Verse]) -> list[Verse]:
    if not group:
        return []
    first = min(v.number for v in group)
    return [dataclasses.replace(v, paragraph_start=v.number == first) for v in group]


# A verse plus its position in the tree (sibling indices from the root);
# positions compare in document order
Located = tuple[tuple[int, ...], Verse]


def _walk(
    items: list, path: tuple[int, ...] = ()
) -> tuple[list[Located], list[list[Located]]]:
    """Walk sibling nodes.

    Returns:
        (open, groups): open verses still belong to the enclosing
        paragraph group; groups are the paragraph groups closed beneath
        these siblings, not yet marked.
    """
    open_group: list[Located] = []
    groups: list[list[Located]] = []

    for index, node in enumerate(items):
        position = path + (index,)
        kind = _node_kind(node)

        if kind == PARA:
            inner_open, inner_groups = _walk(_children(node), position)
            groups.append(inner_open)
            groups.extend(inner_groups)
        elif kind == VERSE:
            number = _verse_number(node)
            text = extract_text(_children(node))
            # Number 0 / empty text are editorial artifacts
            if number < 1 or not text:
                continue
            open_group.append((position, Verse(number=number, text=text)))
        elif kind == TEXT:
            # Stray text outside a verse node
            continue
        else:
            inner_open, inner_groups = _walk(_children(node), position)
            open_group.extend(inner_open)
            groups.extend(inner_groups)

    return open_group, groups


def extract_verses(content: list) -> list[Verse]:
    """Extract verses from a content tree, sorted by number.

    A verse number repeated in the tree keeps its first occurrence in
    document order. Duplicates are dropped before paragraph marking so
    every group that keeps a verse still gets its paragraph start.
    """
    root_open, groups = _walk(content)
    groups.append(root_open)

    keep: dict[int, tuple[int, ...]] = {}
    for position, verse in sorted(
        (located for group in groups for located in group), key=lambda lv: lv[0]
    ):
        keep.setdefault(verse.number, position)

    verses: list[Verse] = []
    for group in groups:
        survivors = [v for position, v in group if keep[v.number] == position]
        verses.extend(_mark_paragraph(survivors))
    verses.sort(key=lambda v: v.number)
    return verses


class TreeApiSource(HttpChapterSource):
    """Multi-edition aggregator returning JSON content trees, cached for 1 hour."""

    strategy = AcquisitionStrategy.TREE_API
    cache_ttl = timedelta(hours=1)

    async def fetch_raw(self, work: Work, section: int, edition: EditionMeta) -> list:
        api_key = self.require_credential(edition)
        ident = chapter_id(work, section)
        url = f"{self.base_url.rstrip('/')}/bibles/{edition.upstream_id}/chapters/{ident}"

        logger.info(f"{edition.code}: fetching {ident}")
        data = await self.get_json(
            url, edition, params=dict(QUERY_FLAGS), headers={"api-key": api_key}
        )

        content = None
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            content = data["data"].get("content")
        if not isinstance(content, list) or not content:
            logger.error(f"{edition.code}: missing content tree for {ident}")
            raise UpstreamUnavailableError(
                f"Missing content tree for {ident}", edition.code
            )
        return content

    def parse(self, raw: list) -> list[Verse]:
        return extract_verses(raw)
