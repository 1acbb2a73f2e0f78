"""Seed loader for local public-domain editions.

Reads a JSON seed file and writes each chapter to the store as a
never-expiring record. The file maps work codes to chapters:

    {
      "GEN": {
        "1": [
          {"verse": 1, "text": "In the beginning...", "paragraph_start": true},
          {"verse": 2, "text": "And the earth..."}
        ]
      }
    }

Fail fast if:
- The edition is unknown or not served locally
- The file is not a mapping of work -> section -> verse list

Unknown works and out-of-range sections are skipped with a warning.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from lectern.db.store import ChapterStore
from lectern.models import Verse, normalize_verses
from lectern.sources.catalog import EditionCatalog
from lectern.works import lookup_work

logger = logging.getLogger(__name__)


class SeedError(Exception):
    """Raised when a seed file cannot be loaded at all."""

    pass


@dataclass
class SeedReport:
    """Receipt for a seed operation."""

    edition_code: str
    chapters_written: int = 0
    verses_written: int = 0
    warnings: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed


def parse_seed_verses(entries: list) -> list[Verse]:
    """Turn seed verse entries into normalized verses.

    When no entry carries paragraph_start, the first verse starts the
    only paragraph.
    """
    if not isinstance(entries, list):
        raise SeedError("Verse list expected")

    verses = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise SeedError(f"Verse entry must be an object, got {entry!r}")
        try:
            verse = Verse.from_dict(entry)
        except (TypeError, ValueError) as e:
            raise SeedError(f"Bad verse entry {entry!r}: {e}")
        text = " ".join(str(verse.text).split())
        if verse.number < 1 or not text:
            continue
        verses.append(Verse(verse.number, text, verse.paragraph_start))

    verses = normalize_verses(verses)
    has_markers = any("paragraph_start" in e for e in entries if isinstance(e, dict))
    if verses and not has_markers:
        verses[0] = Verse(verses[0].number, verses[0].text, True)
    return verses


def load_seed_file(path: Path | str) -> dict:
    """Read and shape-check a seed file."""
    path = Path(path)
    if not path.exists():
        raise SeedError(f"Seed file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise SeedError(f"Seed file is not valid JSON: {e}")

    if not isinstance(data, dict):
        raise SeedError("Seed file must map work codes to chapters")
    for work_code, sections in data.items():
        if not isinstance(sections, dict):
            raise SeedError(f"{work_code}: expected a mapping of section -> verses")
    return data


async def seed_edition(
    store: ChapterStore,
    catalog: EditionCatalog,
    edition_code: str,
    data: dict,
) -> SeedReport:
    """Write every chapter in data for a local edition.

    Raises:
        SeedError: Edition unknown or not local
    """
    edition = catalog.lookup(edition_code)
    if edition is None:
        raise SeedError(f"Unknown edition: {edition_code}")
    if not edition.is_local:
        raise SeedError(
            f"{edition.code} is served by {edition.acquisition_strategy.value}; "
            "only local editions can be seeded"
        )

    report = SeedReport(edition_code=edition.code)

    for work_code, sections in data.items():
        work = lookup_work(work_code)
        if work is None:
            report.warnings.append(f"Unknown work code: {work_code}")
            continue

        for section_key, entries in sections.items():
            try:
                section = int(section_key)
            except (TypeError, ValueError):
                report.warnings.append(f"{work.code}: bad section {section_key!r}")
                continue
            if not work.has_section(section):
                report.warnings.append(
                    f"{work.code} has no section {section} (max {work.section_count})"
                )
                continue

            verses = parse_seed_verses(entries)
            if not verses:
                report.warnings.append(f"{work.code} {section}: no verses")
                continue

            if await store.seed(work.name, section, edition.code, verses):
                report.chapters_written += 1
                report.verses_written += len(verses)
            else:
                report.failed.append(f"{work.code} {section}")

    logger.info(
        f"Seeded {report.chapters_written} chapters "
        f"({report.verses_written} verses) into {edition.code}"
    )
    return report
