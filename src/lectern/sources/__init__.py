"""Edition catalog and chapter sources.

- catalog.py: Load and validate editions.yaml (the strategy table)
- base.py: Source template and source error hierarchy
- local.py: Seeded public-domain editions, read from the store
- plain_text.py: Marker-delimited plain-text passage API
- tree.py: JSON content-tree aggregator API
"""

from lectern.sources.catalog import (
    AccessTier,
    AcquisitionStrategy,
    CatalogValidationError,
    EditionCatalog,
    EditionMeta,
)
from lectern.sources.base import (
    ChapterSource,
    FetchedText,
    LocalNotSeededError,
    MalformedContentError,
    MissingCredentialError,
    SourceError,
    UpstreamUnavailableError,
)
from lectern.sources.local import LocalSource
from lectern.sources.plain_text import PlainTextApiSource
from lectern.sources.tree import TreeApiSource

__all__ = [
    "AccessTier",
    "AcquisitionStrategy",
    "CatalogValidationError",
    "EditionCatalog",
    "EditionMeta",
    "ChapterSource",
    "FetchedText",
    "LocalNotSeededError",
    "MalformedContentError",
    "MissingCredentialError",
    "SourceError",
    "UpstreamUnavailableError",
    "LocalSource",
    "PlainTextApiSource",
    "TreeApiSource",
]
