"""Edition catalog loading and validation.

Loads editions.yaml into immutable EditionMeta entries. The catalog is the
single strategy table: which acquisition strategy serves each edition is
declared here and nowhere else, so adding an edition never touches
resolution logic.

Design assumptions:
- The packaged editions.yaml is used unless LECTERN_CATALOG_PATH (or an
  explicit path) points elsewhere
- Edition codes are matched case-insensitively and stored upper-case
- tree_api editions must declare upstream_id (the aggregator's bible id)
- Editions flagged attribution_required must resolve to non-empty text
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import yaml

PACKAGED_CATALOG_PATH = Path(__file__).resolve().parent / "editions.yaml"

# Per api.esv.org terms of service, shown wherever ESV text is displayed
ESV_ATTRIBUTION = (
    "Scripture quotations are from the ESV® Bible (The Holy Bible, "
    "English Standard Version®), copyright © 2001 by Crossway, a publishing "
    "ministry of Good News Publishers. Used by permission. All rights reserved."
)


class AccessTier(Enum):
    """Subscription tier required to read an edition."""

    FREE = "free"
    STANDARD = "standard"
    PREMIUM = "premium"


class AcquisitionStrategy(Enum):
    """How an edition's text is obtained."""

    LOCAL = "local"
    PLAIN_TEXT_API = "plain_text_api"
    TREE_API = "tree_api"


# Attribution text used when an edition requires it but declares none
STRATEGY_ATTRIBUTION: dict[AcquisitionStrategy, str] = {
    AcquisitionStrategy.PLAIN_TEXT_API: ESV_ATTRIBUTION,
}


class CatalogValidationError(Exception):
    """Raised when catalog validation fails."""

    def __init__(self, message: str, edition_code: str | None = None):
        self.edition_code = edition_code
        full_message = f"[{edition_code}] {message}" if edition_code else message
        super().__init__(full_message)


@dataclass(frozen=True)
class EditionMeta:
    """A single edition entry from the catalog.

    Required fields:
        code: Edition code (e.g., "ESV")
        display_name: Human-readable name
        access_tier: free, standard or premium
        acquisition_strategy: local, plain_text_api or tree_api

    Optional fields:
        abbreviation: Short label (defaults to code)
        language: ISO language code (defaults to "en")
        upstream_id: Aggregator bible id (tree_api only)
        attribution_required: Whether credit text must accompany the text
        attribution: Credit text (strategy default when omitted)
    """

    code: str
    display_name: str
    access_tier: AccessTier
    acquisition_strategy: AcquisitionStrategy
    abbreviation: str = ""
    language: str = "en"
    upstream_id: str = ""
    attribution_required: bool = False
    attribution: str | None = None

    @property
    def is_local(self) -> bool:
        return self.acquisition_strategy == AcquisitionStrategy.LOCAL

    @classmethod
    def from_dict(cls, code: str, data: dict) -> "EditionMeta":
        """Create EditionMeta from catalog entry dict."""
        code = code.strip().upper()

        name = data.get("name", "")
        tier_str = data.get("tier", "")
        strategy_str = data.get("strategy", "")

        if not name:
            raise CatalogValidationError("Missing required field: name", code)
        if not tier_str:
            raise CatalogValidationError("Missing required field: tier", code)
        if not strategy_str:
            raise CatalogValidationError("Missing required field: strategy", code)

        try:
            tier = AccessTier(tier_str)
        except ValueError:
            valid = [t.value for t in AccessTier]
            raise CatalogValidationError(
                f"Invalid tier '{tier_str}'. Must be one of: {valid}", code
            )

        try:
            strategy = AcquisitionStrategy(strategy_str)
        except ValueError:
            valid = [s.value for s in AcquisitionStrategy]
            raise CatalogValidationError(
                f"Invalid strategy '{strategy_str}'. Must be one of: {valid}", code
            )

        upstream_id = str(data.get("upstream_id", "") or "")
        if strategy == AcquisitionStrategy.TREE_API and not upstream_id:
            raise CatalogValidationError(
                "tree_api editions require upstream_id", code
            )

        attribution_required = bool(data.get("attribution_required", False))
        attribution = None
        if attribution_required:
            attribution = data.get("attribution") or STRATEGY_ATTRIBUTION.get(
                strategy
            )
            if not attribution:
                raise CatalogValidationError(
                    "attribution_required is set but no attribution text is "
                    f"declared and strategy '{strategy.value}' has no default",
                    code,
                )

        return cls(
            code=code,
            display_name=name,
            access_tier=tier,
            acquisition_strategy=strategy,
            abbreviation=data.get("abbreviation", "") or code,
            language=data.get("language", "en"),
            upstream_id=upstream_id,
            attribution_required=attribution_required,
            attribution=attribution,
        )

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            "code": self.code,
            "name": self.display_name,
            "abbreviation": self.abbreviation,
            "tier": self.access_tier.value,
            "strategy": self.acquisition_strategy.value,
            "language": self.language,
            "attribution_required": self.attribution_required,
        }


@dataclass
class EditionCatalog:
    """Container for all editions, in declaration order."""

    editions: dict[str, EditionMeta] = field(default_factory=dict)
    path: Path | None = None

    def lookup(self, code: str) -> EditionMeta | None:
        """Get edition by code (case-insensitive). None if not found."""
        if not code:
            return None
        return self.editions.get(code.strip().upper())

    def __contains__(self, code: str) -> bool:
        return self.lookup(code) is not None

    def __iter__(self):
        return iter(self.editions.values())

    def __len__(self) -> int:
        return len(self.editions)

    def by_strategy(self, strategy: AcquisitionStrategy) -> list[EditionMeta]:
        """All editions served by a strategy."""
        return [e for e in self.editions.values() if e.acquisition_strategy == strategy]

    @classmethod
    def from_mapping(cls, raw_data: dict, path: Path | None = None) -> "EditionCatalog":
        """Build a catalog from a parsed YAML mapping."""
        if not isinstance(raw_data, dict):
            raise CatalogValidationError("Catalog must be a YAML mapping")

        editions: dict[str, EditionMeta] = {}
        for key, value in raw_data.items():
            key = str(key)
            # Skip comment-only keys
            if key.startswith("_"):
                continue
            if not isinstance(value, dict):
                raise CatalogValidationError("Entry must be a mapping", key)

            edition = EditionMeta.from_dict(key, value)
            if edition.code in editions:
                raise CatalogValidationError("Duplicate edition code", edition.code)
            editions[edition.code] = edition

        if not editions:
            raise CatalogValidationError("Catalog declares no editions")

        return cls(editions=editions, path=path)

    @classmethod
    def load(cls, path: Path | str | None = None) -> "EditionCatalog":
        """Load catalog from YAML file.

        Args:
            path: Path to an editions YAML file. If None, uses:
                  1. LECTERN_CATALOG_PATH env var
                  2. The packaged editions.yaml

        Returns:
            Loaded and validated EditionCatalog

        Raises:
            CatalogValidationError: If catalog is invalid
            FileNotFoundError: If catalog file not found
        """
        if path is None:
            env_path = os.environ.get("LECTERN_CATALOG_PATH")
            path = Path(env_path) if env_path else PACKAGED_CATALOG_PATH

        if isinstance(path, str):
            path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Catalog not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            raw_data = yaml.safe_load(f)

        return cls.from_mapping(raw_data, path=path)
