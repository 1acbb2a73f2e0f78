"""Configuration settings for Lectern."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_PLAIN_TEXT_BASE_URL = "https://api.esv.org/v3/passage/text/"
DEFAULT_TREE_BASE_URL = "https://api.scripture.api.bible/v1"


@dataclass
class Settings:
    """Application settings.

    Defaults are suitable for local use; ``from_env`` applies the
    LECTERN_* overrides and upstream API credentials.
    """

    # Database
    db_path: Path = field(
        default_factory=lambda: Path.home() / ".lectern" / "lectern.db"
    )

    # Edition catalog (None = packaged editions.yaml)
    catalog_path: Path | None = None

    # Upstream credentials
    plain_text_api_key: str | None = None
    tree_api_key: str | None = None

    # Upstream endpoints
    plain_text_base_url: str = DEFAULT_PLAIN_TEXT_BASE_URL
    tree_base_url: str = DEFAULT_TREE_BASE_URL

    # Seconds; applies to connect, read and write
    http_timeout: float = 10.0

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        settings = cls()

        db_path = os.environ.get("LECTERN_DB_PATH")
        if db_path:
            settings.db_path = Path(db_path)

        catalog_path = os.environ.get("LECTERN_CATALOG_PATH")
        if catalog_path:
            settings.catalog_path = Path(catalog_path)

        settings.plain_text_api_key = os.environ.get("ESV_API_KEY") or None
        settings.tree_api_key = os.environ.get("API_BIBLE_KEY") or None

        settings.plain_text_base_url = os.environ.get(
            "LECTERN_ESV_BASE_URL", DEFAULT_PLAIN_TEXT_BASE_URL
        )
        settings.tree_base_url = os.environ.get(
            "LECTERN_API_BIBLE_BASE_URL", DEFAULT_TREE_BASE_URL
        )

        timeout = os.environ.get("LECTERN_HTTP_TIMEOUT")
        if timeout:
            try:
                settings.http_timeout = float(timeout)
            except ValueError:
                raise ValueError(
                    f"LECTERN_HTTP_TIMEOUT must be a number of seconds, got {timeout!r}"
                )

        return settings

    @property
    def secrets(self) -> list[str]:
        """Configured credential values (for log masking)."""
        return [s for s in (self.plain_text_api_key, self.tree_api_key) if s]
