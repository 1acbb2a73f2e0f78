"""Shared fixtures: fixed clock, temporary store, mocked upstreams."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from lectern.config import Settings
from lectern.db.store import ChapterStore
from lectern.resolver import ChapterResolver, set_resolver
from lectern.sources.catalog import PACKAGED_CATALOG_PATH, EditionCatalog

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

ESV_KEY = "esv-test-key-0123456789"
BIBLE_KEY = "bible-test-key-9876543210"

GENESIS_1_TEXT = "[1] In the beginning.\n\n[2] And the earth."

NIV_GENESIS_1_TREE = [
    {
        "type": "para",
        "items": [
            {"type": "verse", "number": "1", "items": [{"type": "text", "text": "In the beginning"}]},
            {"type": "verse", "number": "2", "items": [{"type": "text", "text": "Now the earth"}]},
        ],
    },
    {
        "type": "para",
        "items": [
            {"type": "verse", "number": "3", "items": [{"type": "text", "text": "And God said"}]},
        ],
    },
]


class FakeClock:
    """Controllable UTC clock."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeUpstream:
    """httpx MockTransport handler serving both upstream APIs.

    Records every request. Override ``passage`` / ``tree`` / ``status`` or
    set ``error`` to an exception to raise instead of responding.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.passage: str = GENESIS_1_TEXT
        self.tree: list = NIV_GENESIS_1_TREE
        self.status: int = 200
        self.error: Exception | None = None
        self.delay: float = 0.0

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.status != 200:
            return httpx.Response(self.status, text="upstream error")
        if request.url.host == "api.esv.org":
            return httpx.Response(200, json={"passages": [self.passage]})
        return httpx.Response(200, json={"data": {"content": self.tree}})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def catalog():
    return EditionCatalog.load(PACKAGED_CATALOG_PATH)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "lectern.db"


@pytest.fixture
def store(db_path):
    return ChapterStore(db_path)


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def settings(db_path):
    return Settings(
        db_path=db_path,
        catalog_path=PACKAGED_CATALOG_PATH,
        plain_text_api_key=ESV_KEY,
        tree_api_key=BIBLE_KEY,
    )


@pytest.fixture
def make_resolver(settings, catalog, upstream, clock):
    """Build a resolver against the fake upstream.

    Call with overrides, e.g. make_resolver(plain_text_api_key=None).
    """

    def _make(**overrides) -> ChapterResolver:
        for name, value in overrides.items():
            setattr(settings, name, value)
        return ChapterResolver.from_settings(
            settings, catalog=catalog, client=upstream.client(), clock=clock
        )

    return _make


@pytest.fixture
def resolver(make_resolver):
    return make_resolver()


@pytest.fixture(autouse=True)
def reset_default_resolver():
    yield
    set_resolver(None)


@pytest.fixture
def seed_file(tmp_path):
    """Write a seed file and return its path."""

    def _write(data: dict):
        path = tmp_path / "seed.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return _write
