"""Tests for chapter resolution end to end (store + sources + catalog)."""

import asyncio
import sqlite3
from datetime import timedelta

import httpx
import pytest

from lectern.models import Verse
from lectern.resolver import (
    REASON_INVALID_REFERENCE,
    REASON_LOCAL_NOT_SEEDED,
    REASON_UNSUPPORTED,
    FailureKind,
    resolve_chapter,
    set_resolver,
    unavailable_reason,
)
from lectern.sources.catalog import ESV_ATTRIBUTION

KJV_GENESIS_1 = (
    Verse(1, "In the beginning God created the heaven and the earth.", True),
    Verse(2, "And the earth was without form, and void;"),
)


class TestUpstreamResolution:
    """Fetching, caching and freshness for API-backed editions."""

    @pytest.mark.asyncio
    async def test_plain_text_edition(self, resolver, upstream, clock):
        chapter = await resolver.resolve("GEN", 1, "ESV")

        assert chapter.work_code == "GEN"
        assert chapter.work_name == "Genesis"
        assert chapter.section_number == 1
        assert chapter.edition_code == "ESV"
        assert [(v.number, v.paragraph_start) for v in chapter.verses] == [
            (1, True),
            (2, True),
        ]
        assert chapter.cached_at == clock()
        assert chapter.expires_at == clock() + timedelta(hours=24)
        assert upstream.calls == 1

    @pytest.mark.asyncio
    async def test_tree_edition(self, resolver, upstream, clock):
        chapter = await resolver.resolve("gen", 1, "niv")

        assert chapter.edition_code == "NIV"
        assert [v.number for v in chapter.verses] == [1, 2, 3]
        assert chapter.expires_at == clock() + timedelta(hours=1)
        assert upstream.requests[0].url.host == "api.scripture.api.bible"

    @pytest.mark.asyncio
    async def test_second_resolve_served_from_cache(self, resolver, upstream):
        first = await resolver.resolve_detailed("GEN", 1, "ESV")
        second = await resolver.resolve_detailed("GEN", 1, "ESV")

        assert not first.from_cache
        assert second.from_cache
        assert second.chapter == first.chapter
        assert upstream.calls == 1

    @pytest.mark.asyncio
    async def test_cache_survives_new_resolver(self, make_resolver, upstream):
        await make_resolver().resolve("GEN", 1, "ESV")
        chapter = await make_resolver().resolve("GEN", 1, "ESV")
        assert chapter is not None
        assert upstream.calls == 1

    @pytest.mark.asyncio
    async def test_refetch_exactly_at_expiry(self, resolver, upstream, clock):
        await resolver.resolve("GEN", 1, "ESV")

        clock.advance(hours=23, minutes=59)
        await resolver.resolve("GEN", 1, "ESV")
        assert upstream.calls == 1

        clock.advance(minutes=1)
        refreshed = await resolver.resolve("GEN", 1, "ESV")
        assert upstream.calls == 2
        assert refreshed.cached_at == clock()

    @pytest.mark.asyncio
    async def test_tree_cache_expires_after_one_hour(self, resolver, upstream, clock):
        await resolver.resolve("GEN", 1, "NIV")
        clock.advance(hours=1)
        await resolver.resolve("GEN", 1, "NIV")
        assert upstream.calls == 2

    @pytest.mark.asyncio
    async def test_concurrent_resolves_coalesce(self, resolver, upstream):
        upstream.delay = 0.05
        chapters = await asyncio.gather(
            *(resolver.resolve("GEN", 1, "ESV") for _ in range(5))
        )
        assert all(c is not None for c in chapters)
        assert upstream.calls == 1

    @pytest.mark.asyncio
    async def test_cache_write_failure_still_returns_chapter(
        self, resolver, upstream, monkeypatch
    ):
        def locked(*args, **kwargs):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(resolver.store, "_put_sync", locked)

        chapter = await resolver.resolve("GEN", 1, "ESV")
        assert chapter is not None
        assert len(chapter.verses) == 2

        # Nothing was cached, so the next resolve fetches again
        await resolver.resolve("GEN", 1, "ESV")
        assert upstream.calls == 2

    @pytest.mark.asyncio
    async def test_duplicate_verses_collapsed(self, resolver, upstream):
        upstream.passage = "[2] Two. [1] One.\n\n[2] Again."
        chapter = await resolver.resolve("GEN", 1, "ESV")
        assert [v.number for v in chapter.verses] == [1, 2]
        assert len({v.number for v in chapter.verses}) == len(chapter.verses)


class TestAttribution:
    """Attribution travels with every chapter of an attribution-required edition."""

    @pytest.mark.asyncio
    async def test_esv_fetched_and_cached(self, resolver):
        fetched = await resolver.resolve("GEN", 1, "ESV")
        cached = await resolver.resolve("GEN", 1, "ESV")
        assert fetched.attribution == ESV_ATTRIBUTION
        assert cached.attribution == ESV_ATTRIBUTION

    @pytest.mark.asyncio
    async def test_no_attribution_when_not_required(self, resolver, store):
        await store.seed("Genesis", 1, "KJV", KJV_GENESIS_1)
        assert (await resolver.resolve("GEN", 1, "KJV")).attribution is None
        assert (await resolver.resolve("GEN", 1, "NIV")).attribution is None

    def test_every_required_edition_has_text(self, catalog):
        for edition in catalog:
            if edition.attribution_required:
                assert edition.attribution


class TestLocalResolution:
    """Seeded public-domain editions."""

    @pytest.mark.asyncio
    async def test_seeded_chapter(self, resolver, store, upstream, clock):
        await store.seed("Genesis", 1, "KJV", KJV_GENESIS_1, fetched_at=clock())

        chapter = await resolver.resolve("GEN", 1, "KJV")
        assert chapter.verses == KJV_GENESIS_1
        assert chapter.expires_at is None
        assert chapter.never_expires
        assert upstream.calls == 0

    @pytest.mark.asyncio
    async def test_seeded_chapter_never_expires(self, resolver, store, clock):
        await store.seed("Genesis", 1, "KJV", KJV_GENESIS_1, fetched_at=clock())
        clock.advance(days=3650)
        assert await resolver.resolve("GEN", 1, "KJV") is not None

    @pytest.mark.asyncio
    async def test_unseeded_returns_none_without_network(self, resolver, upstream):
        resolution = await resolver.resolve_detailed("GEN", 1, "KJV")

        assert resolution.chapter is None
        assert resolution.failure == FailureKind.LOCAL_NOT_SEEDED
        assert upstream.calls == 0
        assert resolver.unavailable_reason("KJV", "GEN", 1) == REASON_LOCAL_NOT_SEEDED
        assert resolver.unavailable_reason("KJV") == REASON_LOCAL_NOT_SEEDED


class TestFailures:
    """Every failure collapses to None with a distinguishable kind."""

    @pytest.mark.asyncio
    async def test_unsupported_edition(self, resolver, upstream):
        resolution = await resolver.resolve_detailed("GEN", 1, "XYZ")
        assert resolution.chapter is None
        assert resolution.failure == FailureKind.UNSUPPORTED_EDITION
        assert resolver.unavailable_reason("XYZ") == REASON_UNSUPPORTED
        assert upstream.calls == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "work,section", [("GEN", 51), ("GEN", 0), ("GEN", -1), ("ZZZ", 1), ("GEN", True)]
    )
    async def test_invalid_reference(self, resolver, upstream, work, section):
        resolution = await resolver.resolve_detailed(work, section, "ESV")
        assert resolution.failure == FailureKind.INVALID_REFERENCE
        assert resolver.unavailable_reason("ESV", work, section) == REASON_INVALID_REFERENCE
        assert upstream.calls == 0

    @pytest.mark.asyncio
    async def test_missing_credential(self, make_resolver, upstream):
        resolver = make_resolver(plain_text_api_key=None)
        resolution = await resolver.resolve_detailed("GEN", 1, "ESV")

        assert resolution.chapter is None
        assert resolution.failure == FailureKind.MISSING_CREDENTIAL
        assert resolution.failure.is_permanent
        assert upstream.calls == 0
        reason = resolver.unavailable_reason("ESV")
        assert "requires an API key" in reason
        assert "English Standard Version" in reason

    @pytest.mark.asyncio
    async def test_timeout_is_not_unsupported(self, resolver, upstream):
        upstream.error = httpx.ConnectTimeout("timed out")
        resolution = await resolver.resolve_detailed("GEN", 1, "ESV")

        assert resolution.chapter is None
        assert resolution.failure == FailureKind.UPSTREAM_UNAVAILABLE
        assert not resolution.failure.is_permanent
        reason = resolver.unavailable_reason("ESV", "GEN", 1)
        assert reason != REASON_UNSUPPORTED
        assert "temporarily unavailable" in reason

    @pytest.mark.asyncio
    async def test_failure_is_not_cached(self, resolver, upstream):
        upstream.status = 500
        assert await resolver.resolve("GEN", 1, "NIV") is None

        upstream.status = 200
        assert await resolver.resolve("GEN", 1, "NIV") is not None
        assert upstream.calls == 2
        assert resolver.last_failure("GEN", 1, "NIV") is None

    @pytest.mark.asyncio
    async def test_bad_input_is_not_tracked(self, resolver):
        for i in range(500):
            await resolver.resolve_detailed(f"BOGUS{i}", 1, "KJV")
            await resolver.resolve_detailed("GEN", 1, f"ED{i}")
            await resolver.resolve_detailed("GEN", 100 + i, "KJV")
        assert len(resolver._failures) == 0

    @pytest.mark.asyncio
    async def test_failures_tracked_per_canonical_chapter(self, resolver):
        await resolver.resolve_detailed("gen", 1, "kjv")
        await resolver.resolve_detailed(" GEN ", 1, "KJV")
        assert len(resolver._failures) == 1
        assert resolver.last_failure("GEN", 1, "KJV") == FailureKind.LOCAL_NOT_SEEDED

    @pytest.mark.asyncio
    async def test_malformed_content(self, resolver, upstream):
        upstream.tree = [{"type": "para", "items": [{"type": "text", "text": "heading"}]}]
        resolution = await resolver.resolve_detailed("GEN", 1, "NIV")
        assert resolution.failure == FailureKind.MALFORMED_UPSTREAM_CONTENT
        assert "temporarily unavailable" in resolver.unavailable_reason("NIV", "GEN", 1)

    @pytest.mark.asyncio
    async def test_unexpected_error_does_not_escape(self, resolver, monkeypatch):
        async def explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(resolver.store, "get", explode)
        resolution = await resolver.resolve_detailed("GEN", 1, "ESV")
        assert resolution.chapter is None
        assert resolution.failure == FailureKind.UPSTREAM_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_expired_record_with_failing_upstream(self, resolver, upstream, clock):
        await resolver.resolve("GEN", 1, "ESV")
        clock.advance(hours=25)
        upstream.status = 502
        assert await resolver.resolve("GEN", 1, "ESV") is None


class TestDefaultResolver:
    """Module-level convenience functions."""

    @pytest.mark.asyncio
    async def test_resolve_chapter_uses_default(self, resolver, upstream):
        set_resolver(resolver)
        chapter = await resolve_chapter("JHN", 3, "ESV")
        assert chapter.work_name == "John"
        assert upstream.requests[0].url.params["q"] == "John 3"

    def test_unavailable_reason_uses_default(self, resolver):
        set_resolver(resolver)
        assert unavailable_reason("nope") == REASON_UNSUPPORTED
