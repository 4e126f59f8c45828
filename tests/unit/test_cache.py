"""Tests for the response cache and in-flight registry."""

import asyncio

import pytest

from polaris_orchestrator.orchestrator.cache import InFlightRegistry, ResponseCache, fingerprint


class TestFingerprint:
    def test_key_order_does_not_matter(self):
        assert fingerprint("research", {"a": 1, "b": [1, 2]}) == fingerprint("research", {"b": [1, 2], "a": 1})

    def test_namespace_and_payload_distinguish(self):
        key = fingerprint("research", {"prompt": "x"})
        assert key.startswith("research:v1:")
        assert key != fingerprint("report", {"prompt": "x"})
        assert key != fingerprint("research", {"prompt": "y"})


class TestResponseCache:
    def test_get_within_ttl(self, clock):
        cache = ResponseCache(ttl_seconds=300, clock=clock)
        cache.set("k", "v")
        clock.advance(299)
        assert cache.get("k") == "v"

    def test_expired_entries_evicted_on_read(self, clock):
        cache = ResponseCache(ttl_seconds=300, clock=clock)
        cache.set("k", "v")
        clock.advance(300)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_last_write_wins(self, clock):
        cache = ResponseCache(clock=clock)
        cache.set("k", "first")
        cache.set("k", "second", ttl_seconds=10)
        assert cache.get("k") == "second"
        clock.advance(11)
        assert cache.get("k") is None

    def test_delete_and_clear(self, clock):
        cache = ResponseCache(clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.delete("a")
        cache.delete("missing")
        assert cache.get("a") is None
        cache.clear()
        assert len(cache) == 0

    def test_expired_entries_swept_on_write(self, clock):
        cache = ResponseCache(ttl_seconds=10, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2, ttl_seconds=60)
        clock.advance(10)
        cache.set("c", 3)
        assert len(cache) == 2
        assert cache.get("b") == 2


class TestInFlightRegistry:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_call(self):
        registry = InFlightRegistry()
        release = asyncio.Event()
        calls = []

        async def work():
            calls.append(1)
            await release.wait()
            return "shared"

        first = asyncio.ensure_future(registry.run("k", work))
        second = asyncio.ensure_future(registry.run("k", work))
        await asyncio.sleep(0)
        assert registry.is_pending("k")
        release.set()

        assert await asyncio.gather(first, second) == ["shared", "shared"]
        assert len(calls) == 1
        assert not registry.is_pending("k")

    @pytest.mark.asyncio
    async def test_failure_reaches_joiners_and_releases_key(self):
        registry = InFlightRegistry(retain_seconds=60)
        release = asyncio.Event()
        attempts = []

        async def failing():
            attempts.append(1)
            await release.wait()
            raise RuntimeError("boom")

        first = asyncio.ensure_future(registry.run("k", failing))
        second = asyncio.ensure_future(registry.run("k", failing))
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(first, second, return_exceptions=True)

        assert all(isinstance(r, RuntimeError) for r in results)
        assert len(attempts) == 1
        assert registry.peek("k") is None

        async def succeeding():
            return "ok"

        assert await registry.run("k", succeeding) == "ok"

    @pytest.mark.asyncio
    async def test_retained_value_until_expiry(self, clock):
        registry = InFlightRegistry(retain_seconds=60, clock=clock)
        calls = []

        async def work():
            calls.append(1)
            return len(calls)

        assert await registry.run("k", work) == 1
        clock.advance(59)
        assert await registry.run("k", work) == 1
        clock.advance(1)
        assert await registry.run("k", work) == 2

    @pytest.mark.asyncio
    async def test_without_retention_completed_calls_rerun(self):
        registry = InFlightRegistry()
        calls = []

        async def work():
            calls.append(1)
            return len(calls)

        assert await registry.run("k", work) == 1
        assert await registry.run("k", work) == 2

    @pytest.mark.asyncio
    async def test_forget(self, clock):
        registry = InFlightRegistry(retain_seconds=60, clock=clock)

        async def work():
            return "v"

        await registry.run("k", work)
        registry.forget("k")
        assert registry.peek("k") is None

    @pytest.mark.asyncio
    async def test_expired_values_swept_on_run(self, clock):
        expired = []
        registry = InFlightRegistry(retain_seconds=60, clock=clock, on_expire=lambda k, v: expired.append((k, v)))

        async def work():
            return "v"

        await registry.run("a", work)
        clock.advance(60)
        await registry.run("b", work)

        assert expired == [("a", "v")]
        assert registry.prune() == 0
