"""Tests for pending-signup and refresh-token records in the key-value store."""

import json

import pytest

from muzee.service.sessions import RefreshTokenStore, SignupSessionManager
from muzee.storage.memory_cache import MemoryCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1_700_000_000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return MemoryCache(clock=clock)


class TestSignupSessionManager:
    async def test_save_and_get(self, cache, clock):
        sessions = SignupSessionManager(cache, clock=clock)

        await sessions.save("a@x.com", "hash", "123456")
        pending = await sessions.get("a@x.com")

        assert pending.password_hash == "hash"
        assert pending.code == "123456"
        assert pending.created_at == int(clock.now)

    async def test_stored_as_json_under_email_key(self, cache, clock):
        sessions = SignupSessionManager(cache, clock=clock)
        await sessions.save("a@x.com", "hash", "123456")

        raw = await cache.get("signup:a@x.com")

        assert json.loads(raw) == {
            "password_hash": "hash",
            "code": "123456",
            "created_at": int(clock.now),
        }
        assert cache.ttl("signup:a@x.com") == pytest.approx(900)

    async def test_save_overwrites(self, cache, clock):
        sessions = SignupSessionManager(cache, clock=clock)
        await sessions.save("a@x.com", "hash", "111111")
        await sessions.save("a@x.com", "hash", "222222")

        assert (await sessions.get("a@x.com")).code == "222222"

    async def test_expires(self, cache, clock):
        sessions = SignupSessionManager(cache, ttl_seconds=60, clock=clock)
        await sessions.save("a@x.com", "hash", "123456")
        clock.now += 60

        assert await sessions.get("a@x.com") is None

    async def test_corrupt_record_reads_as_absent(self, cache, clock):
        sessions = SignupSessionManager(cache, clock=clock)
        await cache.set("signup:a@x.com", "{not json", 900)

        assert await sessions.get("a@x.com") is None

    async def test_delete(self, cache, clock):
        sessions = SignupSessionManager(cache, clock=clock)
        await sessions.save("a@x.com", "hash", "123456")

        await sessions.delete("a@x.com")
        await sessions.delete("a@x.com")

        assert await sessions.get("a@x.com") is None


class TestRefreshTokenStore:
    async def test_save_and_get(self, cache, clock):
        store = RefreshTokenStore(cache, clock=clock)

        await store.save("tok", 42, "c1")
        record = await store.get("tok")

        assert record.user_id == 42
        assert record.client_id == "c1"
        assert cache.ttl("refresh_token:tok") == pytest.approx(30 * 24 * 60 * 60)

    async def test_delete_reports_removal(self, cache, clock):
        store = RefreshTokenStore(cache, clock=clock)
        await store.save("tok", 42, "c1")

        assert await store.delete("tok") is True
        assert await store.delete("tok") is False

    async def test_record_missing_fields_reads_as_absent(self, cache, clock):
        store = RefreshTokenStore(cache, clock=clock)
        await cache.set("refresh_token:tok", json.dumps({"client_id": "c1"}), 60)

        assert await store.get("tok") is None
