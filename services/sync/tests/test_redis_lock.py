"""Tests for the token-owned sync lock."""

import pytest

from affsync.stores import redis as redis_store


class RecordingRedis:
    """Just enough of redis.asyncio.Redis for the lock helpers."""

    def __init__(self):
        self.values: dict[str, str] = {}
        self.calls: list[str] = []

    async def set(self, key, value, nx=False, ex=None):
        self.calls.append("set")
        if nx and key in self.values:
            return None
        self.values[key] = value
        return True

    async def eval(self, script, numkeys, key, token):
        self.calls.append("eval")
        assert numkeys == 1
        assert 'redis.call("DEL", KEYS[1])' in script
        if self.values.get(key) == token:
            del self.values[key]
            return 1
        return 0

    async def get(self, key):
        self.calls.append("get")
        return self.values.get(key)

    async def delete(self, key):
        self.calls.append("delete")
        self.values.pop(key, None)


@pytest.fixture
def fake_redis(monkeypatch) -> RecordingRedis:
    client = RecordingRedis()
    monkeypatch.setattr(redis_store, "_redis", client)
    return client


async def test_lock_is_exclusive(fake_redis):
    token = await redis_store.acquire_lock("sync", 60)
    assert token
    assert await redis_store.acquire_lock("sync", 60) is None


async def test_release_is_a_single_compare_and_delete(fake_redis):
    token = await redis_store.acquire_lock("sync", 60)
    fake_redis.calls.clear()

    assert await redis_store.release_lock("sync", token) is True
    assert fake_redis.calls == ["eval"]
    assert "lock:sync" not in fake_redis.values


async def test_release_with_stale_token_keeps_new_owner(fake_redis):
    stale = await redis_store.acquire_lock("sync", 60)
    # the lock expired and another process took it
    fake_redis.values["lock:sync"] = "other-owner"

    assert await redis_store.release_lock("sync", stale) is False
    assert fake_redis.values["lock:sync"] == "other-owner"
    assert "delete" not in fake_redis.calls


async def test_helpers_require_initialized_redis(monkeypatch):
    monkeypatch.setattr(redis_store, "_redis", None)
    with pytest.raises(RuntimeError):
        await redis_store.release_lock("sync", "token")
