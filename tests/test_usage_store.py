"""Tests for usage records and usage stores."""

import json
from unittest.mock import Mock, patch

import redis

from models.usage import (
    MemoryUsageStore,
    RedisUsageStore,
    UsageRecord,
    build_usage_store,
)


class TestUsageRecord:
    """Test record serialization and rollover."""

    def test_round_trip(self):
        """Test a serialized record reloads equal to the original."""
        record = UsageRecord(
            model_name="openai/gpt-4o", request_count=3, last_reset_date="2026-10-17",
            is_blocked=True, last_error="Rate limit exceeded",
        )
        assert UsageRecord.from_dict(record.model_name, record.to_dict()) == record

    def test_table_round_trip_through_json(self):
        """Test a whole table survives JSON persistence."""
        records = {
            "A": UsageRecord.fresh("A", "2026-10-17"),
            "B": UsageRecord("B", 5, "2026-10-17", True, "quota exceeded"),
        }
        blob = json.dumps({name: r.to_dict() for name, r in records.items()})

        reloaded = {name: UsageRecord.from_dict(name, data) for name, data in json.loads(blob).items()}
        assert reloaded == records

    def test_camel_case_keys(self):
        """Test the persisted blob keeps its camelCase shape."""
        data = UsageRecord.fresh("A", "2026-10-17").to_dict()
        assert data == {
            "modelName": "A",
            "requestCount": 0,
            "lastResetDate": "2026-10-17",
            "isBlocked": False,
        }

    def test_roll_over_same_day_is_noop(self):
        record = UsageRecord("A", 4, "2026-10-17", True, "rate limit")
        assert record.roll_over("2026-10-17") is False
        assert record.request_count == 4
        assert record.is_blocked is True

    def test_roll_over_new_day(self):
        record = UsageRecord("A", 4, "2026-10-16", True, "rate limit")
        assert record.roll_over("2026-10-17") is True
        assert record == UsageRecord("A", 0, "2026-10-17", False, None)


class TestMemoryUsageStore:
    """Test the in-process store."""

    def test_empty_store_loads_none(self):
        assert MemoryUsageStore().load() is None

    def test_update_applies_mutator(self):
        store = MemoryUsageStore({"A": {"requestCount": 1}})

        result = store.update(lambda table: {**table, "B": {"requestCount": 2}})

        assert result == {"A": {"requestCount": 1}, "B": {"requestCount": 2}}
        assert store.load() == result

    def test_load_returns_copy(self):
        """Test callers cannot mutate stored state through a loaded table."""
        store = MemoryUsageStore({"A": {"requestCount": 1}})
        store.load()["A"]["requestCount"] = 99
        assert store.load()["A"]["requestCount"] == 1


class TestRedisUsageStore:
    """Test the Redis-backed store with a mocked client."""

    def _client_with(self, stored=None):
        """Mock client whose transaction() runs the callable against a mock pipeline."""
        client = Mock()
        state = {"value": stored}
        pipe = Mock()
        pipe.get.side_effect = lambda key: state["value"]

        def _set(key, value):
            state["value"] = value

        pipe.set.side_effect = _set

        def _transaction(func, *watches, value_from_callable=False):
            result = func(pipe)
            return result if value_from_callable else None

        client.transaction.side_effect = _transaction
        client.get.side_effect = lambda key: state["value"]
        return client, pipe, state

    def test_update_watches_key_and_writes_blob(self):
        """Test update runs in a transaction on the usage key."""
        client, pipe, state = self._client_with(json.dumps({"A": {"requestCount": 1}}))
        store = RedisUsageStore(client, key="usage-key")

        result = store.update(lambda table: {"A": {"requestCount": table["A"]["requestCount"] + 1}})

        assert result == {"A": {"requestCount": 2}}
        assert client.transaction.call_args.args[1] == "usage-key"
        pipe.multi.assert_called_once()
        assert json.loads(state["value"]) == {"A": {"requestCount": 2}}

    def test_load_parses_blob(self):
        client, _, _ = self._client_with(json.dumps({"A": {"requestCount": 3}}))
        assert RedisUsageStore(client).load() == {"A": {"requestCount": 3}}

    def test_load_corrupt_blob_returns_none(self):
        client, _, _ = self._client_with("{not json")
        assert RedisUsageStore(client).load() is None

    def test_update_falls_back_to_local_copy(self):
        """Test the store keeps counting locally while Redis is down."""
        client, _, _ = self._client_with(json.dumps({"A": {"requestCount": 1}}))
        store = RedisUsageStore(client)
        store.update(lambda table: table)

        client.transaction.side_effect = redis.ConnectionError("down")
        result = store.update(lambda table: {"A": {"requestCount": table["A"]["requestCount"] + 1}})

        assert result == {"A": {"requestCount": 2}}

    def test_load_serves_local_copy_when_redis_is_down(self):
        client, _, _ = self._client_with()
        store = RedisUsageStore(client)
        store.update(lambda table: {"A": {"requestCount": 1}})

        client.get.side_effect = redis.ConnectionError("down")
        assert store.load() == {"A": {"requestCount": 1}}


class TestBuildUsageStore:
    """Test store selection from configuration."""

    def test_memory_without_redis(self, monkeypatch):
        monkeypatch.delenv("USAGE_REDIS_URL", raising=False)
        monkeypatch.setenv("REDIS_URL", "")
        assert isinstance(build_usage_store(), MemoryUsageStore)

    def test_redis_when_reachable(self):
        client = Mock()
        with patch("models.usage.redis.from_url", return_value=client) as from_url:
            store = build_usage_store("redis://localhost:6379/0")

        from_url.assert_called_once_with("redis://localhost:6379/0", decode_responses=True)
        client.ping.assert_called_once()
        assert isinstance(store, RedisUsageStore)

    def test_memory_when_redis_unreachable(self):
        client = Mock()
        client.ping.side_effect = redis.ConnectionError("refused")
        with patch("models.usage.redis.from_url", return_value=client):
            assert isinstance(build_usage_store("redis://localhost:6379/0"), MemoryUsageStore)
