import json
import os
import sys
from unittest.mock import MagicMock, patch

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from integrations.call_store import (
    InMemoryCallStore,
    RedisCallStore,
    build_call_store,
    ttl_from_env,
)

class TestInMemoryCallStore:
    """Test the process-local call store."""

    def setup_method(self):
        self.store = InMemoryCallStore()

    def test_upsert_creates_entry(self):
        self.store.upsert("c1", {"phone_number": "+15551234567"})
        assert self.store.get("c1") == {"phone_number": "+15551234567"}

    def test_upsert_merges_per_field(self):
        """Later updates overwrite only the keys they supply."""
        self.store.upsert("c1", {"first_name": "Ann", "company": "Acme"})
        self.store.upsert("c1", {"company": "Globex", "qualification_score": 7})

        assert self.store.get("c1") == {
            "first_name": "Ann",
            "company": "Globex",
            "qualification_score": 7
        }

    def test_upsert_ignores_none_values(self):
        self.store.upsert("c1", {"first_name": "Ann"})
        self.store.upsert("c1", {"first_name": None, "email": "ann@acme.com"})

        assert self.store.get("c1") == {"first_name": "Ann", "email": "ann@acme.com"}

    def test_get_unknown_returns_empty(self):
        assert self.store.get("missing") == {}

    def test_get_returns_copy(self):
        self.store.upsert("c1", {"first_name": "Ann"})
        snapshot = self.store.get("c1")
        snapshot["first_name"] = "Bob"

        assert self.store.get("c1")["first_name"] == "Ann"

    def test_remove_returns_snapshot_and_evicts(self):
        self.store.upsert("c1", {"first_name": "Ann"})

        assert self.store.remove("c1") == {"first_name": "Ann"}
        assert self.store.get("c1") == {}
        assert len(self.store) == 0

    def test_remove_unknown_is_noop(self):
        assert self.store.remove("missing") == {}

    def test_calls_are_isolated(self):
        self.store.upsert("c1", {"first_name": "Ann"})
        self.store.upsert("c2", {"first_name": "Bob"})
        self.store.remove("c1")

        assert self.store.get("c2") == {"first_name": "Bob"}

class TestRedisCallStore:
    """Test the Redis-backed call store against a mocked client."""

    def setup_method(self):
        self.client = MagicMock()
        self.pipe = MagicMock()
        self.client.pipeline.return_value = self.pipe
        self.store = RedisCallStore(self.client, ttl=60)

    def test_upsert_writes_json_fields_in_transaction(self):
        self.pipe.execute.return_value = [1, True, {b"first_name": b'"Ann"', b"qualification_score": b"9"}]

        result = self.store.upsert("c1", {"first_name": "Ann", "qualification_score": 9, "email": None})

        self.client.pipeline.assert_called_once_with(transaction=True)
        self.pipe.hset.assert_called_once_with(
            "call:c1",
            mapping={"first_name": json.dumps("Ann"), "qualification_score": json.dumps(9)}
        )
        self.pipe.expire.assert_called_once_with("call:c1", 60)
        assert result == {"first_name": "Ann", "qualification_score": 9}

    def test_get_decodes_hash(self):
        self.client.hgetall.return_value = {b"phone_number": b'"+15551234567"'}

        assert self.store.get("c1") == {"phone_number": "+15551234567"}
        self.client.hgetall.assert_called_once_with("call:c1")

    def test_remove_reads_and_deletes_atomically(self):
        self.pipe.execute.return_value = [{b"first_name": b'"Ann"'}, 1]

        assert self.store.remove("c1") == {"first_name": "Ann"}
        self.client.pipeline.assert_called_once_with(transaction=True)
        self.pipe.hgetall.assert_called_once_with("call:c1")
        self.pipe.delete.assert_called_once_with("call:c1")

    def test_remove_missing_returns_empty(self):
        self.pipe.execute.return_value = [{}, 0]
        assert self.store.remove("c1") == {}

class TestBuildCallStore:
    """Test store selection from configuration."""

    def test_defaults_to_memory(self):
        with patch.dict(os.environ, {}, clear=True):
            assert isinstance(build_call_store(), InMemoryCallStore)

    def test_uses_redis_when_reachable(self):
        with patch("integrations.call_store.redis.from_url") as mock_from_url:
            mock_from_url.return_value = MagicMock()
            store = build_call_store("redis://localhost:6379")

        assert isinstance(store, RedisCallStore)

    def test_falls_back_to_memory_when_redis_down(self):
        with patch("integrations.call_store.redis.from_url") as mock_from_url:
            mock_from_url.return_value.ping.side_effect = Exception("Connection refused")
            store = build_call_store("redis://localhost:6379")

        assert isinstance(store, InMemoryCallStore)

    def test_malformed_ttl_keeps_redis_with_default_ttl(self):
        with patch.dict(os.environ, {"CALL_STATE_TTL": "a day"}), \
             patch("integrations.call_store.redis.from_url") as mock_from_url:
            mock_from_url.return_value = MagicMock()
            store = build_call_store("redis://localhost:6379")

        assert isinstance(store, RedisCallStore)
        assert store.ttl == 86400

    def test_ttl_from_env(self):
        with patch.dict(os.environ, {"CALL_STATE_TTL": "60"}):
            assert ttl_from_env() == 60
        with patch.dict(os.environ, {"CALL_STATE_TTL": "-5"}):
            assert ttl_from_env() == 86400
        with patch.dict(os.environ, {"CALL_STATE_TTL": "soon"}):
            assert ttl_from_env() == 86400
