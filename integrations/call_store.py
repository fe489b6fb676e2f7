import json
import os
import threading
from typing import Dict, Any, Optional

import redis
from loguru import logger

from callflow.state import CallSession

DEFAULT_TTL = 86400


def _clean(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Drop keys whose value is None so they never overwrite stored data."""
    return {k: v for k, v in (fields or {}).items() if v is not None}


class CallStore:
    """Per-call lead data, keyed by call id. Transient cache only."""

    def upsert(self, call_id: str, fields: Dict[str, Any]) -> CallSession:
        """Merge fields into the entry for call_id, creating it if needed."""
        raise NotImplementedError

    def get(self, call_id: str) -> CallSession:
        """Return a copy of the entry, or an empty dict."""
        raise NotImplementedError

    def remove(self, call_id: str) -> CallSession:
        """Return the final snapshot for call_id and evict it."""
        raise NotImplementedError


class InMemoryCallStore(CallStore):
    """Process-local store. A single lock serializes merge and read-then-delete."""

    def __init__(self):
        self._sessions: Dict[str, CallSession] = {}
        self._lock = threading.Lock()

    def upsert(self, call_id: str, fields: Dict[str, Any]) -> CallSession:
        with self._lock:
            session = self._sessions.setdefault(call_id, {})
            session.update(_clean(fields))
            return dict(session)

    def get(self, call_id: str) -> CallSession:
        with self._lock:
            return dict(self._sessions.get(call_id, {}))

    def remove(self, call_id: str) -> CallSession:
        with self._lock:
            return self._sessions.pop(call_id, {})

    def __len__(self) -> int:
        return len(self._sessions)


class RedisCallStore(CallStore):
    """Redis-backed store: one hash per call, JSON-encoded field values."""

    def __init__(self, client: "redis.Redis", ttl: int = DEFAULT_TTL, prefix: str = "call"):
        self.r = client
        self.ttl = ttl
        self.prefix = prefix

    def _key(self, call_id: str) -> str:
        return f"{self.prefix}:{call_id}"

    @staticmethod
    def _decode(raw: Dict[Any, Any]) -> CallSession:
        session = {}
        for k, v in (raw or {}).items():
            key = k.decode() if isinstance(k, bytes) else k
            session[key] = json.loads(v)
        return session

    def upsert(self, call_id: str, fields: Dict[str, Any]) -> CallSession:
        key = self._key(call_id)
        mapping = {k: json.dumps(v) for k, v in _clean(fields).items()}
        pipe = self.r.pipeline(transaction=True)
        if mapping:
            pipe.hset(key, mapping=mapping)
        pipe.expire(key, self.ttl)
        pipe.hgetall(key)
        return self._decode(pipe.execute()[-1])

    def get(self, call_id: str) -> CallSession:
        return self._decode(self.r.hgetall(self._key(call_id)))

    def remove(self, call_id: str) -> CallSession:
        key = self._key(call_id)
        pipe = self.r.pipeline(transaction=True)
        pipe.hgetall(key)
        pipe.delete(key)
        raw, _ = pipe.execute()
        return self._decode(raw)


def ttl_from_env(default: int = DEFAULT_TTL) -> int:
    """CALL_STATE_TTL in seconds; malformed or non-positive values keep the default."""
    raw = os.getenv("CALL_STATE_TTL")
    if raw is None or raw.strip() == "":
        return default
    try:
        ttl = int(raw)
    except ValueError:
        logger.warning(f"Invalid CALL_STATE_TTL={raw!r}, using default {default}")
        return default
    if ttl <= 0:
        logger.warning(f"Non-positive CALL_STATE_TTL={ttl}, using default {default}")
        return default
    return ttl


def build_call_store(redis_url: Optional[str] = None) -> CallStore:
    """Use Redis when REDIS_URL is set and reachable, otherwise memory."""
    redis_url = redis_url or os.getenv("REDIS_URL")
    if not redis_url:
        logger.info("No REDIS_URL configured, using in-memory call store")
        return InMemoryCallStore()

    ttl = ttl_from_env()
    try:
        client = redis.from_url(redis_url)
        client.ping()
        logger.info("Redis connection established for call store")
        return RedisCallStore(client, ttl=ttl)
    except Exception as e:
        logger.warning(f"Redis connection failed ({e}), falling back to in-memory call store")
        return InMemoryCallStore()
