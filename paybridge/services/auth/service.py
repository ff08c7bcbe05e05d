"""Single-use OAuth `state` tokens guarding the install callback.

Entries expire after a TTL even when never consumed. The in-memory store
suits a single process; the Redis store shares state across replicas.
"""

import json
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable

import redis

from paybridge.common.logging import logger


@dataclass(frozen=True)
class OAuthState:
    shop: str
    issued_at: float


class OAuthStateStore:
    """Expiring `{state -> (shop, issued_at)}` map with lazy eviction."""

    def __init__(self, ttl_seconds: int = 600, clock: Callable[[], float] = time.time) -> None:
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: dict[str, OAuthState] = {}
        self._lock = threading.Lock()

    def _expired(self, entry: OAuthState, now: float) -> bool:
        return now - entry.issued_at > self.ttl_seconds

    def _evict(self, now: float) -> None:
        for token in [t for t, e in self._entries.items() if self._expired(e, now)]:
            del self._entries[token]

    def issue(self, shop: str) -> str:
        token = str(uuid.uuid4())
        now = self.clock()
        with self._lock:
            self._evict(now)
            self._entries[token] = OAuthState(shop=shop, issued_at=now)
        return token

    def consume(self, token: str, shop: str) -> bool:
        """True once for a live token issued for `shop`; the token is then gone."""

        if not token:
            return False
        now = self.clock()
        with self._lock:
            self._evict(now)
            entry = self._entries.get(token)
            if entry is None or entry.shop != shop:
                return False
            del self._entries[token]
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisOAuthStateStore:
    """Same contract backed by Redis keys with a server-side expiry."""

    def __init__(self, client: redis.Redis, ttl_seconds: int = 600, prefix: str = "oauth:state:") -> None:
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int = 600) -> "RedisOAuthStateStore":
        return cls(redis.Redis.from_url(url, decode_responses=True), ttl_seconds=ttl_seconds)

    def issue(self, shop: str) -> str:
        token = str(uuid.uuid4())
        value = json.dumps({"shop": shop, "issued_at": time.time()})
        self.client.set(f"{self.prefix}{token}", value, ex=self.ttl_seconds)
        return token

    def consume(self, token: str, shop: str) -> bool:
        if not token:
            return False
        # GETDEL keeps consumption single-use across replicas.
        raw = self.client.getdel(f"{self.prefix}{token}")
        if raw is None:
            return False
        try:
            entry = json.loads(raw)
        except ValueError:
            logger.warning("oauth state unreadable token_prefix=%s", token[:8])
            return False
        return entry.get("shop") == shop


def build_state_store(settings) -> OAuthStateStore | RedisOAuthStateStore:
    if settings.oauth_state_backend == "redis":
        return RedisOAuthStateStore.from_url(settings.redis_url, ttl_seconds=settings.oauth_state_ttl_seconds)
    return OAuthStateStore(ttl_seconds=settings.oauth_state_ttl_seconds)
