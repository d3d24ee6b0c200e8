import asyncio
import logging
import time
from dataclasses import dataclass, field

import redis.asyncio as redis

from giftlists.core.config import settings


logger = logging.getLogger("giftlists.access_grants")


@dataclass
class SessionGrants:
    """Password-list grants held by one viewer session.

    Loaded from the store at the start of a request, handed to the access
    policy explicitly, and saved back by the caller when ``dirty`` is set.
    """

    session_id: str
    list_ids: set[int] = field(default_factory=set)
    dirty: bool = False

    def has(self, list_id: int) -> bool:
        return list_id in self.list_ids

    def add(self, list_id: int) -> None:
        if list_id not in self.list_ids:
            self.list_ids.add(list_id)
            self.dirty = True


class SessionGrantStore:
    def __init__(
        self,
        redis_dsn: str | None = None,
        ttl_seconds: int | None = None,
        max_sessions: int = 10000,
    ) -> None:
        self._redis_dsn = settings.redis_dsn if redis_dsn is None else redis_dsn
        self._ttl = ttl_seconds or settings.access_grant_ttl_seconds
        self._max_sessions = max_sessions
        self._redis: redis.Redis | None = None
        self._connect_lock = asyncio.Lock()
        self._cooldown_until_monotonic = 0.0
        self._connect_failures = 0
        # session_id -> {list_id: expires_at (monotonic)}
        self._memory: dict[str, dict[int, float]] = {}

    def _key(self, session_id: str) -> str:
        return f"grants:{session_id}"

    def _in_cooldown(self) -> bool:
        return time.monotonic() < self._cooldown_until_monotonic

    def _mark_redis_failed(self, exc: Exception) -> None:
        self._redis = None
        self._connect_failures += 1
        cooldown = min(60.0, 1.0 * (2 ** min(self._connect_failures, 6)))
        self._cooldown_until_monotonic = time.monotonic() + cooldown
        logger.warning(
            "SessionGrantStore redis unavailable failures=%s cooldown_s=%.0f error=%s",
            self._connect_failures,
            cooldown,
            exc,
        )

    async def _get_redis(self) -> redis.Redis | None:
        if not self._redis_dsn or not str(self._redis_dsn).strip():
            return None
        if self._redis is not None:
            return self._redis
        if self._in_cooldown():
            return None
        async with self._connect_lock:
            if self._redis is not None:
                return self._redis
            if self._in_cooldown():
                return None
            try:
                client = redis.from_url(
                    self._redis_dsn,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=2,
                    socket_timeout=2,
                )
                await client.ping()
                self._redis = client
                self._connect_failures = 0
                self._cooldown_until_monotonic = 0.0
                logger.info("SessionGrantStore connected redis=%s", self._redis_dsn)
            except (redis.RedisError, OSError) as exc:
                self._mark_redis_failed(exc)
        return self._redis

    def _mem_load(self, session_id: str) -> set[int]:
        now = time.monotonic()
        entries = self._memory.get(session_id)
        if not entries:
            return set()
        live = {list_id: exp for list_id, exp in entries.items() if exp > now}
        if live:
            self._memory[session_id] = live
        else:
            self._memory.pop(session_id, None)
        return set(live)

    def _mem_save(self, session_id: str, list_ids: set[int]) -> None:
        now = time.monotonic()
        entries = self._memory.setdefault(session_id, {})
        for list_id in list_ids:
            entries.setdefault(list_id, now + self._ttl)
        if len(self._memory) <= self._max_sessions:
            return
        expired = [
            sid for sid, grants in self._memory.items()
            if all(exp <= now for exp in grants.values())
        ]
        for sid in expired:
            self._memory.pop(sid, None)
        overflow = len(self._memory) - self._max_sessions
        for sid in list(self._memory.keys())[:max(0, overflow)]:
            self._memory.pop(sid, None)

    async def load(self, session_id: str) -> SessionGrants:
        client = await self._get_redis()
        if client is None:
            return SessionGrants(session_id=session_id, list_ids=self._mem_load(session_id))
        try:
            members = await client.smembers(self._key(session_id))
        except redis.RedisError as exc:
            self._mark_redis_failed(exc)
            return SessionGrants(session_id=session_id, list_ids=self._mem_load(session_id))
        list_ids = {int(member) for member in members if str(member).isdigit()}
        return SessionGrants(session_id=session_id, list_ids=list_ids)

    async def save(self, grants: SessionGrants) -> None:
        if not grants.dirty:
            return
        client = await self._get_redis()
        if client is None:
            self._mem_save(grants.session_id, grants.list_ids)
            grants.dirty = False
            return
        key = self._key(grants.session_id)
        try:
            if grants.list_ids:
                await client.sadd(key, *sorted(grants.list_ids))
                await client.expire(key, self._ttl)
        except redis.RedisError as exc:
            self._mark_redis_failed(exc)
            self._mem_save(grants.session_id, grants.list_ids)
        grants.dirty = False

    async def clear(self, session_id: str) -> None:
        self._memory.pop(session_id, None)
        client = await self._get_redis()
        if client is None:
            return
        try:
            await client.delete(self._key(session_id))
        except redis.RedisError as exc:
            self._mark_redis_failed(exc)


grant_store = SessionGrantStore()
