
# app/infrastructure/cache/query_cache.py
from __future__ import annotations
import json, logging, threading, time
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import redis

from app.core.config import settings

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, ...]


"""
读缓存 + 按 key 前缀失效（多进程共享时用 Redis）。
    key: ("product", id) -> {prefix}:product:{id}
    invalidate(("products",)) 同时删除 {prefix}:products 和 {prefix}:products:*
"""
class QueryCache(Protocol):
    def get(self, key: CacheKey) -> Optional[Any]: ...
    def set(self, key: CacheKey, value: Any, ttl_sec: Optional[int] = None) -> None: ...
    def invalidate(self, key: CacheKey) -> None: ...


def render_key(prefix: str, key: Sequence[Any]) -> str:
    return ":".join([prefix, *(str(part) for part in key)])


class RedisQueryCache:

    def __init__(self, client: "redis.Redis", prefix: str, default_ttl_sec: int) -> None:
        self._r = client
        self.prefix = prefix
        self.default_ttl_sec = default_ttl_sec

    @classmethod
    def from_settings(cls) -> "RedisQueryCache":
        client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
        return cls(client, settings.QUERY_CACHE_PREFIX, settings.QUERY_CACHE_TTL_SEC)

    def get(self, key: CacheKey) -> Optional[Any]:
        raw = self._r.get(render_key(self.prefix, key))
        return json.loads(raw) if raw is not None else None

    def set(self, key: CacheKey, value: Any, ttl_sec: Optional[int] = None) -> None:
        self._r.set(render_key(self.prefix, key), json.dumps(value, default=str), ex=ttl_sec or self.default_ttl_sec)

    def invalidate(self, key: CacheKey) -> None:
        base = render_key(self.prefix, key)
        doomed = [base, *self._r.scan_iter(match=f"{base}:*", count=500)]
        self._r.delete(*doomed)
        logger.debug("query_cache.invalidate key=%s removed<=%d", base, len(doomed))


class InMemoryQueryCache:
    """单进程实现：本地开发 / 测试，或未配置 REDIS_URL 时使用。"""

    def __init__(self, default_ttl_sec: int = 300) -> None:
        self.default_ttl_sec = default_ttl_sec
        self._data: Dict[CacheKey, Tuple[float, Any]] = {}
        self._lock = threading.Lock()
        self.invalidated: List[CacheKey] = []   # 失效记录，便于断言

    def get(self, key: CacheKey) -> Optional[Any]:
        with self._lock:
            hit = self._data.get(tuple(key))
            if hit is None:
                return None
            expires_at, value = hit
            if expires_at < time.monotonic():
                self._data.pop(tuple(key), None)
                return None
            return value

    def set(self, key: CacheKey, value: Any, ttl_sec: Optional[int] = None) -> None:
        with self._lock:
            self._data[tuple(key)] = (time.monotonic() + (ttl_sec or self.default_ttl_sec), value)

    def invalidate(self, key: CacheKey) -> None:
        key = tuple(key)
        with self._lock:
            self.invalidated.append(key)
            for existing in list(self._data):
                if existing[:len(key)] == key:
                    del self._data[existing]


_cache: Optional[QueryCache] = None


def get_query_cache() -> QueryCache:
    """进程级单例；FastAPI 依赖和 Celery 任务共用。"""
    global _cache
    if _cache is None:
        if settings.REDIS_URL:
            _cache = RedisQueryCache.from_settings()
        else:
            logger.info("REDIS_URL not set, using in-process query cache")
            _cache = InMemoryQueryCache(settings.QUERY_CACHE_TTL_SEC)
    return _cache
