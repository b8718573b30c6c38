"""缓存后端

排序库只缓存两类派生数据：分组的 (min, max) 与条目/类型的可排序判定。
两者都可随时重算，因此后端故障按未命中处理。

所有后端支持标签：写入时附带标签，invalidate_tags() 一次删除带该标签的全部条目。
"""

import json
import pickle
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Set

from cachetools import LRUCache, TTLCache

from yorder.log import get_logger

logger = get_logger("yorder.cache")


@dataclass
class CacheStats:
    """命中 / 未命中 / 失效计数（进程内）"""
    hits: int = 0
    misses: int = 0
    invalidations: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    def record_hit(self):
        self.hits += 1

    def record_miss(self):
        self.misses += 1

    def record_invalidation(self, count: int = 1):
        self.invalidations += count

    def reset(self):
        self.hits = self.misses = self.invalidations = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "invalidations": self.invalidations,
            "hit_rate": f"{self.hit_rate:.2%}",
        }


class CacheBackend(ABC):
    """缓存后端接口

    get() 未命中返回 None，因此 None 本身不能作为缓存值。
    """

    _stats: Optional[CacheStats] = None

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None,
        tags: Optional[Iterable[str]] = None
    ) -> None:
        """写入缓存

        Args:
            key: 缓存键
            value: 缓存值
            ttl: 过期秒数，None 使用后端默认值
            tags: 标签，用于 invalidate_tags() 批量失效
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """删除单个键，返回键是否存在"""
        pass

    def delete_many(self, keys: Iterable[str]) -> int:
        """删除多个键，返回实际删除数"""
        return len([key for key in keys if self.delete(key)])

    @abstractmethod
    def invalidate_tags(self, tags: Iterable[str]) -> int:
        """删除带有任一标签的条目，返回实际删除数"""
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    @abstractmethod
    def get_stats(self) -> Dict[str, Any]:
        pass

    def _lookup(self, hit: bool) -> None:
        if self._stats is not None:
            if hit:
                self._stats.record_hit()
            else:
                self._stats.record_miss()

    def _invalidated(self, count: int = 1) -> None:
        if self._stats is not None and count:
            self._stats.record_invalidation(count)

    def _with_stats(self, info: Dict[str, Any]) -> Dict[str, Any]:
        if self._stats is not None:
            info.update(self._stats.to_dict())
        return info


_MISSING = object()


class _ExpiringValue:
    """单个键的过期时间与后端默认值不同时使用的包装"""
    __slots__ = ("value", "expires_at")

    def __init__(self, value: Any, expires_at: float):
        self.value = value
        self.expires_at = expires_at

    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at


class MemoryBackend(CacheBackend):
    """进程内缓存（cachetools）

    ttl=None 时底层为 LRUCache，条目在被失效或被 LRU 淘汰前一直有效；
    否则为 TTLCache。标签索引 tag -> keys 与反向的 key -> tags 单独维护，
    删除时同步移除；被 LRU/TTL 淘汰的键在反向索引超过 2 * maxsize 时批量清理。

    使用示例:
        ranges = MemoryBackend(ttl=None)
        ranges.set("ordering:range:5", WeightRange(-2, 2), tags=["ordering"])
        ranges.invalidate_tags(["ordering"])
    """

    def __init__(
        self,
        maxsize: int = 10000,
        ttl: Optional[int] = None,
        enable_stats: bool = True
    ):
        self._maxsize = maxsize
        self._default_ttl = ttl
        self._store = LRUCache(maxsize=maxsize) if ttl is None else TTLCache(maxsize=maxsize, ttl=ttl)
        self._tag_index: Dict[str, Set[str]] = {}
        self._key_tags: Dict[str, Set[str]] = {}
        self._lock = threading.RLock()
        self._stats = CacheStats() if enable_stats else None

    def _untag(self, key: str) -> None:
        for tag in self._key_tags.pop(key, ()):
            keys = self._tag_index.get(tag)
            if keys is not None:
                keys.discard(key)
                if not keys:
                    del self._tag_index[tag]

    def _prune_tags(self) -> None:
        """清理已被淘汰或过期的键的标签"""
        for key in [key for key in self._key_tags if key not in self._store]:
            self._untag(key)

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._store.get(key)
            if isinstance(entry, _ExpiringValue):
                if entry.expired():
                    self._store.pop(key, None)
                    self._untag(key)
                    entry = None
                else:
                    entry = entry.value
            self._lookup(entry is not None)
            return entry

    def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None,
        tags: Optional[Iterable[str]] = None
    ) -> None:
        if ttl is not None and ttl != self._default_ttl:
            value = _ExpiringValue(value, time.monotonic() + ttl)
        with self._lock:
            self._store[key] = value
            self._untag(key)
            tags = set(tags or ())
            if not tags:
                return
            self._key_tags[key] = tags
            for tag in tags:
                self._tag_index.setdefault(tag, set()).add(key)
            if len(self._key_tags) > 2 * self._maxsize:
                self._prune_tags()

    def delete(self, key: str) -> bool:
        with self._lock:
            found = self._store.pop(key, _MISSING) is not _MISSING
            self._untag(key)
        if found:
            self._invalidated()
        return found

    def invalidate_tags(self, tags: Iterable[str]) -> int:
        with self._lock:
            keys = set()
            for tag in tags:
                keys.update(self._tag_index.get(tag, ()))
            removed = self.delete_many(keys)
        if removed:
            logger.debug(f"内存缓存按标签失效 {removed} 个键")
        return removed

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self._tag_index.clear()
            self._key_tags.clear()
        self._invalidated()

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return self._with_stats({
                "backend": "memory",
                "size": len(self._store),
                "maxsize": self._maxsize,
                "ttl": self._default_ttl,
                "tags": len(self._tag_index),
                "tagged_keys": len(self._key_tags),
            })


class PickleSerializer:
    """默认序列化方式，可以保存 set / tuple / NamedTuple"""

    def dumps(self, value: Any) -> bytes:
        return pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL)

    def loads(self, data: bytes) -> Any:
        return pickle.loads(data)


class JsonSerializer:
    """可读的 JSON 序列化，set 会被转成字符串，只适合简单值"""

    def dumps(self, value: Any) -> str:
        return json.dumps(value, default=str)

    def loads(self, data: str) -> Any:
        return json.loads(data)


class RedisBackend(CacheBackend):
    """Redis 缓存，多进程共享判定结果

    键为 "{prefix}{key}"，标签集合为 "{prefix}tag:{tag}"，集合成员是完整键名。
    Redis 命令失败时记录 warning 并返回未命中 / 0，调用方回退到数据库。

    使用示例:
        client = redis.Redis.from_url("redis://localhost:6379/0")
        cache = RedisBackend(client, prefix="yorder:")
    """

    def __init__(
        self,
        redis_client,
        prefix: str = "yorder:",
        ttl: Optional[int] = None,
        enable_stats: bool = True,
        serializer: Optional[Any] = None
    ):
        self._redis = redis_client
        self._prefix = prefix
        self._default_ttl = ttl
        self._serializer = serializer or PickleSerializer()
        self._stats = CacheStats() if enable_stats else None

    def _key(self, key: str) -> str:
        return self._prefix + key

    def _tag_key(self, tag: str) -> str:
        return f"{self._prefix}tag:{tag}"

    def _call(self, action: str, func: Callable[[], Any], fallback: Any = None) -> Any:
        try:
            return func()
        except Exception as e:
            logger.warning(f"Redis {action} 失败: {e}")
            return fallback

    def get(self, key: str) -> Optional[Any]:
        data = self._call("get", lambda: self._redis.get(self._key(key)))
        self._lookup(data is not None)
        return None if data is None else self._serializer.loads(data)

    def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None,
        tags: Optional[Iterable[str]] = None
    ) -> None:
        full_key = self._key(key)
        expire = self._default_ttl if ttl is None else ttl
        data = self._serializer.dumps(value)

        def write():
            if expire:
                self._redis.setex(full_key, expire, data)
            else:
                self._redis.set(full_key, data)
            for tag in tags or ():
                self._redis.sadd(self._tag_key(tag), full_key)

        self._call("set", write)

    def delete(self, key: str) -> bool:
        return self._delete_raw([self._key(key)]) > 0

    def delete_many(self, keys: Iterable[str]) -> int:
        return self._delete_raw([self._key(key) for key in keys])

    def _delete_raw(self, full_keys) -> int:
        if not full_keys:
            return 0
        removed = self._call("delete", lambda: self._redis.delete(*full_keys), 0)
        self._invalidated(removed)
        return removed

    def invalidate_tags(self, tags: Iterable[str]) -> int:
        removed = 0
        for tag in tags:
            tag_key = self._tag_key(tag)
            members = self._call("smembers", lambda: self._redis.smembers(tag_key), set())
            removed += self._delete_raw(list(members))
            self._call("delete", lambda: self._redis.delete(tag_key))
        return removed

    def clear(self) -> None:
        """删除本前缀下的所有键（包括标签集合）"""
        def scan_and_delete():
            cursor = 0
            while True:
                cursor, keys = self._redis.scan(cursor, match=f"{self._prefix}*", count=100)
                if keys:
                    self._redis.delete(*keys)
                if cursor == 0:
                    return

        self._call("clear", scan_and_delete)

    def get_stats(self) -> Dict[str, Any]:
        return self._with_stats({
            "backend": "redis",
            "prefix": self._prefix,
            "ttl": self._default_ttl,
        })


def create_cache_backend(settings: Any = None, redis_client: Any = None) -> CacheBackend:
    """按 CacheSettings 创建后端

    backend="redis" 时优先使用传入的 redis_client，否则按 redis_url 建立连接。

    Raises:
        ValueError: backend="redis" 但既没有客户端也没有 redis_url
    """
    if settings is None:
        return MemoryBackend()

    if settings.backend != "redis":
        return MemoryBackend(maxsize=settings.maxsize, ttl=settings.ttl)

    if redis_client is None:
        if not settings.redis_url:
            raise ValueError("redis 缓存后端需要 redis_client 或 redis_url")
        import redis
        redis_client = redis.Redis.from_url(settings.redis_url)
    logger.info(f"使用 Redis 缓存后端: prefix={settings.prefix}")
    return RedisBackend(redis_client, prefix=settings.prefix, ttl=settings.ttl)


__all__ = [
    "CacheStats",
    "CacheBackend",
    "MemoryBackend",
    "RedisBackend",
    "PickleSerializer",
    "JsonSerializer",
    "create_cache_backend",
]
