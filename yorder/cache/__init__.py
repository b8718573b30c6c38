"""缓存模块

提供带标签的缓存后端（内存 / Redis）以及基于 SQLAlchemy 事件的自动失效。

使用示例:
    from yorder.cache import MemoryBackend, RedisBackend, create_cache_backend

    cache = MemoryBackend()                       # 永久条目，直到被失效
    cache.set("ordering:can_be_ordered:article", True, tags=["ordering"])
    cache.invalidate_tags(["ordering"])           # 按标签批量失效

    cache = create_cache_backend(settings.cache)  # 按配置选择后端
"""

from .backends import (
    CacheStats,
    CacheBackend,
    MemoryBackend,
    RedisBackend,
    PickleSerializer,
    JsonSerializer,
    create_cache_backend,
)

from .invalidation import (
    CacheInvalidator,
    cache_invalidator,
    InvalidationContext,
    no_auto_invalidation,
)


__all__ = [
    # 后端
    "CacheStats",
    "CacheBackend",
    "MemoryBackend",
    "RedisBackend",
    "create_cache_backend",

    # 序列化器
    "PickleSerializer",
    "JsonSerializer",

    # 自动失效
    "CacheInvalidator",
    "cache_invalidator",
    "InvalidationContext",
    "no_auto_invalidation",
]
