"""基于 SQLAlchemy mapper 事件的缓存失效

ORM 写入 OrderedItem 行时，按注册的键构造函数删除对应缓存条目，
用于保证条目的可排序分组缓存、分组范围缓存不会在关联变化后过期。

使用示例:
    from yorder.cache import MemoryBackend, cache_invalidator
    from yorder.orm import OrderedItem

    cache = MemoryBackend()
    cache_invalidator.register(
        OrderedItem,
        cache,
        key_builder=lambda row: f"ordering:orderable_groups:{row.item_id}",
    )

注意只有 ORM 单元工作（add / delete / 属性修改后 flush）会触发 mapper 事件，
session.execute(update(...)) 这类批量语句不会。
"""

import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Set, Type, Union

from sqlalchemy import event

from yorder.log import get_logger
from .backends import CacheBackend

logger = get_logger("yorder.cache.invalidation")

KeyBuilder = Callable[[Any], Union[str, Iterable[str]]]

MAPPER_EVENTS = frozenset({"after_insert", "after_update", "after_delete"})


@dataclass(frozen=True)
class _Binding:
    cache: CacheBackend
    key_builder: KeyBuilder
    events: FrozenSet[str]

    def keys_for(self, target: Any) -> List[str]:
        keys = self.key_builder(target)
        return [keys] if isinstance(keys, str) else list(keys)


class CacheInvalidator:
    """模型 -> (缓存, 键构造函数, 事件) 绑定表

    每个 (模型, 事件) 只向 SQLAlchemy 挂一个监听器，监听器在触发时查表。
    取消注册只修改绑定表，监听器保留，表为空时不做任何事。
    """

    def __init__(self):
        self._bindings: Dict[Type, List[_Binding]] = {}
        self._hooked: Dict[Type, Set[str]] = {}
        self._lock = threading.RLock()
        self._enabled = True

    def register(
        self,
        model: Type,
        cache: CacheBackend,
        key_builder: KeyBuilder,
        events: Iterable[str] = ("after_insert", "after_delete"),
    ) -> "CacheInvalidator":
        """绑定模型事件与缓存键

        Args:
            model: SQLAlchemy 模型类（子类同样生效）
            cache: 被失效的缓存后端
            key_builder: 由行对象得到缓存键，可返回单个键或多个键
            events: after_insert / after_update / after_delete 的子集

        Raises:
            ValueError: 包含不支持的事件名
        """
        events = frozenset(events)
        unknown = events - MAPPER_EVENTS
        if unknown:
            raise ValueError(f"不支持的事件: {sorted(unknown)}")

        with self._lock:
            self._bindings.setdefault(model, []).append(_Binding(cache, key_builder, events))
            hooked = self._hooked.setdefault(model, set())
            for event_name in sorted(events - hooked):
                event.listen(model, event_name, self._listener(model, event_name), propagate=True)
                hooked.add(event_name)
                logger.debug(f"监听 {model.__name__}.{event_name}")

        return self

    def _listener(self, model: Type, event_name: str):
        def on_event(mapper, connection, target):
            self._invalidate_for_target(model, target, event_name)
        return on_event

    def _invalidate_for_target(self, model: Type, target: Any, event_name: str):
        if not self._enabled:
            return

        with self._lock:
            bindings = [b for b in self._bindings.get(model, ()) if event_name in b.events]

        for binding in bindings:
            removed = binding.cache.delete_many(binding.keys_for(target))
            if removed:
                logger.debug(f"{model.__name__}.{event_name} 失效 {removed} 个缓存键")

    def unregister(self, model: Type, cache: Optional[CacheBackend] = None) -> bool:
        """移除绑定

        cache 为 None 时移除该模型的全部绑定，否则只移除指向该缓存的绑定。

        Returns:
            是否有绑定被移除
        """
        with self._lock:
            bindings = self._bindings.get(model)
            if not bindings:
                return False

            kept = [] if cache is None else [b for b in bindings if b.cache is not cache]
            if kept:
                self._bindings[model] = kept
            else:
                del self._bindings[model]
            return len(kept) < len(bindings)

    def disable(self):
        self._enabled = False

    def enable(self):
        self._enabled = True

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    def registration_count(self, model: Type) -> int:
        with self._lock:
            return len(self._bindings.get(model, ()))

    def clear(self):
        with self._lock:
            self._bindings.clear()


cache_invalidator = CacheInvalidator()


class InvalidationContext:
    """在上下文内暂停自动失效，退出时恢复进入前的状态

    使用示例:
        with no_auto_invalidation():
            session.add_all(imported_rows)
            session.commit()
        manager.invalidate_all()
    """

    def __init__(self, invalidator: CacheInvalidator):
        self._invalidator = invalidator
        self._restore = True

    def __enter__(self):
        self._restore = self._invalidator.is_enabled
        self._invalidator.disable()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._restore:
            self._invalidator.enable()
        return False


def no_auto_invalidation() -> InvalidationContext:
    return InvalidationContext(cache_invalidator)


__all__ = [
    "CacheInvalidator",
    "cache_invalidator",
    "InvalidationContext",
    "no_auto_invalidation",
    "MAPPER_EVENTS",
]
