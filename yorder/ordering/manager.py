"""加权列表管理器

在分组内维护条目的整数权重（升序排列），支持：
- 置顶插入，并对顶部连续段做局部再平衡
- 移除后压缩，使权重回到 [-ceil(n/2), ceil(n/2)] 附近
- 原样批量写入权重
- 带缓存的 (min, max) 查询
- 分组/条目的可排序判定

使用示例:
    from yorder.ordering import WeightedListManager
    from yorder.config import OrderingSettings

    manager = WeightedListManager(settings=OrderingSettings(categories={"tags": True}))

    manager.insert_at_top(group_key=5, item_id=42)
    manager.get_range(5)                 # WeightRange(min=-1, max=2)
    manager.reorder(5, {42: 0, 7: -1})
    manager.remove_from_list(5, 42)

每个写操作都在单个事务内完成“读-改-写”，开启 lock_groups 时先锁定分组行。
"""

from collections.abc import Mapping
from typing import Callable, Iterable, List, Sequence, Set, Tuple, Union

from sqlalchemy.orm import Session

from yorder.cache import CacheBackend, MemoryBackend, cache_invalidator, create_cache_backend
from yorder.config import AppSettings, OrderingSettings
from yorder.log import get_logger
from yorder.orm.models import OrderedItem
from yorder.orm.transaction import TransactionContext, call_with_retry
from .classifier import ConfigGroupClassifier, GroupClassifier
from .store import OPERATOR_OR, WeightStore
from .types import WeightRange, range_border

logger = get_logger("yorder.ordering")

CACHE_TAG = "ordering"
RANGE_KEY = "ordering:range:{group_key}"
ORDERABLE_GROUPS_KEY = "ordering:orderable_groups:{item_id}"
CAN_BE_ORDERED_KEY = "ordering:can_be_ordered:{item_type}"

Assignments = Union[Mapping, Iterable[Tuple[int, int]]]


def _range_key(group_key: int) -> str:
    return RANGE_KEY.format(group_key=group_key)


def _orderable_groups_key(item_id: int) -> str:
    return ORDERABLE_GROUPS_KEY.format(item_id=item_id)


class WeightedListManager:
    """加权列表管理器

    Args:
        session_factory: 返回当前 Session 的函数，默认 db_manager.get_session
        cache: 分类判定结果的缓存后端（可共享，如 RedisBackend），默认进程内存
        classifier: 可排序判定，默认 ConfigGroupClassifier
        settings: 排序配置
        auto_invalidate: 是否通过 SQLAlchemy 事件自动失效缓存

    范围缓存 (min, max) 始终是进程内的 MemoryBackend，条目永久有效，
    在同一操作内随权重变化同步失效。
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = None,
        cache: CacheBackend = None,
        classifier: GroupClassifier = None,
        settings: OrderingSettings = None,
        auto_invalidate: bool = True
    ):
        if session_factory is None:
            from yorder.orm.db_session import db_manager
            session_factory = db_manager.get_session

        self._settings = settings or OrderingSettings()
        self._session_factory = session_factory
        self._cache = cache if cache is not None else MemoryBackend()
        self._ranges = MemoryBackend(ttl=None)
        self._classifier = classifier or ConfigGroupClassifier(self._settings, session_factory)
        self._auto_invalidate = auto_invalidate

        if auto_invalidate:
            cache_invalidator.register(
                OrderedItem,
                self._cache,
                key_builder=lambda row: _orderable_groups_key(row.item_id),
            )
            cache_invalidator.register(
                OrderedItem,
                self._ranges,
                key_builder=lambda row: _range_key(row.group_key),
                events=("after_insert", "after_update", "after_delete"),
            )

    @property
    def settings(self) -> OrderingSettings:
        return self._settings

    @property
    def cache(self) -> CacheBackend:
        return self._cache

    @property
    def classifier(self) -> GroupClassifier:
        return self._classifier

    # ==================== 内部方法 ====================

    def _store(self) -> WeightStore:
        return WeightStore(self._session_factory())

    def _drop_range(self, group_key: int) -> None:
        self._ranges.delete(_range_key(group_key))

    def _mutate(self, group_keys: Sequence[int], operation: Callable[[WeightStore], object]):
        """在单个事务中执行写操作

        已有外层事务时加入它；否则新建事务，遇到死锁/锁超时按配置重试。
        涉及分组的范围缓存在操作结束时丢弃，事务提交或回滚后再丢弃一次：
        其他线程可能在提交前读到旧范围并写回缓存。
        """
        group_keys = sorted(set(group_keys))

        def run(tx: TransactionContext):
            store = WeightStore(tx.session)

            def drop_ranges(ctx=None):
                for group_key in set(group_keys) | store.touched:
                    self._drop_range(group_key)

            tx.after_commit(drop_ranges)
            tx.after_rollback(drop_ranges)

            if self._settings.lock_groups:
                # 固定顺序加锁，避免多分组操作互相死锁
                for group_key in group_keys:
                    store.lock_group(group_key)
            try:
                return operation(store)
            finally:
                drop_ranges()

        return call_with_retry(
            run,
            session=self._session_factory(),
            max_retries=self._settings.max_retries,
            retry_delay=self._settings.retry_delay,
        )

    def _insert_at_top(self, store: WeightStore, group_key: int, item_id: int) -> None:
        old = store.min_max(group_key)
        new_min = 0 if old.is_empty else old.min - 1

        if store.get(group_key, item_id) is None:
            store.insert(group_key, item_id, new_min)
        else:
            store.set_weight(group_key, item_id, new_min)

        count = store.count(group_key)
        if old.is_empty or count % 2 != 0 or old.min != -range_border(count):
            logger.debug(f"置顶插入: group={group_key} item={item_id} weight={new_min}")
            return

        # 新条目把分组推出了目标范围：从新最小值开始的连续段整体 +1
        run = []
        prev = new_min - 1
        for row_item_id, weight in store.ordered_rows(group_key):
            if weight > prev + 1:
                break
            run.append(row_item_id)
            prev = weight

        shifted = store.shift_weights(group_key, run, 1)
        logger.debug(
            f"置顶插入: group={group_key} item={item_id} weight={new_min}, "
            f"顶部连续段 {shifted} 个条目 +1"
        )

    def _compact(self, store: WeightStore, group_key: int) -> bool:
        count = store.count(group_key)
        if count == 0:
            return False

        current = store.min_max(group_key)
        border = range_border(count)
        if current.min >= -border and current.max <= border:
            return False

        for position, (item_id, _) in enumerate(store.ordered_rows(group_key)):
            store.set_weight(group_key, item_id, position - border)

        logger.debug(
            f"压缩分组: group={group_key} count={count} "
            f"原范围=({current.min}, {current.max}) 新范围=({-border}, {count - 1 - border})"
        )
        return True

    # ==================== 范围查询 ====================

    def get_range(self, group_key: int, force_refresh: bool = False) -> WeightRange:
        """获取分组内的 (min, max) 权重

        空分组返回 WeightRange(None, None)，同样会被缓存。
        """
        key = _range_key(group_key)
        if not force_refresh:
            cached = self._ranges.get(key)
            if cached is not None:
                return cached

        value = self._store().min_max(group_key)
        self._ranges.set(key, value, tags=[CACHE_TAG])
        return value

    def weight_delta(self, group_key: int) -> int:
        """排序表单权重选择器的范围 ±ceil(n/2)"""
        return range_border(self._store().count(group_key))

    def list_items(self, group_key: int) -> List[OrderedItem]:
        """按权重升序返回分组内的关联行"""
        return self._store().list_items(group_key)

    # ==================== 写操作 ====================

    def insert_at_top(self, group_key: int, item_id: int) -> None:
        """把条目放到分组最前（权重 min - 1）

        关联不存在时新增，已存在时改写其权重；空分组的第一个条目权重为 0。
        """
        self._mutate([group_key], lambda store: self._insert_at_top(store, group_key, item_id))

    def remove_and_compact(self, group_key: int) -> bool:
        """外部移除关联后调用，权重越出 ±ceil(n/2) 时重排为连续整数

        Returns:
            是否发生了压缩
        """
        return self._mutate([group_key], lambda store: self._compact(store, group_key))

    def remove_from_list(self, group_key: int, item_id: int) -> bool:
        """删除关联并压缩分组

        Returns:
            关联是否存在
        """
        def operation(store: WeightStore) -> bool:
            removed = store.delete(group_key, item_id)
            self._compact(store, group_key)
            return removed

        return self._mutate([group_key], operation)

    def reorder(self, group_key: int, assignments: Assignments) -> int:
        """原样写入 item_id -> weight，不做唯一性或范围校验

        Returns:
            实际更新的行数，未知条目不计入
        """
        pairs = list(assignments.items() if isinstance(assignments, Mapping) else assignments)

        def operation(store: WeightStore) -> int:
            return sum(
                store.set_weight(group_key, item_id, weight)
                for item_id, weight in pairs
            )

        updated = self._mutate([group_key], operation)
        logger.debug(f"重排分组: group={group_key} 提交 {len(pairs)} 项, 更新 {updated} 行")
        return updated

    def sync_item_groups(self, item_id: int, group_keys: Iterable[int]) -> None:
        """条目编辑后同步其分组关联

        - 移除的分组：删除关联，可排序分组随后压缩
        - 新增的可排序分组：置顶插入
        - 新增的不可排序分组：权重 0

        现有关联在事务内、分组加锁之后读取；加锁范围是目标分组与事先读到的现有分组的并集。
        """
        target = list(dict.fromkeys(group_keys))
        known = set(self._store().groups_of(item_id))

        def operation(store: WeightStore) -> None:
            current = set(store.groups_of(item_id))
            removed = sorted(current - set(target))
            added = [group_key for group_key in target if group_key not in current]

            for group_key in removed:
                store.delete(group_key, item_id)
                if self._classifier.is_orderable(group_key):
                    self._compact(store, group_key)

            for group_key in added:
                if self._classifier.is_orderable(group_key):
                    self._insert_at_top(store, group_key, item_id)
                else:
                    store.insert(group_key, item_id, 0)

            if removed or added:
                logger.debug(f"同步条目分组: item={item_id} 移除={removed} 新增={added}")

        try:
            self._mutate(known | set(target), operation)
        finally:
            self.invalidate_item(item_id)

    # ==================== 查询 ====================

    def select_items(
        self,
        group_keys: Sequence[int],
        operator: str = OPERATOR_OR,
        limit: int = -1,
        offset: int = 0,
        feed: bool = False
    ) -> List[int]:
        """跨分组按权重查询条目ID

        Args:
            group_keys: 分组键列表
            operator: "or" 并集 / "and" 交集
            limit: -1 使用配置的默认条数（feed 时用 feed_default_items），0 表示不限
            offset: 偏移量
            feed: 是否为 Feed 列表
        """
        if limit < 0:
            limit = self._settings.feed_default_items if feed else self._settings.default_items_main
        return self._store().select_items(group_keys, operator=operator, limit=limit, offset=offset)

    # ==================== 可排序判定 ====================

    def is_group_orderable(self, group_key: int) -> bool:
        return self._classifier.is_orderable(group_key)

    def orderable_groups_of(self, item_id: int) -> Set[int]:
        """条目关联的可排序分组，按条目ID缓存"""
        key = _orderable_groups_key(item_id)
        cached = self._cache.get(key)
        if cached is not None:
            return set(cached)

        groups = set(self._classifier.orderable_groups_of(item_id))
        self._cache.set(key, groups, tags=[CACHE_TAG])
        return set(groups)

    def can_be_ordered(self, item_type: str) -> bool:
        """条目类型是否引用了任何可排序分类，按类型缓存"""
        key = CAN_BE_ORDERED_KEY.format(item_type=item_type)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        result = bool(self._classifier.can_be_ordered(item_type))
        self._cache.set(key, result, tags=[CACHE_TAG])
        return result

    # ==================== 缓存管理 ====================

    def invalidate_item(self, item_id: int) -> bool:
        """条目关联变化后清除其判定缓存"""
        return self._cache.delete(_orderable_groups_key(item_id))

    def invalidate_all(self) -> int:
        """清除所有排序相关缓存（判定结果与范围）"""
        count = self._cache.invalidate_tags([CACHE_TAG])
        self._ranges.clear()
        logger.debug(f"清除排序缓存: {count} 个判定条目")
        return count

    def close(self) -> None:
        """取消自动失效注册"""
        if self._auto_invalidate:
            cache_invalidator.unregister(OrderedItem, self._cache)
            cache_invalidator.unregister(OrderedItem, self._ranges)
            self._auto_invalidate = False


def create_weighted_list_manager(
    settings: AppSettings = None,
    session_factory: Callable[[], Session] = None,
    redis_client=None,
    classifier: GroupClassifier = None
) -> WeightedListManager:
    """按应用配置创建管理器

    使用示例:
        settings = load_yaml_config("config/settings.yaml", AppSettings)
        init_database(config=settings.database)
        manager = create_weighted_list_manager(settings)
    """
    settings = settings or AppSettings()
    cache = create_cache_backend(settings.cache, redis_client=redis_client)
    return WeightedListManager(
        session_factory=session_factory,
        cache=cache,
        classifier=classifier,
        settings=settings.ordering,
    )


__all__ = [
    "WeightedListManager",
    "create_weighted_list_manager",
    "CACHE_TAG",
    "RANGE_KEY",
    "ORDERABLE_GROUPS_KEY",
    "CAN_BE_ORDERED_KEY",
]
