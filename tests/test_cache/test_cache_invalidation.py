"""缓存自动失效测试"""

import pytest

from yorder.cache import (
    CacheInvalidator,
    MemoryBackend,
    cache_invalidator,
    no_auto_invalidation,
)
from yorder.orm.models import OrderedItem


def item_key(row):
    return f"item:{row.item_id}"


class TestCacheInvalidator:
    """测试 CacheInvalidator"""

    def setup_method(self):
        # 创建新的 invalidator 避免测试间干扰
        self.invalidator = CacheInvalidator()
        self.cache = MemoryBackend()

    def teardown_method(self):
        self.invalidator.clear()

    def test_register_returns_self(self):
        result = self.invalidator.register(OrderedItem, self.cache, item_key)
        assert result is self.invalidator
        assert self.invalidator.registration_count(OrderedItem) == 1

    def test_register_invalid_event(self):
        with pytest.raises(ValueError):
            self.invalidator.register(OrderedItem, self.cache, item_key, events=("after_commit",))

    def test_invalidate_for_target(self):
        self.invalidator.register(OrderedItem, self.cache, item_key)
        self.cache.set("item:10", {1})

        row = OrderedItem(group_key=1, item_id=10, weight=0)
        self.invalidator._invalidate_for_target(OrderedItem, row, "after_insert")

        assert self.cache.get("item:10") is None

    def test_event_filter(self):
        self.invalidator.register(OrderedItem, self.cache, item_key, events=("after_delete",))
        self.cache.set("item:10", {1})

        row = OrderedItem(group_key=1, item_id=10, weight=0)
        self.invalidator._invalidate_for_target(OrderedItem, row, "after_insert")
        assert self.cache.get("item:10") == {1}

        self.invalidator._invalidate_for_target(OrderedItem, row, "after_delete")
        assert self.cache.get("item:10") is None

    def test_key_builder_may_return_many_keys(self):
        self.invalidator.register(
            OrderedItem,
            self.cache,
            lambda row: [f"item:{row.item_id}", f"group:{row.group_key}"],
        )
        self.cache.set("item:10", 1)
        self.cache.set("group:1", 1)

        self.invalidator._invalidate_for_target(
            OrderedItem, OrderedItem(group_key=1, item_id=10), "after_insert"
        )

        assert self.cache.get("item:10") is None
        assert self.cache.get("group:1") is None

    def test_disable_enable(self):
        self.invalidator.register(OrderedItem, self.cache, item_key)
        self.cache.set("item:10", 1)

        self.invalidator.disable()
        assert not self.invalidator.is_enabled
        self.invalidator._invalidate_for_target(
            OrderedItem, OrderedItem(group_key=1, item_id=10), "after_insert"
        )
        assert self.cache.get("item:10") == 1

        self.invalidator.enable()
        self.invalidator._invalidate_for_target(
            OrderedItem, OrderedItem(group_key=1, item_id=10), "after_insert"
        )
        assert self.cache.get("item:10") is None

    def test_unregister_single_cache(self):
        other = MemoryBackend()
        self.invalidator.register(OrderedItem, self.cache, item_key)
        self.invalidator.register(OrderedItem, other, item_key)

        assert self.invalidator.unregister(OrderedItem, other) is True
        assert self.invalidator.registration_count(OrderedItem) == 1
        assert self.invalidator.unregister(OrderedItem, other) is False

    def test_unregister_model(self):
        self.invalidator.register(OrderedItem, self.cache, item_key)
        assert self.invalidator.unregister(OrderedItem) is True
        assert self.invalidator.unregister(OrderedItem) is False


class TestSQLAlchemyEvents:
    """测试通过真实 session 触发的失效"""

    @pytest.fixture(autouse=True)
    def setup_db(self, db_session):
        self.session = db_session
        self.cache = MemoryBackend()
        cache_invalidator.register(OrderedItem, self.cache, item_key)
        yield
        cache_invalidator.unregister(OrderedItem, self.cache)

    def test_insert_triggers_invalidation(self):
        self.cache.set("item:10", {1})

        self.session.add(OrderedItem(group_key=1, item_id=10, weight=0))
        self.session.commit()

        assert self.cache.get("item:10") is None

    def test_delete_triggers_invalidation(self):
        row = OrderedItem(group_key=1, item_id=10, weight=0)
        self.session.add(row)
        self.session.commit()
        self.cache.set("item:10", {1})

        self.session.delete(row)
        self.session.commit()

        assert self.cache.get("item:10") is None

    def test_update_not_registered(self):
        row = OrderedItem(group_key=1, item_id=10, weight=0)
        self.session.add(row)
        self.session.commit()
        self.cache.set("item:10", {1})

        row.weight = 3
        self.session.commit()

        assert self.cache.get("item:10") == {1}

    def test_no_auto_invalidation(self):
        self.cache.set("item:10", {1})

        with no_auto_invalidation():
            self.session.add(OrderedItem(group_key=1, item_id=10, weight=0))
            self.session.commit()

        assert cache_invalidator.is_enabled
        assert self.cache.get("item:10") == {1}
