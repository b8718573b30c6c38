"""权重存储层测试"""

import pytest

from yorder.ordering import WeightStore, WeightRange


class TestWeightStore:
    """测试 WeightStore 的读写"""

    @pytest.fixture(autouse=True)
    def setup_store(self, db_session, seed):
        seed(1, {1: -1, 2: 0, 3: 1})
        seed(2, {3: -2, 4: 0, 1: 5})
        self.session = db_session
        self.store = WeightStore(db_session)

    def test_count_and_min_max(self):
        assert self.store.count(1) == 3
        assert self.store.min_max(1) == WeightRange(-1, 1)

    def test_min_max_of_empty_group(self):
        assert self.store.count(99) == 0
        assert self.store.min_max(99) == WeightRange(None, None)

    def test_ordered_rows(self):
        assert self.store.ordered_rows(2) == [(3, -2), (4, 0), (1, 5)]

    def test_ordered_rows_tie_break_by_item(self):
        self.store.set_weight(1, 3, 0)
        assert self.store.ordered_rows(1) == [(1, -1), (2, 0), (3, 0)]

    def test_groups_of(self):
        assert self.store.groups_of(1) == [1, 2]
        assert self.store.groups_of(99) == []

    def test_set_weight(self):
        assert self.store.set_weight(1, 2, 7) == 1
        assert self.store.get(1, 2).weight == 7
        # 同一条目在其他分组中不受影响
        assert self.store.get(2, 1).weight == 5

    def test_set_weight_unknown_target(self):
        assert self.store.set_weight(1, 99, 7) == 0
        assert self.store.set_weight(99, 1, 7) == 0

    def test_shift_weights(self):
        assert self.store.shift_weights(1, [1, 2], 1) == 2
        assert self.store.ordered_rows(1) == [(1, 0), (2, 1), (3, 1)]

    def test_shift_weights_empty(self):
        assert self.store.shift_weights(1, [], 1) == 0

    def test_insert_and_delete(self):
        row = self.store.insert(3, 8, -4)
        assert row.weight == -4
        assert self.store.count(3) == 1

        assert self.store.delete(3, 8) is True
        assert self.store.delete(3, 8) is False
        assert self.store.count(3) == 0

    def test_list_items(self):
        assert [row.item_id for row in self.store.list_items(2)] == [3, 4, 1]

    def test_lock_group(self):
        # SQLite 忽略 FOR UPDATE，语句本身应能执行
        self.store.lock_group(1)


class TestSelectItems:
    """测试跨分组查询"""

    @pytest.fixture(autouse=True)
    def setup_store(self, db_session, seed):
        seed(1, {1: -1, 2: 0, 3: 1})
        seed(2, {3: -2, 4: 0, 1: 5})
        self.store = WeightStore(db_session)

    def test_or_orders_by_lowest_weight(self):
        assert self.store.select_items([1, 2], "or") == [3, 1, 2, 4]

    def test_and_orders_by_first_group(self):
        assert self.store.select_items([1, 2], "and") == [1, 3]
        assert self.store.select_items([2, 1], "and") == [3, 1]

    def test_single_group(self):
        assert self.store.select_items([1]) == [1, 2, 3]

    def test_duplicate_keys(self):
        assert self.store.select_items([1, 1], "and") == [1, 2, 3]

    def test_limit_and_offset(self):
        assert self.store.select_items([1, 2], "or", limit=2) == [3, 1]
        assert self.store.select_items([1, 2], "or", limit=2, offset=1) == [1, 2]
        assert self.store.select_items([1, 2], "or", offset=3) == [4]

    def test_empty_keys(self):
        assert self.store.select_items([]) == []

    def test_unknown_group(self):
        assert self.store.select_items([99]) == []
        assert self.store.select_items([1, 99], "and") == []

    def test_invalid_operator(self):
        with pytest.raises(ValueError):
            self.store.select_items([1], "xor")
