"""权重存储层

绑定单个 Session 的 SQLAlchemy 2.0 查询封装。
存储层异常原样向上传播，不做捕获或转换。
"""

from typing import Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import distinct, func, select, update
from sqlalchemy.orm import Session

from yorder.orm.models import OrderedItem
from .types import WeightRange

OPERATOR_OR = "or"
OPERATOR_AND = "and"


class WeightStore:
    """单个 Session 上的 ordered_item 读写

    写入目标不存在时影响 0 行，不抛异常。
    touched 记录本实例写过的分组，用于事后丢弃这些分组的范围缓存。
    """

    def __init__(self, session: Session):
        self.session = session
        self.touched: Set[int] = set()

    def lock_group(self, group_key: int) -> None:
        """SELECT ... FOR UPDATE 锁定分组内所有行

        SQLite 不支持行锁，语句会被忽略；由数据库级写锁串行化。
        """
        self.session.execute(
            select(OrderedItem.item_id)
            .where(OrderedItem.group_key == group_key)
            .with_for_update()
        ).all()

    def count(self, group_key: int) -> int:
        return self.session.execute(
            select(func.count())
            .select_from(OrderedItem)
            .where(OrderedItem.group_key == group_key)
        ).scalar_one()

    def min_max(self, group_key: int) -> WeightRange:
        """MIN/MAX 聚合，空分组两者都是 None"""
        row = self.session.execute(
            select(func.min(OrderedItem.weight), func.max(OrderedItem.weight))
            .where(OrderedItem.group_key == group_key)
        ).one()
        return WeightRange(row[0], row[1])

    def ordered_rows(self, group_key: int) -> List[Tuple[int, int]]:
        """按 (weight, item_id) 升序返回 (item_id, weight) 列表"""
        result = self.session.execute(
            select(OrderedItem.item_id, OrderedItem.weight)
            .where(OrderedItem.group_key == group_key)
            .order_by(OrderedItem.weight, OrderedItem.item_id)
        )
        return [(item_id, weight) for item_id, weight in result]

    def list_items(self, group_key: int) -> List[OrderedItem]:
        return list(self.session.scalars(
            select(OrderedItem)
            .where(OrderedItem.group_key == group_key)
            .order_by(OrderedItem.weight, OrderedItem.item_id)
        ))

    def get(self, group_key: int, item_id: int) -> Optional[OrderedItem]:
        return self.session.get(OrderedItem, (group_key, item_id))

    def groups_of(self, item_id: int) -> List[int]:
        """条目当前关联的所有分组"""
        return list(self.session.scalars(
            select(OrderedItem.group_key)
            .where(OrderedItem.item_id == item_id)
            .order_by(OrderedItem.group_key)
        ))

    def insert(self, group_key: int, item_id: int, weight: int = 0) -> OrderedItem:
        """新增关联行（通过 ORM 写入，会触发 mapper 事件）"""
        self.touched.add(group_key)
        row = OrderedItem(group_key=group_key, item_id=item_id, weight=weight)
        self.session.add(row)
        self.session.flush()
        return row

    def delete(self, group_key: int, item_id: int) -> bool:
        """删除关联行，不存在时返回 False"""
        row = self.get(group_key, item_id)
        if row is None:
            return False
        self.touched.add(group_key)
        self.session.delete(row)
        self.session.flush()
        return True

    def set_weight(self, group_key: int, item_id: int, weight: int) -> int:
        """按 (group_key, item_id) 更新单行权重，返回影响行数"""
        self.touched.add(group_key)
        result = self.session.execute(
            update(OrderedItem)
            .where(
                OrderedItem.group_key == group_key,
                OrderedItem.item_id == item_id,
            )
            .values(weight=weight)
        )
        return result.rowcount

    def shift_weights(self, group_key: int, item_ids: Iterable[int], delta: int) -> int:
        """weight = weight + delta，限定在分组内的指定条目"""
        item_ids = list(item_ids)
        if not item_ids:
            return 0
        self.touched.add(group_key)
        result = self.session.execute(
            update(OrderedItem)
            .where(
                OrderedItem.group_key == group_key,
                OrderedItem.item_id.in_(item_ids),
            )
            .values(weight=OrderedItem.weight + delta)
        )
        return result.rowcount

    def select_items(
        self,
        group_keys: Sequence[int],
        operator: str = OPERATOR_OR,
        limit: int = 0,
        offset: int = 0
    ) -> List[int]:
        """跨分组查询条目ID，按权重排序

        Args:
            group_keys: 分组键列表
            operator: "or" 取并集（按各条目最小权重排序），
                      "and" 取交集（按第一个分组内的权重排序）
            limit: 最大条目数，0 表示不限
            offset: 偏移量

        Raises:
            ValueError: operator 不是 "or" / "and"
        """
        keys = list(dict.fromkeys(group_keys))
        if not keys:
            return []

        if operator == OPERATOR_OR:
            min_weight = func.min(OrderedItem.weight).label("min_weight")
            stmt = (
                select(OrderedItem.item_id, min_weight)
                .where(OrderedItem.group_key.in_(keys))
                .group_by(OrderedItem.item_id)
                .order_by(min_weight, OrderedItem.item_id)
            )
        elif operator == OPERATOR_AND:
            matched = (
                select(OrderedItem.item_id)
                .where(OrderedItem.group_key.in_(keys))
                .group_by(OrderedItem.item_id)
                .having(func.count(distinct(OrderedItem.group_key)) == len(keys))
            )
            stmt = (
                select(OrderedItem.item_id, OrderedItem.weight)
                .where(
                    OrderedItem.group_key == keys[0],
                    OrderedItem.item_id.in_(matched),
                )
                .order_by(OrderedItem.weight, OrderedItem.item_id)
            )
        else:
            raise ValueError(f"不支持的操作符: {operator!r}，可选 'or' / 'and'")

        if limit > 0:
            stmt = stmt.limit(limit)
        if offset > 0:
            stmt = stmt.offset(offset)

        return [row[0] for row in self.session.execute(stmt)]


__all__ = [
    "WeightStore",
    "OPERATOR_OR",
    "OPERATOR_AND",
]
