"""排序数据模型

- OrderedItem: 分组与条目的关联行，weight 决定组内升序排列
- OrderingGroup: 分组所属的分类，用于判断分组是否允许手动排序
"""

from sqlalchemy import Index, Integer, String
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

Base = declarative_base()


class OrderedItem(Base):
    """分组内的有序条目

    (group_key, item_id) 唯一；weight 不要求连续，
    管理器会尽量把 n 个条目的权重保持在 [-ceil(n/2), ceil(n/2)] 之内。
    """
    __tablename__ = "ordered_item"
    __table_args__ = (
        Index("ix_ordered_item_group_weight", "group_key", "weight"),
    )

    group_key: Mapped[int] = mapped_column(Integer, primary_key=True, comment="分组键")
    item_id: Mapped[int] = mapped_column(Integer, primary_key=True, comment="条目ID")
    weight: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment="排序权重")

    def __repr__(self) -> str:
        return (
            f"<OrderedItem(group_key={self.group_key}, "
            f"item_id={self.item_id}, weight={self.weight})>"
        )


class OrderingGroup(Base):
    """分组元数据"""
    __tablename__ = "ordering_group"

    group_key: Mapped[int] = mapped_column(Integer, primary_key=True, comment="分组键")
    category: Mapped[str] = mapped_column(String(64), nullable=False, comment="所属分类")

    def __repr__(self) -> str:
        return f"<OrderingGroup(group_key={self.group_key}, category={self.category!r})>"


__all__ = [
    "Base",
    "OrderedItem",
    "OrderingGroup",
]
