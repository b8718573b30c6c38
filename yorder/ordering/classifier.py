"""分组可排序性判定

GroupClassifier 是只读的判定接口：给定分组判断是否允许手动排序，
给定条目返回它关联的可排序分组。判定所依据的配置由外部持有，这里从不修改。
"""

from abc import ABC, abstractmethod
from typing import Callable, Mapping, Optional, Set

from sqlalchemy import select
from sqlalchemy.orm import Session

from yorder.config import OrderingSettings
from yorder.log import get_logger
from yorder.orm.models import OrderedItem, OrderingGroup

logger = get_logger("yorder.ordering.classifier")


class GroupClassifier(ABC):
    """分组可排序性判定接口"""

    @abstractmethod
    def is_orderable(self, group_key: int) -> bool:
        """分组是否允许手动排序"""
        pass

    @abstractmethod
    def orderable_groups_of(self, item_id: int) -> Set[int]:
        """条目已关联且允许排序的分组集合"""
        pass

    def can_be_ordered(self, item_type: str) -> bool:
        """条目类型是否可能出现在可排序分组中，默认 False"""
        return False


class ConfigGroupClassifier(GroupClassifier):
    """基于 OrderingSettings 的判定

    分组所属分类来自 ordering_group 表，分类是否可排序来自
    OrderingSettings.categories，条目类型可关联的分类来自
    OrderingSettings.item_type_categories。

    使用示例:
        settings = OrderingSettings(
            categories={"tags": True, "sections": False},
            item_type_categories={"article": ["tags"]},
        )
        classifier = ConfigGroupClassifier(settings, db_manager.get_session)
        classifier.is_orderable(5)
    """

    def __init__(
        self,
        settings: OrderingSettings,
        session_factory: Callable[[], Session] = None
    ):
        if session_factory is None:
            from yorder.orm.db_session import db_manager
            session_factory = db_manager.get_session
        self._settings = settings
        self._session_factory = session_factory

    def category_of(self, group_key: int) -> Optional[str]:
        group = self._session_factory().get(OrderingGroup, group_key)
        return group.category if group is not None else None

    def is_orderable(self, group_key: int) -> bool:
        category = self.category_of(group_key)
        if category is None:
            logger.debug(f"分组 {group_key} 不存在，视为不可排序")
            return False
        return bool(self._settings.categories.get(category, False))

    def orderable_groups_of(self, item_id: int) -> Set[int]:
        categories = self._settings.orderable_categories()
        if not categories:
            return set()

        stmt = (
            select(OrderedItem.group_key)
            .join(OrderingGroup, OrderingGroup.group_key == OrderedItem.group_key)
            .where(
                OrderedItem.item_id == item_id,
                OrderingGroup.category.in_(categories),
            )
        )
        return set(self._session_factory().scalars(stmt))

    def can_be_ordered(self, item_type: str) -> bool:
        categories = self._settings.item_type_categories.get(item_type, ())
        return any(self._settings.categories.get(category, False) for category in categories)


class MappingGroupClassifier(GroupClassifier):
    """基于 group_key -> bool 映射的判定

    适合分组配置由宿主系统直接给出的场景。
    """

    def __init__(
        self,
        orderable: Mapping[int, bool],
        session_factory: Callable[[], Session] = None,
        item_types: Optional[Set[str]] = None
    ):
        if session_factory is None:
            from yorder.orm.db_session import db_manager
            session_factory = db_manager.get_session
        self._orderable = orderable
        self._session_factory = session_factory
        self._item_types = set(item_types or ())

    def is_orderable(self, group_key: int) -> bool:
        return bool(self._orderable.get(group_key, False))

    def orderable_groups_of(self, item_id: int) -> Set[int]:
        groups = self._session_factory().scalars(
            select(OrderedItem.group_key).where(OrderedItem.item_id == item_id)
        )
        return {group_key for group_key in groups if self.is_orderable(group_key)}

    def can_be_ordered(self, item_type: str) -> bool:
        return item_type in self._item_types


__all__ = [
    "GroupClassifier",
    "ConfigGroupClassifier",
    "MappingGroupClassifier",
]
