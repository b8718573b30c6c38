"""排序模块

- WeightedListManager: 分组内加权列表的插入、压缩、重排与范围查询
- GroupClassifier: 分组/条目可排序判定接口
- WeightStore: 绑定单个 Session 的权重读写
"""

from .types import WeightRange, EMPTY_RANGE, range_border
from .store import WeightStore, OPERATOR_OR, OPERATOR_AND
from .classifier import GroupClassifier, ConfigGroupClassifier, MappingGroupClassifier
from .manager import (
    WeightedListManager,
    create_weighted_list_manager,
    CACHE_TAG,
)

__all__ = [
    "WeightRange",
    "EMPTY_RANGE",
    "range_border",
    "WeightStore",
    "OPERATOR_OR",
    "OPERATOR_AND",
    "GroupClassifier",
    "ConfigGroupClassifier",
    "MappingGroupClassifier",
    "WeightedListManager",
    "create_weighted_list_manager",
    "CACHE_TAG",
]
