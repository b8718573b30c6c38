"""排序基础类型"""

import math
from typing import NamedTuple, Optional


class WeightRange(NamedTuple):
    """分组内权重的 (min, max)

    空分组返回 WeightRange(None, None)，调用方做算术前必须检查 is_empty。
    """
    min: Optional[int]
    max: Optional[int]

    @property
    def is_empty(self) -> bool:
        return self.min is None or self.max is None


EMPTY_RANGE = WeightRange(None, None)


def range_border(count: int) -> int:
    """n 个条目的目标对称边界 ceil(n/2)

    >>> range_border(3), range_border(4)
    (2, 2)
    """
    return math.ceil(count / 2)


__all__ = [
    "WeightRange",
    "EMPTY_RANGE",
    "range_border",
]
