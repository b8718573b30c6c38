"""
yorder - 分组内加权列表排序库

提供置顶插入、移除压缩、批量重排、范围缓存与可排序判定
"""

from .version import __version__, __author__, __description__

from .config import (
    AppSettings,
    DatabaseSettings,
    LoggingSettings,
    CacheSettings,
    OrderingSettings,
    load_yaml_config,
)

from .log import get_logger, setup_logger, setup_root_logger

from .orm import (
    OrderedItem,
    OrderingGroup,
    db_manager,
    init_database,
    db_session_scope,
    transaction_manager,
)

from .cache import MemoryBackend, RedisBackend, create_cache_backend

from .ordering import (
    WeightRange,
    range_border,
    GroupClassifier,
    ConfigGroupClassifier,
    MappingGroupClassifier,
    WeightedListManager,
    create_weighted_list_manager,
)

__all__ = [
    "__version__",
    "__author__",
    "__description__",

    # 配置
    "AppSettings",
    "DatabaseSettings",
    "LoggingSettings",
    "CacheSettings",
    "OrderingSettings",
    "load_yaml_config",

    # 日志
    "get_logger",
    "setup_logger",
    "setup_root_logger",

    # ORM
    "OrderedItem",
    "OrderingGroup",
    "db_manager",
    "init_database",
    "db_session_scope",
    "transaction_manager",

    # 缓存
    "MemoryBackend",
    "RedisBackend",
    "create_cache_backend",

    # 排序
    "WeightRange",
    "range_border",
    "GroupClassifier",
    "ConfigGroupClassifier",
    "MappingGroupClassifier",
    "WeightedListManager",
    "create_weighted_list_manager",
]
