"""日志模块

提供日志配置与管理：
- 控制台 / 按大小轮转的文件输出
- SQLAlchemy SQL 日志器配置
- 模块名自动推断的 get_logger

使用示例:
    from yorder.log import setup_root_logger, get_logger

    setup_root_logger(config=settings.logging)
    logger = get_logger()
"""

from .logger import (
    setup_logger,
    setup_root_logger,
    setup_sql_logger,
    create_formatter,
    MicrosecondFormatter,
    DEFAULT_LOG_FORMAT,
    logger,
    get_logger,
)

__all__ = [
    "setup_logger",
    "setup_root_logger",
    "setup_sql_logger",
    "create_formatter",
    "MicrosecondFormatter",
    "DEFAULT_LOG_FORMAT",
    "logger",
    "get_logger",
]
