"""日志配置

- get_logger: 按模块名获取日志器，短名称自动补 yorder. 前缀
- setup_logger / setup_root_logger: 控制台 + 按大小轮转的文件输出
- setup_sql_logger: sqlalchemy.engine / sqlalchemy.pool 的独立输出
"""

import inspect
import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional


DEFAULT_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(filename)s:%(lineno)d - %(message)s"

SQL_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

ROOT_NAME = "yorder"

SQL_LOGGER_NAMES = ("sqlalchemy.engine", "sqlalchemy.pool")


class MicrosecondFormatter(logging.Formatter):
    """时间戳带 6 位微秒"""

    def formatTime(self, record, datefmt=None):
        created = datetime.fromtimestamp(record.created)
        base = created.strftime(datefmt or "%Y-%m-%d %H:%M:%S")
        return f"{base}.{created.microsecond:06d}"


def create_formatter(
    log_format: str = None,
    datefmt: str = "%Y-%m-%d %H:%M:%S",
    use_microseconds: bool = True
) -> logging.Formatter:
    formatter_class = MicrosecondFormatter if use_microseconds else logging.Formatter
    return formatter_class(fmt=log_format or DEFAULT_LOG_FORMAT, datefmt=datefmt)


def _file_options(config: Any) -> Dict[str, Any]:
    """LoggingSettings -> RotatingFileHandler 参数"""
    return {
        "maxBytes": config.file_max_bytes,
        "backupCount": config.file_backup_count,
        "encoding": config.file_encoding,
    }


def _file_handler(log_file: str, options: Optional[Dict[str, Any]]) -> logging.Handler:
    directory = os.path.dirname(log_file)
    if directory:
        os.makedirs(directory, exist_ok=True)

    if not options:
        return logging.FileHandler(log_file, encoding="utf-8")
    return RotatingFileHandler(
        log_file,
        maxBytes=options.get("maxBytes", 10 * 1024 * 1024),
        backupCount=options.get("backupCount", 5),
        encoding=options.get("encoding", "utf-8"),
    )


def setup_logger(
    name: str = None,
    level: str = "INFO",
    log_file: str = None,
    log_format: str = None,
    console: bool = True,
    use_microseconds: bool = True,
    propagate: bool = True,
    file_handler_options: dict = None
) -> logging.Logger:
    """配置一个日志器并返回，已有的处理器会被替换

    Args:
        name: 日志器名称，None 表示根日志器
        level: DEBUG / INFO / WARNING / ERROR / CRITICAL，大小写不敏感
        log_file: 文件路径，目录不存在时自动创建
        log_format: 格式字符串，默认 DEFAULT_LOG_FORMAT
        console: 是否输出到 stderr
        use_microseconds: 时间戳是否带微秒
        propagate: 是否向父日志器传播
        file_handler_options: 提供时使用按大小轮转，
            键为 maxBytes / backupCount / encoding

    使用示例:
        setup_logger(
            "yorder.ordering",
            level="debug",
            log_file="logs/ordering.log",
            file_handler_options={"maxBytes": 5 * 1024 * 1024, "backupCount": 3},
        )
    """
    target = logging.getLogger(name)
    target.setLevel(level.upper())
    target.propagate = propagate

    for handler in list(target.handlers):
        target.removeHandler(handler)

    handlers = []
    if console:
        handlers.append(logging.StreamHandler())
    if log_file:
        handlers.append(_file_handler(log_file, file_handler_options))

    formatter = create_formatter(log_format, use_microseconds=use_microseconds)
    for handler in handlers:
        handler.setFormatter(formatter)
        target.addHandler(handler)

    return target


def _configure_sql_loggers(
    level: str,
    log_file: Optional[str],
    console: bool,
    file_handler_options: Optional[dict]
) -> logging.Logger:
    configured = [
        setup_logger(
            name,
            level=level,
            log_file=log_file,
            log_format=SQL_LOG_FORMAT,
            console=console,
            propagate=False,
            file_handler_options=file_handler_options,
        )
        for name in SQL_LOGGER_NAMES
    ]
    return configured[0]


def setup_sql_logger(
    level: str = "DEBUG",
    log_file: str = None,
    console: bool = False,
    file_handler_options: dict = None,
    config: Any = None
) -> Optional[logging.Logger]:
    """配置 SQL 日志，返回 sqlalchemy.engine 日志器

    传入 LoggingSettings 时以其 sql_log_* 字段为准，sql_log_enabled 为 False 则什么都不做并返回 None。
    """
    if config is not None:
        if not config.sql_log_enabled:
            return None
        level = config.sql_log_level
        log_file = config.sql_log_file_path
        file_handler_options = _file_options(config)

    return _configure_sql_loggers(level, log_file, console, file_handler_options)


def setup_root_logger(
    level: str = "INFO",
    log_file: str = None,
    console: bool = True,
    use_microseconds: bool = True,
    file_handler_options: dict = None,
    config: Any = None,
    config_path: str = None,
    config_base_dir: str = None,
    setup_sql_logger: bool = True
) -> logging.Logger:
    """配置根日志器

    三种来源，优先级从高到低: config_path（YAML 中的 logging 节） > config > 关键字参数。

    使用示例:
        setup_root_logger(level="DEBUG")
        setup_root_logger(config=settings.logging)
        setup_root_logger(config_path="config/settings.yaml")
    """
    if config_path is not None:
        from ..config import ConfigLoader, LoggingSettings
        config = LoggingSettings(**ConfigLoader.section(config_path, "logging", config_base_dir))

    if config is not None:
        level = config.level
        log_file = config.file_path
        console = config.enable_console
        file_handler_options = _file_options(config)
        if setup_sql_logger and config.sql_log_enabled:
            _configure_sql_loggers(
                config.sql_log_level,
                config.sql_log_file_path,
                console=False,
                file_handler_options=file_handler_options,
            )

    return setup_logger(
        None,
        level=level,
        log_file=log_file,
        console=console,
        use_microseconds=use_microseconds,
        propagate=False,
        file_handler_options=file_handler_options,
    )


def get_logger(name: str = None) -> logging.Logger:
    """获取日志器

    - 不传名称: 使用调用方模块的 __name__
    - 不含点号的短名称: 补 yorder. 前缀（"cache" -> "yorder.cache"）
    - 含点号或本身就是 yorder: 原样使用

    使用示例:
        logger = get_logger()
        logger = get_logger("ordering")
        logger = get_logger("sqlalchemy.engine")
    """
    if name is None:
        caller = inspect.currentframe().f_back
        name = caller.f_globals.get("__name__", ROOT_NAME) if caller else ROOT_NAME
    elif name != ROOT_NAME and "." not in name:
        name = f"{ROOT_NAME}.{name}"
    return logging.getLogger(name)


logger = logging.getLogger(ROOT_NAME)
