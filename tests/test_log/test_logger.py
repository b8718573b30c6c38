"""日志工具测试

测试 get_logger 名称推断以及各 setup_* 函数
"""

import logging
from logging.handlers import RotatingFileHandler

import pytest

from yorder.config import LoggingSettings
from yorder.log import (
    MicrosecondFormatter,
    create_formatter,
    get_logger,
    setup_logger,
    setup_root_logger,
    setup_sql_logger,
)


@pytest.fixture
def restore_loggers():
    """记录并恢复被测试修改的日志器状态"""
    names = [None, "sqlalchemy.engine", "sqlalchemy.pool", "yorder.test_logger"]
    saved = {}
    for name in names:
        lg = logging.getLogger(name)
        saved[name] = (list(lg.handlers), lg.level, lg.propagate)
    yield
    for name, (handlers, level, propagate) in saved.items():
        lg = logging.getLogger(name)
        for handler in lg.handlers:
            if handler not in handlers:
                handler.close()
        lg.handlers[:] = handlers
        lg.setLevel(level)
        lg.propagate = propagate


class TestGetLogger:
    """测试 get_logger"""

    def test_auto_infer_module_name(self):
        """无参数调用时使用调用模块的 __name__"""
        assert get_logger().name == __name__

    def test_simple_name_adds_prefix(self):
        assert get_logger("ordering").name == "yorder.ordering"

    def test_prefix_not_duplicated(self):
        assert get_logger("yorder.cache").name == "yorder.cache"
        assert get_logger("yorder").name == "yorder"

    def test_dotted_name_unchanged(self):
        assert get_logger("sqlalchemy.engine").name == "sqlalchemy.engine"

    def test_module_exports(self):
        """模块级只导出根日志器，各模块自行 get_logger"""
        import yorder.log

        assert set(yorder.log.__all__) == {
            "setup_logger",
            "setup_root_logger",
            "setup_sql_logger",
            "create_formatter",
            "MicrosecondFormatter",
            "DEFAULT_LOG_FORMAT",
            "logger",
            "get_logger",
        }


class TestFormatter:
    """测试格式化器"""

    def test_microsecond_precision(self):
        formatter = MicrosecondFormatter(fmt="%(asctime)s")
        record = logging.LogRecord("t", logging.INFO, __file__, 1, "msg", None, None)
        record.created = 1700000000.123456

        # 形如 2023-11-14 22:13:20.123456，小数部分固定 6 位
        stamp = formatter.formatTime(record)
        assert len(stamp.rsplit(".", 1)[1]) == 6

    def test_plain_formatter(self):
        formatter = create_formatter(use_microseconds=False)
        assert not isinstance(formatter, MicrosecondFormatter)


class TestSetupLogger:
    """测试 setup_logger"""

    def test_console_only(self, restore_loggers):
        lg = setup_logger("yorder.test_logger", level="debug")

        assert lg.level == logging.DEBUG
        assert len(lg.handlers) == 1
        assert isinstance(lg.handlers[0], logging.StreamHandler)

    def test_rotating_file(self, restore_loggers, temp_dir):
        log_file = f"{temp_dir}/logs/ordering.log"
        lg = setup_logger(
            "yorder.test_logger",
            log_file=log_file,
            console=False,
            file_handler_options={"maxBytes": 1024, "backupCount": 2},
        )

        handler = lg.handlers[0]
        assert isinstance(handler, RotatingFileHandler)
        assert handler.maxBytes == 1024
        assert handler.backupCount == 2

        lg.info("插入条目")
        handler.flush()
        with open(log_file, encoding="utf-8") as f:
            assert "插入条目" in f.read()

    def test_handlers_replaced_on_repeat(self, restore_loggers):
        setup_logger("yorder.test_logger")
        lg = setup_logger("yorder.test_logger")
        assert len(lg.handlers) == 1


class TestSetupRootLogger:
    """测试 setup_root_logger"""

    def test_from_settings(self, restore_loggers, temp_dir):
        config = LoggingSettings(
            level="warning",
            file_path=f"{temp_dir}/app.log",
            file_max_bytes=2048,
            enable_console=False,
        )

        root = setup_root_logger(config=config)

        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0], RotatingFileHandler)
        assert root.handlers[0].maxBytes == 2048

    def test_from_yaml(self, restore_loggers, temp_file):
        path = temp_file("settings.yaml", "logging:\n  level: error\n")

        root = setup_root_logger(config_path=path)

        assert root.level == logging.ERROR

    def test_sql_logger_enabled(self, restore_loggers, temp_dir):
        config = LoggingSettings(
            enable_console=False,
            sql_log_enabled=True,
            sql_log_level="info",
            sql_log_file_path=f"{temp_dir}/sql.log",
        )

        setup_root_logger(config=config)

        engine_logger = logging.getLogger("sqlalchemy.engine")
        assert engine_logger.level == logging.INFO
        assert engine_logger.propagate is False


class TestSetupSqlLogger:
    """测试 setup_sql_logger"""

    def test_disabled_returns_none(self):
        assert setup_sql_logger(config=LoggingSettings(sql_log_enabled=False)) is None

    def test_enabled(self, restore_loggers):
        lg = setup_sql_logger(level="warning", console=True)
        assert lg.name == "sqlalchemy.engine"
        assert lg.level == logging.WARNING
        assert logging.getLogger("sqlalchemy.pool").level == logging.WARNING
