"""数据库引擎与 session

- db_manager: 持有引擎与 scoped_session 的单例
- init_database(): 按 URL 或 DatabaseSettings 建立连接，默认同时建表
- db_session_scope(): 一个工作单元，正常结束提交、异常回滚
- on_request_end(): 宿主应用在请求/任务结束时调用，提交残留变更并释放 session

使用示例:
    from yorder.orm import init_database, db_session_scope

    init_database("sqlite:///./ordering.db")
    with db_session_scope() as session:
        manager.insert_at_top(5, 42)
"""

from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Tuple

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, scoped_session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from yorder.log import get_logger

_logger = get_logger("yorder.orm.session")

__all__ = [
    "DatabaseManager",
    "db_manager",
    "init_database",
    "get_engine",
    "db_session_scope",
    "on_request_end",
]

_CONFIG_FIELDS = ("echo", "pool_size", "max_overflow", "pool_timeout", "pool_recycle", "pool_pre_ping")


def _build_engine(database_url: str, echo: bool, pool: Dict[str, Any]) -> Engine:
    """按 URL 类型选择连接池

    SQLite 内存库只能有一个连接（StaticPool），否则每个连接看到的是不同的库；
    SQLite 文件库放开线程检查并使用 QueuePool；其他数据库使用驱动默认的连接池。
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo, **pool)

    path = database_url.split(":///", 1)[-1] if ":///" in database_url else ""
    if path in ("", ":memory:"):
        _logger.info("使用 SQLite 内存数据库 (StaticPool)")
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    _logger.info(f"使用 SQLite 文件数据库: {path} (QueuePool, pool_size={pool['pool_size']})")
    return create_engine(
        database_url,
        echo=echo,
        connect_args={"check_same_thread": False, "timeout": pool["pool_timeout"]},
        poolclass=QueuePool,
        **pool,
    )


class DatabaseManager:
    """引擎与 scoped_session 的持有者（单例）

    同一作用域（默认按线程）内多次 get_session() 得到同一个 Session，
    WeightedListManager 与宿主代码因此共享同一个事务。
    """
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._engine = None
            cls._instance._sessions = None
        return cls._instance

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("数据库未初始化，请先调用 init_database()")
        return self._engine

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None and self._sessions is not None

    def init(
        self,
        database_url: str = None,
        echo: bool = False,
        pool_size: int = 5,
        max_overflow: int = 10,
        pool_timeout: int = 30,
        pool_recycle: int = 3600,
        pool_pre_ping: bool = True,
        scopefunc: Callable = None,
        config: Any = None,
        create_tables: bool = True,
    ) -> Tuple[Engine, scoped_session]:
        """建立引擎与 scoped_session

        Args:
            database_url: 连接 URL；传入 config 时以 config.url 为准（为空则回退到此参数）
            scopefunc: session 作用域函数，默认按线程
            config: DatabaseSettings，连接池参数一并取自其中
            create_tables: 是否创建 ordered_item / ordering_group 表

        Raises:
            ValueError: 没有可用的 URL
        """
        options = {
            "echo": echo,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "pool_timeout": pool_timeout,
            "pool_recycle": pool_recycle,
            "pool_pre_ping": pool_pre_ping,
        }
        if config is not None:
            database_url = config.url or database_url
            options.update({name: getattr(config, name) for name in _CONFIG_FIELDS})

        if not database_url:
            raise ValueError("database_url 是必需的，请通过参数或 config 提供")

        echo = options.pop("echo")
        self._engine = _build_engine(database_url, echo, options)
        self._sessions = scoped_session(
            sessionmaker(bind=self._engine, autoflush=True),
            scopefunc=scopefunc,
        )

        if create_tables:
            from .models import Base
            Base.metadata.create_all(self._engine)
            _logger.info("排序表已就绪")

        return self._engine, self._sessions

    def get_session(self) -> Session:
        if self._sessions is None:
            raise RuntimeError("数据库未初始化，请先调用 init_database()")
        return self._sessions()

    def remove_session(self) -> None:
        if self._sessions is not None:
            self._sessions.remove()

    def cleanup(self) -> None:
        """提交当前作用域残留的变更并释放 session，可重复调用

        提交失败时回滚并重新抛出，session 仍会被释放。
        """
        if self._sessions is None or not self._sessions.registry.has():
            return

        session = self._sessions()
        try:
            if session.new or session.dirty or session.deleted:
                session.commit()
        except Exception:
            _logger.warning("工作单元结束时提交失败，已回滚", exc_info=True)
            session.rollback()
            raise
        finally:
            self._sessions.remove()

    def dispose(self) -> None:
        """释放引擎，之后可以重新 init()"""
        self.remove_session()
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._sessions = None


db_manager = DatabaseManager()


def init_database(
    database_url: str = None,
    echo: bool = False,
    scopefunc: Callable = None,
    config: Any = None,
    create_tables: bool = True,
    **pool_options
) -> Tuple[Engine, scoped_session]:
    return db_manager.init(
        database_url=database_url,
        echo=echo,
        scopefunc=scopefunc,
        config=config,
        create_tables=create_tables,
        **pool_options
    )


def get_engine() -> Engine:
    return db_manager.engine


def on_request_end() -> None:
    db_manager.cleanup()


@contextmanager
def db_session_scope(auto_commit: bool = True) -> Iterator[Session]:
    """一个工作单元：auto_commit 时正常结束提交，异常时回滚，最后释放 session"""
    session = db_manager.get_session()
    try:
        yield session
        if auto_commit:
            session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        db_manager.remove_session()
