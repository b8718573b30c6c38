"""事务入口

当前事务保存在 ContextVar 中，同一线程/协程内的 transaction() 调用会加入已有事务，
排序管理器的多语句操作因此可以被宿主代码的外层事务整体包住。
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from functools import wraps
from typing import Callable, Dict, Iterator, List, Optional, TypeVar

from sqlalchemy.orm import Session

from yorder.log import get_logger

from .context import TransactionContext
from .hooks import TransactionHookType

logger = get_logger("yorder.orm.transaction")

T = TypeVar("T")

_current_transaction: ContextVar[Optional[TransactionContext]] = ContextVar(
    "yorder_current_transaction", default=None
)


def get_current_transaction() -> Optional[TransactionContext]:
    return _current_transaction.get()


def is_in_transaction() -> bool:
    ctx = _current_transaction.get()
    return ctx is not None and ctx.is_active


class TransactionManager:
    """事务管理器（单例）

    使用示例:
        from yorder.orm import transaction_manager as tm

        with tm.transaction(session) as tx:
            manager.insert_at_top(5, 42)
            manager.insert_at_top(5, 43)

        @tm.transactional()
        def import_items(group_key, item_ids):
            for item_id in item_ids:
                manager.insert_at_top(group_key, item_id)
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            instance = super().__new__(cls)
            instance._global_hooks = {kind: [] for kind in TransactionHookType}
            cls._instance = instance
        return cls._instance

    _global_hooks: Dict[TransactionHookType, List[Callable]]

    @property
    def current_transaction(self) -> Optional[TransactionContext]:
        return _current_transaction.get()

    def is_in_transaction(self) -> bool:
        return is_in_transaction()

    def get_session(self) -> Session:
        from ..db_session import db_manager
        return db_manager.get_session()

    @contextmanager
    def transaction(self, session: Session = None, auto_commit: bool = True) -> Iterator[TransactionContext]:
        """新建事务，或在已有活跃事务中加入一层

        加入的一层抛出异常时，已有事务被标记为只能回滚。

        Args:
            session: 新建事务使用的 session，默认取 db_manager 当前作用域的 session；
                加入已有事务时忽略
            auto_commit: 新建事务在正常退出时是否提交
        """
        outer = _current_transaction.get()
        if outer is not None and outer.is_active:
            outer.join()
            try:
                yield outer
            except Exception:
                outer.mark_rollback_only()
                raise
            finally:
                outer.leave()
            return

        ctx = TransactionContext(session if session is not None else self.get_session(), auto_commit)
        for hook_type, funcs in self._global_hooks.items():
            for func in funcs:
                ctx.hooks.register_func(hook_type, func)

        token = _current_transaction.set(ctx)
        try:
            with ctx:
                yield ctx
        finally:
            _current_transaction.reset(token)

    def transactional(self, session_getter: Callable[[], Session] = None):
        """把函数整体放进 transaction()"""
        def decorator(func: Callable[..., T]) -> Callable[..., T]:
            @wraps(func)
            def wrapper(*args, **kwargs) -> T:
                with self.transaction(session=session_getter() if session_getter else None):
                    return func(*args, **kwargs)
            return wrapper
        return decorator

    def register_global_hook(self, hook_type: TransactionHookType, func: Callable) -> None:
        """登记到之后新建的每个事务上，已存在的事务不受影响"""
        self._global_hooks[hook_type].append(func)

    def clear_global_hooks(self) -> None:
        for funcs in self._global_hooks.values():
            funcs.clear()


transaction_manager = TransactionManager()
