"""单个事务的状态、嵌套层级与钩子"""

from __future__ import annotations

from typing import Any, Callable, Dict

from sqlalchemy.orm import Session

from yorder.log import get_logger

from .exceptions import (
    TransactionAlreadyCommittedError,
    TransactionAlreadyRolledBackError,
    TransactionNotActiveError,
    TransactionRollbackOnlyError,
)
from .hooks import TransactionHooks, TransactionHookType
from .state import TransactionState

logger = get_logger("yorder.orm.transaction")


class TransactionContext:
    """包装一个 Session 的事务

    嵌套进入只增加层级，只有最外层真正提交。
    加入的内层抛出异常后事务被标记为只能回滚，即使调用方捕获了该异常，最外层也不会提交。
    data 字典供同一事务中的钩子之间传值。

    使用示例:
        with TransactionContext(session) as tx:
            store.set_weight(5, 42, 0)

            @tx.after_rollback
            def drop_range(ctx):
                ranges.delete("ordering:range:5")
    """

    def __init__(self, session: Session, auto_commit: bool = True):
        self._session = session
        self._auto_commit = auto_commit
        self._state = TransactionState.INACTIVE
        self._hooks = TransactionHooks()
        self._nesting_level = 0
        self._rollback_only = False
        self.data: Dict[str, Any] = {}

    @property
    def session(self) -> Session:
        return self._session

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is TransactionState.ACTIVE

    @property
    def nesting_level(self) -> int:
        return self._nesting_level

    @property
    def hooks(self) -> TransactionHooks:
        return self._hooks

    @property
    def is_rollback_only(self) -> bool:
        return self._rollback_only

    def mark_rollback_only(self) -> None:
        """之后的提交改为回滚并抛出 TransactionRollbackOnlyError"""
        if not self._rollback_only:
            logger.debug("事务被标记为只能回滚")
        self._rollback_only = True

    def join(self) -> "TransactionContext":
        self._nesting_level += 1
        logger.debug(f"加入进行中的事务，层级 {self._nesting_level}")
        return self

    def leave(self) -> None:
        if self._nesting_level > 0:
            self._nesting_level -= 1

    def begin(self) -> "TransactionContext":
        """激活事务；已激活时视为嵌套加入

        Session 自动开启底层事务，这里只维护状态。
        """
        if self.is_active:
            return self.join()
        self._state = TransactionState.ACTIVE
        self._nesting_level = 1
        logger.debug("事务开始")
        return self

    def _ensure_committable(self) -> None:
        if self._state is TransactionState.COMMITTED:
            raise TransactionAlreadyCommittedError()
        if self._state is TransactionState.ROLLED_BACK:
            raise TransactionAlreadyRolledBackError()
        if not self._state.can_commit():
            raise TransactionNotActiveError(f"当前状态 {self._state.value} 不能提交")

    def commit(self) -> None:
        """提交；内层调用只退出一层

        before_commit 钩子失败时不提交，状态置为 FAILED，异常继续抛出。
        被标记为只能回滚时改为回滚。
        after_commit 钩子失败只记录日志。

        Raises:
            TransactionAlreadyCommittedError: 已提交
            TransactionAlreadyRolledBackError: 已回滚
            TransactionNotActiveError: 未开始或已失败
            HookExecutionError: before_commit 钩子失败
            TransactionRollbackOnlyError: 已被标记为只能回滚
        """
        self._ensure_committable()
        if self._nesting_level > 1:
            self.leave()
            return

        if self._rollback_only:
            self.rollback()
            raise TransactionRollbackOnlyError()

        try:
            self._hooks.execute_before_commit(self)
            self._session.commit()
        except Exception as e:
            self._state = TransactionState.FAILED
            self._hooks.execute_on_error(self, e)
            raise

        self._state = TransactionState.COMMITTED
        self._nesting_level = 0
        failures = self._hooks.execute_after_commit(self)
        if failures:
            logger.warning(f"事务已提交，但有 {len(failures)} 个 after_commit 钩子失败")
        logger.debug("事务已提交")

    def rollback(self) -> None:
        """回滚整个事务，重复调用无副作用

        Raises:
            TransactionAlreadyCommittedError: 已提交
        """
        if self._state is TransactionState.COMMITTED:
            raise TransactionAlreadyCommittedError("事务已提交，不能回滚")
        if not self._state.can_rollback():
            return

        self._hooks.execute_before_rollback(self)
        try:
            self._session.rollback()
        except Exception:
            self._state = TransactionState.FAILED
            logger.exception("事务回滚失败")
            raise

        self._state = TransactionState.ROLLED_BACK
        self._nesting_level = 0
        self._hooks.execute_after_rollback(self)
        logger.debug("事务已回滚")

    def flush(self) -> None:
        if not self.is_active:
            raise TransactionNotActiveError("事务未激活，不能 flush")
        self._session.flush()

    def _register(self, hook_type: TransactionHookType, func: Callable) -> Callable:
        self._hooks.register_func(hook_type, func)
        return func

    def before_commit(self, func: Callable) -> Callable:
        return self._register(TransactionHookType.BEFORE_COMMIT, func)

    def after_commit(self, func: Callable) -> Callable:
        return self._register(TransactionHookType.AFTER_COMMIT, func)

    def before_rollback(self, func: Callable) -> Callable:
        return self._register(TransactionHookType.BEFORE_ROLLBACK, func)

    def after_rollback(self, func: Callable) -> Callable:
        return self._register(TransactionHookType.AFTER_ROLLBACK, func)

    def on_error(self, func: Callable) -> Callable:
        """func(ctx, error)，在回滚之前调用"""
        return self._register(TransactionHookType.ON_ERROR, func)

    def __enter__(self) -> "TransactionContext":
        return self.begin()

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is not None:
            # commit 内部失败时 on_error 已经执行过
            if self._state is not TransactionState.FAILED:
                self._hooks.execute_on_error(self, exc_val)
            self.rollback()
            return False

        if self._nesting_level > 1:
            self.leave()
        elif self._auto_commit and self._nesting_level == 1:
            try:
                self.commit()
            except Exception:
                self.rollback()
                raise
        return False

    def __repr__(self) -> str:
        return f"TransactionContext(state={self._state.value}, nesting_level={self._nesting_level})"
