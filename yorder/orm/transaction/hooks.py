"""事务钩子

排序管理器用 after_rollback 丢弃事务中缓存的分组范围；
宿主代码可以用 after_commit 在提交后刷新共享缓存等。
"""

from enum import Enum
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from yorder.log import get_logger

from .exceptions import HookExecutionError

if TYPE_CHECKING:
    from .context import TransactionContext

logger = get_logger("yorder.orm.transaction")


class TransactionHookType(str, Enum):
    BEFORE_COMMIT = "before_commit"
    AFTER_COMMIT = "after_commit"
    BEFORE_ROLLBACK = "before_rollback"
    AFTER_ROLLBACK = "after_rollback"
    ON_ERROR = "on_error"


class TransactionHooks:
    """单个事务上按类型登记的钩子函数

    钩子签名为 func(ctx)，ON_ERROR 为 func(ctx, error)。
    before_commit 钩子失败会中止提交；其余钩子失败只记录日志并返回给调用方。
    """

    def __init__(self):
        self._funcs: Dict[TransactionHookType, List[Callable]] = {kind: [] for kind in TransactionHookType}

    def register_func(self, hook_type: TransactionHookType, func: Callable) -> None:
        self._funcs[hook_type].append(func)

    def count(self, hook_type: TransactionHookType) -> int:
        return len(self._funcs[hook_type])

    def clear(self) -> None:
        for funcs in self._funcs.values():
            funcs.clear()

    def execute(
        self,
        hook_type: TransactionHookType,
        context: "TransactionContext",
        error: Optional[Exception] = None,
        raise_on_error: bool = False
    ) -> List[HookExecutionError]:
        """按登记顺序执行某类钩子

        Raises:
            HookExecutionError: raise_on_error 为 True 且有钩子失败
        """
        args = (context, error) if hook_type is TransactionHookType.ON_ERROR else (context,)
        failures = []
        for func in list(self._funcs[hook_type]):
            try:
                func(*args)
            except Exception as e:
                failure = HookExecutionError(getattr(func, "__name__", repr(func)), e)
                logger.error(f"{hook_type.value} 钩子 {failure.hook_name} 失败: {e}")
                if raise_on_error:
                    raise failure from e
                failures.append(failure)
        return failures

    def execute_before_commit(self, context: "TransactionContext") -> None:
        self.execute(TransactionHookType.BEFORE_COMMIT, context, raise_on_error=True)

    def execute_after_commit(self, context: "TransactionContext") -> List[HookExecutionError]:
        return self.execute(TransactionHookType.AFTER_COMMIT, context)

    def execute_before_rollback(self, context: "TransactionContext") -> List[HookExecutionError]:
        return self.execute(TransactionHookType.BEFORE_ROLLBACK, context)

    def execute_after_rollback(self, context: "TransactionContext") -> List[HookExecutionError]:
        return self.execute(TransactionHookType.AFTER_ROLLBACK, context)

    def execute_on_error(self, context: "TransactionContext", error: Exception) -> List[HookExecutionError]:
        return self.execute(TransactionHookType.ON_ERROR, context, error=error)
