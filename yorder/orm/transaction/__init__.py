"""事务管理模块

- 事务上下文与状态跟踪
- 事务钩子（before_commit, after_commit, after_rollback 等）
- 已有事务时自动加入
- 死锁/锁超时重试

使用示例:
    from yorder.orm import transaction_manager as tm

    with tm.transaction(session) as tx:
        store.shift_weights(5, [1, 2], 1)

        @tx.after_rollback
        def drop(ctx):
            cache.delete("ordering:range:5")
"""

from .state import TransactionState
from .exceptions import (
    TransactionError,
    TransactionNotActiveError,
    TransactionAlreadyCommittedError,
    TransactionAlreadyRolledBackError,
    HookExecutionError,
    TransactionRollbackOnlyError,
)
from .hooks import TransactionHookType, TransactionHooks
from .context import TransactionContext
from .manager import (
    TransactionManager,
    transaction_manager,
    get_current_transaction,
    is_in_transaction,
)
from .retry import transaction_with_retry, call_with_retry

__all__ = [
    # 状态
    "TransactionState",

    # 异常
    "TransactionError",
    "TransactionNotActiveError",
    "TransactionAlreadyCommittedError",
    "TransactionAlreadyRolledBackError",
    "HookExecutionError",
    "TransactionRollbackOnlyError",

    # 钩子
    "TransactionHookType",
    "TransactionHooks",

    # 上下文
    "TransactionContext",

    # 管理器
    "TransactionManager",
    "transaction_manager",
    "get_current_transaction",
    "is_in_transaction",

    # 重试
    "transaction_with_retry",
    "call_with_retry",
]
