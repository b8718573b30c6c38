"""事务状态"""

from enum import Enum


class TransactionState(str, Enum):
    """TransactionContext 的生命周期

    INACTIVE -> ACTIVE -> COMMITTED / ROLLED_BACK；
    提交或回滚本身出错时进入 FAILED，FAILED 仍允许回滚。
    """

    INACTIVE = "inactive"
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"

    def is_terminal(self) -> bool:
        return self in _TERMINAL

    def can_commit(self) -> bool:
        return self is TransactionState.ACTIVE

    def can_rollback(self) -> bool:
        return self in (TransactionState.ACTIVE, TransactionState.FAILED)


_TERMINAL = frozenset({
    TransactionState.COMMITTED,
    TransactionState.ROLLED_BACK,
    TransactionState.FAILED,
})
