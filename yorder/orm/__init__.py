"""ORM 模块

- models: OrderedItem / OrderingGroup 数据模型
- db_session: 数据库引擎与 session 管理
- transaction: 事务上下文、钩子与重试
"""

from .models import Base, OrderedItem, OrderingGroup
from .db_session import (
    DatabaseManager,
    db_manager,
    init_database,
    get_engine,
    db_session_scope,
    on_request_end,
)
from .transaction import (
    TransactionState,
    TransactionError,
    TransactionNotActiveError,
    TransactionAlreadyCommittedError,
    TransactionAlreadyRolledBackError,
    HookExecutionError,
    TransactionRollbackOnlyError,
    TransactionHookType,
    TransactionContext,
    TransactionManager,
    transaction_manager,
    get_current_transaction,
    is_in_transaction,
    transaction_with_retry,
    call_with_retry,
)

__all__ = [
    # 模型
    "Base",
    "OrderedItem",
    "OrderingGroup",

    # 会话
    "DatabaseManager",
    "db_manager",
    "init_database",
    "get_engine",
    "db_session_scope",
    "on_request_end",

    # 事务
    "TransactionState",
    "TransactionError",
    "TransactionNotActiveError",
    "TransactionAlreadyCommittedError",
    "TransactionAlreadyRolledBackError",
    "HookExecutionError",
    "TransactionRollbackOnlyError",
    "TransactionHookType",
    "TransactionContext",
    "TransactionManager",
    "transaction_manager",
    "get_current_transaction",
    "is_in_transaction",
    "transaction_with_retry",
    "call_with_retry",
]
