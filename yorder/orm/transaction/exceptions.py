"""事务异常"""


class TransactionError(Exception):
    """事务相关错误的基类"""


class TransactionNotActiveError(TransactionError):
    def __init__(self, message: str = "事务未激活"):
        super().__init__(message)


class TransactionAlreadyCommittedError(TransactionError):
    def __init__(self, message: str = "事务已提交"):
        super().__init__(message)


class TransactionAlreadyRolledBackError(TransactionError):
    def __init__(self, message: str = "事务已回滚"):
        super().__init__(message)


class HookExecutionError(TransactionError):
    """事务钩子抛出异常

    Attributes:
        hook_name: 钩子函数名
        original_error: 钩子抛出的原始异常
    """

    def __init__(self, hook_name: str, original_error: Exception):
        self.hook_name = hook_name
        self.original_error = original_error
        super().__init__(f"事务钩子 {hook_name} 失败: {original_error!r}")


class TransactionRollbackOnlyError(TransactionError):
    """加入的内层操作失败过，外层事务只能回滚"""

    def __init__(self, message: str = "事务中有操作失败，已回滚而未提交"):
        super().__init__(message)
