"""死锁 / 锁等待超时后的整体重试"""

import time
from functools import wraps
from typing import Any, Callable, Tuple, Type, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from yorder.log import get_logger

logger = get_logger("yorder.orm.transaction")

T = TypeVar("T")

RETRYABLE_ERRORS: Tuple[Type[Exception], ...] = (OperationalError,)


def _delays(first: float, multiplier: float, cap: float, count: int):
    delay = first
    for _ in range(count):
        yield min(delay, cap)
        delay *= multiplier


def call_with_retry(
    func: Callable[..., T],
    session: Session = None,
    max_retries: int = 3,
    retry_delay: float = 0.1,
    retry_on: Tuple[Type[Exception], ...] = RETRYABLE_ERRORS,
    backoff_multiplier: float = 2.0,
    max_delay: float = 10.0
) -> T:
    """在新事务中执行 func(tx)，失败时回滚并按指数退避重来

    调用时若已在活跃事务中，只执行一次且不重试：失败会把外层事务标记为只能回滚，
    外层之前的语句无法单独重放，只有事务的发起方才能整体重试。

    Args:
        func: 接收 TransactionContext 的函数
        max_retries: 首次之外的最多重试次数
        retry_delay: 第一次重试前的等待秒数
        retry_on: 触发重试的异常类型
        backoff_multiplier: 每次重试等待时间的倍数
        max_delay: 单次等待上限

    Raises:
        最后一次失败的原始异常
    """
    from .manager import is_in_transaction, transaction_manager

    if is_in_transaction():
        with transaction_manager.transaction(session=session) as tx:
            return func(tx)

    attempts = max_retries + 1
    delays = _delays(retry_delay, backoff_multiplier, max_delay, max_retries)
    for attempt in range(1, attempts + 1):
        try:
            with transaction_manager.transaction(session=session) as tx:
                return func(tx)
        except retry_on as e:
            if attempt == attempts:
                logger.error(f"事务在 {attempts} 次尝试后仍失败: {type(e).__name__}: {e}")
                raise
            delay = next(delays)
            logger.warning(f"事务第 {attempt}/{attempts} 次尝试失败，{delay:.2f}s 后重试: {type(e).__name__}: {e}")
            time.sleep(delay)


def transaction_with_retry(
    max_retries: int = 3,
    retry_delay: float = 0.1,
    retry_on: Tuple[Type[Exception], ...] = RETRYABLE_ERRORS,
    backoff_multiplier: float = 2.0,
    max_delay: float = 10.0,
    session_getter: Callable[[], Session] = None
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """call_with_retry 的装饰器形式，被装饰函数不接收事务参数

    使用示例:
        @transaction_with_retry(max_retries=5)
        def compact(group_key):
            manager.remove_and_compact(group_key)
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            return call_with_retry(
                lambda tx: func(*args, **kwargs),
                session=session_getter() if session_getter else None,
                max_retries=max_retries,
                retry_delay=retry_delay,
                retry_on=retry_on,
                backoff_multiplier=backoff_multiplier,
                max_delay=max_delay,
            )
        return wrapper
    return decorator
