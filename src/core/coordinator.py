import asyncio
import logging
from collections import Counter
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Dict, Hashable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError

from shared.errors import ConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StaleStateError(Exception):
    """乐观比较交换失败：读到的状态在写入前已被其他请求修改。"""


class KeyedLock:
    """
    按键粒度的异步互斥锁。
    同一个键上的持有者互斥，不同键互不影响；没有等待者的键会被回收。
    """

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._refs: Counter = Counter()

    @asynccontextmanager
    async def hold(self, key: Hashable):
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._refs[key] += 1
        try:
            # 调用方在等待或持有期间被取消时，finally 仍会释放引用
            async with lock:
                yield
        finally:
            self._refs[key] -= 1
            if self._refs[key] <= 0:
                del self._refs[key]
                self._locks.pop(key, None)

    def is_locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


def is_retryable(error: Exception) -> bool:
    """判断存储层异常是否属于可重试的并发冲突。"""
    if isinstance(error, (StaleStateError, IntegrityError)):
        return True
    if isinstance(error, OperationalError):
        return "locked" in str(error).lower() or "busy" in str(error).lower()
    return False


class ConsistencyCoordinator:
    """
    并发写入的协调策略：
    - 投票按 (用户, 目标) 键串行化
    - 标签层级、合并和问题的标签变更共用一把分类锁
    - 可重试的冲突在有限次数内重试，之后抛出 ConflictError
    """

    def __init__(self, max_retries: int = 3, retry_backoff: float = 0.05):
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.vote_locks = KeyedLock()
        self.taxonomy_lock = asyncio.Lock()

    @asynccontextmanager
    async def vote_scope(self, user_id: int, target_type: str, target_id: int):
        async with self.vote_locks.hold((user_id, target_type, target_id)):
            yield

    @asynccontextmanager
    async def taxonomy_scope(self):
        async with self.taxonomy_lock:
            yield

    async def run_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        description: str,
        conflict_message: Optional[str] = None,
    ) -> T:
        """
        执行 operation，遇到可重试冲突时重新执行。
        operation 每次都必须自行开启新的会话，重试之间不共享任何状态。
        """
        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as e:
                if not is_retryable(e):
                    raise
                attempt += 1
                if attempt > self.max_retries:
                    logger.warning(
                        f"{description} 在 {self.max_retries} 次重试后仍然冲突: {type(e).__name__}"
                    )
                    raise ConflictError(conflict_message) from e
                logger.debug(f"{description} 发生并发冲突，第 {attempt} 次重试")
                await asyncio.sleep(self.retry_backoff * attempt)
