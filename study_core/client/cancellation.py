"""协作式取消令牌。"""

import asyncio
from typing import Awaitable, Callable, List, TypeVar

from study_core.domain.exceptions import Cancelled


T = TypeVar("T")


class CancelToken:
    """一次请求的取消信号。

    取消是协作式的：持有方在每个挂起点前后调用 raise_if_cancelled，
    或者用 guard() 包装底层网络调用，取消时该调用会被中断。
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for cb in callbacks:
            cb()

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """注册取消回调，返回注销函数；已取消时立即执行。"""

        if self._cancelled:
            callback()
            return lambda: None
        self._callbacks.append(callback)

        def _remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _remove

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise Cancelled()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """运行 awaitable，令牌被取消时中断它并抛出 Cancelled。"""

        self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        remove = self.on_cancel(task.cancel)
        try:
            return await task
        except asyncio.CancelledError:
            if self._cancelled:
                raise Cancelled()
            raise
        finally:
            remove()
