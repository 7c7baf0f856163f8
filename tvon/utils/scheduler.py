"""
延迟调用模块 - 可取消的一次性定时任务。

会话管理器用它来安排"N 毫秒后重新 initialize()"以及补发队列的节奏控制。
相比在回调里递归地 sleep，DelayedCall 把定时任务作为一个显式对象
由管理器持有，disconnect() 时可以直接取消，避免重连与主动关闭竞争。

架构设计：
- 基于 asyncio.Task：先 sleep 指定秒数，再 await 目标协程
- 同一个 DelayedCall 同时只保留一个待执行任务，重新 schedule 会先取消旧任务
- 目标协程抛出的异常只记录日志（已没有调用方可以接收）
"""

import asyncio
from typing import Any, Callable, Coroutine

from loguru import logger


class DelayedCall:
    """
    可取消的延迟调用。

    属性:
        name: 任务名称，用于日志
        _task: 当前待执行的 asyncio 任务
    """

    def __init__(self, name: str):
        self.name = name
        self._task: asyncio.Task | None = None

    @property
    def pending(self) -> bool:
        """是否有尚未完成的延迟任务。"""
        return self._task is not None and not self._task.done()

    def schedule(
        self,
        delay_s: float,
        callback: Callable[[], Coroutine[Any, Any, Any]],
    ) -> asyncio.Task:
        """
        在 delay_s 秒后执行 callback()。

        参数:
            delay_s: 延迟秒数
            callback: 无参协程函数

        返回:
            承载该延迟调用的 asyncio 任务
        """
        self.cancel()
        self._task = asyncio.create_task(self._run(delay_s, callback), name=self.name)
        return self._task

    def cancel(self) -> None:
        """取消尚未执行的延迟任务（当前任务自身调用时不会取消自己）。"""
        task = self._task
        self._task = None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def wait(self) -> None:
        """等待当前延迟任务结束（测试和 CLI 用）。"""
        if self._task:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _run(self, delay_s: float, callback: Callable[[], Coroutine[Any, Any, Any]]) -> None:
        await asyncio.sleep(delay_s)
        try:
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Scheduled {self.name} failed: {e}")
