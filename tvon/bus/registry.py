"""
事件处理器注册表模块 - 会话事件的观察者（Observer）实现。

本模块实现了两个类：
- HandlerRegistry：单一事件类型的处理器集合（有序集合语义）
- EventDispatcher：持有消息/状态两个注册表，按事件类型统一分发

分发流程：
  会话管理器 → EventDispatcher.dispatch(event) → 对应 HandlerRegistry → 每个处理器

【核心设计】
- 订阅返回"取消订阅"函数，调用方无需持有注册表引用即可退订
- 分发前对处理器集合做快照：分发过程中新增的处理器不会收到当前事件，
  分发过程中退订也不会打断分发循环
- 单个处理器抛出异常只记录日志，不影响其他处理器，也不影响管理器状态
- 处理器既可以是普通函数，也可以是 async 函数（返回值可等待时自动 await）
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Generic, TypeVar

from loguru import logger

from tvon.bus.events import MessageEvent, SessionEvent, StatusEvent

E = TypeVar("E")

Handler = Callable[[E], Awaitable[None] | None]


class HandlerRegistry(Generic[E]):
    """
    单一事件类型的处理器注册表。

    内部使用 dict 作为有序集合（值恒为 None），同一个处理器重复注册
    只保留一份。

    属性:
        name: 注册表名称，仅用于日志
        _handlers: 处理器有序集合
    """

    def __init__(self, name: str):
        self.name = name
        self._handlers: dict[Handler, None] = {}

    def add(self, handler: Handler) -> Callable[[], None]:
        """
        注册处理器。

        参数:
            handler: 接收事件的回调（同步或异步）

        返回:
            取消订阅函数，只移除本次注册的这个处理器，重复调用无副作用
        """
        self._handlers[handler] = None

        def unsubscribe() -> None:
            self._handlers.pop(handler, None)

        return unsubscribe

    def remove(self, handler: Handler) -> None:
        """移除处理器（不存在时忽略）。"""
        self._handlers.pop(handler, None)

    def clear(self) -> None:
        """清空所有处理器。"""
        self._handlers.clear()

    def __len__(self) -> int:
        return len(self._handlers)

    def __contains__(self, handler: Any) -> bool:
        return handler in self._handlers

    async def dispatch(self, event: E) -> None:
        """
        将事件分发给当前所有处理器。

        对处理器集合取快照后逐个调用；任何处理器抛出的异常都会被
        捕获并记录，继续调用后续处理器。

        参数:
            event: 待分发的事件对象
        """
        for handler in list(self._handlers):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in {self.name} handler {getattr(handler, '__name__', handler)!r}: {e}")


class EventDispatcher:
    """
    会话事件分发器 - 按 SessionEvent 的具体类型路由到对应注册表。

    属性:
        messages: 入站消息处理器注册表
        statuses: 状态变化处理器注册表
    """

    def __init__(self):
        self.messages: HandlerRegistry[MessageEvent] = HandlerRegistry("message")
        self.statuses: HandlerRegistry[StatusEvent] = HandlerRegistry("status")

    async def dispatch(self, event: SessionEvent) -> None:
        """按事件类型分发。未知类型会抛出 TypeError（属于编程错误）。"""
        if isinstance(event, MessageEvent):
            await self.messages.dispatch(event)
        elif isinstance(event, StatusEvent):
            await self.statuses.dispatch(event)
        else:
            raise TypeError(f"Unsupported session event: {type(event).__name__}")

    def clear(self) -> None:
        """清空两个注册表。"""
        self.messages.clear()
        self.statuses.clear()
