"""
会话事件总线模块 - 实现会话管理器与下游消费者之间的解耦通信。

消息流向：
  WhatsApp 网络 → 会话管理器 → MessageEvent/StatusEvent → EventDispatcher → 处理器
  下游消费者（聊天界面、工单系统、PIX 流程）只订阅事件，不直接接触会话 socket。
"""

from tvon.bus.events import (
    MediaPayload,
    MessageEvent,
    OutboundRequest,
    SessionEvent,
    SessionIdentity,
    SessionStatus,
    StatusEvent,
)
from tvon.bus.registry import EventDispatcher, HandlerRegistry

__all__ = [
    "EventDispatcher",
    "HandlerRegistry",
    "MediaPayload",
    "MessageEvent",
    "OutboundRequest",
    "SessionEvent",
    "SessionIdentity",
    "SessionStatus",
    "StatusEvent",
]
