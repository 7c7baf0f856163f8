"""
WhatsApp 会话异常定义。

异常层级：
WhatsAppError
├── InitializationError - initialize() 失败且自动重试次数已耗尽
├── DeliveryError       - 已连接状态下网络拒绝了发送请求
└── BridgeError         - 桥接服务请求失败或桥接连接不可用
"""


class WhatsAppError(Exception):
    """tvon WhatsApp 会话相关异常的基类。"""


class InitializationError(WhatsAppError):
    """会话初始化失败，且已达到最大自动重试次数，需要调用方手动重新 initialize()。"""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class DeliveryError(WhatsAppError):
    """消息发送被网络拒绝。不会自动重试，由调用方决定是否重发。"""

    def __init__(self, message: str, to: str | None = None):
        super().__init__(message)
        self.to = to


class BridgeError(WhatsAppError):
    """桥接服务返回错误，或桥接连接不可用。"""
