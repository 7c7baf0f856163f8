"""
底层会话协议定义 - 会话管理器与 WhatsApp 协议库之间的边界。

会话管理器不关心 WhatsApp 的线协议，它只依赖这里定义的能力：
- 建立会话（start）并结束会话（end）
- 发送消息负载（send_message）
- 接收事件流（通过 on_event 回调推送 SessionUpdate）
- 查询头像（profile_picture_url）、查询号码是否注册（on_whatsapp）
- 标记已读、更新资料、下载媒体

事件类型：
- ConnectionUpdate：连接状态变化（connecting/open/close）或新的配对二维码
- CredentialsUpdate：凭据轮换，必须立即持久化
- MessagesUpsert：新消息到达
- MessageStatusUpdate：已发送消息的投递状态变化

BridgeSession（tvon.whatsapp.bridge）是默认实现；测试中使用内存假实现。
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Awaitable, Callable, Literal, Protocol


class DisconnectReason(IntEnum):
    """断线原因状态码（与 WhatsApp 协议库保持一致）。"""
    CONNECTION_CLOSED = 428
    CONNECTION_LOST = 408
    CONNECTION_REPLACED = 440
    LOGGED_OUT = 401
    BAD_SESSION = 500
    RESTART_REQUIRED = 515
    MULTIDEVICE_MISMATCH = 411
    FORBIDDEN = 403
    UNAVAILABLE_SERVICE = 503


def is_recoverable(status_code: int | None) -> bool:
    """
    判断断线是否可恢复。

    只有明确的"已登出"信号不可恢复（重试没有意义，需要重新扫码）；
    其余任何原因，包括未知原因，都视为可恢复。
    """
    return status_code != DisconnectReason.LOGGED_OUT


@dataclass
class SessionOptions:
    """创建会话时传给协议库的行为参数。"""
    browser: tuple[str, str, str] = ("TV ON Sistema", "Chrome", "1.0.0")
    connect_timeout_ms: int = 60000
    keep_alive_interval_ms: int = 10000
    default_query_timeout_ms: int | None = None
    sync_full_history: bool = False
    mark_online_on_connect: bool = True
    emit_own_events: bool = False
    fire_init_queries: bool = True
    generate_high_quality_link_preview: bool = True
    log_level: str = "silent"

    def to_dict(self) -> dict[str, Any]:
        """转换为协议库使用的 camelCase 参数字典。"""
        return {
            "browser": list(self.browser),
            "connectTimeoutMs": self.connect_timeout_ms,
            "keepAliveIntervalMs": self.keep_alive_interval_ms,
            "defaultQueryTimeoutMs": self.default_query_timeout_ms,
            "syncFullHistory": self.sync_full_history,
            "markOnlineOnConnect": self.mark_online_on_connect,
            "emitOwnEvents": self.emit_own_events,
            "fireInitQueries": self.fire_init_queries,
            "generateHighQualityLinkPreview": self.generate_high_quality_link_preview,
            "logLevel": self.log_level,
        }


@dataclass
class ConnectionUpdate:
    """连接状态更新。connection 与 qr 可能单独出现，也可能同时出现。"""
    connection: Literal["connecting", "open", "close"] | None = None
    qr: str | None = None
    status_code: int | None = None
    error: str | None = None


@dataclass
class CredentialsUpdate:
    """凭据轮换事件，携带完整的最新凭据状态。"""
    credentials: dict[str, Any]


@dataclass
class MessagesUpsert:
    """新消息到达事件。messages 为协议库原始消息字典列表。"""
    messages: list[dict[str, Any]]
    type: str = "notify"


@dataclass
class MessageStatusUpdate:
    """已发送消息的投递状态变化。"""
    updates: list[dict[str, Any]] = field(default_factory=list)


SessionUpdate = ConnectionUpdate | CredentialsUpdate | MessagesUpsert | MessageStatusUpdate

EventCallback = Callable[[SessionUpdate], Awaitable[None]]


@dataclass
class SendResult:
    """网络对发送请求的确认。"""
    message_id: str | None
    remote_jid: str
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


class WhatsAppSession(Protocol):
    """
    一条活动的 WhatsApp 会话（由会话管理器独占持有）。

    所有网络调用都是异步的；失败时抛出异常，由会话管理器决定是否吞掉。
    """

    user: dict[str, Any] | None

    async def start(self) -> None:
        """建立连接。连接结果通过 ConnectionUpdate 事件异步通知。"""

    async def end(self) -> None:
        """结束会话并释放连接。"""

    async def send_message(self, jid: str, payload: dict[str, Any], options: dict[str, Any]) -> SendResult:
        """发送一条消息负载。"""

    async def read_messages(self, keys: list[dict[str, Any]]) -> None:
        """将指定消息标记为已读。"""

    async def profile_picture_url(self, jid: str) -> str | None:
        """查询头像地址。"""

    async def on_whatsapp(self, number: str) -> list[dict[str, Any]]:
        """查询号码是否注册了 WhatsApp。返回 [{"jid":..., "exists": bool}]。"""

    async def update_profile_name(self, name: str) -> None:
        ...

    async def update_profile_status(self, status: str) -> None:
        ...

    async def update_profile_picture(self, jid: str, image: bytes) -> None:
        ...

    async def set_read_receipts(self, mode: str) -> None:
        """设置已读回执模式（"read" 或 "played"）。"""

    async def download_media(self, message: dict[str, Any]) -> bytes:
        """下载消息中的媒体内容。"""


SessionFactory = Callable[[dict[str, Any], SessionOptions, EventCallback], WhatsAppSession]
