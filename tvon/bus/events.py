"""
会话事件类型定义模块 - 定义会话管理器对外广播的数据结构。

本模块定义了两类对外事件和若干辅助结构：
- MessageEvent：入站消息事件（WhatsApp → 聊天界面/工单/PIX 流程）
- StatusEvent：连接状态变化事件（连接中/已连接/已断开/等待扫码）
- SessionStatus：get_status() 返回的同步快照（状态事件 + 待发队列长度）
- OutboundRequest：断线期间排队的出站消息请求

下游消费者只通过这些结构观察会话活动，永远不直接接触底层 socket。

【设计要点】
- MessageEvent 与 StatusEvent 组成 SessionEvent 联合类型，
  由 EventDispatcher 统一分发，避免各处手写字符串类型的字典
- 事件是一次性的：构造 → 分发给所有处理器 → 丢弃，不保留所有权
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal


@dataclass(frozen=True)
class SessionIdentity:
    """
    已认证的账号身份，在连接打开时从会话中采集。

    属性:
        id: 账号 JID（如 "5514999998888:12@s.whatsapp.net"）
        name: 账号显示名称（可能为空）
        phone_number: 纯手机号（去掉 JID 后缀和设备号）
    """

    id: str
    name: str | None
    phone_number: str


@dataclass(frozen=True)
class MediaPayload:
    """入站消息附带的媒体内容。"""

    data: bytes         # 媒体原始字节
    mimetype: str | None  # MIME 类型，如 "image/jpeg"


@dataclass
class MessageEvent:
    """
    入站消息事件 - 从原始网络事件标准化而来的消息记录。

    属性:
        chat_id: 会话 JID（私聊为对方号码 JID，群聊为群 JID）
        text: 消息文本（纯文本、扩展文本或图片/视频说明文字）
        type: 消息内容类型标签，如 "conversation"、"imageMessage"
        timestamp: 消息时间戳
        is_group: 是否为群聊消息
        message_id: 网络分配的消息 ID
        sender_name: 发送者昵称（pushName）
        media: 媒体内容（下载失败或未开启自动下载时为 None）
        raw: 原始网络消息字典，供需要更多字段的消费者使用
    """

    chat_id: str
    text: str
    type: str
    timestamp: datetime
    is_group: bool = False
    message_id: str | None = None
    sender_name: str | None = None
    media: MediaPayload | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)
    kind: Literal["message"] = field(default="message", init=False)

    @property
    def phone_number(self) -> str:
        """发送方号码（去掉 JID 后缀）。"""
        return self.chat_id.split("@", 1)[0]


@dataclass
class StatusEvent:
    """
    连接状态事件 - 每次状态迁移时广播给所有状态处理器。

    属性:
        connected: 是否已连接
        connecting: 是否正在连接（包括等待扫码）
        qr: 配对二维码的原始内容，仅在等待配对期间存在
        qr_image: 二维码渲染后的 data URL（PNG），渲染失败时为 None
        identity: 已认证身份，仅在已连接时存在
    """

    connected: bool
    connecting: bool
    qr: str | None = None
    qr_image: str | None = None
    identity: SessionIdentity | None = None
    kind: Literal["status"] = field(default="status", init=False)


SessionEvent = MessageEvent | StatusEvent


@dataclass
class SessionStatus:
    """get_status() 的同步快照。"""

    connected: bool
    connecting: bool
    qr: str | None
    qr_image: str | None
    identity: SessionIdentity | None
    pending_queue_size: int
    reconnect_attempts: int = 0

    def to_dict(self) -> dict[str, Any]:
        """转换为 camelCase 字典，供 HTTP 层直接序列化返回。"""
        return {
            "isConnected": self.connected,
            "isConnecting": self.connecting,
            "qr": self.qr_image or self.qr,
            "userProfile": {
                "id": self.identity.id,
                "name": self.identity.name,
                "phoneNumber": self.identity.phone_number,
            } if self.identity else None,
            "queueSize": self.pending_queue_size,
        }


@dataclass
class OutboundRequest:
    """
    出站消息请求 - 未连接时调用 send_message 产生，进入待发队列。

    属性:
        to: 目标号码或 JID（调用方传入的原始形式）
        content: 文本字符串，或包含 image/audio/video/document 的字典
        options: 透传给底层会话的发送选项（如 quoted 引用消息）
        created_at: 入队时间
    """

    to: str
    content: str | dict[str, Any]
    options: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)
