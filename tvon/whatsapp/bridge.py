"""
WhatsApp 桥接会话实现 - 通过 Node.js 桥接服务与 WhatsApp 通信。

架构特点：
- 桥接模式：Python <-> WebSocket <-> Node.js Bridge <-> WhatsApp Web
- 桥接服务负责 WhatsApp Web 协议本身（配对、加解密、收发），
  本模块只做 JSON 消息交换，对会话管理器暴露 WhatsAppSession 协议
- 一条 BridgeSession 对应一条桥接 WebSocket 连接；断线后由会话管理器
  创建新的 BridgeSession，本类自身不重连

消息协议（Python <-> Bridge）：
- auth：发送认证令牌（配置了 token 时）
- start：携带持久化凭据和会话参数，要求桥接建立 WhatsApp 会话
- request / response：按 id 关联的请求-响应（发送消息、查头像、查号码等）
- event：桥接转发的协议库事件（connection.update、creds.update、
  messages.upsert、messages.update）
- error：桥接报告的错误

二进制内容（图片、语音、文档、下载的媒体）在 JSON 中以
{"$base64": "..."} 形式传输。

依赖：
- websockets：Python WebSocket 客户端库
"""

import asyncio
import base64
import json
import uuid
from typing import Any

import websockets
from loguru import logger

from tvon.config.schema import BridgeConfig
from tvon.utils.helpers import truncate_string
from tvon.whatsapp.errors import BridgeError
from tvon.whatsapp.session import (
    ConnectionUpdate,
    CredentialsUpdate,
    DisconnectReason,
    EventCallback,
    MessagesUpsert,
    MessageStatusUpdate,
    SendResult,
    SessionFactory,
    SessionOptions,
    SessionUpdate,
)

BASE64_KEY = "$base64"


class BridgeSession:
    """
    基于桥接服务的 WhatsApp 会话。

    属性:
        config: 桥接连接配置
        user: 已认证账号信息（连接打开后由桥接提供）
        _ws: WebSocket 连接对象
        _reader: 读取循环任务（只负责读取，响应就地完成）
        _events: 待投递的会话事件队列
        _dispatcher: 事件投递任务（按到达顺序逐个 await 会话管理器回调）
        _pending: 等待响应的请求 {请求 id: Future}
        _closing: 是否正在主动关闭（主动关闭时不再上报断线事件）
    """

    def __init__(
        self,
        config: BridgeConfig,
        credentials: dict[str, Any],
        options: SessionOptions,
        on_event: EventCallback,
    ):
        self.config = config
        self.user: dict[str, Any] | None = None
        self._credentials = credentials
        self._options = options
        self._on_event = on_event
        self._ws = None
        self._reader: asyncio.Task | None = None
        self._events: asyncio.Queue[SessionUpdate] = asyncio.Queue()
        self._dispatcher: asyncio.Task | None = None
        self._pending: dict[str, asyncio.Future] = {}
        self._closing = False

    async def start(self) -> None:
        """
        连接桥接服务并请求建立 WhatsApp 会话。

        流程：
        1. 建立 WebSocket 连接
        2. 发送认证令牌（如果配置了）
        3. 发送 start 指令（凭据 + 会话参数）
        4. 启动读取循环，后续连接结果通过 connection.update 事件上报
        """
        logger.info(f"Connecting to WhatsApp bridge at {self.config.url}...")
        self._ws = await websockets.connect(
            self.config.url,
            open_timeout=self._options.connect_timeout_ms / 1000,
            max_size=None,
        )
        if self.config.token:
            await self._send_json({"type": "auth", "token": self.config.token})
        await self._send_json({
            "type": "start",
            "credentials": self._credentials,
            "options": self._options.to_dict(),
        })
        self._reader = asyncio.create_task(self._read_loop(), name="whatsapp-bridge-reader")
        self._dispatcher = asyncio.create_task(self._dispatch_loop(), name="whatsapp-bridge-events")
        logger.info("Connected to WhatsApp bridge")

    async def end(self) -> None:
        """关闭桥接连接，取消读取循环，并让所有未完成的请求失败。"""
        self._closing = True
        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await self._send_json({"type": "end"}, ws)
            except Exception as e:
                logger.debug(f"Bridge end notification failed: {e}")
            await ws.close()
        current = asyncio.current_task()
        for task in (self._reader, self._dispatcher):
            if task and not task.done() and task is not current:
                task.cancel()
        self._reader = self._dispatcher = None
        self._fail_pending(BridgeError("WhatsApp bridge session closed"))

    # ------------------------------------------------------------------
    # WhatsAppSession 能力
    # ------------------------------------------------------------------

    async def send_message(self, jid: str, payload: dict[str, Any], options: dict[str, Any]) -> SendResult:
        result = await self._request("sendMessage", {
            "jid": jid,
            "content": encode_binary(payload),
            "options": encode_binary(options),
        })
        key = (result or {}).get("key") or {}
        return SendResult(message_id=key.get("id"), remote_jid=key.get("remoteJid", jid), raw=result or {})

    async def read_messages(self, keys: list[dict[str, Any]]) -> None:
        await self._request("readMessages", {"keys": keys})

    async def profile_picture_url(self, jid: str) -> str | None:
        return await self._request("profilePictureUrl", {"jid": jid, "type": "image"})

    async def on_whatsapp(self, number: str) -> list[dict[str, Any]]:
        return await self._request("onWhatsApp", {"numbers": [number]}) or []

    async def update_profile_name(self, name: str) -> None:
        await self._request("updateProfileName", {"name": name})

    async def update_profile_status(self, status: str) -> None:
        await self._request("updateProfileStatus", {"status": status})

    async def update_profile_picture(self, jid: str, image: bytes) -> None:
        await self._request("updateProfilePicture", {"jid": jid, "image": encode_binary(image)})

    async def set_read_receipts(self, mode: str) -> None:
        await self._request("setReadReceipts", {"mode": mode})

    async def download_media(self, message: dict[str, Any]) -> bytes:
        result = await self._request("downloadMediaMessage", {"message": message})
        data = decode_binary(result)
        if not isinstance(data, bytes):
            raise BridgeError("Bridge returned no media content")
        return data

    # ------------------------------------------------------------------
    # 传输
    # ------------------------------------------------------------------

    async def _send_json(self, payload: dict[str, Any], ws=None) -> None:
        ws = ws or self._ws
        if ws is None:
            raise BridgeError("WhatsApp bridge not connected")
        await ws.send(json.dumps(payload))

    async def _request(self, method: str, params: dict[str, Any]) -> Any:
        """
        发送请求并等待桥接返回对应 id 的响应。

        异常:
            BridgeError: 未连接、桥接返回错误或连接在等待期间关闭
            asyncio.TimeoutError: 超过 request_timeout_s 未收到响应
        """
        if self._ws is None or self._closing:
            raise BridgeError("WhatsApp bridge not connected")

        request_id = uuid.uuid4().hex
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._send_json({"type": "request", "id": request_id, "method": method, "params": params})
            return await asyncio.wait_for(future, timeout=self.config.request_timeout_s)
        finally:
            self._pending.pop(request_id, None)

    async def _read_loop(self) -> None:
        """
        读取循环：逐条处理桥接消息。

        响应在这里直接完成对应的 Future；事件只入队，由 _dispatch_loop 投递。
        事件回调会再发起桥接请求（应用设置、下载媒体），不能在读取循环里 await 回调。
        连接意外断开时上报 CONNECTION_LOST 关闭事件。
        """
        ws = self._ws
        try:
            async for raw in ws:
                try:
                    await self._handle_bridge_message(raw)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Error handling bridge message: {e}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"WhatsApp bridge connection error: {e}")

        self._fail_pending(BridgeError("WhatsApp bridge connection lost"))
        if not self._closing:
            self._events.put_nowait(ConnectionUpdate(
                connection="close",
                status_code=DisconnectReason.CONNECTION_LOST,
                error="bridge connection lost",
            ))

    async def _dispatch_loop(self) -> None:
        """按到达顺序逐个投递事件，每个事件的回调结束后才投递下一个。"""
        while not self._closing:
            update = await self._events.get()
            try:
                await self._on_event(update)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error handling WhatsApp event {type(update).__name__}: {e}")

    async def _handle_bridge_message(self, raw: str | bytes) -> None:
        """
        处理桥接发来的一条消息。

        根据 type 字段分发：
        - response：完成对应的请求 Future
        - event：转换为 SessionUpdate 放入事件队列
        - error：记录桥接报告的错误
        """
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Invalid JSON from bridge: {truncate_string(str(raw))}")
            return

        msg_type = data.get("type")

        if msg_type == "response":
            future = self._pending.get(data.get("id"))
            if future is None or future.done():
                return
            if data.get("ok", True):
                future.set_result(data.get("result"))
            else:
                future.set_exception(BridgeError(data.get("error") or "bridge request failed"))

        elif msg_type == "event":
            update = parse_bridge_event(data.get("event"), data.get("data"))
            if update is None:
                logger.debug(f"Ignoring bridge event {data.get('event')}")
                return
            if isinstance(update, ConnectionUpdate) and update.connection == "open":
                self.user = (data.get("data") or {}).get("user") or self.user
            self._events.put_nowait(update)

        elif msg_type == "error":
            logger.error(f"WhatsApp bridge error: {data.get('error')}")

    def _fail_pending(self, error: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()


def parse_bridge_event(name: str | None, data: Any) -> SessionUpdate | None:
    """把桥接事件转换为 SessionUpdate；未知事件返回 None。"""
    if name == "connection.update":
        data = data or {}
        last = data.get("lastDisconnect") or {}
        return ConnectionUpdate(
            connection=data.get("connection"),
            qr=data.get("qr"),
            status_code=last.get("statusCode"),
            error=last.get("error"),
        )
    if name == "creds.update":
        return CredentialsUpdate(credentials=data or {})
    if name == "messages.upsert":
        data = data or {}
        return MessagesUpsert(messages=data.get("messages") or [], type=data.get("type", "notify"))
    if name == "messages.update":
        return MessageStatusUpdate(updates=data if isinstance(data, list) else [])
    return None


def encode_binary(value: Any) -> Any:
    """递归地把 bytes 转换为 {"$base64": ...}，以便放进 JSON。"""
    if isinstance(value, (bytes, bytearray)):
        return {BASE64_KEY: base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, dict):
        return {k: encode_binary(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_binary(v) for v in value]
    return value


def decode_binary(value: Any) -> Any:
    """encode_binary 的逆操作。"""
    if isinstance(value, dict):
        if set(value) == {BASE64_KEY}:
            return base64.b64decode(value[BASE64_KEY])
        return {k: decode_binary(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_binary(v) for v in value]
    return value


def bridge_session_factory(config: BridgeConfig) -> SessionFactory:
    """
    创建绑定了桥接配置的会话工厂，供 WhatsAppSessionManager 使用。

    参数:
        config: 桥接连接配置

    返回:
        (credentials, options, on_event) -> BridgeSession 的工厂函数
    """
    def factory(credentials: dict[str, Any], options: SessionOptions, on_event: EventCallback) -> BridgeSession:
        return BridgeSession(config, credentials, options, on_event)

    return factory
