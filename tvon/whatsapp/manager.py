"""
WhatsApp 会话管理器 - 维护唯一一条自动重连的 WhatsApp 会话。

本模块是 tvon 的核心，负责：
- 会话生命周期：initialize() 建立会话，disconnect() / 登出时清理
- 连接状态机：disconnected → connecting → connected → connecting | disconnected
- 扫码配对：收到配对负载后渲染二维码并广播状态
- 凭据持久化：凭据轮换事件到达时立即落盘
- 事件分发：入站消息和状态变化通过 EventDispatcher 广播给所有订阅者
- 出站排队：未连接时 send_message 只入队，连接打开后按 FIFO 顺序补发
- 辅助查询：号码是否注册、头像地址、已读回执

状态机驱动事件（来自底层会话的 SessionUpdate）：
- ConnectionUpdate(qr)            → 保存二维码，广播 connecting 状态
- ConnectionUpdate(connecting)    → 广播 connecting 状态
- ConnectionUpdate(close)         → 按断线原因分类：登出则清理，其余安排重连
- ConnectionUpdate(open)          → 记录身份、应用设置、广播、补发队列
- MessagesUpsert                  → 过滤自己发出的/广播消息，标准化后广播
- CredentialsUpdate               → 立即持久化凭据
- MessageStatusUpdate             → 记录投递状态

并发模型：
    单个 asyncio 事件循环。底层会话按到达顺序逐个 await 事件回调，
    因此每个事件的处理相对其他事件是原子的；重连等待与补发节奏都是
    定时任务而非阻塞等待。

使用方式：
    由进程入口构造一次，再注入给 HTTP 路由、聊天桥接等消费者，
    不使用模块级单例。
"""

import asyncio
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Any, Awaitable, Callable

from loguru import logger

from tvon.bus.events import (
    MediaPayload,
    MessageEvent,
    OutboundRequest,
    SessionIdentity,
    SessionStatus,
    StatusEvent,
)
from tvon.bus.registry import EventDispatcher, Handler
from tvon.config.schema import Config, WhatsAppSettings
from tvon.utils.helpers import from_unix_timestamp
from tvon.utils.scheduler import DelayedCall
from tvon.whatsapp.credentials import CredentialStore
from tvon.whatsapp.errors import DeliveryError, InitializationError
from tvon.whatsapp.media import (
    MEDIA_MESSAGE_TYPES,
    build_message_payload,
    detect_message_type,
    extract_text,
    find_media_mimetype,
    load_profile_picture,
    media_content,
)
from tvon.whatsapp.phone import (
    format_phone_number,
    is_broadcast_jid,
    is_group_jid,
    jid_to_number,
)
from tvon.whatsapp.qr import render_qr_data_url
from tvon.whatsapp.session import (
    ConnectionUpdate,
    CredentialsUpdate,
    DisconnectReason,
    MessagesUpsert,
    MessageStatusUpdate,
    SendResult,
    SessionFactory,
    SessionOptions,
    SessionUpdate,
    WhatsAppSession,
    is_recoverable,
)
from tvon.whatsapp.settings_store import SettingsStore


@dataclass
class SettingResult:
    """单个设置子步骤的应用结果。"""
    field: str
    ok: bool
    error: str | None = None


class WhatsAppSessionManager:
    """
    WhatsApp 会话管理器。

    属性:
        config: 部署配置（桥接参数、号码规则、补发间隔）
        settings: 当前生效的运营方行为设置快照
        events: 事件分发器（消息/状态两个处理器注册表）
        last_settings_results: 最近一次应用设置的逐项结果
        _session: 当前活动会话（至多一个）
        _queue: 待发消息 FIFO 队列
        _reconnect: 重连延迟任务（disconnect() 时取消）
        _generation: 会话代数，用于丢弃已被替换的旧会话发来的事件
    """

    def __init__(
        self,
        config: Config,
        session_factory: SessionFactory,
        credential_store: CredentialStore,
        settings_store: SettingsStore,
    ):
        self.config = config
        self.settings = WhatsAppSettings()
        self.events = EventDispatcher()
        self.last_settings_results: list[SettingResult] = []

        self._session_factory = session_factory
        self._credentials = credential_store
        self._settings_store = settings_store

        self._session: WhatsAppSession | None = None
        self._generation = 0
        self._connected = False
        self._connecting = False
        self._qr: str | None = None
        self._qr_image: str | None = None
        self._identity: SessionIdentity | None = None

        self._queue: deque[OutboundRequest] = deque()
        self._drain_task: asyncio.Task | None = None

        self._reconnect = DelayedCall("whatsapp-reconnect")
        self._reconnect_attempts = 0
        self._last_error: Exception | None = None

    # ------------------------------------------------------------------
    # 生命周期
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._connected and self._session is not None

    @property
    def reconnect_pending(self) -> bool:
        """是否有已安排但尚未执行的重连。"""
        return self._reconnect.pending

    async def initialize(self) -> bool:
        """
        建立（或重新建立）WhatsApp 会话。

        流程：
        1. 已在连接中则直接返回（防止产生重复会话）
        2. 取消已安排的重连，清除旧二维码，确保凭据目录存在
        3. 加载行为设置（无记录时使用默认值）和凭据
        4. 结束可能残留的旧会话，创建并启动新会话
        5. 连接结果由 ConnectionUpdate 事件异步驱动

        失败处理：
        - 重试次数未耗尽：记录日志，按 reconnect_interval 安排下一次 initialize()，返回 False
        - 重试次数已耗尽：抛出 InitializationError，需要调用方手动重新 initialize()

        返回:
            True 表示会话已创建并启动，False 表示本次被忽略或已安排重试
        """
        if self._connecting:
            logger.warning("WhatsApp is already connecting, ignoring initialize()")
            return False

        logger.info("Starting WhatsApp initialization...")
        # 手动 initialize() 取代尚未触发的重连；由重连任务自身调用时不会取消自己
        self._reconnect.cancel()
        self._connecting = True
        self._qr = None
        self._qr_image = None

        try:
            self._credentials.ensure()
            self._load_settings()
            credentials = self._credentials.load()
            await self._end_session()

            self._generation += 1
            on_event = partial(self._handle_update, self._generation)
            session = self._session_factory(credentials, self._build_options(), on_event)
            self._session = session
            await session.start()

            self._reconnect_attempts = 0
            self._last_error = None
            logger.info("WhatsApp session created, waiting for connection")
            return True

        except asyncio.CancelledError:
            self._connecting = False
            raise
        except Exception as e:
            logger.error(f"Failed to initialize WhatsApp: {e}")
            self._connecting = False
            self._last_error = e
            await self._end_session()

            max_retries = self.settings.max_reconnect_retries
            if self._reconnect_attempts < max_retries:
                self._reconnect_attempts += 1
                delay = self.settings.reconnect_delay_s
                logger.info(
                    f"Retrying WhatsApp initialization in {delay}s "
                    f"(attempt {self._reconnect_attempts}/{max_retries})"
                )
                self._reconnect.schedule(delay, self.initialize)
                return False

            raise InitializationError(
                f"WhatsApp initialization failed after {self._reconnect_attempts} retries: {e}",
                attempts=self._reconnect_attempts,
            ) from e

    async def disconnect(self) -> None:
        """
        主动断开会话。

        先取消已安排的重连和正在进行的补发，再结束会话并清理所有会话级状态。
        可重复调用。
        """
        logger.info("Disconnecting WhatsApp...")
        self._reconnect.cancel()
        self._cancel_drain()
        await self._end_session()
        self.cleanup()
        logger.info("WhatsApp disconnected")

    async def delete_auth_info(self) -> bool:
        """
        删除持久化凭据并重置会话状态（登出 / 重新扫码场景）。

        返回:
            True 表示删除成功
        """
        logger.info("Deleting WhatsApp authentication info...")
        try:
            self._reconnect.cancel()
            self._cancel_drain()
            await self._end_session()
            self._credentials.delete()
        except Exception as e:
            logger.error(f"Failed to delete WhatsApp authentication info: {e}")
            return False
        self.cleanup()
        logger.info("WhatsApp authentication info deleted")
        return True

    def cleanup(self) -> None:
        """
        清理所有会话级状态。

        在不可恢复断线、主动 disconnect() 和删除凭据时调用：
        丢弃会话引用、二维码、连接标志、身份、待发队列（直接丢弃，不补发），
        重置重试计数，并清空消息/状态两个处理器注册表。
        """
        self._generation += 1
        self._session = None
        self._qr = None
        self._qr_image = None
        self._connecting = False
        self._connected = False
        self._identity = None
        if self._queue:
            logger.warning(f"Discarding {len(self._queue)} queued WhatsApp messages")
        self._queue.clear()
        self._cancel_drain()
        self._reconnect.cancel()
        self._reconnect_attempts = 0
        self.events.clear()

    async def reload_settings(self) -> list[SettingResult]:
        """重新读取行为设置；已连接时立即应用到当前会话。"""
        self._load_settings()
        if self.is_connected:
            return await self.apply_settings()
        return []

    # ------------------------------------------------------------------
    # 订阅
    # ------------------------------------------------------------------

    def on_message(self, handler: Handler[MessageEvent]) -> Callable[[], None]:
        """订阅入站消息，返回取消订阅函数。"""
        return self.events.messages.add(handler)

    def on_status_change(self, handler: Handler[StatusEvent]) -> Callable[[], None]:
        """订阅连接状态变化，返回取消订阅函数。"""
        return self.events.statuses.add(handler)

    # ------------------------------------------------------------------
    # 出站消息
    # ------------------------------------------------------------------

    async def send_message(
        self,
        to: str,
        content: str | dict[str, Any],
        options: dict[str, Any] | None = None,
    ) -> SendResult | None:
        """
        发送消息。

        未连接时消息进入待发队列并立即返回 None（调用方不能假设已送达）；
        已连接时规范化地址、映射负载后交给会话发送。

        参数:
            to: 目标号码或 JID
            content: 文本，或 image/audio/video/document 字典，或原始协议负载
            options: 透传给会话的发送选项

        返回:
            网络确认（含消息 ID）；排队时为 None

        异常:
            DeliveryError: 已连接但网络拒绝发送（不会自动重试）
        """
        request = OutboundRequest(to=to, content=content, options=dict(options or {}))
        if not self.is_connected:
            self._queue.append(request)
            logger.warning(f"WhatsApp not connected, queued message to {to} (queue size: {len(self._queue)})")
            return None
        return await self._deliver(request)

    async def send_text_message(self, to: str, text: str) -> SendResult | None:
        return await self.send_message(to, text)

    async def send_media_message(
        self,
        to: str,
        data: bytes,
        mimetype: str,
        caption: str | None = None,
        file_name: str | None = None,
    ) -> SendResult | None:
        """按 MIME 类型发送图片/语音/视频/文档。"""
        return await self.send_message(to, media_content(data, mimetype, caption, file_name))

    def format_phone_number(self, number: str | int) -> str:
        """按部署的号码规则把号码规范化为 JID。"""
        return format_phone_number(number, self.config.phone)

    async def _deliver(self, request: OutboundRequest) -> SendResult:
        session = self._session
        if session is None:
            raise DeliveryError("WhatsApp session is not available", to=request.to)

        jid = self.format_phone_number(request.to)
        try:
            payload = build_message_payload(request.content)
            result = await session.send_message(jid, payload, request.options)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Failed to send WhatsApp message to {jid}: {e}")
            raise DeliveryError(f"Failed to send message to {jid}: {e}", to=jid) from e

        logger.info(f"WhatsApp message sent: {result.message_id}")
        return result

    def _start_drain(self) -> None:
        if not self._queue:
            return
        if self._drain_task and not self._drain_task.done():
            return
        self._drain_task = asyncio.create_task(self._drain_queue(), name="whatsapp-queue-drain")

    async def _drain_queue(self) -> None:
        """
        按入队顺序补发待发消息。

        每条只尝试一次，失败记录日志后继续下一条；两条之间间隔
        queue_drain_delay 以规避限流。连接在补发途中断开时停止，
        剩余消息留在队列里等待下一次连接。
        """
        logger.info(f"Processing WhatsApp message queue ({len(self._queue)} messages)...")
        sent = 0
        while self._queue and self.is_connected:
            request = self._queue.popleft()
            waited = (datetime.now() - request.created_at).total_seconds()
            logger.debug(f"Sending queued message to {request.to} (queued {waited:.1f}s ago)")
            try:
                await self._deliver(request)
                sent += 1
            except DeliveryError as e:
                logger.error(f"Error sending queued message: {e}")
            if self._queue and self.config.queue_drain_delay_s > 0:
                await asyncio.sleep(self.config.queue_drain_delay_s)
        logger.info(f"WhatsApp message queue processed ({sent} sent, {len(self._queue)} remaining)")

    async def wait_for_drain(self) -> None:
        """等待当前补发任务结束（CLI 与测试使用）。"""
        if self._drain_task:
            await asyncio.gather(self._drain_task, return_exceptions=True)

    def _cancel_drain(self) -> None:
        task = self._drain_task
        self._drain_task = None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # ------------------------------------------------------------------
    # 尽力而为的辅助操作（从不向调用方抛出异常）
    # ------------------------------------------------------------------

    async def mark_as_read(self, chat_id: str, message_ids: list[str]) -> None:
        """标记消息为已读。设置关闭或未连接时什么都不做；失败只记录日志。"""
        if not self.settings.mark_messages_read or not self.is_connected or not message_ids:
            return
        try:
            jid = self.format_phone_number(chat_id)
            keys = [{"remoteJid": jid, "id": message_id, "fromMe": False} for message_id in message_ids]
            await self._session.read_messages(keys)
            logger.debug(f"Marked {len(message_ids)} messages as read for {jid}")
        except Exception as e:
            logger.error(f"Error marking messages as read for {chat_id}: {e}")

    async def get_profile_picture(self, chat_id: str) -> str | None:
        """查询头像地址。没有头像、未连接或任何错误都返回 None。"""
        session = self._session
        if session is None:
            return None
        try:
            return await session.profile_picture_url(self.format_phone_number(chat_id))
        except Exception as e:
            logger.debug(f"No profile picture for {chat_id}: {e}")
            return None

    async def check_number_exists(self, number: str) -> bool:
        """查询号码是否注册了 WhatsApp。未连接或出错时返回 False。"""
        session = self._session
        if session is None:
            return False
        try:
            jid = self.format_phone_number(number)
            results = await session.on_whatsapp(jid_to_number(jid))
            return bool(results and results[0].get("exists"))
        except Exception as e:
            logger.error(f"Error checking WhatsApp number {number}: {e}")
            return False

    def get_status(self) -> SessionStatus:
        """当前状态的同步快照。"""
        return SessionStatus(
            connected=self.is_connected,
            connecting=self._connecting,
            qr=self._qr,
            qr_image=self._qr_image,
            identity=self._identity,
            pending_queue_size=len(self._queue),
            reconnect_attempts=self._reconnect_attempts,
        )

    # ------------------------------------------------------------------
    # 设置
    # ------------------------------------------------------------------

    def _load_settings(self) -> None:
        try:
            settings = self._settings_store.load()
        except Exception as e:
            logger.error(f"Error loading WhatsApp settings: {e}")
            return

        if settings is None:
            logger.warning("No WhatsApp settings found, using defaults")
            settings = WhatsAppSettings()
        else:
            logger.info(
                "Loaded WhatsApp settings "
                f"(profilePicture: {'[SET]' if settings.profile_picture else '[NOT SET]'}, "
                f"reconnectInterval: {settings.reconnect_interval}ms, "
                f"maxReconnectRetries: {settings.max_reconnect_retries})"
            )
        self.settings = settings

    def _build_options(self) -> SessionOptions:
        bridge = self.config.bridge
        return SessionOptions(
            browser=tuple(bridge.browser[:3]),
            connect_timeout_ms=bridge.connect_timeout_ms,
            keep_alive_interval_ms=bridge.keep_alive_interval_ms,
            default_query_timeout_ms=bridge.default_query_timeout_ms,
            sync_full_history=False,
            mark_online_on_connect=self.settings.mark_online_on_connect,
            log_level=self.settings.log_level,
        )

    async def apply_settings(self) -> list[SettingResult]:
        """
        把行为设置应用到当前会话。

        每个子步骤（账号名称、签名、头像、已读回执模式）独立执行，
        一个失败不影响其他步骤；结果逐项汇总返回并保存在 last_settings_results。
        """
        session = self._session
        if session is None:
            return []

        s = self.settings
        steps: list[tuple[str, Callable[[], Awaitable[None]]]] = []
        if s.profile_name and session.user:
            steps.append(("profileName", partial(session.update_profile_name, s.profile_name)))
        if s.profile_status:
            steps.append(("profileStatus", partial(session.update_profile_status, s.profile_status)))
        if s.profile_picture and session.user:
            steps.append(("profilePicture", partial(self._apply_profile_picture, session, s.profile_picture)))
        steps.append(("sendReadReceipts", partial(session.set_read_receipts, "read" if s.send_read_receipts else "played")))

        logger.info("Applying WhatsApp settings...")
        results: list[SettingResult] = []
        for field_name, step in steps:
            try:
                await step()
                results.append(SettingResult(field_name, True))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Failed to apply WhatsApp setting {field_name}: {e}")
                results.append(SettingResult(field_name, False, str(e)))

        failed = [r.field for r in results if not r.ok]
        if failed:
            logger.warning(f"WhatsApp settings applied with failures: {', '.join(failed)}")
        else:
            logger.info("WhatsApp settings applied")
        self.last_settings_results = results
        return results

    async def _apply_profile_picture(self, session: WhatsAppSession, value: str) -> None:
        image = await load_profile_picture(value)
        await session.update_profile_picture(session.user["id"], image)

    # ------------------------------------------------------------------
    # 状态机
    # ------------------------------------------------------------------

    async def _handle_update(self, generation: int, update: SessionUpdate) -> None:
        """底层会话事件入口。来自已被替换的旧会话的事件直接丢弃。"""
        if generation != self._generation:
            logger.debug(f"Ignoring {type(update).__name__} from a stale WhatsApp session")
            return

        if isinstance(update, ConnectionUpdate):
            await self._handle_connection_update(update)
        elif isinstance(update, CredentialsUpdate):
            self._save_credentials(update)
        elif isinstance(update, MessagesUpsert):
            await self._handle_messages_upsert(update)
        elif isinstance(update, MessageStatusUpdate):
            for item in update.updates:
                status = (item.get("update") or {}).get("status")
                if status is not None:
                    logger.debug(f"WhatsApp message {(item.get('key') or {}).get('id')} status: {status}")

    async def _handle_connection_update(self, update: ConnectionUpdate) -> None:
        if update.qr:
            logger.info("WhatsApp pairing QR code received")
            self._qr = update.qr
            try:
                self._qr_image = render_qr_data_url(update.qr)
            except Exception as e:
                logger.error(f"Error rendering QR code: {e}")
                self._qr_image = None
            await self._broadcast_status()

        if update.connection == "close":
            await self._on_connection_close(update)
        elif update.connection == "open":
            await self._on_connection_open()
        elif update.connection == "connecting":
            logger.info("Connecting to WhatsApp...")
            await self._broadcast_status()

    async def _on_connection_close(self, update: ConnectionUpdate) -> None:
        code = update.status_code
        reason = _reason_name(code)
        self._connecting = False
        self._qr = None
        self._qr_image = None
        self._identity = None
        # 旧会话已失效，结束后它的后续事件不再处理
        await self._end_session()

        if is_recoverable(code):
            delay = self.settings.reconnect_delay_s
            logger.warning(f"WhatsApp connection closed ({reason}), reconnecting in {delay}s...")
            self._reconnect.schedule(delay, self.initialize)
            await self._broadcast_status()
        else:
            logger.warning(f"WhatsApp logged out ({reason}), session terminated")
            await self._broadcast_status()
            self.cleanup()

    async def _on_connection_open(self) -> None:
        logger.info("WhatsApp connected successfully")
        self._connecting = False
        self._connected = True
        self._qr = None
        self._qr_image = None
        self._identity = _capture_identity(self._session.user if self._session else None)

        await self.apply_settings()
        await self._broadcast_status()
        self._start_drain()

    def _save_credentials(self, update: CredentialsUpdate) -> None:
        try:
            self._credentials.save(update.credentials)
        except Exception as e:
            logger.error(f"Failed to persist WhatsApp credentials: {e}")

    async def _handle_messages_upsert(self, update: MessagesUpsert) -> None:
        if not self.is_connected:
            logger.debug("Ignoring incoming messages while WhatsApp is not connected")
            return

        for raw in update.messages:
            key = raw.get("key") or {}
            if key.get("fromMe"):
                continue
            jid = key.get("remoteJid")
            if not jid or is_broadcast_jid(jid):
                continue
            try:
                event = await self._normalize_message(raw)
            except Exception as e:
                logger.error(f"Error processing incoming WhatsApp message: {e}")
                continue
            await self.events.dispatch(event)

    async def _normalize_message(self, raw: dict[str, Any]) -> MessageEvent:
        key = raw.get("key") or {}
        jid = key["remoteJid"]
        message = raw.get("message") or {}
        msg_type = detect_message_type(message)

        media = None
        setting = MEDIA_MESSAGE_TYPES.get(msg_type)
        if setting and getattr(self.settings, setting) and self._session is not None:
            try:
                data = await self._session.download_media(raw)
                media = MediaPayload(data=data, mimetype=find_media_mimetype(message))
            except Exception as e:
                logger.error(f"Error downloading WhatsApp media ({msg_type}): {e}")

        return MessageEvent(
            chat_id=jid,
            text=extract_text(message),
            type=msg_type,
            timestamp=from_unix_timestamp(raw.get("messageTimestamp")),
            is_group=is_group_jid(jid),
            message_id=key.get("id"),
            sender_name=raw.get("pushName"),
            media=media,
            raw=raw,
        )

    async def _broadcast_status(self) -> None:
        await self.events.dispatch(StatusEvent(
            connected=self.is_connected,
            connecting=self._connecting,
            qr=self._qr,
            qr_image=self._qr_image,
            identity=self._identity,
        ))

    async def _end_session(self) -> None:
        """结束当前会话（尽力而为），之后该会话的事件全部被忽略。"""
        session = self._session
        self._session = None
        self._connected = False
        self._generation += 1
        if session is None:
            return
        try:
            await session.end()
        except Exception as e:
            logger.warning(f"Error closing WhatsApp session: {e}")


def _capture_identity(user: dict[str, Any] | None) -> SessionIdentity | None:
    if not user or not user.get("id"):
        return None
    return SessionIdentity(
        id=user["id"],
        name=user.get("name") or user.get("verifiedName"),
        phone_number=jid_to_number(user["id"]),
    )


def _reason_name(code: int | None) -> str:
    try:
        return DisconnectReason(code).name.lower()
    except ValueError:
        return f"status {code}"
