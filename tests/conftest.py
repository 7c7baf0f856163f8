"""
测试夹具：内存假会话与会话工厂。

FakeSession 实现 WhatsAppSession 协议，记录所有网络调用，
并提供 open()/close()/qr()/incoming() 等方法模拟协议库事件，
从而以确定的顺序驱动会话管理器的状态机。
"""

from typing import Any

import pytest

from tvon.config.schema import Config, WhatsAppSettings
from tvon.whatsapp.credentials import FileCredentialStore
from tvon.whatsapp.manager import WhatsAppSessionManager
from tvon.whatsapp.session import (
    ConnectionUpdate,
    CredentialsUpdate,
    DisconnectReason,
    MessagesUpsert,
    SendResult,
)
from tvon.whatsapp.settings_store import MemorySettingsStore

OWN_JID = "5514988887777:3@s.whatsapp.net"


class FakeSession:
    def __init__(self, credentials, options, on_event):
        self.credentials = credentials
        self.options = options
        self.on_event = on_event
        self.user: dict[str, Any] | None = {"id": OWN_JID, "name": "TV ON"}
        self.started = False
        self.ended = False
        self.sent: list[tuple[str, dict, dict]] = []
        self.fail_texts: set[str] = set()
        self.send_error: Exception | None = None
        self.read_keys: list[dict] = []
        self.read_error: Exception | None = None
        self.picture_url: str | None = "https://pps.whatsapp.net/v/t61/picture.jpg"
        self.picture_error: Exception | None = None
        self.lookup: list[dict] = [{"jid": "5514999998888@s.whatsapp.net", "exists": True}]
        self.lookup_error: Exception | None = None
        self.media = b"\x89PNG fake"
        self.media_error: Exception | None = None
        self.profile_calls: list[tuple[str, Any]] = []
        self.profile_status_error: Exception | None = None

    async def start(self) -> None:
        self.started = True

    async def end(self) -> None:
        self.ended = True

    async def send_message(self, jid, payload, options):
        if self.send_error:
            raise self.send_error
        if payload.get("text") in self.fail_texts:
            raise RuntimeError(f"rejected {payload['text']}")
        self.sent.append((jid, payload, options))
        return SendResult(message_id=f"MSG{len(self.sent)}", remote_jid=jid)

    async def read_messages(self, keys):
        if self.read_error:
            raise self.read_error
        self.read_keys.extend(keys)

    async def profile_picture_url(self, jid):
        if self.picture_error:
            raise self.picture_error
        return self.picture_url

    async def on_whatsapp(self, number):
        if self.lookup_error:
            raise self.lookup_error
        return self.lookup

    async def update_profile_name(self, name):
        self.profile_calls.append(("name", name))

    async def update_profile_status(self, status):
        if self.profile_status_error:
            raise self.profile_status_error
        self.profile_calls.append(("status", status))

    async def update_profile_picture(self, jid, image):
        self.profile_calls.append(("picture", image))

    async def set_read_receipts(self, mode):
        self.profile_calls.append(("receipts", mode))

    async def download_media(self, message):
        if self.media_error:
            raise self.media_error
        return self.media

    # --- 事件模拟 ---

    async def open(self) -> None:
        await self.on_event(ConnectionUpdate(connection="open"))

    async def close(self, code: int = DisconnectReason.CONNECTION_LOST) -> None:
        await self.on_event(ConnectionUpdate(connection="close", status_code=code))

    async def qr(self, payload: str) -> None:
        await self.on_event(ConnectionUpdate(qr=payload))

    async def rotate_credentials(self, creds: dict) -> None:
        await self.on_event(CredentialsUpdate(credentials=creds))

    async def incoming(self, *messages: dict) -> None:
        await self.on_event(MessagesUpsert(messages=list(messages)))


class FakeFactory:
    """记录调用次数的会话工厂；failures > 0 时前 N 次调用抛出异常。"""

    def __init__(self):
        self.calls = 0
        self.failures = 0
        self.sessions: list[FakeSession] = []

    def __call__(self, credentials, options, on_event):
        self.calls += 1
        if self.failures:
            self.failures -= 1
            raise ConnectionError("bridge unreachable")
        session = FakeSession(credentials, options, on_event)
        self.sessions.append(session)
        return session

    @property
    def latest(self) -> FakeSession:
        return self.sessions[-1]


def raw_message(
    text: str = "Oi",
    jid: str = "5514999998888@s.whatsapp.net",
    msg_id: str = "ABC",
    timestamp: int = 1_700_000_000,
    from_me: bool = False,
    message: dict | None = None,
) -> dict:
    return {
        "key": {"remoteJid": jid, "fromMe": from_me, "id": msg_id},
        "message": message if message is not None else {"conversation": text},
        "pushName": "Cliente",
        "messageTimestamp": timestamp,
    }


async def settle(manager: WhatsAppSessionManager) -> None:
    """等待所有已安排的重连和补发完成。"""
    while manager._reconnect.pending:
        await manager._reconnect.wait()
    await manager.wait_for_drain()


@pytest.fixture
def settings():
    return WhatsAppSettings(reconnect_interval=0, max_reconnect_retries=5)


@pytest.fixture
def config(tmp_path):
    return Config(auth_dir=str(tmp_path / "auth"), queue_drain_delay_ms=0)


@pytest.fixture
def factory():
    return FakeFactory()


@pytest.fixture
def credential_store(config):
    return FileCredentialStore(config.auth_path)


@pytest.fixture
def manager(config, factory, credential_store, settings):
    return WhatsAppSessionManager(
        config=config,
        session_factory=factory,
        credential_store=credential_store,
        settings_store=MemorySettingsStore(settings),
    )
