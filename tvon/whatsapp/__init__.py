"""
WhatsApp 会话模块 - tvon 的核心。

本模块提供：
- WhatsAppSessionManager：会话生命周期、重连状态机、事件分发、出站排队
- BridgeSession / bridge_session_factory：基于 Node.js 桥接服务的会话实现
- FileCredentialStore：凭据持久化
- JsonSettingsStore：运营方行为设置持久化
- format_phone_number：号码 → JID 规范化
"""

from tvon.whatsapp.bridge import BridgeSession, bridge_session_factory
from tvon.whatsapp.credentials import CredentialStore, FileCredentialStore
from tvon.whatsapp.errors import BridgeError, DeliveryError, InitializationError, WhatsAppError
from tvon.whatsapp.manager import SettingResult, WhatsAppSessionManager
from tvon.whatsapp.phone import format_phone_number
from tvon.whatsapp.session import DisconnectReason, SendResult, SessionOptions, WhatsAppSession
from tvon.whatsapp.settings_store import JsonSettingsStore, MemorySettingsStore, SettingsStore

__all__ = [
    "BridgeError",
    "BridgeSession",
    "CredentialStore",
    "DeliveryError",
    "DisconnectReason",
    "FileCredentialStore",
    "InitializationError",
    "JsonSettingsStore",
    "MemorySettingsStore",
    "SendResult",
    "SessionOptions",
    "SettingResult",
    "SettingsStore",
    "WhatsAppError",
    "WhatsAppSession",
    "WhatsAppSessionManager",
    "bridge_session_factory",
    "create_manager",
    "format_phone_number",
]


def create_manager(config=None) -> WhatsAppSessionManager:
    """
    按配置组装会话管理器（进程入口调用一次，再注入给各消费者）。

    参数:
        config: 根配置；为 None 时从 ~/.tvon/config.json 加载
    """
    from tvon.config.loader import load_config

    config = config or load_config()
    return WhatsAppSessionManager(
        config=config,
        session_factory=bridge_session_factory(config.bridge),
        credential_store=FileCredentialStore(config.auth_path),
        settings_store=JsonSettingsStore(config.settings_file),
    )
