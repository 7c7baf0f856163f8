"""
配置数据模型定义 (config/schema.py)
=================================
本模块使用 Pydantic 定义 tvon 的完整配置结构。
所有配置项都有默认值，用户只需在 config.json 中覆盖需要修改的部分。

整体配置结构（树形）：
Config (根配置)
├── bridge             - WhatsApp 桥接服务连接参数（地址、令牌、超时、保活间隔）
├── phone              - 号码规范化规则（国家码、区号长度、手机号前缀）
├── auth_dir           - 会话凭据目录
├── settings_path      - 运营方 WhatsApp 行为设置文件
└── queue_drain_delay_ms - 重连后补发排队消息的间隔

WhatsAppSettings 不属于 Config：它是运营方在后台维护的行为设置，
由 SettingsStore 单独持久化，会话管理器在 initialize() 时读取快照。
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings


# ==============================================================================
# 运营方行为设置（对应后台的 WhatsApp 设置页面）
# ==============================================================================


class WhatsAppSettings(BaseModel):
    """
    WhatsApp 行为设置快照。

    会话管理器只读使用该对象；修改由设置页面完成，
    并且只在下一次 initialize() 或 reload_settings() 时生效。
    """
    mark_online_on_connect: bool = True  # 连接后是否显示为在线
    mark_messages_read: bool = True  # 是否允许 mark_as_read 标记已读
    send_read_receipts: bool = True  # 已读回执模式：True 为 "read"，False 为 "played"
    auto_download_media: bool = True  # 是否自动下载图片/视频/音频
    auto_download_documents: bool = True  # 是否自动下载文档
    save_chat_history: bool = True  # 聊天记录是否入库（由聊天模块读取）
    fetch_client_photos: bool = True  # 是否拉取客户头像
    cache_client_photos: bool = True  # 是否缓存客户头像
    show_client_status: bool = True  # 是否显示客户在线状态
    show_profile_photos_chat: bool = True  # 聊天界面是否显示头像
    show_profile_photos_clientes: bool = False  # 客户列表是否显示头像
    profile_name: str | None = None  # 连接后设置的账号名称
    profile_status: str | None = None  # 连接后设置的账号签名
    profile_picture: str | None = None  # 头像：data URL / base64 / http(s) URL / 本地路径
    reconnect_interval: int = 5000  # 重连等待时间（毫秒）
    max_reconnect_retries: int = 5  # initialize() 连续失败后的最大自动重试次数
    log_level: str = "info"  # 日志级别（"silent" 表示关闭 tvon 日志）

    @property
    def reconnect_delay_s(self) -> float:
        """重连等待时间（秒）。"""
        return max(self.reconnect_interval, 0) / 1000


# ==============================================================================
# 部署配置
# ==============================================================================


class BridgeConfig(BaseModel):
    """WhatsApp 桥接服务配置。通过 WebSocket 连接到封装了 WhatsApp 协议库的 Node.js 服务。"""
    url: str = "ws://localhost:3001"  # 桥接服务 WebSocket 地址
    token: str = ""  # 桥接认证令牌（可选但推荐设置）
    browser: list[str] = Field(default_factory=lambda: ["TV ON Sistema", "Chrome", "1.0.0"])  # 在手机"已连接设备"中显示的名称
    connect_timeout_ms: int = 60000  # 建立会话的超时（毫秒）
    keep_alive_interval_ms: int = 10000  # 保活心跳间隔（毫秒）
    default_query_timeout_ms: int | None = None  # 网络查询超时（None 表示不限制）
    request_timeout_s: float = 30.0  # 单个桥接请求等待响应的超时（秒）


class PhoneConfig(BaseModel):
    """
    号码规范化规则。

    默认值对应巴西号码：55 + 两位区号 + 9 位手机号（以 9 开头）。
    只有区号 + 手机号（10 或 11 位）的本地号码会补上国家码；
    旧格式的 8 位手机号会被补上前缀 9。其他地区可按需调整或把
    mobile_prefix 置空来关闭补位逻辑。
    """
    country_code: str = "55"  # 国家码
    add_country_code: bool = True  # 本地长度的号码是否补国家码
    area_code_length: int = 2  # 区号位数
    mobile_prefix: str = "9"  # 手机号补位前缀（空字符串表示不补位）
    mobile_digits: int = 9  # 完整手机号位数（不含国家码和区号）


class Config(BaseSettings):
    """
    tvon 根配置类。

    聚合所有子配置，并提供凭据目录、设置文件路径等便捷属性。
    支持通过 TVON_ 前缀的环境变量覆盖，嵌套字段用 __ 分隔，
    例如 TVON_BRIDGE__URL=ws://bridge:3001。
    """
    bridge: BridgeConfig = Field(default_factory=BridgeConfig)
    phone: PhoneConfig = Field(default_factory=PhoneConfig)
    auth_dir: str = "~/.tvon/auth_info_baileys"  # 会话凭据目录
    settings_path: str = "~/.tvon/whatsapp_settings.json"  # 行为设置文件
    queue_drain_delay_ms: int = 1000  # 补发排队消息的间隔（毫秒，规避限流）

    @property
    def auth_path(self) -> Path:
        """展开后的凭据目录路径。"""
        return Path(self.auth_dir).expanduser()

    @property
    def settings_file(self) -> Path:
        """展开后的设置文件路径。"""
        return Path(self.settings_path).expanduser()

    @property
    def queue_drain_delay_s(self) -> float:
        return max(self.queue_drain_delay_ms, 0) / 1000

    model_config = ConfigDict(
        env_prefix="TVON_",
        env_nested_delimiter="__"
    )
