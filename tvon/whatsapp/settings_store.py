"""
行为设置存储模块 - 读写运营方配置的 WhatsApp 行为设置。

设置文件为 camelCase 的扁平 JSON（与后台设置页面字段一致），例如：
    {"markMessagesRead": true, "reconnectInterval": 5000, "logLevel": "info"}

没有持久化记录时 load() 返回 None，由会话管理器回退到默认设置。
"""

import json
from pathlib import Path
from typing import Protocol

from loguru import logger
from pydantic import ValidationError

from tvon.config.loader import convert_keys, convert_to_camel
from tvon.config.schema import WhatsAppSettings


class SettingsStore(Protocol):
    """行为设置存储协议。"""

    def load(self) -> WhatsAppSettings | None:
        ...

    def save(self, settings: WhatsAppSettings) -> None:
        ...


class JsonSettingsStore:
    """基于 JSON 文件的设置存储。"""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> WhatsAppSettings | None:
        """
        读取设置。

        返回:
            设置对象；文件不存在返回 None。
        异常:
            文件存在但内容无效时抛出 ValueError（由调用方记录并降级）
        """
        if not self.path.exists():
            return None
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            return WhatsAppSettings.model_validate(convert_keys(data))
        except (json.JSONDecodeError, ValidationError) as e:
            raise ValueError(f"Invalid WhatsApp settings in {self.path}: {e}") from e

    def save(self, settings: WhatsAppSettings) -> None:
        """以 camelCase 写入设置文件。"""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = convert_to_camel(settings.model_dump())
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        logger.debug(f"WhatsApp settings saved to {self.path}")


class MemorySettingsStore:
    """内存设置存储（嵌入到已有数据库层时，由上层在启动时填充）。"""

    def __init__(self, settings: WhatsAppSettings | None = None):
        self.settings = settings

    def load(self) -> WhatsAppSettings | None:
        return self.settings

    def save(self, settings: WhatsAppSettings) -> None:
        self.settings = settings
