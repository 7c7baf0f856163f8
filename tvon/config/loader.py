"""
配置文件读写 (config/loader.py)

config.json 和行为设置文件在磁盘上都使用 camelCase 键名（与后台数据库字段一致），
Python 内部统一使用 snake_case：读取时 convert_keys，写入时 convert_to_camel。
JsonSettingsStore 复用同一套转换。
"""

import json
import re
from pathlib import Path
from typing import Any, Callable

from loguru import logger

from tvon.config.schema import Config

_UPPER_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def get_config_path() -> Path:
    """默认配置文件: ~/.tvon/config.json"""
    return Path.home() / ".tvon" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    读取配置文件。

    文件不存在时返回默认配置；JSON 损坏或字段校验失败时记录警告并同样返回默认配置，
    保证 CLI 和进程入口总能启动。

    参数:
        config_path: 配置文件路径，默认 ~/.tvon/config.json

    返回:
        Config 实例
    """
    path = config_path or get_config_path()
    if not path.exists():
        return Config()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return Config.model_validate(convert_keys(data))
    except ValueError as e:
        # JSONDecodeError 和 ValidationError 都是 ValueError 的子类
        logger.warning(f"Invalid config at {path}, using defaults: {e}")
        return Config()


def save_config(config: Config, config_path: Path | None = None) -> Path:
    """
    以 camelCase 键名写出配置（带缩进，便于手工编辑）。

    返回:
        实际写入的路径
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    data = convert_to_camel(config.model_dump())
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    logger.debug(f"Config saved to {path}")
    return path


def camel_to_snake(name: str) -> str:
    """"reconnectInterval" → "reconnect_interval"，"requestTimeoutS" → "request_timeout_s" """
    return _UPPER_BOUNDARY.sub("_", name).lower()


def snake_to_camel(name: str) -> str:
    """"mark_messages_read" → "markMessagesRead" """
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def convert_keys(data: Any) -> Any:
    """递归地把所有字典键从 camelCase 转为 snake_case（用于读取）。"""
    return _rename_keys(data, camel_to_snake)


def convert_to_camel(data: Any) -> Any:
    """递归地把所有字典键从 snake_case 转为 camelCase（用于写入）。"""
    return _rename_keys(data, snake_to_camel)


def _rename_keys(data: Any, rename: Callable[[str], str]) -> Any:
    if isinstance(data, dict):
        return {rename(key): _rename_keys(value, rename) for key, value in data.items()}
    if isinstance(data, list):
        return [_rename_keys(item, rename) for item in data]
    return data
