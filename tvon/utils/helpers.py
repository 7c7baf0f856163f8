"""
通用辅助函数。

- ensure_dir：凭据目录等运行时目录的创建
- truncate_string：日志里截断过长的桥接原始消息
- from_unix_timestamp：解析网络消息里的 Unix 时间戳
"""

from datetime import datetime
from pathlib import Path
from typing import Any


def ensure_dir(path: Path) -> Path:
    """递归创建目录（已存在时不报错），返回该目录。"""
    path.mkdir(parents=True, exist_ok=True)
    return path


def truncate_string(s: str, max_len: int = 100, suffix: str = "...") -> str:
    """超过 max_len 时截断并加上 suffix，结果总长度不超过 max_len。"""
    if len(s) > max_len:
        return s[: max_len - len(suffix)] + suffix
    return s


def from_unix_timestamp(value: Any) -> datetime:
    """
    将网络消息中的 Unix 秒级时间戳转换为 datetime。

    时间戳可能是 int、数字字符串，或 {"low": ..., "high": ...} 形式的 Long 对象；
    无法解析时返回当前时间。
    """
    if isinstance(value, dict):
        value = (value.get("high", 0) << 32) + value.get("low", 0)
    try:
        return datetime.fromtimestamp(int(value))
    except (TypeError, ValueError, OverflowError, OSError):
        return datetime.now()
