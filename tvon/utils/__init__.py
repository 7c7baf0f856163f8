"""
工具模块。

- helpers：目录创建、字符串截断、时间戳解析
- scheduler：DelayedCall，可取消的延迟调用（重连定时器）
"""

from tvon.utils.helpers import ensure_dir, from_unix_timestamp, truncate_string
from tvon.utils.scheduler import DelayedCall

__all__ = ["DelayedCall", "ensure_dir", "from_unix_timestamp", "truncate_string"]
