"""
凭据存储模块 - 持久化会话密钥材料，使重启后无需重新扫码。

契约：
- 首次使用前必须创建存储目录（ensure）
- 启动时加载（load），每次凭据轮换时保存（save）
- 保存必须足够"同步"：保存返回后立即崩溃也不能丢失最新一次轮换

FileCredentialStore 的写入流程：写临时文件 → fsync → os.replace 原子替换，
保证磁盘上永远是一份完整的凭据文件。凭据内容对本模块不透明。
"""

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Protocol

from loguru import logger

from tvon.utils.helpers import ensure_dir

CREDS_FILENAME = "creds.json"


class CredentialStore(Protocol):
    """凭据存储协议。"""

    def ensure(self) -> None:
        ...

    def load(self) -> dict[str, Any]:
        ...

    def save(self, credentials: dict[str, Any]) -> None:
        ...

    def delete(self) -> None:
        ...


class FileCredentialStore:
    """
    基于目录的凭据存储。

    属性:
        directory: 凭据目录
        path: 凭据文件路径（directory/creds.json）
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.path = self.directory / CREDS_FILENAME

    def ensure(self) -> None:
        """确保凭据目录存在。"""
        ensure_dir(self.directory)

    def exists(self) -> bool:
        """是否已有持久化的凭据（即之前配对过）。"""
        return self.path.exists()

    def load(self) -> dict[str, Any]:
        """
        加载凭据。

        文件不存在时返回空字典（新会话，需要扫码配对）；
        文件损坏时记录警告并同样返回空字典。
        """
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to load credentials from {self.path}: {e}")
            return {}

    def save(self, credentials: dict[str, Any]) -> None:
        """原子地写入凭据并刷盘。"""
        self.ensure()
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=".creds-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(credentials, f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise
        logger.debug(f"Credentials saved to {self.path}")

    def delete(self) -> None:
        """删除整个凭据目录（不存在时视为成功）。"""
        if self.directory.exists():
            shutil.rmtree(self.directory)
