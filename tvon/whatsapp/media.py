"""
消息内容与媒体工具。

- build_message_payload：把调用方的 content 映射为协议库需要的消息负载
- media_content：按 MIME 类型为一段媒体字节选择 image/audio/video/document 负载
- extract_text / detect_message_type / find_media_mimetype：解析入站原始消息
- load_profile_picture：解析设置里的头像（data URL、base64、http(s) URL 或本地路径）
"""

import base64
import binascii
from pathlib import Path
from typing import Any

import httpx

VOICE_NOTE_MIMETYPE = "audio/ogg; codecs=opus"
DEFAULT_DOCUMENT_MIMETYPE = "application/octet-stream"

# 需要下载媒体的消息类型 → 对应的自动下载开关
MEDIA_MESSAGE_TYPES = {
    "imageMessage": "auto_download_media",
    "videoMessage": "auto_download_media",
    "audioMessage": "auto_download_media",
    "documentMessage": "auto_download_documents",
}


def build_message_payload(content: str | dict[str, Any]) -> dict[str, Any]:
    """
    将 send_message 的 content 映射为消息负载。

    映射规则：
    - 字符串 → 纯文本 {"text"}
    - {"image", "caption"?} → 图片 + 说明
    - {"audio"} → 语音消息（ptt），固定 opus MIME
    - {"video", "caption"?} → 视频 + 说明
    - {"document", "fileName"?, "mimetype"?} → 文档（带默认文件名和 MIME）
    - 其他字典 → 视为原始协议负载，原样透传
    """
    if isinstance(content, str):
        return {"text": content}
    if not isinstance(content, dict):
        raise TypeError(f"Unsupported message content: {type(content).__name__}")

    if content.get("image") is not None:
        return {"image": content["image"], "caption": content.get("caption") or ""}
    if content.get("audio") is not None:
        return {"audio": content["audio"], "mimetype": VOICE_NOTE_MIMETYPE, "ptt": True}
    if content.get("video") is not None:
        return {"video": content["video"], "caption": content.get("caption") or ""}
    if content.get("document") is not None:
        return {
            "document": content["document"],
            "fileName": content.get("fileName") or "document",
            "mimetype": content.get("mimetype") or DEFAULT_DOCUMENT_MIMETYPE,
        }
    return dict(content)


def media_content(
    data: bytes,
    mimetype: str,
    caption: str | None = None,
    file_name: str | None = None,
) -> dict[str, Any]:
    """按 MIME 前缀构造 content（供 send_media_message 使用）。"""
    if mimetype.startswith("image/"):
        return {"image": data, "caption": caption or ""}
    if mimetype.startswith("audio/"):
        return {"audio": data}
    if mimetype.startswith("video/"):
        return {"video": data, "caption": caption or ""}
    return {"document": data, "fileName": file_name or "document", "mimetype": mimetype}


def extract_text(message: dict[str, Any] | None) -> str:
    """取出消息文本：纯文本 → 扩展文本 → 图片说明 → 视频说明。"""
    if not message:
        return ""
    return (
        message.get("conversation")
        or (message.get("extendedTextMessage") or {}).get("text")
        or (message.get("imageMessage") or {}).get("caption")
        or (message.get("videoMessage") or {}).get("caption")
        or ""
    )


def detect_message_type(message: dict[str, Any] | None) -> str:
    """消息类型取消息体的第一个键，如 "conversation"、"imageMessage"。"""
    if not message:
        return "unknown"
    return next(iter(message), "unknown")


def find_media_mimetype(message: dict[str, Any] | None) -> str | None:
    """取出媒体消息的 MIME 类型。"""
    if not message:
        return None
    for msg_type in MEDIA_MESSAGE_TYPES:
        body = message.get(msg_type)
        if body:
            return body.get("mimetype")
    return None


async def load_profile_picture(value: str, timeout: float = 20.0) -> bytes:
    """
    解析头像设置为图片字节。

    支持：
    - data URL（"data:image/png;base64,..."）
    - http(s) URL（通过 httpx 下载）
    - 本地文件路径
    - 纯 base64 字符串

    异常:
        ValueError: 无法识别的头像值
        httpx.HTTPError: 下载失败
    """
    value = value.strip()
    if value.startswith("data:"):
        _, _, encoded = value.partition(",")
        return _b64decode(encoded)
    if value.startswith(("http://", "https://")):
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            response = await client.get(value)
            response.raise_for_status()
            return response.content
    path = Path(value).expanduser()
    if _is_file(path):
        return path.read_bytes()
    return _b64decode(value)


def _is_file(path: Path) -> bool:
    try:
        return path.is_file()
    except OSError:
        # 超长的 base64 字符串会触发 ENAMETOOLONG
        return False


def _b64decode(encoded: str) -> bytes:
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Unrecognized profile picture value: {e}") from e
