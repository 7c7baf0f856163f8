"""
配对二维码渲染 - 把配对负载渲染成后台页面可直接显示的 PNG data URL，
或者渲染成终端里可扫描的字符画（CLI 使用）。
"""

import base64
import io

import qrcode


def _build(payload: str) -> qrcode.QRCode:
    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(payload)
    qr.make(fit=True)
    return qr


def render_qr_data_url(payload: str) -> str:
    """
    渲染为 "data:image/png;base64,..." 字符串。

    参数:
        payload: 配对二维码原始内容

    返回:
        PNG 图片的 data URL
    """
    img = _build(payload).make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"


def render_qr_terminal(payload: str) -> str:
    """渲染为终端字符画。"""
    out = io.StringIO()
    _build(payload).print_ascii(out=out, invert=True)
    return out.getvalue()
