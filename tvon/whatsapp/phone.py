"""
号码与 JID 工具 - 把调用方传入的手机号规范化为 WhatsApp 地址。

WhatsApp 地址（JID）格式：
- 个人：<数字>@s.whatsapp.net
- 群组：<id>@g.us
- 广播/状态：<id>@broadcast、status@broadcast

规范化规则由 PhoneConfig 决定（默认巴西）：去掉非数字字符；
只有区号 + 手机号长度的本地号码补上国家码；
若号码以国家码开头且本地部分是旧格式的短号码（比完整手机号少一位前缀），
则在区号之后插入手机号前缀。
"""

import re

from tvon.config.schema import PhoneConfig

USER_SUFFIX = "@s.whatsapp.net"
GROUP_SUFFIX = "@g.us"
BROADCAST_SUFFIX = "@broadcast"
STATUS_BROADCAST = "status@broadcast"

_NON_DIGITS = re.compile(r"\D")


def format_phone_number(number: str | int, phone: PhoneConfig | None = None) -> str:
    """
    将号码规范化为个人 JID。

    示例（默认巴西规则）：
        "+55 (14) 99999-8888" → "5514999998888@s.whatsapp.net"
        "551499998888"        → "5514999998888@s.whatsapp.net"（补 9）
        "(14) 99999-8888"     → "5514999998888@s.whatsapp.net"（补国家码）
        "1499998888"          → "5514999998888@s.whatsapp.net"（补国家码和 9）

    已经是 JID 的输入（个人或群组）原样返回。

    参数:
        number: 号码（可带空格、括号、加号等）或 JID
        phone: 号码规则，默认 PhoneConfig()

    返回:
        个人 JID 字符串
    """
    raw = str(number).strip()
    if raw.endswith(USER_SUFFIX) or raw.endswith(GROUP_SUFFIX):
        return raw

    phone = phone or PhoneConfig()
    digits = _NON_DIGITS.sub("", raw)
    prefix_len = len(phone.country_code) + phone.area_code_length

    # 区号 + 手机号（新旧两种长度）视为本地号码，按长度判断而非开头数字（区号 55 也存在）
    full_local = phone.area_code_length + phone.mobile_digits
    if phone.add_country_code and phone.country_code and len(digits) in (
        full_local,
        full_local - len(phone.mobile_prefix),
    ):
        digits = phone.country_code + digits

    if phone.country_code and phone.mobile_prefix and digits.startswith(phone.country_code):
        local = digits[prefix_len:]
        short_len = phone.mobile_digits - len(phone.mobile_prefix)
        # 旧格式短号码：国家码 + 区号 + 8 位，补上前缀
        if len(local) == short_len:
            digits = digits[:prefix_len] + phone.mobile_prefix + local

    return f"{digits}{USER_SUFFIX}"


def jid_to_number(jid: str) -> str:
    """
    从 JID 中取出纯号码部分，同时去掉多设备后缀。

    例: "5514999998888:12@s.whatsapp.net" → "5514999998888"
    """
    user = jid.split("@", 1)[0]
    return user.split(":", 1)[0]


def is_group_jid(jid: str | None) -> bool:
    """是否为群组 JID。"""
    return bool(jid) and jid.endswith(GROUP_SUFFIX)


def is_broadcast_jid(jid: str | None) -> bool:
    """是否为广播列表或状态（Stories）JID。"""
    return bool(jid) and (jid == STATUS_BROADCAST or jid.endswith(BROADCAST_SUFFIX))
