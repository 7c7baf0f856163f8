"""Tests for phone number normalization"""

import pytest

from tvon.config.schema import PhoneConfig
from tvon.whatsapp.phone import (
    format_phone_number,
    is_broadcast_jid,
    is_group_jid,
    jid_to_number,
)


@pytest.mark.parametrize(
    "number, expected",
    [
        ("5514999998888", "5514999998888@s.whatsapp.net"),
        ("+55 (14) 99999-8888", "5514999998888@s.whatsapp.net"),
        ("551499998888", "5514999998888@s.whatsapp.net"),
        (5514999998888, "5514999998888@s.whatsapp.net"),
        ("14999998888", "5514999998888@s.whatsapp.net"),
        ("(14) 99999-8888", "5514999998888@s.whatsapp.net"),
        ("1499998888", "5514999998888@s.whatsapp.net"),
        ("55999998888", "5555999998888@s.whatsapp.net"),
        ("5514999998888@s.whatsapp.net", "5514999998888@s.whatsapp.net"),
        ("120363000000@g.us", "120363000000@g.us"),
    ],
)
def test_format_phone_number(number, expected):
    assert format_phone_number(number) == expected


def test_prefix_insertion_disabled():
    phone = PhoneConfig(mobile_prefix="")
    assert format_phone_number("551499998888", phone) == "551499998888@s.whatsapp.net"


def test_other_region():
    phone = PhoneConfig(country_code="351", area_code_length=0, mobile_prefix="")
    assert format_phone_number("+351 912 345 678", phone) == "351912345678@s.whatsapp.net"


def test_jid_helpers():
    assert jid_to_number("5514999998888:12@s.whatsapp.net") == "5514999998888"
    assert is_group_jid("120363000000@g.us")
    assert not is_group_jid("5514999998888@s.whatsapp.net")
    assert is_broadcast_jid("status@broadcast")
    assert is_broadcast_jid("1700000000@broadcast")
    assert not is_broadcast_jid(None)


def test_country_code_insertion_disabled():
    phone = PhoneConfig(add_country_code=False)
    assert format_phone_number("(14) 99999-8888", phone) == "14999998888@s.whatsapp.net"


def test_local_number_other_region():
    phone = PhoneConfig(country_code="351", area_code_length=0, mobile_prefix="")
    assert format_phone_number("912 345 678", phone) == "351912345678@s.whatsapp.net"
