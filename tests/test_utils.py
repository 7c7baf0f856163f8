"""Tests for DelayedCall and helpers"""

import asyncio
from datetime import datetime

import pytest

from tvon.utils.helpers import from_unix_timestamp, truncate_string
from tvon.utils.scheduler import DelayedCall


class TestDelayedCall:

    @pytest.mark.asyncio
    async def test_runs_after_delay(self):
        calls = []

        async def callback():
            calls.append("ran")

        delayed = DelayedCall("test")
        delayed.schedule(0.01, callback)
        assert delayed.pending

        await delayed.wait()

        assert calls == ["ran"]
        assert not delayed.pending

    @pytest.mark.asyncio
    async def test_cancel(self):
        calls = []

        async def callback():
            calls.append("ran")

        delayed = DelayedCall("test")
        delayed.schedule(10, callback)
        delayed.cancel()
        await asyncio.sleep(0)

        assert not delayed.pending
        assert calls == []

    @pytest.mark.asyncio
    async def test_reschedule_replaces(self):
        calls = []

        async def first():
            calls.append("first")

        async def second():
            calls.append("second")

        delayed = DelayedCall("test")
        delayed.schedule(10, first)
        delayed.schedule(0, second)
        await delayed.wait()

        assert calls == ["second"]

    @pytest.mark.asyncio
    async def test_callback_error_logged(self):
        async def broken():
            raise RuntimeError("boom")

        delayed = DelayedCall("test")
        delayed.schedule(0, broken)

        await delayed.wait()

        assert not delayed.pending


def test_from_unix_timestamp():
    assert from_unix_timestamp(1_700_000_000) == datetime.fromtimestamp(1_700_000_000)
    assert from_unix_timestamp("1700000000") == datetime.fromtimestamp(1_700_000_000)
    assert from_unix_timestamp({"low": 1_700_000_000, "high": 0}) == datetime.fromtimestamp(1_700_000_000)
    assert isinstance(from_unix_timestamp(None), datetime)


def test_truncate_string():
    assert truncate_string("abc", 10) == "abc"
    assert truncate_string("abcdefghij", 6) == "abc..."
