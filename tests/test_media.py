"""Tests for message payload mapping and inbound message parsing"""

import base64

import httpx
import pytest

from tvon.whatsapp.media import (
    build_message_payload,
    detect_message_type,
    extract_text,
    find_media_mimetype,
    load_profile_picture,
    media_content,
)
from tvon.whatsapp.qr import render_qr_data_url, render_qr_terminal


class TestBuildMessagePayload:

    def test_text(self):
        assert build_message_payload("Olá") == {"text": "Olá"}

    def test_image_default_caption(self):
        assert build_message_payload({"image": b"img"}) == {"image": b"img", "caption": ""}

    def test_audio_is_voice_note(self):
        assert build_message_payload({"audio": b"ogg", "mimetype": "audio/mpeg"}) == {
            "audio": b"ogg",
            "mimetype": "audio/ogg; codecs=opus",
            "ptt": True,
        }

    def test_video(self):
        assert build_message_payload({"video": b"mp4", "caption": "tutorial"}) == {"video": b"mp4", "caption": "tutorial"}

    def test_document_defaults(self):
        assert build_message_payload({"document": b"pdf"}) == {
            "document": b"pdf",
            "fileName": "document",
            "mimetype": "application/octet-stream",
        }

    def test_raw_payload_passthrough(self):
        raw = {"location": {"degreesLatitude": -22.9, "degreesLongitude": -47.0}}
        assert build_message_payload(raw) == raw

    def test_unsupported(self):
        with pytest.raises(TypeError):
            build_message_payload(42)


@pytest.mark.parametrize(
    "mimetype, key",
    [
        ("image/jpeg", "image"),
        ("audio/ogg", "audio"),
        ("video/mp4", "video"),
        ("application/pdf", "document"),
    ],
)
def test_media_content(mimetype, key):
    assert key in media_content(b"data", mimetype)


def test_media_content_document_name():
    content = media_content(b"pdf", "application/pdf", file_name="fatura.pdf")
    assert content == {"document": b"pdf", "fileName": "fatura.pdf", "mimetype": "application/pdf"}


class TestInboundParsing:

    def test_extract_text(self):
        assert extract_text({"conversation": "oi"}) == "oi"
        assert extract_text({"extendedTextMessage": {"text": "link"}}) == "link"
        assert extract_text({"imageMessage": {"caption": "pix"}}) == "pix"
        assert extract_text({"videoMessage": {"caption": "video"}}) == "video"
        assert extract_text({"stickerMessage": {}}) == ""
        assert extract_text(None) == ""

    def test_detect_message_type(self):
        assert detect_message_type({"audioMessage": {}}) == "audioMessage"
        assert detect_message_type({}) == "unknown"

    def test_find_media_mimetype(self):
        assert find_media_mimetype({"documentMessage": {"mimetype": "application/pdf"}}) == "application/pdf"
        assert find_media_mimetype({"conversation": "oi"}) is None


class TestLoadProfilePicture:

    @pytest.mark.asyncio
    async def test_data_url(self):
        assert await load_profile_picture("data:image/png;base64,aW1n") == b"img"

    @pytest.mark.asyncio
    async def test_plain_base64(self):
        assert await load_profile_picture(base64.b64encode(b"img").decode()) == b"img"

    @pytest.mark.asyncio
    async def test_file_path(self, tmp_path):
        path = tmp_path / "logo.png"
        path.write_bytes(b"png")
        assert await load_profile_picture(str(path)) == b"png"

    @pytest.mark.asyncio
    async def test_url(self, monkeypatch):
        requested = []

        async def fake_get(self, url, **kwargs):
            requested.append(url)
            return httpx.Response(200, content=b"jpeg", request=httpx.Request("GET", url))

        monkeypatch.setattr(httpx.AsyncClient, "get", fake_get)

        assert await load_profile_picture("https://cdn.example.com/logo.jpg") == b"jpeg"
        assert requested == ["https://cdn.example.com/logo.jpg"]

    @pytest.mark.asyncio
    async def test_garbage(self):
        with pytest.raises(ValueError):
            await load_profile_picture("not a picture!")


def test_qr_rendering():
    assert render_qr_data_url("2@pairing").startswith("data:image/png;base64,")
    assert render_qr_terminal("2@pairing").strip()
