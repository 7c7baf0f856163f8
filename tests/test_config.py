"""Tests for config loading, settings persistence and credential storage"""

import json

import pytest

from tvon.config.loader import (
    camel_to_snake,
    convert_keys,
    convert_to_camel,
    load_config,
    save_config,
    snake_to_camel,
)
from tvon.config.schema import Config, WhatsAppSettings
from tvon.whatsapp.credentials import FileCredentialStore
from tvon.whatsapp.settings_store import JsonSettingsStore


class TestConfigLoader:

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "config.json")

        assert config.bridge.url == "ws://localhost:3001"
        assert config.phone.country_code == "55"
        assert config.queue_drain_delay_s == 1.0

    def test_camel_case_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "bridge": {"url": "ws://bridge:3001", "requestTimeoutS": 5},
            "authDir": str(tmp_path / "auth"),
            "queueDrainDelayMs": 250,
        }))

        config = load_config(path)

        assert config.bridge.url == "ws://bridge:3001"
        assert config.bridge.request_timeout_s == 5
        assert config.auth_path == tmp_path / "auth"
        assert config.queue_drain_delay_s == 0.25

    def test_corrupt_file_gives_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")

        assert load_config(path).bridge.url == "ws://localhost:3001"

    def test_save_round_trip(self, tmp_path):
        path = tmp_path / "nested" / "config.json"
        save_config(Config(queue_drain_delay_ms=10), path)

        data = json.loads(path.read_text())
        assert data["queueDrainDelayMs"] == 10
        assert "connectTimeoutMs" in data["bridge"]
        assert load_config(path).queue_drain_delay_ms == 10

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("TVON_BRIDGE__URL", "ws://env-bridge:3001")
        assert Config().bridge.url == "ws://env-bridge:3001"

    def test_key_conversion(self):
        assert camel_to_snake("maxReconnectRetries") == "max_reconnect_retries"
        assert snake_to_camel("show_profile_photos_clientes") == "showProfilePhotosClientes"
        assert convert_keys({"bridge": {"keepAliveIntervalMs": 1}}) == {"bridge": {"keep_alive_interval_ms": 1}}
        assert convert_to_camel([{"log_level": "info"}]) == [{"logLevel": "info"}]


class TestWhatsAppSettings:

    def test_defaults(self):
        settings = WhatsAppSettings()

        assert settings.mark_online_on_connect is True
        assert settings.show_profile_photos_clientes is False
        assert settings.reconnect_delay_s == 5.0
        assert settings.max_reconnect_retries == 5

    def test_store_round_trip(self, tmp_path):
        store = JsonSettingsStore(tmp_path / "settings.json")
        assert store.load() is None

        store.save(WhatsAppSettings(profile_name="TV ON", reconnect_interval=3000))

        data = json.loads((tmp_path / "settings.json").read_text())
        assert data["profileName"] == "TV ON"
        assert data["reconnectInterval"] == 3000
        loaded = store.load()
        assert loaded.profile_name == "TV ON"
        assert loaded.reconnect_delay_s == 3.0

    def test_partial_file_uses_defaults(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"markMessagesRead": False}))

        settings = JsonSettingsStore(path).load()

        assert settings.mark_messages_read is False
        assert settings.auto_download_media is True

    def test_invalid_file(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"maxReconnectRetries": "many"}))

        with pytest.raises(ValueError):
            JsonSettingsStore(path).load()

    @pytest.mark.asyncio
    async def test_invalid_file_keeps_previous_settings(self, tmp_path, config, factory, credential_store):
        from tvon.whatsapp.manager import WhatsAppSessionManager

        path = tmp_path / "settings.json"
        store = JsonSettingsStore(path)
        store.save(WhatsAppSettings(reconnect_interval=0, profile_name="TV ON"))
        manager = WhatsAppSessionManager(config, factory, credential_store, store)
        await manager.initialize()
        path.write_text("{broken")

        await manager.reload_settings()

        assert manager.settings.profile_name == "TV ON"


class TestFileCredentialStore:

    def test_empty_when_missing(self, tmp_path):
        store = FileCredentialStore(tmp_path / "auth")
        assert store.load() == {}
        assert not store.exists()

    def test_save_and_load(self, tmp_path):
        store = FileCredentialStore(tmp_path / "auth")

        store.save({"noiseKey": {"private": "abc"}})
        store.save({"noiseKey": {"private": "def"}})

        assert store.exists()
        assert store.load() == {"noiseKey": {"private": "def"}}
        assert [p.name for p in store.directory.iterdir()] == ["creds.json"]

    def test_corrupt_file(self, tmp_path):
        store = FileCredentialStore(tmp_path / "auth")
        store.ensure()
        store.path.write_text("{")

        assert store.load() == {}

    def test_delete(self, tmp_path):
        store = FileCredentialStore(tmp_path / "auth")
        store.save({"a": 1})

        store.delete()
        store.delete()

        assert not store.directory.exists()
