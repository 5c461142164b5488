from __future__ import annotations

from pathlib import Path
from typing import Iterable

from cli.config import load_config
from datastore.mapping_store import build_default_store
from services.mapping_service import build_default_mapping_service
from settings import get_settings


def _clear_caches(caches: Iterable) -> None:
    for cache in caches:
        cache.cache_clear()


def test_environment_overrides_apply(monkeypatch, tmp_path) -> None:
    store_path = tmp_path / "mappings.json"

    monkeypatch.setenv("LIVE_WS_URL", "wss://live.example.test")
    monkeypatch.setenv("LIVE_API_TOKEN", "token-123")
    monkeypatch.setenv("LIVE_RECONNECT_INTERVAL", "1.5")
    monkeypatch.setenv("LIVE_MAX_RECONNECT_ATTEMPTS", "5")
    monkeypatch.setenv("LIVE_AUTH_TIMEOUT", "2")
    monkeypatch.setenv("LIVE_HISTORY_LIMIT", "9000")
    monkeypatch.setenv("MAPPING_STORE_PATH", str(store_path))
    monkeypatch.setenv("LOG_LEVEL", "debug")

    caches = (get_settings, build_default_store, build_default_mapping_service)
    _clear_caches(caches)

    try:
        settings = get_settings()
        service = build_default_mapping_service()

        assert settings.ws_url == "wss://live.example.test"
        assert settings.api_token == "token-123"
        assert settings.reconnect_interval == 1.5
        assert settings.max_reconnect_attempts == 5
        assert settings.auth_timeout == 2.0
        assert settings.history_limit == 5000
        assert settings.log_level == "DEBUG"
        assert service.store.persistence_path == Path(store_path)
    finally:
        _clear_caches(caches)


def test_invalid_values_fall_back_to_defaults(monkeypatch) -> None:
    monkeypatch.setenv("LIVE_WS_URL", "   ")
    monkeypatch.setenv("LIVE_RECONNECT_INTERVAL", "soon")
    monkeypatch.setenv("LIVE_MAX_RECONNECT_ATTEMPTS", "-1")
    monkeypatch.setenv("LIVE_AUTH_TIMEOUT", "-3")
    monkeypatch.setenv("LIVE_HISTORY_LIMIT", "0")
    monkeypatch.setenv("MAPPING_STORE_PATH", "")
    get_settings.cache_clear()

    try:
        settings = get_settings()

        assert settings.ws_url == "ws://localhost:3001"
        assert settings.reconnect_interval == 3.0
        assert settings.max_reconnect_attempts is None
        assert settings.auth_timeout == 10.0
        assert settings.history_limit == 1000
        assert settings.mapping_store_path is None
    finally:
        get_settings.cache_clear()


def test_cli_config_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("API_BASE_URL", "http://api.example.test/")
    monkeypatch.setenv("CLI_SAMPLE_TIMEOUT", "12")
    monkeypatch.setenv("LIVE_API_TOKEN", "env-token")
    get_settings.cache_clear()

    try:
        config = load_config()
        explicit = load_config(base_url="http://other", token="flag-token", sample_timeout=1.0)
    finally:
        get_settings.cache_clear()

    assert config.base_url == "http://api.example.test"
    assert config.sample_timeout == 12.0
    assert config.token == "env-token"
    assert explicit.base_url == "http://other"
    assert explicit.token == "flag-token"
    assert explicit.sample_timeout == 1.0
