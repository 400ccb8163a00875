"""Tests for settings and the hooks configuration document."""

from __future__ import annotations

import json
import logging

import memory_relevance.config as config_module
from memory_relevance.config import (
    HooksConfig,
    Settings,
    UpdaterOptions,
    get_settings,
    load_hooks_config,
)


def test_get_settings_returns_singleton(test_settings):
    assert get_settings() is test_settings


def test_env_override(monkeypatch):
    monkeypatch.setenv("MEMORY_RELEVANCE_UPDATE_THRESHOLD", "0.6")
    monkeypatch.setenv("MEMORY_RELEVANCE_DEBOUNCE_MS", "250")
    settings = Settings()
    assert settings.update_threshold == 0.6
    assert settings.debounce_ms == 250


def test_updater_options_from_settings():
    settings = Settings(update_cooldown_ms=1000, max_updates_per_session=2)
    options = UpdaterOptions.from_settings(settings)
    assert options.update_cooldown_ms == 1000
    assert options.max_updates_per_session == 2
    assert options.debounce_ms == 5000
    assert options.request_timeout_s == settings.request_timeout_s


def test_missing_file_falls_back_and_warns_once(test_settings, caplog):
    with caplog.at_level(logging.WARNING, logger="memory_relevance.config"):
        first = load_hooks_config()
        second = load_hooks_config()

    assert first == second
    assert first.memory_service.endpoint == "https://memory.test"
    assert first.memory_service.api_key == "test-key-not-real"
    assert first.hooks.topic_change.enabled
    assert first.hooks.topic_change.min_significance_score == 0.3
    warnings = [r for r in caplog.records if r.name == "memory_relevance.config"]
    assert len(warnings) == 1
    assert config_module._warned_config_fallback


def test_camel_case_document(test_settings):
    test_settings.config_path.write_text(
        json.dumps(
            {
                "memoryService": {
                    "endpoint": "https://store.example:8443",
                    "apiKey": "abc",
                    "maxMemoriesPerSession": 5,
                },
                "hooks": {
                    "topicChange": {
                        "enabled": False,
                        "timeout": 3000,
                        "priority": "low",
                        "minSignificanceScore": 0.5,
                        "maxMemoriesPerUpdate": 2,
                    }
                },
            }
        )
    )

    config = load_hooks_config()

    assert config.memory_service.endpoint == "https://store.example:8443"
    assert config.memory_service.api_key == "abc"
    assert config.memory_service.max_memories_per_session == 5
    assert not config.hooks.topic_change.enabled

    options = config.updater_options()
    assert options.update_threshold == 0.5
    assert options.max_memories_per_update == 2
    assert options.request_timeout_s == 3.0
    assert options.update_cooldown_ms == test_settings.update_cooldown_ms


def test_invalid_json_falls_back(test_settings):
    test_settings.config_path.write_text("{not json")
    config = load_hooks_config()
    assert config == HooksConfig.defaults(test_settings)


def test_invalid_schema_falls_back(test_settings):
    test_settings.config_path.write_text(json.dumps({"memoryService": {"apiKey": "no endpoint"}}))
    config = load_hooks_config()
    assert config.memory_service.endpoint == test_settings.memory_endpoint


def test_explicit_path(tmp_path):
    path = tmp_path / "other.json"
    path.write_text(json.dumps({"memoryService": {"endpoint": "https://explicit.test"}}))
    config = load_hooks_config(path)
    assert config.memory_service.endpoint == "https://explicit.test"
    assert config.hooks.topic_change.enabled


def test_default_document_timeout_matches_settings(test_settings):
    config = HooksConfig.defaults(test_settings)
    assert config.hooks.topic_change.timeout == 5000
    assert config.updater_options(test_settings).request_timeout_s == 5.0
