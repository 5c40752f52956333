"""Tests for guidepilot.config: persistence, env overrides and validation."""

import json

import pytest

from guidepilot.config import AutopilotConfig, ConfigStore, GuidepilotError, apply_setting


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in (
        "GUIDEPILOT_PROVIDER",
        "GUIDEPILOT_MODEL",
        "GUIDEPILOT_OPENAI_API_KEY",
        "GUIDEPILOT_ANTHROPIC_API_KEY",
    ):
        monkeypatch.delenv(var, raising=False)


class TestPersistence:
    def test_defaults_when_missing(self, tmp_path):
        config = AutopilotConfig.load(tmp_path / "config.json")
        assert config.enabled is False
        assert config.max_guidances_per_hour == 20
        assert config.context.cache_interval_minutes == 5.0

    def test_save_load_round_trip(self, tmp_path):
        path = tmp_path / "nested" / "config.json"
        config = AutopilotConfig(
            provider="anthropic",
            model="claude-4-opus",
            intervention_threshold=0.7,
            api_keys={"anthropic": "ak-1"},
        )
        config.context.enable_git_integration = False
        config.patterns.repetition_threshold = 5
        config.save(path)

        loaded = AutopilotConfig.load(path)

        assert loaded == config

    def test_corrupt_file_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        assert AutopilotConfig.load(path) == AutopilotConfig()

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"model": "o3", "legacy_option": True}))
        assert AutopilotConfig.load(path).model == "o3"

    def test_env_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GUIDEPILOT_PROVIDER", "anthropic")
        monkeypatch.setenv("GUIDEPILOT_ANTHROPIC_API_KEY", "ak-env")
        config = AutopilotConfig.load(tmp_path / "config.json")
        assert config.provider == "anthropic"
        assert config.api_keys["anthropic"] == "ak-env"

    def test_save_keeps_env_overrides_off_disk(self, tmp_path, monkeypatch):
        path = tmp_path / "config.json"
        AutopilotConfig(api_keys={"anthropic": "ak-file"}).save(path)
        monkeypatch.setenv("GUIDEPILOT_OPENAI_API_KEY", "sk-env")
        monkeypatch.setenv("GUIDEPILOT_ANTHROPIC_API_KEY", "ak-env")
        monkeypatch.setenv("GUIDEPILOT_MODEL", "o3")

        config = AutopilotConfig.load(path)
        config.max_guidances_per_hour = 7
        config.save(path)

        stored = json.loads(path.read_text())
        assert stored["api_keys"] == {"anthropic": "ak-file"}
        assert stored["model"] == "gpt-4.1"
        assert stored["max_guidances_per_hour"] == 7

    def test_explicit_change_is_saved_despite_env(self, tmp_path, monkeypatch):
        path = tmp_path / "config.json"
        monkeypatch.setenv("GUIDEPILOT_OPENAI_API_KEY", "sk-env")
        config = AutopilotConfig.load(path)
        apply_setting(config, "api_keys.openai", "sk-typed")
        config.save(path)
        assert json.loads(path.read_text())["api_keys"] == {"openai": "sk-typed"}


class TestSettings:
    def test_top_level(self):
        config = AutopilotConfig()
        apply_setting(config, "max_guidances_per_hour", "5")
        apply_setting(config, "enabled", "true")
        assert config.max_guidances_per_hour == 5
        assert config.enabled is True

    def test_nested_and_lists(self):
        config = AutopilotConfig()
        apply_setting(config, "context.cache_interval_minutes", "2.5")
        apply_setting(config, "patterns.categories", "errors, git")
        assert config.context.cache_interval_minutes == 2.5
        assert config.patterns.categories == ["errors", "git"]

    def test_api_key(self):
        config = AutopilotConfig()
        apply_setting(config, "api_keys.openai", "sk-x")
        assert config.api_keys == {"openai": "sk-x"}

    def test_unknown_key(self):
        with pytest.raises(GuidepilotError):
            apply_setting(AutopilotConfig(), "context.nope", "1")

    def test_bad_value(self):
        with pytest.raises(GuidepilotError):
            apply_setting(AutopilotConfig(), "analysis_delay_ms", "soon")


class TestValidation:
    def test_rejects_unknown_provider(self):
        with pytest.raises(GuidepilotError):
            AutopilotConfig(provider="cohere").validate()

    def test_rejects_threshold_out_of_range(self):
        with pytest.raises(GuidepilotError):
            AutopilotConfig(intervention_threshold=1.5).validate()

    def test_store_validates_before_saving(self, tmp_path):
        path = tmp_path / "config.json"
        store = ConfigStore(path)
        with pytest.raises(GuidepilotError):
            store.set_autopilot_config(AutopilotConfig(analysis_delay_ms=0))
        assert not path.exists()

        store.set_autopilot_config(AutopilotConfig(enabled=True))
        assert ConfigStore(path).get_autopilot_config().enabled is True
