"""Tests for configuration loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from screencoach.config.settings import (
    CaptureConfig,
    QuotaConfig,
    Settings,
    load_settings,
)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run each test in an empty directory without inherited key variables."""
    monkeypatch.chdir(tmp_path)
    for name in ("GEMINI_API_KEY", "OPENAI_API_KEY", "OPENAI_BASE_URL", "SCREENCOACH_API_KEYS"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


class TestSettings:
    def test_default_settings(self) -> None:
        settings = Settings()
        assert settings.coach.cycle_interval == 4.0
        assert settings.coach.retry_backoff == 0.2
        assert settings.quota.max_quota == 1500
        assert settings.quota.safety_limit == 1490
        assert settings.backend.base_url == "http://localhost:3001/api"
        assert settings.realtime.voice_name == "Puck"
        assert settings.api_keys == ""

    def test_capture_config_defaults(self) -> None:
        config = CaptureConfig()
        assert config.monitor_index == 1
        assert config.change_threshold == 0.02

    def test_safety_limit_must_leave_headroom(self) -> None:
        with pytest.raises(ValidationError):
            QuotaConfig(max_quota=100, safety_limit=100)

    def test_invalid_threshold_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CaptureConfig(change_threshold=1.5)


class TestLoadSettings:
    def test_missing_file_uses_defaults(self, isolated_env: Path) -> None:
        settings = load_settings(isolated_env / "missing.yaml")
        assert settings.coach.history_limit == 50

    def test_yaml_values(self, isolated_env: Path) -> None:
        config = isolated_env / "screencoach.yaml"
        config.write_text(
            "coach:\n"
            "  cycle_interval: 10\n"
            "quota:\n"
            "  max_quota: 200\n"
            "  safety_limit: 150\n"
            "providers:\n"
            "  openai_model: gpt-4o-mini\n"
        )

        settings = load_settings(config)

        assert settings.coach.cycle_interval == 10
        assert settings.quota.safety_limit == 150
        assert settings.providers.openai_model == "gpt-4o-mini"

    def test_prefixed_env_override(self, isolated_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SCREENCOACH_COACH__CYCLE_INTERVAL", "7.5")
        settings = load_settings(isolated_env / "missing.yaml")
        assert settings.coach.cycle_interval == 7.5

    def test_env_wins_over_yaml(self, isolated_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        config = isolated_env / "screencoach.yaml"
        config.write_text("coach:\n  cycle_interval: 10\n  history_limit: 20\n")
        monkeypatch.setenv("SCREENCOACH_COACH__CYCLE_INTERVAL", "3")

        settings = load_settings(config)

        assert settings.coach.cycle_interval == 3
        assert settings.coach.history_limit == 20

    def test_provider_keys_seed_api_keys(self, isolated_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GEMINI_API_KEY", "AIza-from-env")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-from-env")

        settings = load_settings(isolated_env / "missing.yaml")

        assert settings.api_keys == "AIza-from-env,sk-from-env"

    def test_yaml_keys_win_over_provider_env(self, isolated_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        config = isolated_env / "screencoach.yaml"
        config.write_text("api_keys: AIza-from-yaml\n")
        monkeypatch.setenv("GEMINI_API_KEY", "AIza-from-env")

        assert load_settings(config).api_keys == "AIza-from-yaml"

    def test_dotenv_file(self, isolated_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        # Registered so teardown removes the value the loader writes
        monkeypatch.setenv("GEMINI_API_KEY", "")
        (isolated_env / ".env").write_text("# keys\nGEMINI_API_KEY='AIza-dotenv'\n")

        settings = load_settings(isolated_env / "missing.yaml")

        assert settings.api_keys == "AIza-dotenv"

    def test_openai_base_url(self, isolated_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OPENAI_BASE_URL", "http://localhost:11434/v1")
        settings = load_settings(isolated_env / "missing.yaml")
        assert settings.providers.openai_base_url == "http://localhost:11434/v1"
