"""Unit tests for settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from netverify.core.config import DEFAULT_SETTINGS, Settings, load_settings
from netverify.core.exceptions import ConfigError


class TestSettings:
    """Tests for the Settings dataclass."""

    def test_defaults(self) -> None:
        assert DEFAULT_SETTINGS.default_timeout == 10.0
        assert DEFAULT_SETTINGS.poll_interval == 0.1
        assert DEFAULT_SETTINGS.default_port == 8055
        assert DEFAULT_SETTINGS.tunnel_port == 51820

    @pytest.mark.parametrize(
        "overrides",
        [
            {"probe_timeout": 0},
            {"poll_interval": 0},
            {"poll_interval": 2.0, "max_poll_interval": 1.0},
            {"backoff_factor": 0.5},
            {"max_workers": 0},
        ],
    )
    def test_invalid_values(self, overrides: dict[str, float]) -> None:
        with pytest.raises(ConfigError):
            Settings(**overrides)  # type: ignore[arg-type]

    def test_retry_policy(self) -> None:
        settings = Settings(default_timeout=30.0, poll_interval=0.5, backoff_factor=2.0, max_poll_interval=4.0)
        policy = settings.retry_policy()
        assert policy.timeout == 30.0
        assert policy.poll_interval == 0.5
        assert policy.backoff_factor == 2.0
        assert settings.retry_policy(timeout=5).timeout == 5


class TestLoadSettings:
    """Tests for load_settings."""

    def test_no_sources_gives_defaults(self) -> None:
        assert load_settings(env={}) == DEFAULT_SETTINGS

    def test_nested_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yml"
        path.write_text("netverify:\n  default_timeout: 30\n  docker_binary: podman\n", encoding="utf-8")

        settings = load_settings(path, env={})

        assert settings.default_timeout == 30.0
        assert isinstance(settings.default_timeout, float)
        assert settings.docker_binary == "podman"

    def test_flat_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yml"
        path.write_text("max_workers: 8\n", encoding="utf-8")
        assert load_settings(path, env={}).max_workers == 8

    def test_env_overrides_file(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yml"
        path.write_text("default_port: 9000\n", encoding="utf-8")

        settings = load_settings(path, env={"NETVERIFY_DEFAULT_PORT": "9100", "HOME": "/root"})

        assert settings.default_port == 9100

    def test_unknown_key(self) -> None:
        with pytest.raises(ConfigError, match="Unknown setting"):
            load_settings(env={"NETVERIFY_COLOUR": "blue"})

    def test_bad_value(self) -> None:
        with pytest.raises(ConfigError, match="Invalid value for 'max_workers'"):
            load_settings(env={"NETVERIFY_MAX_WORKERS": "many"})

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_settings(tmp_path / "absent.yml", env={})

    def test_malformed_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yml"
        path.write_text("netverify: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="Malformed"):
            load_settings(path, env={})

    def test_invalid_combination_from_env(self) -> None:
        with pytest.raises(ConfigError, match="backoff_factor"):
            load_settings(env={"NETVERIFY_BACKOFF_FACTOR": "0.1"})
