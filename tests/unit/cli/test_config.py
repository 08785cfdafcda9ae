"""Tests for Config loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from cleaner.cli.config import ENV_OVERRIDES, Config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove config variables from the environment."""
    monkeypatch.delenv("CLEANER_CONFIG", raising=False)
    for name in ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)


class TestConfig:
    """Tests for Config."""

    def test_defaults_without_file(self, tmp_path: Path) -> None:
        """Test that a missing file gives the defaults."""
        config = Config.load(tmp_path / "missing.yaml")

        assert config == Config()

    def test_load_file(self, tmp_path: Path) -> None:
        """Test loading settings from a YAML file."""
        path = tmp_path / "config.yaml"
        path.write_text("log_level: debug\nnamespace: jobs\nmax_workers: 4\n")

        config = Config.load(path)

        assert config.log_level == "DEBUG"
        assert config.namespace == "jobs"
        assert config.max_workers == 4

    def test_path_from_environment(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that $CLEANER_CONFIG selects the file."""
        path = tmp_path / "other.yaml"
        path.write_text("helm_binary: /usr/local/bin/helm\n")
        monkeypatch.setenv("CLEANER_CONFIG", str(path))

        assert Config.load().helm_binary == "/usr/local/bin/helm"

    def test_environment_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that environment variables win over the file."""
        path = tmp_path / "config.yaml"
        path.write_text("request_timeout: 5\n")
        monkeypatch.setenv("CLEANER_REQUEST_TIMEOUT", "12.5")
        monkeypatch.setenv("CLEANER_HELM_DRIVER", "secret")

        config = Config.load(path)

        assert config.request_timeout == 12.5
        assert config.helm_driver == "secret"

    def test_unknown_keys_are_ignored(self) -> None:
        """Test that unknown keys do not fail loading."""
        config = Config.from_dict({"max_workers": "2", "colour": "blue"})

        assert config.max_workers == 2

    def test_invalid_values(self, tmp_path: Path) -> None:
        """Test that invalid values are rejected."""
        path = tmp_path / "config.yaml"
        path.write_text("max_workers: 0\n")

        with pytest.raises(ValueError, match="max_workers"):
            Config.load(path)

        path.write_text("request_timeout: soon\n")
        with pytest.raises(ValueError, match="Invalid config value"):
            Config.load(path)

    def test_non_mapping_file(self, tmp_path: Path) -> None:
        """Test that a file holding a list is rejected."""
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ValueError, match="mapping"):
            Config.load(path)

    def test_invalid_log_level(self) -> None:
        """Test that unknown log levels are rejected."""
        with pytest.raises(ValueError, match="log level"):
            Config(log_level="LOUD").validate()
