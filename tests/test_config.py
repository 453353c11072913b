"""Tests for environment configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from issue_tracker.config import DEFAULT_HOST, DEFAULT_PORT, TrackerConfig, load_config, parse_policy, parse_port


class TestLoadConfig:
    def test_defaults(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        config = load_config({})
        assert config.issues_file == (tmp_path / "issues.json").resolve()
        assert config.selection_policy == "fifo"
        assert config.host == DEFAULT_HOST
        assert config.port == DEFAULT_PORT
        assert config.resolved_log_dir == config.issues_file.parent

    def test_overrides(self, tmp_path: Path) -> None:
        config = load_config(
            {
                "ISSUES_FILE": str(tmp_path / "data" / "store.json"),
                "ISSUES_SELECTION_POLICY": "LIFO",
                "ISSUES_HOST": "0.0.0.0",
                "PORT": "8080",
                "ISSUES_LOG_DIR": str(tmp_path / "logs"),
            }
        )
        assert config.issues_file == (tmp_path / "data" / "store.json").resolve()
        assert config.selection_policy == "lifo"
        assert config.host == "0.0.0.0"
        assert config.port == 8080
        assert config.resolved_log_dir == (tmp_path / "logs").resolve()

    def test_invalid_policy(self) -> None:
        with pytest.raises(ValueError, match="selection policy"):
            load_config({"ISSUES_SELECTION_POLICY": "random"})

    def test_invalid_port(self) -> None:
        with pytest.raises(ValueError, match="PORT"):
            load_config({"PORT": "http"})


class TestParsers:
    def test_parse_policy_normalizes(self) -> None:
        assert parse_policy(" Fifo ") == "fifo"

    @pytest.mark.parametrize("value", ["0", "65536", "-1"])
    def test_port_out_of_range(self, value: str) -> None:
        with pytest.raises(ValueError):
            parse_port(value)

    def test_config_is_frozen(self, tmp_path: Path) -> None:
        config = TrackerConfig(issues_file=tmp_path / "issues.json")
        with pytest.raises(AttributeError):
            config.port = 1  # type: ignore[misc]
