"""Tests for YAML config loading, env var resolution and overrides."""

import pydantic
import pytest

from lastmile.config import DispatchConfig, load_config, resolve_env_vars


@pytest.fixture(autouse=True)
def isolated_paths(monkeypatch, tmp_path):
    """Keep discovery away from the real working directory and home."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


def _write(path, text):
    path.write_text(text, encoding="utf-8")
    return str(path)


class TestResolveEnvVars:
    """Tests for ${VAR} substitution."""

    def test_resolves(self, monkeypatch):
        monkeypatch.setenv("TOMTOM_KEY", "abc")
        assert resolve_env_vars("key=${TOMTOM_KEY}") == "key=abc"

    def test_missing_is_empty(self, monkeypatch):
        monkeypatch.delenv("NOPE_NOT_SET", raising=False)
        assert resolve_env_vars("${NOPE_NOT_SET}") == ""


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults_without_file(self):
        config = load_config()
        assert config == DispatchConfig()
        assert config.pipeline.overdue_after_minutes == 15
        assert config.feed.status_map["Đang giao"] == "in-transit"

    def test_explicit_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TOMTOM_KEY", "secret")
        path = _write(
            tmp_path / "custom.yaml",
            "warehouse:\n"
            "  address: 12 Nguyễn Văn Linh\n"
            "geocode:\n"
            "  api_key: ${TOMTOM_KEY}\n"
            "scheduler:\n"
            "  page_size: 20\n",
        )

        config = load_config(path)

        assert config.warehouse.address == "12 Nguyễn Văn Linh"
        assert config.geocode.api_key == "secret"
        assert config.scheduler.page_size == 20
        assert config.ai.max_attempts == 5

    def test_discovers_working_directory_file(self, tmp_path):
        _write(tmp_path / "lastmile.yaml", "feed:\n  source: depot-2\n")
        assert load_config().feed.source == "depot-2"

    def test_missing_explicit_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "absent.yaml"))

    def test_empty_file_uses_defaults(self, tmp_path):
        path = _write(tmp_path / "empty.yaml", "")
        assert load_config(path) == DispatchConfig()

    def test_env_override_longest_section(self, monkeypatch):
        monkeypatch.setenv("LASTMILE_ROUTE_CACHE_WINDOW_HOURS", "2.5")
        monkeypatch.setenv("LASTMILE_PIPELINE_OVERDUE_AFTER_MINUTES", "30")

        config = load_config()

        assert config.route_cache.window_hours == 2.5
        assert config.pipeline.overdue_after_minutes == 30

    def test_env_override_beats_file(self, tmp_path, monkeypatch):
        path = _write(tmp_path / "c.yaml", "ai:\n  concurrency: 4\n")
        monkeypatch.setenv("LASTMILE_AI_CONCURRENCY", "8")
        assert load_config(path).ai.concurrency == 8

    def test_negative_overdue_threshold_rejected(self, tmp_path):
        path = _write(tmp_path / "c.yaml", "pipeline:\n  overdue_after_minutes: -1\n")
        with pytest.raises(pydantic.ValidationError):
            load_config(path)
