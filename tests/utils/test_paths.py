"""Tests for filesystem path resolution."""

from pathlib import Path

from lastmile.utils.paths import ensure_dirs_exist, get_data_dir, get_default_db_path


def test_data_dir_override(monkeypatch, tmp_path):
    monkeypatch.setenv("LASTMILE_DATA_DIR", str(tmp_path / "state"))
    assert get_data_dir() == tmp_path / "state"


def test_data_dir_uses_platformdirs(monkeypatch):
    monkeypatch.delenv("LASTMILE_DATA_DIR", raising=False)
    result = get_data_dir()
    assert isinstance(result, Path)
    assert "lastmile" in str(result).lower()


def test_default_db_path(monkeypatch, tmp_path):
    monkeypatch.setenv("LASTMILE_DATA_DIR", str(tmp_path))
    assert get_default_db_path() == tmp_path / "lastmile.db"


def test_ensure_dirs_exist(monkeypatch, tmp_path):
    monkeypatch.setenv("LASTMILE_DATA_DIR", str(tmp_path / "a" / "b"))
    ensure_dirs_exist()
    ensure_dirs_exist()
    assert (tmp_path / "a" / "b").is_dir()
