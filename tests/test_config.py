"""Tests for config module."""

import logging
import os
from pathlib import Path
from unittest import mock

import pytest

import spotify_analysis.config as config_module
from spotify_analysis.config import Config, get_config, set_config


@pytest.fixture(autouse=True)
def clean_env():
    """Run each test without SPOTIFY_ANALYSIS_* variables and a fresh global config."""
    saved = {k: v for k, v in os.environ.items() if k.startswith("SPOTIFY_ANALYSIS_")}
    for key in saved:
        del os.environ[key]
    config_module._config = None
    yield
    os.environ.update(saved)
    config_module._config = None


class TestConfigDefaults:
    """Tests for default values."""

    def test_default_db_path(self):
        config = Config()
        assert config.db_path == Path.home() / ".spotify_analysis" / "spotify.db"

    def test_default_timeout(self):
        assert Config().timeout == 30.0

    def test_no_source_dir(self):
        config = Config()
        assert config.source_dir is None
        assert not config.validate()


class TestConfigOverrides:
    """Tests for argument and environment precedence."""

    def test_arguments(self, tmp_path: Path):
        config = Config(db_dir=str(tmp_path), db_name="x.db", timeout=5)
        assert config.db_path == tmp_path / "x.db"
        assert config.timeout == 5

    def test_environment(self, tmp_path: Path):
        env = {
            "SPOTIFY_ANALYSIS_DB_DIR": str(tmp_path),
            "SPOTIFY_ANALYSIS_DB_NAME": "env.db",
            "SPOTIFY_ANALYSIS_TIMEOUT": "12.5",
        }
        with mock.patch.dict(os.environ, env):
            config = Config()
        assert config.db_path == tmp_path / "env.db"
        assert config.timeout == 12.5

    def test_argument_beats_environment(self, tmp_path: Path):
        with mock.patch.dict(os.environ, {"SPOTIFY_ANALYSIS_DB_NAME": "env.db"}):
            assert Config(db_name="arg.db").db_name == "arg.db"

    def test_invalid_timeout_falls_back(self, caplog):
        with mock.patch.dict(os.environ, {"SPOTIFY_ANALYSIS_TIMEOUT": "soon"}):
            with caplog.at_level(logging.WARNING):
                config = Config()
        assert config.timeout == 30.0
        assert "SPOTIFY_ANALYSIS_TIMEOUT" in caplog.text

    def test_non_positive_timeout_falls_back(self):
        with mock.patch.dict(os.environ, {"SPOTIFY_ANALYSIS_TIMEOUT": "0"}):
            assert Config().timeout == 30.0


class TestConfigPaths:
    """Tests for source folder validation and db directory creation."""

    def test_validate_existing_folder(self, tmp_path: Path):
        assert Config(source_dir=str(tmp_path)).validate()

    def test_validate_missing_folder(self, tmp_path: Path):
        assert not Config(source_dir=str(tmp_path / "missing")).validate()

    def test_ensure_db_dir(self, tmp_path: Path):
        config = Config(db_dir=str(tmp_path / "nested" / "dir"))
        config.ensure_db_dir()
        assert config.db_dir.is_dir()


class TestGlobalConfig:
    """Tests for get_config / set_config."""

    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_set_config(self, tmp_path: Path):
        config = Config(db_dir=str(tmp_path))
        set_config(config)
        assert get_config() is config

    def test_source_dir_replaces_instance(self, tmp_path: Path):
        first = get_config()
        second = get_config(str(tmp_path))
        assert second is not first
        assert second.source_dir == tmp_path
