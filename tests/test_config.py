"""
Tests for config file loading, saving and environment overrides.
"""

from pathlib import Path

import pytest

from ftag.config import (
    CONFIG_VERSION,
    ConfigError,
    FtagConfig,
    get_config_path,
    load_config,
    resolve_config,
    save_config,
)
from ftag.paths import DEFAULT_STORE_FILENAME


class TestConfigPath:

    def test_explicit_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("FTAG_CONFIG", str(tmp_path / "my.toml"))
        assert get_config_path() == tmp_path / "my.toml"

    def test_xdg_config_home(self, monkeypatch, tmp_path):
        monkeypatch.delenv("FTAG_CONFIG")
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        assert get_config_path() == tmp_path / "ftag" / "config.toml"


class TestLoadConfig:

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "absent.toml")
        assert config.store_filename == DEFAULT_STORE_FILENAME
        assert config.store_directory is None
        assert config.show_hidden is False
        assert not config.exists()

    def test_reads_values(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text(
            '[store]\nfilename = "tags.db"\ndirectory = "/srv/media"\n'
            '[display]\nshow_hidden = true\n'
        )
        config = load_config(path)
        assert config.store_filename == "tags.db"
        assert config.store_directory == Path("/srv/media")
        assert config.show_hidden is True

    def test_empty_directory_means_search(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text('[store]\ndirectory = ""\n')
        assert load_config(path).store_directory is None

    def test_newer_version_rejected(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text(f"[config]\nversion = {CONFIG_VERSION + 1}\n")
        with pytest.raises(ConfigError, match="newer"):
            load_config(path)

    def test_invalid_toml_rejected(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("[store\nfilename = ")
        with pytest.raises(ConfigError):
            load_config(path)

    @pytest.mark.parametrize("text, expected", [
        ('"false"', False), ('"no"', False), ('"True"', True), ("false", False),
    ])
    def test_show_hidden_accepts_strings(self, tmp_path, text, expected):
        """A quoted "false" is not truthy."""
        path = tmp_path / "config.toml"
        path.write_text(f"[display]\nshow_hidden = {text}\n")
        assert load_config(path).show_hidden is expected

    @pytest.mark.parametrize("text", ["1", '"maybe"', "[]"])
    def test_show_hidden_rejects_other_values(self, tmp_path, text):
        path = tmp_path / "config.toml"
        path.write_text(f"[display]\nshow_hidden = {text}\n")
        with pytest.raises(ConfigError, match="display.show_hidden"):
            load_config(path)

    def test_save_then_load(self, tmp_path):
        path = tmp_path / "nested" / "config.toml"
        save_config(FtagConfig(path=path, store_filename="x.db", show_hidden=True))
        config = load_config(path)
        assert config.store_filename == "x.db"
        assert config.show_hidden is True
        assert config.store_directory is None


class TestEnvOverrides:

    def test_env_overrides_file(self, monkeypatch, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text('[store]\nfilename = "file.db"\n[display]\nshow_hidden = true\n')
        monkeypatch.setenv("FTAG_DB", "env.db")
        monkeypatch.setenv("FTAG_DIR", str(tmp_path))
        monkeypatch.setenv("FTAG_SHOW_HIDDEN", "no")

        config = resolve_config(path)
        assert config.store_filename == "env.db"
        assert config.store_directory == tmp_path
        assert config.show_hidden is False

    @pytest.mark.parametrize("value", ["1", "true", "YES", "on"])
    def test_show_hidden_truthy(self, monkeypatch, tmp_path, value):
        monkeypatch.setenv("FTAG_SHOW_HIDDEN", value)
        assert resolve_config(tmp_path / "absent.toml").show_hidden is True
