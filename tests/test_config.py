"""Tests for configuration utilities."""

import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from vocabtrace.app_config import AppConfig
from vocabtrace.exceptions import ConfigError
from vocabtrace.utils.config import (
    DEFAULT_CONFIG,
    get_config_path,
    get_value,
    load_config,
    parse_value,
    save_config,
    set_value,
)


class TestConfigPath:
    """Tests for config path resolution."""

    def test_get_config_path_default(self):
        """Test default config path is in user config directory."""
        path = get_config_path()
        assert "vocabtrace" in str(path)
        assert path.name == "config.toml"


class TestDefaultConfig:
    """Tests for default configuration."""

    def test_default_config_structure(self):
        """Test default config has expected structure."""
        assert "general" in DEFAULT_CONFIG
        assert "review" in DEFAULT_CONFIG

    def test_default_config_values(self):
        assert DEFAULT_CONFIG["general"]["language"] == "en"
        assert DEFAULT_CONFIG["review"]["count"] == 10
        assert DEFAULT_CONFIG["review"]["mode"] == "shuffle"


class TestLoadConfig:
    """Tests for loading configuration."""

    def test_load_config_missing_file(self):
        """Test loading config when file doesn't exist returns defaults."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "nonexistent.toml"

            with patch("vocabtrace.utils.config.get_config_path", return_value=config_path):
                config = load_config()

            assert config == DEFAULT_CONFIG
            assert config_path.exists()

    def test_defaults_not_shared(self, temp_dir):
        """Test mutating loaded defaults leaves DEFAULT_CONFIG alone."""
        config = load_config(temp_dir / "config.toml")
        config["review"]["count"] = 99
        assert DEFAULT_CONFIG["review"]["count"] == 10

    def test_load_existing_config(self, temp_dir):
        path = temp_dir / "config.toml"
        path.write_text('[general]\ndb_path = "/tmp/words.db"\n')

        assert load_config(path) == {"general": {"db_path": "/tmp/words.db"}}

    def test_malformed_config(self, temp_dir):
        path = temp_dir / "config.toml"
        path.write_text("[general\nbroken")

        with pytest.raises(ConfigError):
            load_config(path)


class TestSaveConfig:
    """Tests for saving configuration."""

    def test_round_trip(self, temp_dir):
        path = temp_dir / "nested" / "config.toml"
        config = {"general": {"db_path": "~/words.db"}, "review": {"count": 5}}

        save_config(config, path)

        assert load_config(path) == config


class TestValues:
    """Tests for dot-notation access."""

    def test_get_value(self):
        config = {"review": {"count": 5}}
        assert get_value(config, "review.count") == 5
        assert get_value(config, "review.mode", "auto") == "auto"
        assert get_value(config, "review.count.deeper") is None

    def test_set_value_creates_tables(self):
        config = {}
        set_value(config, "general.db_path", "/tmp/x.db")
        assert config == {"general": {"db_path": "/tmp/x.db"}}

    def test_set_value_through_scalar(self):
        config = {"review": {"count": 5}}
        with pytest.raises(ConfigError):
            set_value(config, "review.count.deeper", 1)

    @pytest.mark.parametrize(
        "raw,expected",
        [("12", 12), ("0.5", 0.5), ("true", True), ("False", False), ("shuffle", "shuffle")],
    )
    def test_parse_value(self, raw, expected):
        assert parse_value(raw) == expected


class TestAppConfig:
    """Tests for per-app database paths."""

    def test_paths(self, temp_dir):
        config = AppConfig("reader", base_dir=temp_dir / ".reader")

        assert config.vocab_db == temp_dir / ".reader" / "data" / "vocabulary.db"
        assert config.dictionary_path.name == "dictionary.txt"
        assert config.data_dir.is_dir()

    def test_default_base_dir(self, home):
        assert AppConfig("reader").base_dir == home / ".reader"
