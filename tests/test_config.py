"""Tests for config module."""

from pathlib import Path
from unittest.mock import Mock

import pytest
import yaml

from pairbridge.config import (
    DEFAULT_GREETING,
    Config,
    ExportConfig,
    PairingConfig,
    get_config_path,
    load_config,
    validate_config,
)
from pairbridge.errors import ConfigError


class TestConfigDefaults:
    """Test default configuration values."""

    def test_default_config_values(self):
        """Config has sensible defaults when no file exists."""
        config = Config()

        assert config.port == 3000
        assert config.bind_address == "0.0.0.0"
        assert config.log_level == "INFO"
        assert config.log_file is None
        assert config.auth_dir == "./sessions"
        assert config.session_service is None

    def test_default_pairing_values(self):
        """Pairing defaults match the service's expectations."""
        pairing = PairingConfig()

        assert pairing.pairing_code_delay == 3.0
        assert pairing.retry_delay == 2.0
        assert pairing.browser == ["Windows", "Firefox", "10.0"]

    def test_default_export_values(self):
        export = ExportConfig()

        assert export.open_grace_delay == 10.0
        assert export.send_delay == 2.0
        assert export.invite_code is None
        assert export.greeting == DEFAULT_GREETING

    def test_browser_lists_not_shared(self):
        """Each PairingConfig gets its own browser list."""
        first = PairingConfig()
        first.browser.append("extra")

        assert PairingConfig().browser == ["Windows", "Firefox", "10.0"]


class TestGetConfigPath:
    """Test config path resolution."""

    def test_get_config_path_default(self):
        """Default config path is ~/.config/pairbridge/config.yaml."""
        path = get_config_path()
        assert path == Path.home() / ".config" / "pairbridge" / "config.yaml"

    def test_get_config_path_custom(self):
        """Can override config path."""
        custom = Path("/custom/config.yaml")
        assert get_config_path(custom) == custom


class TestLoadConfig:
    """Test config loading."""

    def test_load_config_no_file_returns_defaults(self, tmp_path):
        """Config returns defaults when no file exists."""
        config = load_config(tmp_path / "nonexistent.yaml")

        assert config == Config()

    def test_load_config_from_file(self, tmp_path):
        """Config loads values from YAML file."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            yaml.dump(
                {
                    "port": 9000,
                    "bind_address": "127.0.0.1",
                    "log_level": "DEBUG",
                    "auth_dir": "/var/lib/pairbridge",
                    "session_service": "acme.adapter:Service",
                }
            )
        )

        config = load_config(config_file)

        assert config.port == 9000
        assert config.bind_address == "127.0.0.1"
        assert config.log_level == "DEBUG"
        assert config.auth_dir == "/var/lib/pairbridge"
        assert config.session_service == "acme.adapter:Service"

    def test_nested_sections(self, tmp_path):
        """Pairing, export and broadcast sections are read."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            yaml.dump(
                {
                    "pairing": {"pairing_code_delay": 1.5, "browser": ["Ubuntu", "Chrome", "22.0"]},
                    "export": {"invite_code": "ABC123", "send_delay": 0},
                    "broadcast": {"send_timeout": 1.0},
                }
            )
        )

        config = load_config(config_file)

        assert config.pairing.pairing_code_delay == 1.5
        assert config.pairing.retry_delay == 2.0
        assert config.pairing.browser == ["Ubuntu", "Chrome", "22.0"]
        assert config.export.invite_code == "ABC123"
        assert config.export.send_delay == 0
        assert config.export.open_grace_delay == 10.0
        assert config.broadcast.send_timeout == 1.0

    def test_empty_file_returns_defaults(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")

        assert load_config(config_file) == Config()

    def test_invalid_yaml_returns_defaults(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("port: [unclosed")

        assert load_config(config_file) == Config()

    def test_non_mapping_returns_defaults(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- just\n- a list\n")

        assert load_config(config_file) == Config()

    def test_injected_file_reader(self):
        """A custom reader replaces disk access."""
        reader = Mock(return_value={"port": 4000})

        config = load_config(Path("/nowhere/config.yaml"), file_reader=reader)

        reader.assert_called_once_with(Path("/nowhere/config.yaml"))
        assert config.port == 4000


class TestValidateConfig:
    """Values the bridge cannot run with are rejected up front."""

    @pytest.mark.parametrize(
        "data,setting",
        [
            ({"pairing": {"retry_delay": 0}}, "retry_delay"),
            ({"pairing": {"retry_delay": -1}}, "retry_delay"),
            ({"pairing": {"pairing_code_delay": -0.5}}, "pairing_code_delay"),
            ({"pairing": {"event_queue_size": 0}}, "event_queue_size"),
            ({"export": {"send_delay": -1}}, "export delays"),
            ({"broadcast": {"send_timeout": 0}}, "send_timeout"),
            ({"port": 70000}, "port"),
        ],
    )
    def test_invalid_values_raise(self, tmp_path, data, setting):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.dump(data))

        with pytest.raises(ConfigError, match=setting):
            load_config(config_file)

    def test_wrong_type_raises(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.dump({"pairing": {"retry_delay": "soon"}}))

        with pytest.raises(ConfigError, match="Invalid config value"):
            load_config(config_file)

    def test_defaults_are_valid(self):
        validate_config(Config())
