"""Tests for CLI module."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import yaml
from click.testing import CliRunner

from pairbridge import __version__
from pairbridge.cli import main
from pairbridge.errors import ConfigError


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    """Config file pointing at a temporary auth directory."""
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump({"auth_dir": str(tmp_path / "sessions")}))
    return path


def mock_bridge(exported: bool = True) -> MagicMock:
    bridge_class = MagicMock()
    bridge = bridge_class.return_value
    bridge.start = AsyncMock()
    bridge.run = AsyncMock(return_value=exported)
    bridge.server.get_port.return_value = 3000
    return bridge_class


class TestCLIHelp:
    """Test CLI help output."""

    def test_cli_help(self, runner):
        result = runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        assert "serve" in result.output
        assert "validate" in result.output

    def test_version(self, runner, config_file):
        result = runner.invoke(main, ["-c", str(config_file), "version"])

        assert result.exit_code == 0
        assert result.output.strip() == f"pairbridge version {__version__}"


class TestValidate:
    """pairbridge validate PHONE."""

    def test_valid_number(self, runner, config_file):
        result = runner.invoke(main, ["-c", str(config_file), "validate", "+1 (202) 555-0123"])

        assert result.exit_code == 0
        assert result.output.strip() == "12025550123"

    def test_invalid_number(self, runner, config_file):
        result = runner.invoke(main, ["-c", str(config_file), "validate", "0000"])

        assert result.exit_code == 1
        assert "unknown-country-code" in result.output


class TestServe:
    """pairbridge serve."""

    def test_invalid_config_reports_error(self, runner, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.dump({"pairing": {"retry_delay": 0}}))

        result = runner.invoke(main, ["-c", str(config_path), "serve", "-s", "acme:Service"])

        assert result.exit_code == 1
        assert "Error: pairing.retry_delay must be positive" in result.output
        assert result.exception is None or isinstance(result.exception, SystemExit)

    def test_requires_session_service(self, runner, config_file):
        result = runner.invoke(main, ["-c", str(config_file), "serve"])

        assert result.exit_code == 1
        assert "No session service configured" in result.output

    def test_bad_session_service(self, runner, config_file):
        with patch(
            "pairbridge.service.load_session_service",
            side_effect=ConfigError("Cannot import session service module nope"),
        ):
            result = runner.invoke(main, ["-c", str(config_file), "serve", "-s", "nope:Service"])

        assert result.exit_code == 1
        assert "Cannot import" in result.output

    def test_serve_exports_and_exits(self, runner, config_file):
        bridge_class = mock_bridge(exported=True)
        with patch("pairbridge.service.load_session_service", return_value=MagicMock()) as load, \
             patch("pairbridge.bridge.Bridge", bridge_class):
            result = runner.invoke(
                main, ["-c", str(config_file), "serve", "-s", "acme:Service", "-p", "4000"]
            )

        assert result.exit_code == 0
        assert "Server running at http://localhost:3000" in result.output
        assert "Credentials exported." in result.output
        load.assert_called_once_with("acme:Service")

        config = bridge_class.call_args.kwargs["config"]
        assert config.port == 4000
        assert bridge_class.call_args.kwargs["qr_renderer"] is not None

    def test_serve_no_qr(self, runner, config_file):
        bridge_class = mock_bridge(exported=False)
        with patch("pairbridge.service.load_session_service", return_value=MagicMock()), \
             patch("pairbridge.bridge.Bridge", bridge_class):
            result = runner.invoke(
                main, ["-c", str(config_file), "serve", "-s", "acme:Service", "--no-qr"]
            )

        assert result.exit_code == 0
        assert "Credentials exported." not in result.output
        assert bridge_class.call_args.kwargs["qr_renderer"] is None

    def test_service_from_config(self, runner, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.dump({"session_service": "acme.adapter:Service"}))
        bridge_class = mock_bridge()
        with patch("pairbridge.service.load_session_service", return_value=MagicMock()) as load, \
             patch("pairbridge.bridge.Bridge", bridge_class):
            result = runner.invoke(main, ["-c", str(config_path), "serve"])

        assert result.exit_code == 0
        load.assert_called_once_with("acme.adapter:Service")

    def test_port_out_of_range(self, runner, config_file):
        result = runner.invoke(
            main, ["-c", str(config_file), "serve", "-s", "acme:Service", "-p", "70000"]
        )

        assert result.exit_code == 1
        assert "port 70000 is out of range" in result.output

    def test_startup_error(self, runner, config_file):
        from pairbridge.bridge import StartupError

        bridge_class = mock_bridge()
        bridge_class.return_value.start = AsyncMock(side_effect=StartupError("port in use"))
        with patch("pairbridge.service.load_session_service", return_value=MagicMock()), \
             patch("pairbridge.bridge.Bridge", bridge_class):
            result = runner.invoke(main, ["-c", str(config_file), "serve", "-s", "acme:Service"])

        assert result.exit_code == 1
        assert "port in use" in result.output
