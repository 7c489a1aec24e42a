"""Configuration management for pairbridge."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import yaml

from pairbridge.errors import ConfigError


DEFAULT_GREETING = (
    "Session linked.\n\n"
    "Your credentials follow as two documents: creds.json and its "
    "base64 copy cookie.txt."
)

DEFAULT_CONFIRMATION = (
    "Do not share this file with anybody.\n\n"
    "Thanks for pairing with pairbridge."
)


@dataclass
class PairingConfig:
    """Pairing flow configuration."""

    pairing_code_delay: float = 3.0  # seconds before requesting a code
    retry_delay: float = 2.0  # backoff after a retryable close
    print_qr_in_terminal: bool = True
    browser: list[str] = field(default_factory=lambda: ["Windows", "Firefox", "10.0"])
    event_queue_size: int = 64


@dataclass
class ExportConfig:
    """Credential export configuration."""

    open_grace_delay: float = 10.0  # settle time after the connection opens
    send_delay: float = 2.0  # pause around each document delivery
    invite_code: str | None = None  # best-effort join after export
    greeting: str = DEFAULT_GREETING
    confirmation: str = DEFAULT_CONFIRMATION


@dataclass
class BroadcastConfig:
    """Observer broadcast configuration."""

    send_timeout: float = 5.0


@dataclass
class Config:
    """Bridge configuration."""

    port: int = 3000
    bind_address: str = "0.0.0.0"
    log_level: str = "INFO"
    log_file: str | None = None
    auth_dir: str = "./sessions"
    session_service: str | None = None  # "package.module:factory"
    pairing: PairingConfig = field(default_factory=PairingConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    broadcast: BroadcastConfig = field(default_factory=BroadcastConfig)


def get_config_path(custom_path: Path | None = None) -> Path:
    """Get the configuration file path.

    Args:
        custom_path: Override path. If None, returns default.

    Returns:
        Path to config file.
    """
    if custom_path is not None:
        return custom_path
    return Path.home() / ".config" / "pairbridge" / "config.yaml"


def _default_file_reader(path: Path) -> dict[str, Any] | None:
    """Default file reader that loads YAML from disk."""
    if not path.exists():
        return None
    try:
        content = path.read_text()
        if not content.strip():
            return None
        data = yaml.safe_load(content)
    except yaml.YAMLError:
        return None
    return data if isinstance(data, dict) else None


def load_config(
    path: Path | None = None,
    file_reader: Callable[[Path], dict[str, Any] | None] | None = None,
) -> Config:
    """Load configuration from file.

    Args:
        path: Path to config file. If None, uses default path.
        file_reader: Injectable file reader for testing.

    Returns:
        Config object with values from file or defaults.
    """
    config_path = get_config_path(path)
    reader = file_reader or _default_file_reader

    data = reader(config_path)

    if data is None:
        return Config()

    defaults = PairingConfig()
    pairing_data = data.get("pairing") or {}
    pairing_config = PairingConfig(
        pairing_code_delay=pairing_data.get(
            "pairing_code_delay", defaults.pairing_code_delay
        ),
        retry_delay=pairing_data.get("retry_delay", defaults.retry_delay),
        print_qr_in_terminal=pairing_data.get(
            "print_qr_in_terminal", defaults.print_qr_in_terminal
        ),
        browser=pairing_data.get("browser", defaults.browser),
        event_queue_size=pairing_data.get(
            "event_queue_size", defaults.event_queue_size
        ),
    )

    export_data = data.get("export") or {}
    export_config = ExportConfig(
        open_grace_delay=export_data.get(
            "open_grace_delay", ExportConfig.open_grace_delay
        ),
        send_delay=export_data.get("send_delay", ExportConfig.send_delay),
        invite_code=export_data.get("invite_code", ExportConfig.invite_code),
        greeting=export_data.get("greeting", ExportConfig.greeting),
        confirmation=export_data.get("confirmation", ExportConfig.confirmation),
    )

    broadcast_data = data.get("broadcast") or {}
    broadcast_config = BroadcastConfig(
        send_timeout=broadcast_data.get("send_timeout", BroadcastConfig.send_timeout),
    )

    config = Config(
        port=data.get("port", Config.port),
        bind_address=data.get("bind_address", Config.bind_address),
        log_level=data.get("log_level", Config.log_level),
        log_file=data.get("log_file", Config.log_file),
        auth_dir=data.get("auth_dir", Config.auth_dir),
        session_service=data.get("session_service", Config.session_service),
        pairing=pairing_config,
        export=export_config,
        broadcast=broadcast_config,
    )
    validate_config(config)
    return config


def validate_config(config: Config) -> None:
    """Check values the components cannot run with.

    Raises:
        ConfigError: Naming the first offending setting.
    """
    try:
        if config.pairing.retry_delay <= 0:
            raise ConfigError("pairing.retry_delay must be positive")
        if config.pairing.pairing_code_delay < 0:
            raise ConfigError("pairing.pairing_code_delay must not be negative")
        if config.pairing.event_queue_size <= 0:
            raise ConfigError("pairing.event_queue_size must be positive")
        if config.export.open_grace_delay < 0 or config.export.send_delay < 0:
            raise ConfigError("export delays must not be negative")
        if config.broadcast.send_timeout <= 0:
            raise ConfigError("broadcast.send_timeout must be positive")
        if not 0 <= config.port <= 65535:
            raise ConfigError(f"port {config.port} is out of range")
    except TypeError as e:
        raise ConfigError(f"Invalid config value: {e}") from e
