"""Credential storage for pairbridge.

This module provides:
- CredentialStore: the auth directory holding creds.json and cookie.txt

Security features:
- File permissions (600 for files, 700 for directory)
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from pairbridge.errors import StorageError

logger = logging.getLogger(__name__)

CREDS_FILE = "creds.json"
DERIVED_FILE = "cookie.txt"


class CredentialStore:
    """File-based credential storage.

    Attributes:
        directory: Auth directory path.
    """

    def __init__(self, directory: Path) -> None:
        """Initialize store.

        Args:
            directory: Path to the auth directory. Created on first write.
        """
        self.directory = Path(directory)

    @property
    def creds_path(self) -> Path:
        return self.directory / CREDS_FILE

    @property
    def derived_path(self) -> Path:
        return self.directory / DERIVED_FILE

    def _ensure_directory(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        os.chmod(self.directory, 0o700)

    def _write_private(self, path: Path, data: bytes) -> None:
        """Write ``data`` to ``path`` readable by the owner only."""
        try:
            self._ensure_directory()
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            try:
                os.write(fd, data)
            finally:
                os.close(fd)
        except OSError as e:
            raise StorageError(f"Failed to write {path.name}: {e}") from e

    def load_creds(self) -> dict[str, Any]:
        """Load stored credential state.

        Returns:
            The stored state, or an empty dict if none is usable.
        """
        if not self.creds_path.exists():
            logger.debug(f"No credentials at {self.creds_path}")
            return {}

        try:
            data = json.loads(self.creds_path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load credentials: {e}")
            return {}

        if not isinstance(data, dict):
            logger.error("Credentials file is not a JSON object")
            return {}
        return data

    def save_creds(self, creds: dict[str, Any]) -> None:
        """Persist credential state.

        Raises:
            StorageError: If the file cannot be written.
        """
        content = json.dumps(creds, indent=2).encode("utf-8")
        self._write_private(self.creds_path, content)
        logger.debug(f"Saved credentials to {self.creds_path}")

    def read_artifact(self) -> Optional[bytes]:
        """Read the raw credential artifact.

        Returns:
            File bytes, or None if it does not exist.
        """
        try:
            return self.creds_path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read {CREDS_FILE}: {e}") from e

    def write_derived(self, data: bytes) -> Path:
        """Persist the derived artifact next to the credentials.

        Returns:
            Path of the written file.
        """
        self._write_private(self.derived_path, data)
        return self.derived_path

    def read_derived(self) -> bytes:
        return self.derived_path.read_bytes()
