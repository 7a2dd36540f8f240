"""Registry login secrets stored by podman/skopeo."""

import base64
import binascii
import json
import logging
import os
from pathlib import Path
from typing import Any

from ..exceptions import CredentialError

logger = logging.getLogger(__name__)

RUNTIME_DIR_ENV = "XDG_RUNTIME_DIR"
AUTH_FILE = Path("containers") / "auth.json"


class CredentialStore:
    """Reads `$XDG_RUNTIME_DIR/containers/auth.json`."""

    def __init__(self, runtime_dir: str | os.PathLike | None = None) -> None:
        """Initialize the store.

        Args:
            runtime_dir: Runtime directory to use instead of $XDG_RUNTIME_DIR
        """
        self.runtime_dir = runtime_dir

    @property
    def path(self) -> Path:
        """Location of the credential file.

        Raises:
            CredentialError: If no runtime directory is configured
        """
        runtime_dir = self.runtime_dir or os.environ.get(RUNTIME_DIR_ENV)
        if not runtime_dir:
            raise CredentialError(f"${RUNTIME_DIR_ENV} not set")
        return Path(runtime_dir) / AUTH_FILE

    def load(self) -> dict[str, Any]:
        """Load the credential file.

        Returns:
            The decoded JSON document

        Raises:
            CredentialError: If the file is missing, unreadable or not JSON
        """
        path = self.path
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except OSError as e:
            raise CredentialError(f"Cannot read credentials {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise CredentialError(f"Invalid JSON in credentials {path}: {e}") from e

        if not isinstance(data, dict):
            raise CredentialError(f"Credentials {path} must be a JSON object")
        return data

    def get_auth(self, host: str) -> str:
        """Return the base64 `user:password` entry for a registry host."""
        auths = self.load().get("auths") or {}
        entry = auths.get(host)
        if not isinstance(entry, dict) or not entry.get("auth"):
            raise CredentialError(f"No credentials for registry {host}")
        logger.debug(f"using credentials for {host}")
        return entry["auth"]

    def get_credentials(self, host: str) -> tuple[str, str]:
        """Decode the login pair for a registry host.

        Args:
            host: Registry hostname (e.g., "registry.redhat.io")

        Returns:
            (user, password) tuple

        Raises:
            CredentialError: If the host is unknown or the entry is undecodable
        """
        return decode_auth(self.get_auth(host))


def decode_auth(auth: str) -> tuple[str, str]:
    """Decode a base64 `user:password` string."""
    try:
        decoded = base64.b64decode(auth, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise CredentialError(f"Cannot decode registry auth entry: {e}") from e

    if ":" not in decoded:
        raise CredentialError("Registry auth entry is not in user:password form")
    user, password = decoded.split(":", 1)
    return user, password
