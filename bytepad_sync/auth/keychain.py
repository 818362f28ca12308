"""GitHub token storage in the system keychain."""

import logging
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

__all__ = ["KeychainManager"]

logger = logging.getLogger(__name__)

SERVICE_NAME = "Bytepad Sync"
ACCOUNT_NAME = "github_token"


class KeychainManager:
    """Keeps the Gist credential out of config.json."""

    def __init__(self, service_name: str = SERVICE_NAME):
        self.service_name = service_name

    def store_token(self, token: str) -> bool:
        """Store the token. Returns True on success."""
        try:
            keyring.set_password(self.service_name, ACCOUNT_NAME, token)
            logger.info("GitHub token stored in keychain")
            return True
        except KeyringError as e:
            logger.error(f"Failed to store GitHub token: {e}")
            return False

    def load_token(self) -> Optional[str]:
        try:
            return keyring.get_password(self.service_name, ACCOUNT_NAME) or None
        except KeyringError as e:
            logger.error(f"Failed to load GitHub token: {e}")
            return None

    def delete_token(self) -> bool:
        """Delete the stored token. Returns True if gone (or never stored)."""
        try:
            keyring.delete_password(self.service_name, ACCOUNT_NAME)
            logger.info("GitHub token deleted")
            return True
        except PasswordDeleteError:
            return True
        except KeyringError as e:
            logger.error(f"Failed to delete GitHub token: {e}")
            return False

    def has_token(self) -> bool:
        return self.load_token() is not None
