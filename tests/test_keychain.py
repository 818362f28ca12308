"""Tests for keychain token storage."""

from unittest.mock import patch

from keyring.errors import KeyringError, PasswordDeleteError

from bytepad_sync.auth.keychain import ACCOUNT_NAME, KeychainManager


@patch("bytepad_sync.auth.keychain.keyring")
class TestKeychainManager:
    def test_store_token(self, mock_keyring):
        assert KeychainManager().store_token("abc") is True
        mock_keyring.set_password.assert_called_once_with("Bytepad Sync", ACCOUNT_NAME, "abc")

    def test_store_failure(self, mock_keyring):
        mock_keyring.set_password.side_effect = KeyringError("locked")

        assert KeychainManager().store_token("abc") is False

    def test_load_token(self, mock_keyring):
        mock_keyring.get_password.return_value = "abc"

        manager = KeychainManager()

        assert manager.load_token() == "abc"
        assert manager.has_token()

    def test_load_empty_is_none(self, mock_keyring):
        mock_keyring.get_password.return_value = ""

        assert KeychainManager().load_token() is None

    def test_load_failure_is_none(self, mock_keyring):
        mock_keyring.get_password.side_effect = KeyringError("no backend")

        assert KeychainManager().load_token() is None

    def test_delete_missing_token_is_ok(self, mock_keyring):
        mock_keyring.delete_password.side_effect = PasswordDeleteError("not found")

        assert KeychainManager().delete_token() is True

    def test_delete_failure(self, mock_keyring):
        mock_keyring.delete_password.side_effect = KeyringError("locked")

        assert KeychainManager().delete_token() is False
