"""Auth module - secure storage for the GitHub token."""

from .keychain import KeychainManager

__all__ = ["KeychainManager"]
