"""Bytepad Sync - keeps local Bytepad data in step with a GitHub Gist."""

__version__ = "1.0.0"
