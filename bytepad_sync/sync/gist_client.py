"""Remote store client - one SyncDocument kept in a secret GitHub Gist."""

import json
import logging
from typing import Optional

import requests

from .document import SyncDocument
from .errors import FormatError, NotFoundError, SyncError
from .http_client import BaseApiClient

__all__ = ["GistClient", "GIST_FILENAME", "DEFAULT_DESCRIPTION"]

logger = logging.getLogger(__name__)

GIST_FILENAME = "bytepad-data.json"
DEFAULT_DESCRIPTION = "Bytepad Data"


class GistClient(BaseApiClient):
    """Create, read and update the Gist holding the sync document."""

    def create(
        self,
        credential: str,
        document: SyncDocument,
        description: str = DEFAULT_DESCRIPTION,
    ) -> str:
        """Create a new secret Gist holding ``document``.

        Returns:
            The new Gist id

        Raises:
            AuthError: On a bad credential
            RemoteError: On any other failure
        """
        body = {
            "description": description,
            "public": False,
            "files": {GIST_FILENAME: {"content": self._serialize(document)}},
        }
        gist = self._request("POST", "gists", credential, data=body)
        gist_id = gist.get("id") if isinstance(gist, dict) else None
        if not gist_id:
            raise FormatError("GitHub did not return a Gist id")
        logger.info(f"Created Gist {gist_id}")
        return gist_id

    def read(self, credential: str, remote_id: str) -> Optional[SyncDocument]:
        """Read the sync document.

        Returns:
            The document, or None if the Gist (or its data file) does not exist

        Raises:
            AuthError: On a bad credential
            RemoteError: On transport failures and non-2xx responses
            FormatError: If the stored content is not a SyncDocument
        """
        try:
            gist = self._request("GET", f"gists/{remote_id}", credential)
        except NotFoundError:
            logger.info(f"Gist {remote_id} not found")
            return None

        files = gist.get("files") if isinstance(gist, dict) else None
        if not isinstance(files, dict):
            raise FormatError("Gist response has no files")
        file = files.get(GIST_FILENAME)
        if not file:
            logger.info(f"Gist {remote_id} has no {GIST_FILENAME}")
            return None

        content = file.get("content")
        if file.get("truncated") and file.get("raw_url"):
            # GitHub only inlines the first megabyte of a file
            content = self._request("GET", file["raw_url"], credential, raw=True)
        if not isinstance(content, str):
            raise FormatError(f"{GIST_FILENAME} has no content")

        try:
            payload = json.loads(content)
        except json.JSONDecodeError as e:
            raise FormatError(f"Invalid data format in Gist: {e}") from e
        return SyncDocument.from_dict(payload)

    def write(self, credential: str, remote_id: str, document: SyncDocument) -> None:
        """Replace the data file's content with ``document``."""
        body = {"files": {GIST_FILENAME: {"content": self._serialize(document)}}}
        self._request("PATCH", f"gists/{remote_id}", credential, data=body)
        logger.info(f"Wrote sync document to Gist {remote_id}")

    def validate_credential(self, credential: str) -> bool:
        """Check the token against GET /user. Never raises."""
        try:
            self._request("GET", "user", credential, retry=False)
            return True
        except (SyncError, requests.RequestException) as e:
            logger.debug(f"Credential check failed: {e}")
            return False

    def validate_remote_id(self, credential: str, remote_id: str) -> bool:
        """Check the Gist is reachable with this token. Never raises."""
        try:
            self._request("GET", f"gists/{remote_id}", credential, retry=False)
            return True
        except (SyncError, requests.RequestException) as e:
            logger.debug(f"Gist check failed: {e}")
            return False

    @staticmethod
    def _serialize(document: SyncDocument) -> str:
        return json.dumps(document.to_dict(), indent=2)
