"""Base HTTP client for the GitHub REST API."""

import logging
from typing import Any, Optional

import requests

from ..config import DEFAULT_API_URL
from .errors import AuthError, NotFoundError, RemoteError
from .retry import RetryConfig, RetryExhausted, call_with_retry

__all__ = ["BaseApiClient", "DEFAULT_API_URL"]

logger = logging.getLogger(__name__)


class _TransientError(Exception):
    """Internal: marks an error as retryable."""

    pass


class BaseApiClient:
    """HTTP plumbing shared by the remote store client.

    Handles:
    - Session management
    - Bearer authentication headers
    - Retry with exponential backoff on connection errors, timeouts and 5xx
    - Mapping HTTP status codes onto the sync error taxonomy
    """

    DEFAULT_RETRY_CONFIG = RetryConfig()

    USER_AGENT = "Bytepad-Sync/1.0.0"

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        timeout: int = 30,
        retry_config: Optional[RetryConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the client.

        Args:
            api_url: GitHub API base URL
            timeout: Request timeout in seconds
            retry_config: Backoff settings for transient failures
            session: Optional requests session (for dependency injection/testing)
        """
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.retry_config = retry_config or self.DEFAULT_RETRY_CONFIG
        self._session = session or requests.Session()
        self._owns_session = session is None

    def _get_headers(self, credential: Optional[str]) -> dict:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": self.USER_AGENT,
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if credential:
            headers["Authorization"] = f"Bearer {credential}"
        return headers

    def _request(
        self,
        method: str,
        endpoint: str,
        credential: Optional[str],
        data: Optional[dict] = None,
        retry: bool = True,
        raw: bool = False,
    ) -> Any:
        """Make a request and return the decoded JSON body (or text if raw).

        Raises:
            AuthError: For 401/403 responses (not retried)
            NotFoundError: For 404 responses
            RemoteError: For other failures
        """
        url = endpoint if "://" in endpoint else f"{self.api_url}/{endpoint.lstrip('/')}"
        kwargs: dict = {"timeout": self.timeout, "headers": self._get_headers(credential)}
        if data is not None:
            kwargs["json"] = data

        def do_request() -> Any:
            try:
                response = self._session.request(method, url, **kwargs)
            except requests.exceptions.ConnectionError:
                raise _TransientError("Cannot connect to GitHub")
            except requests.exceptions.Timeout:
                raise _TransientError("Request to GitHub timed out")

            if response.status_code == 401:
                raise AuthError("Invalid or expired GitHub token")
            if response.status_code == 403:
                raise AuthError(
                    f"GitHub refused the request: {self._error_detail(response) or 'forbidden'}"
                )
            if response.status_code == 404:
                raise NotFoundError(f"Not found: {endpoint}")
            if response.status_code >= 500:
                raise _TransientError(f"GitHub server error: {response.status_code}")
            if not response.ok:
                detail = self._error_detail(response)
                raise RemoteError(
                    f"GitHub API error ({response.status_code}): {detail or response.reason}",
                    status_code=response.status_code,
                )
            if raw:
                return response.text
            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError as e:
                raise RemoteError("GitHub returned a non-JSON response") from e

        if not retry:
            try:
                return do_request()
            except _TransientError as e:
                raise RemoteError(str(e)) from e

        try:
            return call_with_retry(
                do_request,
                config=self.retry_config,
                retryable=(_TransientError,),
            )
        except RetryExhausted as e:
            raise RemoteError(str(e.last_error or e)) from e

    @staticmethod
    def _error_detail(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return ""
        if isinstance(body, dict):
            return str(body.get("message", ""))
        return ""

    def close(self) -> None:
        """Close the session if we own it."""
        if self._owns_session and self._session is not None:
            self._session.close()
            self._session = None

    def __enter__(self) -> "BaseApiClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
