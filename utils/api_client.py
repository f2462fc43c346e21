"""
Thin HTTP client for the Kimlik backend API.

Every backend endpoint answers with the same envelope:

    {"status": "success" | "error", "message": "...", "data": {...}}

The client returns the decoded envelope for 2xx responses and raises
BackendError otherwise. There is no retry layer: a failed call fails once
and the caller decides what to fall back to.
"""

import logging
from typing import Any, Callable, Dict, Optional

import requests

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """Non-2xx or undecodable response from the backend."""

    def __init__(self, message: str, status: Optional[int] = None, payload: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.payload = payload or {}


class BackendUnavailableError(BackendError):
    """The backend could not be reached at all (DNS, refused, timeout)."""


class BackendClient:
    """
    Args:
        base_url: API root, e.g. "https://api.kimlik.az/api".
        timeout: Per-request timeout in seconds.
        token_provider: Callable returning the current bearer token or None.
        session: Optional requests.Session (tests pass a fake).
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.token_provider = token_provider
        self.session = session or requests.Session()

    def get(self, path: str, params: Optional[dict] = None, auth: bool = True) -> Dict[str, Any]:
        return self.request('GET', path, params=params, auth=auth)

    def post(self, path: str, json: Optional[dict] = None, auth: bool = True) -> Dict[str, Any]:
        return self.request('POST', path, json=json, auth=auth)

    def put(self, path: str, json: Optional[dict] = None, auth: bool = True) -> Dict[str, Any]:
        return self.request('PUT', path, json=json, auth=auth)

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(self, method: str, path: str, auth: bool = True, **kwargs) -> Dict[str, Any]:
        headers = {'Accept': 'application/json'}
        if auth and self.token_provider:
            token = self.token_provider()
            if token:
                headers['Authorization'] = f"Bearer {token}"

        url = self.url_for(path)
        try:
            response = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.warning("Backend unreachable: %s %s (%s)", method, url, e)
            raise BackendUnavailableError(f"Backend unreachable: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise BackendError(
                f"Invalid JSON from {method} {path}", status=response.status_code
            ) from e

        if not isinstance(payload, dict):
            raise BackendError(f"Unexpected payload from {method} {path}", status=response.status_code)

        if not response.ok:
            message = payload.get('message') or f"{method} {path} failed with {response.status_code}"
            raise BackendError(message, status=response.status_code, payload=payload)

        return payload
