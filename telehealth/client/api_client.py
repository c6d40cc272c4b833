import logging
from typing import Optional, Dict, Any
from urllib.parse import urlencode

import httpx

from telehealth.errors import classify_status

logger = logging.getLogger(__name__)


class ApiClientError(Exception):
    """A failed API call, bucketed by error_type for display"""

    def __init__(self, status_code: Optional[int], message: str, error_type: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.error_type = error_type or classify_status(status_code)

    def __repr__(self) -> str:
        return f"ApiClientError(status_code={self.status_code!r}, error_type={self.error_type!r}, message={self.message!r})"


class ApiClient:
    """
    Async client for the telehealth REST API

    Args:
        base_url: API root, e.g. "http://localhost:8000"
        token: bearer token (Firebase ID token, or the user id in dev auth mode)
        transport: optional httpx transport (httpx.ASGITransport in tests)
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(
            base_url=self.base_url, headers=headers, timeout=timeout, transport=transport
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """
        Send a request and return the decoded JSON body

        Raises:
            ApiClientError: transport failure (error_type "network") or non-2xx status
        """
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise ApiClientError(None, f"Network error: {e}", "network") from e

        if response.is_error:
            try:
                body = response.json()
                message = body.get("message") or body.get("detail") or response.reason_phrase
            except (ValueError, AttributeError):
                message = response.text or response.reason_phrase
            raise ApiClientError(response.status_code, message)

        try:
            return response.json()
        except ValueError as e:
            raise ApiClientError(response.status_code, "Invalid JSON response", "server") from e

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Any = None) -> Dict[str, Any]:
        return await self.request("POST", path, json=json)

    async def put(self, path: str, json: Any = None) -> Dict[str, Any]:
        return await self.request("PUT", path, json=json)

    async def delete(self, path: str) -> Dict[str, Any]:
        return await self.request("DELETE", path)

    def websocket_url(self, path: str) -> str:
        """ws:// or wss:// URL for a path, with the token as a query parameter"""
        if self.base_url.startswith("https://"):
            url = "wss://" + self.base_url[len("https://"):]
        elif self.base_url.startswith("http://"):
            url = "ws://" + self.base_url[len("http://"):]
        else:
            url = self.base_url
        url += path
        if self.token:
            url += "?" + urlencode({"token": self.token})
        return url
