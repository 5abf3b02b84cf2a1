# Overview: HTTP client for the Dukkan API with session handling and retry-once policy.

"""
API Client

RETRY POLICY:
- network errors (connect/read failures) and 5xx responses are retried once
  after a short delay
- 4xx responses are never retried; they describe the request, not the server

401 raises UnauthorizedError, or returns None for calls made with
on_401="return_none" (used for "am I logged in?" style queries).

Mutations return the body the server sends back after commit; the client
never fabricates local state.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

RETRY_DELAY_SECONDS = 0.5


class ApiError(Exception):
    """Non-2xx response other than 401."""

    def __init__(self, status: int, message: str, response: Optional[httpx.Response] = None):
        self.status = status
        self.message = message
        self.response = response
        super().__init__(f"{status}: {message}")


class UnauthorizedError(ApiError):
    """401 from the server: no session, or the session expired."""


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or body)
    return str(body)


class DukkanClient:
    """
    Thin JSON client.

    The session cookie set by /api/auth/login is kept in the underlying
    httpx cookie jar; the token is also sent as a Bearer header so the client
    works when cookies are not forwarded.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        retry_delay: float = RETRY_DELAY_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.retry_delay = retry_delay
        self.client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)
        self.token: Optional[str] = None
        self.current_user: Optional[dict] = None

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        for attempt in (1, 2):
            try:
                response = self.client.request(method, path, headers=self._headers(), **kwargs)
            except httpx.TransportError as exc:
                if attempt == 2:
                    raise
                logger.warning("%s %s failed (%s); retrying once", method, path, exc)
                time.sleep(self.retry_delay)
                continue

            if response.status_code >= 500 and attempt == 1:
                logger.warning("%s %s returned %s; retrying once", method, path, response.status_code)
                time.sleep(self.retry_delay)
                continue
            return response
        raise RuntimeError("unreachable")

    def request(self, method: str, path: str, *, on_401: str = "raise", **kwargs) -> Any:
        response = self._send(method, path, **kwargs)

        if response.status_code == 401:
            if on_401 == "return_none":
                return None
            raise UnauthorizedError(401, _error_message(response), response)
        if response.status_code >= 400:
            raise ApiError(response.status_code, _error_message(response), response)
        if not response.content:
            return None
        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type:
            return response.json()
        return response.content

    def get(self, path: str, params: Optional[dict] = None, **kwargs) -> Any:
        return self.request("GET", path, params=params, **kwargs)

    def post(self, path: str, json: Optional[dict] = None, **kwargs) -> Any:
        return self.request("POST", path, json=json, **kwargs)

    def put(self, path: str, json: Optional[dict] = None, **kwargs) -> Any:
        return self.request("PUT", path, json=json, **kwargs)

    def patch(self, path: str, json: Optional[dict] = None, **kwargs) -> Any:
        return self.request("PATCH", path, json=json, **kwargs)

    def delete(self, path: str, **kwargs) -> Any:
        return self.request("DELETE", path, **kwargs)

    def login(self, username: str, password: str) -> dict:
        """Authenticate and keep the session token."""
        data = self.post("/api/auth/login", json={"username": username, "password": password})
        self.token = data.get("token")
        self.current_user = data.get("user")
        return data

    def logout(self) -> None:
        if not self.token:
            return
        try:
            self.post("/api/auth/logout")
        finally:
            self.token = None
            self.current_user = None
            self.client.cookies.clear()

    def status(self) -> Optional[dict]:
        return self.get("/api/auth/status", on_401="return_none")

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "DukkanClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
