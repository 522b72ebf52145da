import logging
from typing import Any, Mapping, NamedTuple

import httpx
import orjson

from moodjournal.settings import settings
from .errors import (
    DEFAULT_ERROR_MESSAGE,
    NetworkError,
    api_error_for_status,
)

STALE_HEADER = "X-Offline-Cache"
QUEUED_HEADER = "X-Outbox-Queued"


class ApiResponse(NamedTuple):
    """Decoded API response plus where it actually came from."""

    data: Any
    status: int
    stale: bool = False
    queued: bool = False


class ApiClient:
    """Client responsible for talking to the journal HTTP API."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        token: str | None = None,
    ) -> None:
        self.logger = logging.getLogger(__name__)
        self.base_url = (base_url or settings.API.base_url).rstrip("/")
        self._token = token if token is not None else settings.get("API.token")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=None,
            transport=transport or httpx.AsyncHTTPTransport(retries=0),
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def token(self) -> str | None:
        return self._token

    def set_token(self, token: str | None) -> None:
        """Set the fallback bearer token used by header-based auth."""

        self._token = token or None

    def auth_headers(self) -> dict[str, str]:
        """Credentials for requests sent outside this client (outbox replay)."""

        headers: dict[str, str] = {}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        cookie = "; ".join(
            f"{cookie.name}={cookie.value}" for cookie in self._client.cookies.jar
        )
        if cookie:
            headers["Cookie"] = cookie
        return headers

    def export_credentials(self) -> dict[str, Any]:
        cookies = [
            {
                "name": cookie.name,
                "value": cookie.value,
                "domain": cookie.domain,
                "path": cookie.path,
            }
            for cookie in self._client.cookies.jar
        ]
        return {"token": self._token, "cookies": cookies}

    def restore_credentials(self, credentials: Mapping[str, Any] | None) -> None:
        if not credentials:
            return
        self.set_token(credentials.get("token"))
        for cookie in credentials.get("cookies") or []:
            self._client.cookies.set(
                str(cookie["name"]),
                str(cookie.get("value") or ""),
                domain=str(cookie.get("domain") or ""),
                path=str(cookie.get("path") or "/"),
            )

    def clear_credentials(self) -> None:
        self._token = None
        self._client.cookies.clear()

    @staticmethod
    def _normalize_response_detail(body: bytes | str | None) -> str:
        """Derive a human-readable error message from an HTTP response body."""

        if not body:
            return DEFAULT_ERROR_MESSAGE
        try:
            payload = orjson.loads(body)
        except orjson.JSONDecodeError:
            return DEFAULT_ERROR_MESSAGE
        if not isinstance(payload, dict):
            return DEFAULT_ERROR_MESSAGE
        for key in ("message", "error", "detail"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return DEFAULT_ERROR_MESSAGE

    @staticmethod
    def _decode(body: bytes) -> Any:
        if not body:
            return None
        try:
            return orjson.loads(body)
        except orjson.JSONDecodeError:
            return body.decode("utf-8", "replace")

    async def send(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        *,
        params: Mapping[str, Any] | None = None,
    ) -> ApiResponse:
        """Perform one call and return the decoded body with its provenance.

        Raises :class:`ApiError` (or a subclass) for non-2xx responses and
        :class:`NetworkError` when the server cannot be reached.
        """

        headers: dict[str, str] = {}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        content: bytes | None = None
        if body is not None:
            content = orjson.dumps(body)
            headers["Content-Type"] = "application/json"

        try:
            response = await self._client.request(
                method.upper(),
                path,
                content=content,
                params=params,
                headers=headers,
            )
        except httpx.TransportError as exc:
            self.logger.debug("%s %s failed: %r", method.upper(), path, exc)
            raise NetworkError(str(exc) or exc.__class__.__name__) from exc

        if not response.is_success:
            detail = self._normalize_response_detail(response.content)
            self.logger.debug(
                "%s %s -> %s: %s", method.upper(), path, response.status_code, detail
            )
            raise api_error_for_status(response.status_code, detail)

        return ApiResponse(
            data=self._decode(response.content),
            status=response.status_code,
            stale=response.headers.get(STALE_HEADER) == "stale",
            queued=response.headers.get(QUEUED_HEADER) == "1",
        )

    async def request(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        *,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        """Perform one call and return the parsed JSON body."""

        response = await self.send(path, method, body, params=params)
        return response.data

    async def sign_in(self, username: str, password: str) -> Any:
        data = await self.request(
            f"{settings.API.prefix}signin",
            "POST",
            {"username": username, "password": password},
        )
        if isinstance(data, dict) and data.get("token"):
            self.set_token(str(data["token"]))
        return data

    async def sign_out(self) -> Any:
        try:
            return await self.request(f"{settings.API.prefix}signout", "POST")
        finally:
            self.clear_credentials()


__all__ = ["ApiClient", "ApiResponse", "STALE_HEADER", "QUEUED_HEADER"]
