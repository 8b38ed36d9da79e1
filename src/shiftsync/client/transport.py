from __future__ import annotations

from typing import Any

import httpx


class SyncTransportError(RuntimeError):
    """A request that did not produce a usable response.

    `offline` is True when the server was never reached (DNS, refused
    connection, timeout); otherwise `status_code` carries the HTTP status.
    """

    def __init__(self, message: str, *, offline: bool = False, status_code: int | None = None):
        super().__init__(message)
        self.offline = offline
        self.status_code = status_code


def _is_sync_body(data: dict[str, Any], records_key: str) -> bool:
    value = data.get("newSyncTimestamp")
    # bool is an int subclass; JSON true is not a timestamp.
    if not isinstance(value, int) or isinstance(value, bool):
        return False
    return isinstance(data.get(records_key, {}), dict)


class SyncApiClient:
    def __init__(
        self,
        base_url: str,
        *,
        api_prefix: str = "/api",
        token: str | None = None,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_prefix = "/" + api_prefix.strip("/") if api_prefix.strip("/") else ""
        self._token = (token or "").strip() or None
        self._timeout = timeout_seconds
        # Injected in tests (httpx.ASGITransport) to talk to the app in-process.
        self._transport = transport

    @property
    def token(self) -> str | None:
        return self._token

    def _url(self, path: str) -> str:
        return f"{self._base_url}{self._api_prefix}{path}"

    def _headers(self) -> dict[str, str]:
        if not self._token:
            raise SyncTransportError("not logged in: no bearer token", status_code=401)
        return {"Authorization": f"Bearer {self._token}"}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        records_key: str | None = None,
    ) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.request(
                    method, self._url(path), headers=headers, params=params, json=json
                )
        except httpx.TransportError as exc:
            raise SyncTransportError(f"{method} {path} unreachable: {exc!r}", offline=True) from exc

        if not 200 <= resp.status_code < 300:
            raise SyncTransportError(
                f"{method} {path} failed. {resp.status_code} {resp.text}",
                status_code=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise SyncTransportError(
                f"{method} {path} returned non-JSON body", status_code=resp.status_code
            ) from exc
        if not isinstance(data, dict):
            raise SyncTransportError(
                f"{method} {path} returned unexpected body: {data!r}", status_code=resp.status_code
            )
        if records_key is not None and not _is_sync_body(data, records_key):
            raise SyncTransportError(
                f"{method} {path} returned a malformed sync body: {data!r}",
                status_code=resp.status_code,
            )
        return data

    async def login(self, username: str, password: str) -> str:
        data = await self._request(
            "POST", "/login", json={"username": username, "password": password}
        )
        token = data.get("token")
        if not isinstance(token, str) or not token:
            raise SyncTransportError(f"login succeeded but no token in response: {data}")
        self._token = token
        return token

    async def sync(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request(
            "POST", "/sync", headers=self._headers(), json=payload, records_key="updates"
        )

    async def bootstrap(self, *, include_deleted: bool = False) -> dict[str, Any]:
        return await self._request(
            "GET",
            "/bootstrap",
            headers=self._headers(),
            params={"include_deleted": "true" if include_deleted else "false"},
            records_key="data",
        )
