"""
REST HTTP client shared by the production service adapters.
"""

import json
from typing import Any, AsyncIterator, Optional

import httpx

from gp_chat.errors import GpChatError

USER_AGENT = "gp-chat/0.1.0"


class HttpClient:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def set_token(self, token: Optional[str]) -> None:
        self._token = token

    def _auth_headers(self, authenticated: bool) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if authenticated and self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _url(self, path: str) -> str:
        # An empty path targets base_url itself, without the trailing slash httpx would add.
        return path or self._base_url

    @staticmethod
    def _unwrap(json_data: Any) -> Any:
        """Unwrap { "status": ..., "data": <actual_data> } responses; pass anything else through."""
        if isinstance(json_data, dict) and "status" in json_data and "data" in json_data:
            return json_data["data"]
        return json_data

    @staticmethod
    def _check(resp: httpx.Response) -> None:
        if resp.status_code >= 400:
            raise GpChatError("http_error", f"HTTP {resp.status_code}: {resp.text[:200]}")

    async def get(
        self, path: str = "", params: Optional[dict[str, Any]] = None, authenticated: bool = True,
    ) -> Any:
        resp = await self._client.get(self._url(path), params=params, headers=self._auth_headers(authenticated))
        self._check(resp)
        return self._unwrap(resp.json())

    async def post(self, path: str = "", body: Optional[dict[str, Any]] = None, authenticated: bool = True) -> Any:
        resp = await self._client.post(self._url(path), json=body, headers=self._auth_headers(authenticated))
        self._check(resp)
        return self._unwrap(resp.json())

    async def stream_events(
        self, path: str = "", body: Optional[dict[str, Any]] = None, authenticated: bool = True,
    ) -> AsyncIterator[dict[str, Any]]:
        """POST and yield each JSON ``data:`` line of a server-sent event stream until [DONE]."""
        async with self._client.stream(
            "POST", self._url(path), json=body, headers=self._auth_headers(authenticated),
        ) as resp:
            if resp.status_code >= 400:
                await resp.aread()
                self._check(resp)
            async for line in resp.aiter_lines():
                if not line.startswith("data:"):
                    continue
                data = line[len("data:"):].strip()
                if data == "[DONE]":
                    return
                if data:
                    yield json.loads(data)

    async def close(self) -> None:
        await self._client.aclose()
