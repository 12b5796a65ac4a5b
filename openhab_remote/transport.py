"""aiohttp transport for the openHAB REST and event stream endpoints."""

from __future__ import annotations

import asyncio
import socket
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import aiohttp

from openhab_remote import exceptions

EVENT_STREAM_CONTENT_TYPE = "text/event-stream"
_SYS_NET = Path("/sys/class/net")


def network_interface_up() -> bool:
    """Return ``True`` when at least one non-loopback interface is up."""
    try:
        interfaces = [name for _, name in socket.if_nameindex()]
    except OSError:
        return False

    for name in interfaces:
        if name == "lo":
            continue
        operstate = _SYS_NET / name / "operstate"
        try:
            state = operstate.read_text().strip()
        except OSError:
            return True
        if state in {"up", "unknown"}:
            return True
    return False


class AiohttpStreamResponse:
    """Open event stream reply."""

    def __init__(self, response: aiohttp.ClientResponse) -> None:
        self._response = response

    @property
    def status(self) -> int:
        return self._response.status

    @property
    def closed(self) -> bool:
        return self._response.closed

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.content.iter_any():
                yield chunk
        except (aiohttp.ClientPayloadError, aiohttp.ClientConnectionError) as err:
            raise exceptions.ConnectionFailedError(str(err)) from err
        except asyncio.TimeoutError as err:
            raise exceptions.ConnectionTimeoutError("Event stream read timed out") from err

    async def close(self) -> None:
        self._response.close()


class AiohttpTransport:
    """REST/SSE access to one hub using a shared ``aiohttp.ClientSession``."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        request_timeout: float = 10.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.base_url = base_url
        self.token = token
        self.request_timeout = request_timeout
        self._session = session
        self._owns_session = session is None

    def _headers(self, **extra: str) -> dict[str, str]:
        headers = {"Accept": "application/json", **extra}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def get_json(self, path: str) -> Any:
        session = self._get_session()
        try:
            async with session.get(
                self.base_url + path,
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            ) as response:
                if response.status != 200:
                    raise exceptions.HubResponseError(path, response.status)
                try:
                    return await response.json(content_type=None)
                except ValueError as err:
                    raise exceptions.MalformedResponseError(path, str(err)) from err
        except aiohttp.ClientError as err:
            raise exceptions.ConnectionFailedError(f"GET {path}: {err}") from err
        except asyncio.TimeoutError as err:
            raise exceptions.ConnectionTimeoutError(f"GET {path} timed out") from err

    async def post_text(self, path: str, body: str) -> None:
        session = self._get_session()
        try:
            async with session.post(
                self.base_url + path,
                data=body.encode("utf-8"),
                headers=self._headers(**{"Content-Type": "text/plain"}),
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            ) as response:
                if response.status >= 300:
                    raise exceptions.HubResponseError(path, response.status)
        except aiohttp.ClientError as err:
            raise exceptions.ConnectionFailedError(f"POST {path}: {err}") from err
        except asyncio.TimeoutError as err:
            raise exceptions.ConnectionTimeoutError(f"POST {path} timed out") from err

    async def open_stream(self, path: str) -> AiohttpStreamResponse:
        session = self._get_session()
        try:
            response = await session.get(
                self.base_url + path,
                headers=self._headers(Accept=EVENT_STREAM_CONTENT_TYPE),
                timeout=aiohttp.ClientTimeout(total=None, connect=self.request_timeout, sock_read=None),
            )
        except aiohttp.ClientError as err:
            raise exceptions.ConnectionFailedError(f"GET {path}: {err}") from err
        except asyncio.TimeoutError as err:
            raise exceptions.ConnectionTimeoutError(f"GET {path} timed out") from err

        if response.status != 200:
            response.close()
            raise exceptions.HubResponseError(path, response.status)
        return AiohttpStreamResponse(response)

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
