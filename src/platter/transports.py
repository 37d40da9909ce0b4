import asyncio
import contextlib
from typing import Protocol, Union

from .errors import NetworkError
from .types import SignedRequest, TransportResponse


class Transport(Protocol):
    def send(self, request: SignedRequest, timeout: Union[float, None]) -> TransportResponse: ...

    def close(self) -> None: ...


class AsyncTransport(Protocol):
    async def send(
        self, request: SignedRequest, timeout: Union[float, None]
    ) -> TransportResponse: ...

    async def aclose(self) -> None: ...


# ---------- requests (sync) ----------
class RequestsTransport:
    def __init__(self, session=None):
        self.session = session
        self._own_session = session is None

    def _session(self):
        if self.session is None:
            import requests  # noqa: PLC0415

            self.session = requests.Session()
        return self.session

    def send(self, request: SignedRequest, timeout: Union[float, None] = None) -> TransportResponse:
        import requests  # noqa: PLC0415

        try:
            resp = self._session().request(
                request.method,
                request.url,
                headers=request.headers,
                data=request.body,
                timeout=timeout,
            )
        except requests.RequestException as e:
            raise NetworkError(e) from e
        return TransportResponse(resp.status_code, dict(resp.headers), resp.content)

    def close(self):
        if self._own_session and self.session is not None:
            with contextlib.suppress(Exception):
                self.session.close()
            self.session = None


# ---------- httpx (async) ----------
class HttpxTransport:
    def __init__(self, client=None):
        self.client = client
        self._own_client = client is None

    def _client(self):
        if self.client is None:
            import httpx  # noqa: PLC0415

            self.client = httpx.AsyncClient()
        return self.client

    async def send(
        self, request: SignedRequest, timeout: Union[float, None] = None
    ) -> TransportResponse:
        import httpx  # noqa: PLC0415

        kwargs = {}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            resp = await self._client().request(
                request.method,
                request.url,
                headers=request.headers,
                content=request.body,
                **kwargs,
            )
        except httpx.HTTPError as e:
            raise NetworkError(e) from e
        return TransportResponse(resp.status_code, dict(resp.headers), resp.content)

    async def aclose(self):
        if self._own_client and self.client is not None:
            with contextlib.suppress(Exception):
                await self.client.aclose()
            self.client = None


# ---------- aiohttp (async) ----------
class AiohttpTransport:
    def __init__(self, session=None):
        self.session = session
        self._own_session = session is None

    def _session(self):
        if self.session is None:
            import aiohttp  # noqa: PLC0415

            self.session = aiohttp.ClientSession()
        return self.session

    async def send(
        self, request: SignedRequest, timeout: Union[float, None] = None
    ) -> TransportResponse:
        import aiohttp  # noqa: PLC0415

        kwargs = {}
        if timeout is not None:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=timeout)
        try:
            async with self._session().request(
                request.method,
                request.url,
                headers=request.headers,
                data=request.body,
                **kwargs,
            ) as resp:
                body = await resp.read()
                return TransportResponse(resp.status, dict(resp.headers), body)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(e) from e

    async def aclose(self):
        if self._own_session and self.session is not None:
            with contextlib.suppress(Exception):
                await self.session.close()
            self.session = None
