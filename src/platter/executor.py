import asyncio
import json
import logging
import threading
import time
from collections.abc import Callable, Mapping
from typing import Any, Union
from urllib.parse import urlsplit

from .env import load_settings_from_env
from .errors import (
    AuthenticationError,
    DecodingError,
    EncodingError,
    HttpError,
    InvalidInput,
    InvalidURL,
    NetworkError,
    RateLimitExceeded,
    RequestCancelled,
)
from .policies import RetryPolicy, coerce_retry_config
from .ratelimit import RateLimitSnapshot, RateLimitTracker
from .signing import RequestSigner
from .types import AuthCredential, SignedRequest, TransportResponse

DEFAULT_BASE_URL = "https://api.discogs.com"
HTTP_METHODS = frozenset({"GET", "POST", "PUT", "DELETE", "PATCH"})

Decoder = Callable[[bytes], Any]


def decode_json(body: bytes) -> Any:
    return json.loads(body) if body else None


def decode_text(body: bytes) -> str:
    return body.decode("utf-8")


# ---------- Base executor (shared logic; sleeping and transport calls handled by subclasses) ----------


class _Executor:
    def __init__(
        self,
        credential: Union[AuthCredential, None],
        user_agent: str,
        base_url: str = DEFAULT_BASE_URL,
        retry_config: Union[object, None] = None,
        timeout: Union[float, None] = None,
        signer: Union[RequestSigner, None] = None,
        log_level: Union[int, None] = None,
    ):
        """Initialize an executor.

        Args:
            credential (AuthCredential | None): TokenAuth or OAuth1Auth; None sends no
                Authorization header (consumer-only client for the OAuth handshake)
            user_agent (str): User-Agent sent on every request (required by Discogs)
            base_url (str): API root, without trailing path
            retry_config (RetryConfig | str | dict | None): retry configuration or preset name
            timeout (float | None): per-request transport timeout in seconds
            signer (RequestSigner | None): signer; override to change OAuth encoding
            log_level (int | None): level for the "platter" logger

        Raises:
            InvalidInput: if user_agent is empty
            InvalidURL: if base_url has no scheme or host
        """
        if not user_agent:
            raise InvalidInput("user_agent must be a non-empty string")
        parts = urlsplit(base_url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise InvalidURL(f"invalid base URL: {base_url!r}")
        self.credential = credential
        self.user_agent = user_agent
        self.base_url = base_url.rstrip("/")
        self.retry_config = coerce_retry_config(retry_config)
        self.retry_policy = RetryPolicy(self.retry_config)
        self.timeout = timeout
        self.signer = signer or RequestSigner()
        self._tracker = RateLimitTracker()
        self._logger = logging.getLogger("platter")
        if log_level is not None:
            self._logger.setLevel(log_level)

    # ---------- rate limit state ----------
    @property
    def rate_limit(self) -> Union[RateLimitSnapshot, None]:
        return self._tracker.current

    def current_rate_limit(self) -> Union[RateLimitSnapshot, None]:
        return self.rate_limit

    # ---------- Build ----------
    def build_url(self, endpoint: str, params: Union[Mapping[str, Any], None] = None) -> str:
        if not endpoint or "://" in endpoint:
            raise InvalidURL(f"invalid endpoint: {endpoint!r}")
        path = endpoint if endpoint.startswith("/") else f"/{endpoint}"
        url = self.base_url + path
        if params:
            enc = self.signer.encode
            url += "?" + "&".join(f"{enc(k)}={enc(v)}" for k, v in params.items())
        return url

    # ---------- Sign ----------
    def prepare(
        self,
        endpoint: str,
        method: str = "GET",
        params: Union[Mapping[str, Any], None] = None,
        body: Any = None,
        headers: Union[Mapping[str, str], None] = None,
        authorize: Union[Callable[[], str], None] = None,
    ) -> SignedRequest:
        """Build and sign one attempt. Called again for every retry.

        ``authorize`` replaces credential signing with a header factory that is
        called once per attempt, so handshake nonces are never replayed.
        """
        method = method.upper()
        if method not in HTTP_METHODS:
            raise InvalidInput(f"unsupported HTTP method: {method}")
        params = {str(k): str(v) for k, v in (params or {}).items()}
        url = self.build_url(endpoint, params)

        out: dict[str, str] = {"User-Agent": self.user_agent}
        if authorize is not None:
            auth = authorize()
        else:
            auth = self.signer.sign(self.credential, method, url, params)
        if auth is not None:
            out["Authorization"] = auth

        payload = None
        if body is not None and method != "GET":
            if isinstance(body, bytes):
                payload = body
            elif isinstance(body, str):
                payload = body.encode("utf-8")
            else:
                try:
                    payload = json.dumps(body).encode("utf-8")
                except (TypeError, ValueError) as e:
                    raise EncodingError(f"request body is not JSON serializable: {e}") from e
                out["Content-Type"] = "application/json"

        # caller headers go last so explicit overrides win
        out.update(headers or {})
        return SignedRequest(method=method, url=url, headers=out, body=payload)

    # ---------- Classify ----------
    def _classify(
        self, response: TransportResponse, decoder: Union[Decoder, None], attempt: int
    ) -> Any:
        self._tracker.update(response.headers)
        status = response.status_code
        if 200 <= status < 300:  # noqa: PLR2004
            try:
                return (decoder or decode_json)(response.body)
            except DecodingError:
                raise
            except Exception as e:
                raise DecodingError(e) from e
        if status == 429:  # noqa: PLR2004, http status code can be constant
            raise RateLimitExceeded(self._tracker.current, attempts=attempt + 1)
        if status in (401, 403):
            raise AuthenticationError(status, response.body)
        raise HttpError(status, response.body)

    def _retry_delay(self, attempt: int, endpoint: str) -> Union[float, None]:
        """Delay before the next attempt, or None when retries are exhausted/disabled."""
        if not self.retry_policy.should_retry(attempt):
            self._logger.info(
                f"429 on endpoint={endpoint}; giving up after {attempt + 1} attempt(s)"
            )
            return None
        delay = self.retry_policy.delay(attempt, self._tracker.current)
        self._logger.info(
            f"429 on endpoint={endpoint}; retry {attempt + 1}/{self.retry_config.max_retries} "
            f"in {delay:.2f}s"
        )
        return delay


# ---------- Sync executor (requests) ----------


class RequestExecutor(_Executor):
    def __init__(
        self,
        credential: Union[AuthCredential, None],
        user_agent: str,
        transport=None,
        **kwargs,
    ):
        """Initialize a RequestExecutor.

        Args:
            credential: TokenAuth | OAuth1Auth | None
            user_agent: User-Agent header value
            transport: object with send(SignedRequest, timeout) and close();
                defaults to a RequestsTransport owning its own requests.Session
            kwargs: base_url, retry_config, timeout, signer, log_level
        """
        super().__init__(credential, user_agent, **kwargs)
        if transport is None:
            from .transports import RequestsTransport  # noqa: PLC0415

            transport = RequestsTransport()
            self._own_transport = True
        else:
            self._own_transport = False
        self.transport = transport

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def close(self):
        if self._own_transport:
            self.transport.close()

    @classmethod
    def from_env(cls, env_path: Union[str, None] = None, **kwargs):
        """Build an executor from DISCOGS_* environment variables (and an optional .env file).

        Explicit kwargs win over values found in the environment.
        """
        settings = load_settings_from_env(env_path=env_path)
        return cls(**{**settings, **kwargs})

    def execute(
        self,
        endpoint: str,
        method: str = "GET",
        params: Union[Mapping[str, Any], None] = None,
        body: Any = None,
        headers: Union[Mapping[str, str], None] = None,
        decoder: Union[Decoder, None] = None,
        authorize: Union[Callable[[], str], None] = None,
        cancel_event: Union[threading.Event, None] = None,
    ) -> Any:
        """Perform one logical request; returns the decoded body or raises a DiscogsError.

        Only 429 responses are retried. Setting ``cancel_event`` aborts a pending
        retry sleep with RequestCancelled.
        """
        attempt = 0
        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise RequestCancelled(f"request to {endpoint} cancelled")
            request = self.prepare(endpoint, method, params, body, headers, authorize)
            self._logger.debug(f"req start method={request.method} url={request.url} attempt={attempt}")
            try:
                response = self.transport.send(request, self.timeout)
            except NetworkError as e:
                self._logger.warning(f"request error on endpoint={endpoint}: {e.cause}")
                raise
            except OSError as e:
                self._logger.warning(f"request error on endpoint={endpoint}: {e}")
                raise NetworkError(e) from e
            self._logger.debug(
                f"req done method={request.method} url={request.url} status={response.status_code}"
            )
            try:
                return self._classify(response, decoder, attempt)
            except RateLimitExceeded:
                delay = self._retry_delay(attempt, endpoint)
                if delay is None:
                    raise
            self._sleep(delay, cancel_event, endpoint)
            attempt += 1

    def _sleep(self, delay: float, cancel_event: Union[threading.Event, None], endpoint: str):
        if cancel_event is None:
            time.sleep(delay)
        elif cancel_event.wait(delay):
            raise RequestCancelled(f"request to {endpoint} cancelled while waiting to retry")

    # sugar
    def get(self, endpoint: str, params=None, **kw):
        return self.execute(endpoint, "GET", params, **kw)

    def post(self, endpoint: str, params=None, body=None, **kw):
        return self.execute(endpoint, "POST", params, body, **kw)

    def put(self, endpoint: str, params=None, body=None, **kw):
        return self.execute(endpoint, "PUT", params, body, **kw)

    def delete(self, endpoint: str, params=None, **kw):
        return self.execute(endpoint, "DELETE", params, **kw)


# ---------- Async executor (httpx/aiohttp) ----------


class AsyncRequestExecutor(_Executor):
    def __init__(
        self,
        credential: Union[AuthCredential, None],
        user_agent: str,
        transport=None,
        **kwargs,
    ):
        """Initialize an AsyncRequestExecutor.

        transport: object with async send(SignedRequest, timeout) and aclose();
        defaults to an HttpxTransport owning its own httpx.AsyncClient.
        Other keywords as for RequestExecutor.
        """
        super().__init__(credential, user_agent, **kwargs)
        if transport is None:
            from .transports import HttpxTransport  # noqa: PLC0415

            transport = HttpxTransport()
            self._own_transport = True
        else:
            self._own_transport = False
        self.transport = transport

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()
        return False

    async def aclose(self):
        if self._own_transport:
            await self.transport.aclose()

    @classmethod
    def from_env(cls, env_path: Union[str, None] = None, **kwargs):
        settings = load_settings_from_env(env_path=env_path)
        return cls(**{**settings, **kwargs})

    async def execute(
        self,
        endpoint: str,
        method: str = "GET",
        params: Union[Mapping[str, Any], None] = None,
        body: Any = None,
        headers: Union[Mapping[str, str], None] = None,
        decoder: Union[Decoder, None] = None,
        authorize: Union[Callable[[], str], None] = None,
        deadline: Union[float, None] = None,
    ) -> Any:
        """Async counterpart of RequestExecutor.execute.

        Retry sleeps only suspend this coroutine. Cancelling the task aborts the
        sleep or the in-flight transport call; ``deadline`` (seconds) bounds the
        whole call including retries and raises RequestCancelled when exceeded.
        """
        coro = self._execute(endpoint, method, params, body, headers, decoder, authorize)
        if deadline is None:
            return await coro
        try:
            return await asyncio.wait_for(coro, timeout=deadline)
        except asyncio.TimeoutError as e:
            raise RequestCancelled(
                f"request to {endpoint} exceeded its {deadline:.2f}s deadline"
            ) from e

    async def _execute(self, endpoint, method, params, body, headers, decoder, authorize):
        attempt = 0
        while True:
            request = self.prepare(endpoint, method, params, body, headers, authorize)
            self._logger.debug(f"req start method={request.method} url={request.url} attempt={attempt}")
            try:
                response = await self.transport.send(request, self.timeout)
            except NetworkError as e:
                self._logger.warning(f"request error on endpoint={endpoint}: {e.cause}")
                raise
            except OSError as e:
                self._logger.warning(f"request error on endpoint={endpoint}: {e}")
                raise NetworkError(e) from e
            self._logger.debug(
                f"req done method={request.method} url={request.url} status={response.status_code}"
            )
            try:
                return self._classify(response, decoder, attempt)
            except RateLimitExceeded:
                delay = self._retry_delay(attempt, endpoint)
                if delay is None:
                    raise
            await asyncio.sleep(delay)
            attempt += 1

    async def get(self, endpoint: str, params=None, **kw):
        return await self.execute(endpoint, "GET", params, **kw)

    async def post(self, endpoint: str, params=None, body=None, **kw):
        return await self.execute(endpoint, "POST", params, body, **kw)

    async def put(self, endpoint: str, params=None, body=None, **kw):
        return await self.execute(endpoint, "PUT", params, body, **kw)

    async def delete(self, endpoint: str, params=None, **kw):
        return await self.execute(endpoint, "DELETE", params, **kw)
