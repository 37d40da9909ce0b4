from typing import Union


class DiscogsError(Exception):
    """Base class for every error raised by platter."""


class InvalidURL(DiscogsError):
    pass


class NetworkError(DiscogsError):
    """The transport failed before a response arrived (DNS, connect, timeout)."""

    def __init__(self, cause: BaseException):
        super().__init__(f"network error: {cause}")
        self.cause = cause


class InvalidResponse(DiscogsError):
    pass


class HttpError(DiscogsError):
    def __init__(self, status_code: int, body: bytes = b""):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code
        self.body = body


class AuthenticationError(HttpError):
    """401/403 from the server: the credential was rejected."""


class RateLimitExceeded(DiscogsError):
    """HTTP 429. Retried internally; raised once retries are exhausted."""

    def __init__(self, rate_limit=None, attempts: int = 1):
        super().__init__(f"rate limit exceeded after {attempts} attempt(s)")
        self.rate_limit = rate_limit
        self.attempts = attempts


class DecodingError(DiscogsError):
    def __init__(self, cause: Union[BaseException, str]):
        super().__init__(f"could not decode response: {cause}")
        self.cause = cause


class EncodingError(DiscogsError):
    pass


class InvalidInput(DiscogsError):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class RequestCancelled(DiscogsError):
    pass
