from dataclasses import dataclass, field
from typing import ClassVar, Union


@dataclass(frozen=True)
class TokenAuth:
    token: str

    def __repr__(self) -> str:
        return "TokenAuth(token='***')"


@dataclass(frozen=True)
class OAuth1Auth:
    consumer_key: str
    consumer_secret: str
    access_token: str
    access_token_secret: str

    def __repr__(self) -> str:
        return f"OAuth1Auth(consumer_key={self.consumer_key!r}, access_token={self.access_token!r})"


AuthCredential = Union[TokenAuth, OAuth1Auth]


@dataclass(frozen=True)
class RetryConfig:
    # Retries apply to 429 only
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    enable_auto_retry: bool = True
    # When the server says remaining == 0, wait for its reset instead of backing off
    respect_reset_time: bool = True

    DEFAULT: ClassVar["RetryConfig"]
    AGGRESSIVE: ClassVar["RetryConfig"]
    CONSERVATIVE: ClassVar["RetryConfig"]

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("base_delay and max_delay must be >= 0")


RetryConfig.DEFAULT = RetryConfig()
RetryConfig.AGGRESSIVE = RetryConfig(max_retries=5, base_delay=0.5)
RetryConfig.CONSERVATIVE = RetryConfig(max_retries=2, base_delay=2.0, max_delay=120.0)


@dataclass(frozen=True)
class SignedRequest:
    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | None = None


@dataclass
class TransportResponse:
    status_code: int
    headers: dict[str, str]
    body: bytes = b""


@dataclass(frozen=True)
class OAuthToken:
    token: str
    token_secret: str
    callback_confirmed: bool = False


@dataclass(frozen=True)
class OAuth2Token:
    access_token: str
    token_type: str
    expires_in: int | None = None
    refresh_token: str | None = None
    scope: str | None = None
